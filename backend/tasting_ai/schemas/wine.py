"""
Tasting AI — Wine Domain Schemas
=================================

What:  The structured results each AI capability produces, plus the form the
       pipeline suggests to the taster.
Why:   Providers return loosely-shaped text/JSON; these models are the point
       where that becomes validated, typed data.

WSET vocabulary:
    Appearance, nose, palate and conclusion follow the WSET Systematic
    Approach to Tasting. Scalar fields hold the grade words
    ("medium(+)", "pronounced", "outstanding", ...) exactly as the provider
    returns them; lists hold free-form descriptors.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


# ══════════════════════════════════════════════════════════════════════════
# Label Recognition
# ══════════════════════════════════════════════════════════════════════════


class WineLabelInfo(BaseModel):
    """
    What:  Fields recognised on a wine label photo.
    Who:   Produced by LabelExtractionAdapter; consumed by analysis context,
           form suggestion and the tasting-note record.
    """

    wine_name: Optional[str] = None
    producer: Optional[str] = None
    vintage: Optional[int] = Field(default=None, ge=1800, le=2100)
    appellation: Optional[str] = None
    alcohol_content: Optional[str] = Field(default=None, description='Rendered as "13.5%"')
    wine_type: Optional[str] = Field(default=None, description="red, white, rosé, sparkling, ...")
    grape_varieties: List[str] = Field(default_factory=list)
    confidence: int = Field(default=0, ge=0, le=100)
    raw_text: str = Field(default="", description="Verbatim label text as read by the vision model")
    suggested_corrections: List[str] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════
# Speech Transcription
# ══════════════════════════════════════════════════════════════════════════


class TranscriptionResult(BaseModel):
    text: str = ""
    language: str = "en"
    confidence: int = Field(default=0, ge=0, le=100)
    # True when the wine-terminology pass rewrote the raw transcript
    improved: bool = False


# ══════════════════════════════════════════════════════════════════════════
# WSET Analysis
# ══════════════════════════════════════════════════════════════════════════


class AppearanceAnalysis(BaseModel):
    color: Optional[str] = None
    intensity: Optional[str] = None
    clarity: Optional[str] = None


class NoseAnalysis(BaseModel):
    intensity: Optional[str] = None
    aromas: List[str] = Field(default_factory=list)
    faults: List[str] = Field(default_factory=list)


class PalateAnalysis(BaseModel):
    sweetness: Optional[str] = None
    acidity: Optional[str] = None
    tannins: Optional[str] = None
    alcohol: Optional[str] = None
    body: Optional[str] = None
    flavors: List[str] = Field(default_factory=list)
    finish: Optional[str] = None


class ConclusionAnalysis(BaseModel):
    quality: Optional[str] = None
    readiness: Optional[str] = None
    potential: Optional[str] = None


class WineAnalysisResult(BaseModel):
    """
    What:  WSET-structured reading of free tasting text.
    Who:   Produced by AnalysisAdapter from transcription, notes and label text.
    """

    appearance: AppearanceAnalysis = Field(default_factory=AppearanceAnalysis)
    nose: NoseAnalysis = Field(default_factory=NoseAnalysis)
    palate: PalateAnalysis = Field(default_factory=PalateAnalysis)
    conclusion: ConclusionAnalysis = Field(default_factory=ConclusionAnalysis)
    confidence: int = Field(default=0, ge=0, le=100)
    suggested_corrections: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        """True when the provider returned no tasting content at all."""
        sections = (self.appearance, self.nose, self.palate, self.conclusion)
        for section in sections:
            for value in section.model_dump().values():
                if value:
                    return False
        return True


# ══════════════════════════════════════════════════════════════════════════
# Suggested Form
# ══════════════════════════════════════════════════════════════════════════


class SuggestedTastingForm(BaseModel):
    """
    What:  Pre-filled tasting form assembled from every step that succeeded.
    How:   Built by `build_suggested_form()`; unset fields stay None/empty so
           the UI can tell "not suggested" from a real value.
    """

    # Wine identity
    wine_name: Optional[str] = None
    producer: Optional[str] = None
    vintage: Optional[int] = None
    wine_type: Optional[str] = None
    region: Optional[str] = None
    alcohol_content: Optional[str] = None
    grape_varieties: List[str] = Field(default_factory=list)

    # Appearance
    appearance_color: Optional[str] = None
    appearance_intensity: Optional[str] = None
    appearance_clarity: Optional[str] = None

    # Nose
    nose_intensity: Optional[str] = None
    nose_aromas: List[str] = Field(default_factory=list)

    # Palate
    palate_sweetness: Optional[str] = None
    palate_acidity: Optional[str] = None
    palate_tannins: Optional[str] = None
    palate_alcohol: Optional[str] = None
    palate_body: Optional[str] = None
    palate_flavors: List[str] = Field(default_factory=list)
    palate_finish: Optional[str] = None

    # Conclusion
    quality: Optional[str] = None
    readiness: Optional[str] = None

    personal_notes: Optional[str] = None
