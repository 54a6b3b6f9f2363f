"""
Tasting AI — Form Suggestion
=============================

What:  Merges whatever the pipeline produced into one SuggestedTastingForm.
How:   Sources are applied in priority order. A field, once set, is never
       overwritten by a later source, and empty values contribute nothing:

           1. label recognition   (what is printed on the bottle)
           2. WSET analysis       (what the taster described)
           3. transcription       (raw words → personal notes)
           4. caller hints        (what the app already knew)

Pure and synchronous: no I/O, no clock, no randomness. Any exception
raised here is a bug and is recorded by the orchestrator as a failure of
the form-suggestion step.
"""

from typing import Any, Dict, Optional

from tasting_ai.schemas.pipeline import WineContext
from tasting_ai.schemas.wine import (
    SuggestedTastingForm,
    TranscriptionResult,
    WineAnalysisResult,
    WineLabelInfo,
)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _apply(fields: Dict[str, Any], source: Dict[str, Any]) -> None:
    for name, value in source.items():
        if _is_blank(value) or not _is_blank(fields.get(name)):
            continue
        fields[name] = list(value) if isinstance(value, tuple) else value


def build_suggested_form(
    label: Optional[WineLabelInfo] = None,
    analysis: Optional[WineAnalysisResult] = None,
    transcription: Optional[TranscriptionResult] = None,
    hints: Optional[WineContext] = None,
) -> SuggestedTastingForm:
    fields: Dict[str, Any] = {}

    if label is not None:
        _apply(fields, {
            "wine_name": label.wine_name,
            "producer": label.producer,
            "vintage": label.vintage,
            "wine_type": label.wine_type,
            "region": label.appellation,
            "alcohol_content": label.alcohol_content,
            "grape_varieties": label.grape_varieties,
        })

    if analysis is not None:
        _apply(fields, {
            "appearance_color": analysis.appearance.color,
            "appearance_intensity": analysis.appearance.intensity,
            "appearance_clarity": analysis.appearance.clarity,
            "nose_intensity": analysis.nose.intensity,
            "nose_aromas": analysis.nose.aromas,
            "palate_sweetness": analysis.palate.sweetness,
            "palate_acidity": analysis.palate.acidity,
            "palate_tannins": analysis.palate.tannins,
            "palate_alcohol": analysis.palate.alcohol,
            "palate_body": analysis.palate.body,
            "palate_flavors": analysis.palate.flavors,
            "palate_finish": analysis.palate.finish,
            "quality": analysis.conclusion.quality,
            "readiness": analysis.conclusion.readiness,
        })

    if transcription is not None:
        _apply(fields, {"personal_notes": transcription.text})

    if hints is not None:
        _apply(fields, {
            "wine_name": hints.name,
            "producer": hints.producer,
            "vintage": hints.vintage,
            "wine_type": hints.wine_type,
            "grape_varieties": hints.grape_varieties,
        })

    return SuggestedTastingForm(**fields)
