"""
Tasting AI — Form Suggestion & Tasting-Note Record Tests
=========================================================

What we test:
    ✅ Form fields come from the highest-priority source that has a value
    ✅ Blank values never block a lower-priority source
    ✅ Session → record mapping copies fields and omits missing ones
    ✅ A blank user id is rejected
"""

import pytest

from tasting_ai.exceptions import ValidationError
from tasting_ai.schemas.pipeline import (
    ProcessingSession,
    ProcessingStep,
    StepId,
    StepStatus,
    WineContext,
)
from tasting_ai.schemas.wine import TranscriptionResult, WineAnalysisResult, WineLabelInfo
from tasting_ai.services.form_suggestion import build_suggested_form
from tasting_ai.services.tasting_note import to_tasting_note_record

LABEL = WineLabelInfo(
    wine_name="Grand Vin",
    producer="Château Margaux",
    vintage=2015,
    appellation="Margaux",
    alcohol_content="13.5%",
    grape_varieties=["Cabernet Sauvignon", "Merlot"],
    confidence=85,
    raw_text="...",
)
ANALYSIS = WineAnalysisResult.model_validate(
    {
        "appearance": {"color": "ruby", "intensity": "deep"},
        "nose": {"intensity": "pronounced", "aromas": ["blackcurrant", "cedar"]},
        "palate": {"sweetness": "dry", "tannins": "high", "flavors": ["cassis"], "finish": "long"},
        "conclusion": {"quality": "very good", "readiness": "can drink now"},
        "confidence": 78,
    }
)
TRANSCRIPTION = TranscriptionResult(text="Cassis, cedar, long finish", confidence=72)


class TestBuildSuggestedForm:
    def test_merges_all_sources(self):
        form = build_suggested_form(LABEL, ANALYSIS, TRANSCRIPTION)

        assert form.wine_name == "Grand Vin"
        assert form.region == "Margaux"
        assert form.grape_varieties == ["Cabernet Sauvignon", "Merlot"]
        assert form.nose_aromas == ["blackcurrant", "cedar"]
        assert form.palate_tannins == "high"
        assert form.quality == "very good"
        assert form.personal_notes == "Cassis, cedar, long finish"
        assert form.palate_acidity is None

    def test_label_beats_hints(self):
        hints = WineContext(name="Hinted Name", producer="Hinted Producer", wine_type="red")
        form = build_suggested_form(label=LABEL, hints=hints)

        assert form.wine_name == "Grand Vin"
        assert form.producer == "Château Margaux"
        # Label had no wine type; the hint fills the gap
        assert form.wine_type == "red"

    def test_blank_label_values_do_not_block_hints(self):
        label = WineLabelInfo(wine_name="   ", grape_varieties=[])
        hints = WineContext(name="Hinted Name", grape_varieties=("Syrah",))

        form = build_suggested_form(label=label, hints=hints)

        assert form.wine_name == "Hinted Name"
        assert form.grape_varieties == ["Syrah"]

    def test_nothing_in_nothing_out(self):
        form = build_suggested_form()
        assert form.model_dump(exclude_defaults=True) == {}


def _session(**outputs):
    steps = tuple(
        ProcessingStep(id=step_id, name="x", status=StepStatus.COMPLETED, progress=100)
        for step_id in StepId
    )
    return ProcessingSession(session_id="ai_session_abc123", steps=steps, **outputs)


class TestTastingNoteRecord:
    def test_full_mapping(self):
        session = _session(label=LABEL, analysis=ANALYSIS, transcription=TRANSCRIPTION)

        record = to_tasting_note_record(session, "  user-42 ")

        assert record["user_id"] == "user-42"
        assert record["visibility"] == "private"
        assert record["is_blind_tasting"] is False
        assert record["ai_processing_session_id"] == "ai_session_abc123"
        assert record["wine_name"] == "Grand Vin"
        assert record["grape_variety"] == ["Cabernet Sauvignon", "Merlot"]
        assert record["region"] == "Margaux"
        assert record["nose_aroma_characteristics"] == ["blackcurrant", "cedar"]
        assert record["palate_tannin"] == "high"
        assert record["quality_assessment"] == "very good"
        assert record["personal_notes"] == "Cassis, cedar, long finish"
        assert record["ai_recognition_confidence"] == 85
        assert record["ai_analysis_confidence"] == 78
        assert record["ai_transcription_confidence"] == 72

    def test_missing_values_are_omitted(self):
        record = to_tasting_note_record(_session(label=LABEL), "user-42")

        assert "palate_acidity" not in record
        assert "personal_notes" not in record
        assert "wine_type" not in record
        assert "ai_analysis_confidence" not in record

    def test_session_without_outputs(self):
        record = to_tasting_note_record(_session(), "user-42")
        assert set(record) == {
            "user_id",
            "visibility",
            "is_blind_tasting",
            "ai_processing_session_id",
        }

    @pytest.mark.parametrize("user_id", ["", "   "])
    def test_blank_user_id_rejected(self, user_id):
        with pytest.raises(ValidationError):
            to_tasting_note_record(_session(), user_id)
