"""
Tasting AI — Tasting Note Record Mapping
=========================================

What:  Flattens a finished ProcessingSession into the record shape the
       tasting-note store expects.
How:   Copies the wine identity from the label, WSET fields from the
       analysis, the transcript as personal notes, per-step confidences,
       and the session id for traceability. Missing values are left out of
       the record entirely; nothing is filled in with a placeholder that
       could be mistaken for a real observation.

One-directional: records are never mapped back into sessions.
"""

from typing import Any, Dict, Optional, Protocol

from tasting_ai.exceptions import ValidationError
from tasting_ai.schemas.pipeline import ProcessingSession


class TastingNoteSink(Protocol):
    """Persistence collaborator that stores tasting-note records."""

    async def save(self, record: Dict[str, Any]) -> Optional[str]:
        ...


def _put(record: Dict[str, Any], key: str, value: Any) -> None:
    if value is None:
        return
    if isinstance(value, str) and not value.strip():
        return
    if isinstance(value, (list, tuple)):
        if not value:
            return
        value = list(value)
    record[key] = value


def to_tasting_note_record(session: ProcessingSession, user_id: str) -> Dict[str, Any]:
    """
    Raises:
        ValidationError: user_id is blank.
    """
    if not user_id or not user_id.strip():
        raise ValidationError(message="A user id is required to create a tasting note", field="user_id")

    record: Dict[str, Any] = {
        "user_id": user_id.strip(),
        "visibility": "private",
        "is_blind_tasting": False,
        "ai_processing_session_id": session.session_id,
    }

    label = session.label
    if label is not None:
        _put(record, "wine_name", label.wine_name)
        _put(record, "producer", label.producer)
        _put(record, "vintage", label.vintage)
        _put(record, "wine_type", label.wine_type)
        _put(record, "grape_variety", label.grape_varieties)
        _put(record, "region", label.appellation)
        _put(record, "alcohol_content", label.alcohol_content)
        _put(record, "ai_recognition_confidence", label.confidence)

    analysis = session.analysis
    if analysis is not None:
        _put(record, "appearance_intensity", analysis.appearance.intensity)
        _put(record, "appearance_color", analysis.appearance.color)
        _put(record, "appearance_clarity", analysis.appearance.clarity)
        _put(record, "nose_intensity", analysis.nose.intensity)
        _put(record, "nose_aroma_characteristics", analysis.nose.aromas)
        _put(record, "palate_sweetness", analysis.palate.sweetness)
        _put(record, "palate_acidity", analysis.palate.acidity)
        _put(record, "palate_tannin", analysis.palate.tannins)
        _put(record, "palate_alcohol", analysis.palate.alcohol)
        _put(record, "palate_body", analysis.palate.body)
        _put(record, "palate_flavor_characteristics", analysis.palate.flavors)
        _put(record, "palate_finish", analysis.palate.finish)
        _put(record, "quality_assessment", analysis.conclusion.quality)
        _put(record, "readiness", analysis.conclusion.readiness)
        _put(record, "ai_analysis_confidence", analysis.confidence)

    transcription = session.transcription
    if transcription is not None:
        _put(record, "personal_notes", transcription.text)
        _put(record, "ai_transcription_confidence", transcription.confidence)

    return record
