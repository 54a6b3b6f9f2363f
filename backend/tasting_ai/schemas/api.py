"""
Tasting AI — HTTP Request/Response Schemas
===========================================

What:  Pydantic models defining the HTTP contract and the usage report.
Why:   FastAPI validates request bodies and generates OpenAPI docs from these.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from tasting_ai.schemas.pipeline import AIProcessingInput, AIProcessingOptions


# ══════════════════════════════════════════════════════════════════════════
# Requests
# ══════════════════════════════════════════════════════════════════════════


class RunPipelineRequest(BaseModel):
    """
    What:  Body of POST /api/pipeline/runs.
    Example:
        {
            "input": {"image_ref": "captures/label-42.jpg", "text_notes": "cassis, cedar"},
            "options": {"enable_speech_transcription": false}
        }
    """

    input: AIProcessingInput = Field(default_factory=AIProcessingInput)
    options: AIProcessingOptions = Field(default_factory=AIProcessingOptions)


class TastingNoteRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=128)

    @field_validator("user_id")
    @classmethod
    def strip_user_id(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("user_id must not be blank")
        return stripped


# ══════════════════════════════════════════════════════════════════════════
# Responses
# ══════════════════════════════════════════════════════════════════════════


class TastingNoteResponse(BaseModel):
    session_id: str
    record: Dict[str, Any] = Field(description="Flat record for the tasting-note store")


class ProcessingStats(BaseModel):
    """
    Aggregates over the retained session log.

    feature_usage: how many sessions enabled each step
    accuracy:      mean confidence per step, over steps that reported one
    """

    total_sessions: int = 0
    success_rate: float = Field(default=0.0, description="Percentage 0-100")
    average_processing_time_ms: float = 0.0
    feature_usage: Dict[str, int] = Field(default_factory=dict)
    accuracy: Dict[str, float] = Field(default_factory=dict)


class ProviderUsage(BaseModel):
    provider: str
    requests_today: int = 0
    requests_this_month: int = 0
    average_response_time_ms: float = 0.0
    success_rate: float = Field(default=0.0, description="Percentage 0-100")
    cache_hit_rate: float = Field(default=0.0, description="Percentage 0-100")
    remaining_this_minute: Optional[int] = Field(default=None, description="None = unlimited")
    remaining_today: Optional[int] = Field(default=None, description="None = unlimited")
    minute_window_resets_at: Optional[float] = Field(default=None, description="Epoch seconds")
    estimated_cost_today: float = Field(default=0.0, description="USD, cache hits excluded")
    estimated_cost_this_month: float = Field(default=0.0, description="USD, cache hits excluded")


class UsageReport(BaseModel):
    processing: ProcessingStats = Field(default_factory=ProcessingStats)
    providers: Dict[str, ProviderUsage] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str = Field(description="healthy, degraded or unhealthy")
    version: str
    database: str
    gemini: str
    uptime_seconds: float


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = None
