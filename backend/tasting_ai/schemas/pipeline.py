"""
Tasting AI — Pipeline Schemas
==============================

What:  The value types that flow through a pipeline run: inputs, options,
       per-step state, the finished session and the tagged adapter response.
Why:   Steps and sessions are frozen. Every state change produces a new copy,
       so a snapshot handed to a progress callback can never change under
       the caller's feet.

Step State Machine:

    pending ──► processing ──► completed
       │             └───────► failed
       ├──► skipped                     (required input absent)
       └──► failed                      (forced: session timeout / internal error)

    Terminal states (completed, failed, skipped) never change again.
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, Generic, List, Optional, Tuple, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tasting_ai.exceptions import InvalidStepTransition
from tasting_ai.schemas.wine import (
    SuggestedTastingForm,
    TranscriptionResult,
    WineAnalysisResult,
    WineLabelInfo,
)


# ══════════════════════════════════════════════════════════════════════════
# Steps
# ══════════════════════════════════════════════════════════════════════════


class StepId(str, Enum):
    OPTICAL_EXTRACTION = "optical-extraction"
    SPEECH_TRANSCRIPTION = "speech-transcription"
    TEXT_ANALYSIS = "text-analysis"
    FORM_SUGGESTION = "form-suggestion"


# Execution order is fixed: later steps consume earlier outputs
STEP_ORDER: Tuple[StepId, ...] = (
    StepId.OPTICAL_EXTRACTION,
    StepId.SPEECH_TRANSCRIPTION,
    StepId.TEXT_ANALYSIS,
    StepId.FORM_SUGGESTION,
)

STEP_NAMES: Dict[StepId, str] = {
    StepId.OPTICAL_EXTRACTION: "Analyzing wine label",
    StepId.SPEECH_TRANSCRIPTION: "Transcribing voice notes",
    StepId.TEXT_ANALYSIS: "Analyzing tasting notes",
    StepId.FORM_SUGGESTION: "Generating form suggestions",
}


class StepStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED)


_TRANSITIONS: Dict[StepStatus, FrozenSet[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.PROCESSING, StepStatus.SKIPPED}),
    StepStatus.PROCESSING: frozenset({StepStatus.COMPLETED, StepStatus.FAILED}),
}


class ProcessingStep(BaseModel):
    """
    One stage within a session.

    Attributes:
        progress:   0-100, never decreases within a step
        error:      set iff status is failed
        duration:   milliseconds, set only on completion or failure
        confidence: 0-100 when the step reported one; None otherwise
    """

    model_config = ConfigDict(frozen=True)

    id: StepId
    name: str
    status: StepStatus = StepStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=0)
    confidence: Optional[int] = Field(default=None, ge=0, le=100)
    from_cache: bool = False

    @classmethod
    def pending(cls, step_id: StepId) -> "ProcessingStep":
        return cls(id=step_id, name=STEP_NAMES[step_id])

    def transition(
        self,
        status: StepStatus,
        *,
        progress: Optional[int] = None,
        force: bool = False,
        **changes: Any,
    ) -> "ProcessingStep":
        """
        Return a copy of this step moved to `status`.

        Args:
            status:   target status
            progress: requested progress; clamped so it never goes backwards.
                      Completed and skipped steps always end at 100.
            force:    allow pending → failed (used when a run aborts)
            changes:  other fields to set (result, error, duration, ...)

        Raises:
            InvalidStepTransition: the move is not allowed by the state machine.
        """
        allowed = _TRANSITIONS.get(self.status, frozenset())
        forced_failure = (
            force and status is StepStatus.FAILED and not self.status.is_terminal
        )
        if status not in allowed and not forced_failure:
            raise InvalidStepTransition(self.id.value, self.status.value, status.value)

        if status in (StepStatus.COMPLETED, StepStatus.SKIPPED):
            target = 100
        else:
            target = progress if progress is not None else self.progress

        if status is StepStatus.FAILED:
            changes["error"] = changes.get("error") or "Step failed"
        else:
            changes["error"] = None

        return self.model_copy(
            update={"status": status, "progress": max(self.progress, min(target, 100)), **changes}
        )


# ══════════════════════════════════════════════════════════════════════════
# Inputs & Options
# ══════════════════════════════════════════════════════════════════════════


class WineContext(BaseModel):
    """Wine hints from the caller, or context derived from the label."""

    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    producer: Optional[str] = None
    vintage: Optional[int] = None
    wine_type: Optional[str] = None
    grape_varieties: Tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not any(
            (self.name, self.producer, self.vintage, self.wine_type, self.grape_varieties)
        )


class AIProcessingInput(BaseModel):
    """
    One user capture.

    image_ref / audio_ref are opaque locators resolved by the media resolver.
    Blank strings are normalised to None so "absent" has a single spelling.
    """

    model_config = ConfigDict(frozen=True)

    image_ref: Optional[str] = None
    audio_ref: Optional[str] = None
    text_notes: Optional[str] = None
    wine_hints: Optional[WineContext] = None

    @field_validator("image_ref", "audio_ref", "text_notes")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()


class AIProcessingOptions(BaseModel):
    """
    Per-run options. Each step can be switched off independently; steps that
    are off never appear in the session, not even as skipped.
    """

    model_config = ConfigDict(frozen=True)

    enable_optical_extraction: bool = True
    enable_speech_transcription: bool = True
    enable_text_analysis: bool = True
    enable_form_suggestion: bool = True
    # Store the finished session snapshot under its session id
    cache_results: bool = True
    # Let adapters answer from their result cache
    use_provider_cache: bool = True
    # Overrides the configured session timeout for this run
    max_processing_time_ms: Optional[int] = Field(default=None, ge=1)

    def enabled_steps(self) -> Tuple[StepId, ...]:
        flags = {
            StepId.OPTICAL_EXTRACTION: self.enable_optical_extraction,
            StepId.SPEECH_TRANSCRIPTION: self.enable_speech_transcription,
            StepId.TEXT_ANALYSIS: self.enable_text_analysis,
            StepId.FORM_SUGGESTION: self.enable_form_suggestion,
        }
        return tuple(step_id for step_id in STEP_ORDER if flags[step_id])


class AnalysisRequest(BaseModel):
    """Raw input for the text-analysis adapter."""

    model_config = ConfigDict(frozen=True)

    text: str
    context: WineContext = Field(default_factory=WineContext)


class ProcessOptions(BaseModel):
    """
    Per-call adapter options.

    `flags` are provider-specific switches that change the result (e.g. the
    terminology pass); they are folded into the cache key.
    """

    model_config = ConfigDict(frozen=True)

    use_cache: bool = True
    flags: Dict[str, Any] = Field(default_factory=dict)


# ══════════════════════════════════════════════════════════════════════════
# Adapter Responses
# ══════════════════════════════════════════════════════════════════════════


class AdapterOutcome(str, Enum):
    SUCCESS = "success"
    # The provider answered but found nothing usable (blank label, silence)
    EMPTY = "empty"
    ERROR = "error"


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    RATE_LIMITED = "rate_limited"
    PROVIDER = "provider"
    MEDIA = "media"
    INTERNAL = "internal"


ResultT = TypeVar("ResultT")


class ProviderResponse(BaseModel, Generic[ResultT]):
    """
    Tagged result of one adapter call. Adapters never raise; every outcome
    arrives as one of these.
    """

    model_config = ConfigDict(frozen=True)

    outcome: AdapterOutcome
    result: Optional[ResultT] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    from_cache: bool = False
    latency_ms: int = 0
    attempts: int = 0

    @property
    def ok(self) -> bool:
        return self.outcome is AdapterOutcome.SUCCESS


# ══════════════════════════════════════════════════════════════════════════
# Session
# ══════════════════════════════════════════════════════════════════════════


class ProcessingSession(BaseModel):
    """
    One finished pipeline run.

    Confidence:
        Mean of the confidences of completed steps that reported one,
        rounded half-up. Steps without a confidence are excluded. When no
        step reported one, confidence is 0 and confidence_sources is 0,
        which is how callers tell "unknown" from a genuine low score.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    steps: Tuple[ProcessingStep, ...]
    confidence: int = Field(default=0, ge=0, le=100)
    confidence_sources: int = Field(default=0, ge=0)
    processing_time_ms: int = Field(default=0, ge=0)
    started_at: float = 0.0

    label: Optional[WineLabelInfo] = None
    transcription: Optional[TranscriptionResult] = None
    analysis: Optional[WineAnalysisResult] = None
    suggested_form: Optional[SuggestedTastingForm] = None

    error: Optional[str] = None
    timed_out: bool = False

    def step(self, step_id: StepId) -> Optional[ProcessingStep]:
        for candidate in self.steps:
            if candidate.id is step_id:
                return candidate
        return None

    @property
    def steps_completed(self) -> int:
        return sum(1 for s in self.steps if s.status is StepStatus.COMPLETED)

    @property
    def success(self) -> bool:
        """No run-level error and no step failed."""
        return self.error is None and all(s.status is not StepStatus.FAILED for s in self.steps)

    def failed_step_ids(self) -> List[StepId]:
        return [s.id for s in self.steps if s.status is StepStatus.FAILED]
