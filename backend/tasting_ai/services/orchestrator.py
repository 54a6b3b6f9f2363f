"""
Tasting AI — Pipeline Orchestrator
===================================

What:  Runs one capture through the staged AI pipeline and returns a
       ProcessingSession whose steps are all in a terminal state.
Why:   The capture screen needs one call that sequences the slow,
       unreliable provider calls, shows live progress, and still produces
       a usable (partial) result when some of them fail.
How:   Steps run strictly one after another, because later steps read
       earlier outputs:

           optical-extraction    image_ref        → WineLabelInfo
           speech-transcription  audio_ref        → TranscriptionResult
           text-analysis         transcript + notes + label text
                                                  → WineAnalysisResult
           form-suggestion       all of the above → SuggestedTastingForm

       A step whose input is absent is skipped. Disabled steps are not in
       the session at all. Adapters never raise; their tagged responses
       become completed/failed steps.

Progress:
    `on_progress` receives a tuple of deep-copied, frozen step snapshots
    after every transition (plus an initial all-pending snapshot). It may
    be sync or async. An exception raised by the callback is logged and
    ignored.

Timeout & Internal Errors:
    The step sequence runs under asyncio.wait_for. On timeout, or on an
    unexpected error outside any adapter, every unfinished step is
    force-failed and one more snapshot is emitted. The caller still gets a
    well-formed session, with `error` set.

Confidence:
    Half-up rounded mean over completed steps that reported a confidence.
    No such step means 0 with confidence_sources = 0.
"""

import asyncio
import inspect
import logging
import math
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Union

from pydantic import BaseModel

from tasting_ai.clock import Clock
from tasting_ai.exceptions import NoEnabledStepsError
from tasting_ai.schemas.pipeline import (
    AdapterOutcome,
    AIProcessingInput,
    AIProcessingOptions,
    AnalysisRequest,
    ProcessingSession,
    ProcessingStep,
    ProcessOptions,
    StepId,
    StepStatus,
    WineContext,
)
from tasting_ai.services.adapter_base import ProviderAdapter
from tasting_ai.services.cache_store import CacheStore
from tasting_ai.services.form_suggestion import build_suggested_form
from tasting_ai.services.session_log import SessionLog

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Tuple[ProcessingStep, ...]], Union[None, Awaitable[None]]]

PROCESSING_PROGRESS = 10


def aggregate_confidence(steps: Tuple[ProcessingStep, ...]) -> Tuple[int, int]:
    """
    Returns (confidence, number of steps that contributed).

    Completed steps reporting 80 and 60 plus a step without a confidence
    give (70, 2).
    """
    values = [
        step.confidence
        for step in steps
        if step.status is StepStatus.COMPLETED and step.confidence is not None
    ]
    if not values:
        return 0, 0
    mean = sum(values) / len(values)
    return int(math.floor(mean + 0.5)), len(values)


class _RunState:
    """Mutable bookkeeping for one run. Never leaves the orchestrator."""

    def __init__(self, session_id: str, order: Tuple[StepId, ...]):
        self.session_id = session_id
        self.order = order
        self.steps: Dict[StepId, ProcessingStep] = {
            step_id: ProcessingStep.pending(step_id) for step_id in order
        }
        self.step_started: Dict[StepId, float] = {}
        self.outputs: Dict[StepId, Any] = {}

    def update(self, step_id: StepId, status: StepStatus, **changes: Any) -> None:
        self.steps[step_id] = self.steps[step_id].transition(status, **changes)

    def snapshot(self) -> Tuple[ProcessingStep, ...]:
        return tuple(self.steps[step_id].model_copy(deep=True) for step_id in self.order)

    def force_fail_unfinished(self, message: str, now: float) -> bool:
        changed = False
        for step_id in self.order:
            step = self.steps[step_id]
            if step.status.is_terminal:
                continue
            started = self.step_started.get(step_id)
            duration = max(0, int(round((now - started) * 1000))) if started is not None else 0
            self.steps[step_id] = step.transition(
                StepStatus.FAILED, force=True, error=message, duration=duration
            )
            changed = True
        return changed


class PipelineOrchestrator:
    """
    Args:
        vision / transcription / analysis: provider adapters for each step
        clock:           time source for durations
        session_cache:   where finished session snapshots are stored
        session_log:     per-run outcome log
        timeout_seconds: default session-wide timeout
    """

    def __init__(
        self,
        *,
        vision: ProviderAdapter,
        transcription: ProviderAdapter,
        analysis: ProviderAdapter,
        clock: Clock,
        session_cache: Optional[CacheStore] = None,
        session_log: Optional[SessionLog] = None,
        timeout_seconds: float = 60.0,
    ):
        self.adapters: Dict[StepId, ProviderAdapter] = {
            StepId.OPTICAL_EXTRACTION: vision,
            StepId.SPEECH_TRANSCRIPTION: transcription,
            StepId.TEXT_ANALYSIS: analysis,
        }
        self.clock = clock
        self.session_cache = session_cache
        self.session_log = session_log
        self.timeout_seconds = timeout_seconds

    # ══════════════════════════════════════════════════════════════════════
    # Public API
    # ══════════════════════════════════════════════════════════════════════

    async def run(
        self,
        processing_input: AIProcessingInput,
        options: Optional[AIProcessingOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessingSession:
        """
        Execute one pipeline run.

        Raises:
            NoEnabledStepsError: options disable every step. Nothing else
                                 is raised; failures live in the session.
        """
        options = options or AIProcessingOptions()
        order = options.enabled_steps()
        if not order:
            raise NoEnabledStepsError(options=options.model_dump())

        session_id = f"ai_session_{uuid.uuid4().hex}"
        state = _RunState(session_id, order)
        timeout = (
            options.max_processing_time_ms / 1000
            if options.max_processing_time_ms is not None
            else self.timeout_seconds
        )
        started = self.clock.now()
        logger.info(
            "[%s] Pipeline started: steps=%s, timeout=%gs",
            session_id,
            ",".join(step_id.value for step_id in order),
            timeout,
        )

        error: Optional[str] = None
        timed_out = False
        try:
            await asyncio.wait_for(
                self._run_steps(state, processing_input, options, on_progress),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            timed_out = True
            error = f"Processing timed out after {timeout:g}s"
            logger.warning("[%s] %s", session_id, error)
        except Exception as e:
            error = f"Unexpected pipeline error: {type(e).__name__}"
            logger.error("[%s] %s: %s", session_id, error, str(e), exc_info=True)

        if error is not None and state.force_fail_unfinished(error, self.clock.now()):
            await self._emit(state, on_progress)

        session = self._finish(state, started, error, timed_out)
        await self._persist(session, options)

        logger.info(
            "[%s] Pipeline finished in %dms: confidence=%d, completed=%d/%d%s",
            session_id,
            session.processing_time_ms,
            session.confidence,
            session.steps_completed,
            len(session.steps),
            f", error={error}" if error else "",
        )
        return session

    # ══════════════════════════════════════════════════════════════════════
    # Step execution
    # ══════════════════════════════════════════════════════════════════════

    async def _run_steps(
        self,
        state: _RunState,
        data: AIProcessingInput,
        options: AIProcessingOptions,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        await self._emit(state, on_progress)
        adapter_options = ProcessOptions(use_cache=options.use_provider_cache)

        for step_id in state.order:
            if step_id is StepId.FORM_SUGGESTION:
                await self._run_form_step(state, data, on_progress)
                continue

            if step_id is StepId.OPTICAL_EXTRACTION:
                raw_input: Any = data.image_ref
            elif step_id is StepId.SPEECH_TRANSCRIPTION:
                raw_input = data.audio_ref
            else:
                text = self._analysis_text(state, data)
                raw_input = (
                    AnalysisRequest(text=text, context=self._wine_context(state, data))
                    if text
                    else None
                )
            await self._run_adapter_step(state, step_id, raw_input, adapter_options, on_progress)

    async def _run_adapter_step(
        self,
        state: _RunState,
        step_id: StepId,
        raw_input: Any,
        adapter_options: ProcessOptions,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        if raw_input is None:
            state.update(step_id, StepStatus.SKIPPED)
            logger.debug("[%s] %s skipped: no input", state.session_id, step_id.value)
            await self._emit(state, on_progress)
            return

        adapter = self.adapters[step_id]
        step_started = self.clock.now()
        state.step_started[step_id] = step_started
        state.update(step_id, StepStatus.PROCESSING, progress=PROCESSING_PROGRESS)
        await self._emit(state, on_progress)

        response = await adapter.process(raw_input, adapter_options)
        duration = self._elapsed_ms(step_started)

        if response.outcome is AdapterOutcome.SUCCESS:
            result = response.result
            state.outputs[step_id] = result
            state.update(
                step_id,
                StepStatus.COMPLETED,
                result=result.model_dump(mode="json"),
                duration=duration,
                confidence=adapter.confidence_of(result),
                from_cache=response.from_cache,
            )
        elif response.outcome is AdapterOutcome.EMPTY:
            # Nothing usable came back; the step ran fine but contributes no confidence
            state.update(
                step_id,
                StepStatus.COMPLETED,
                result=self._dump(response.result),
                duration=duration,
            )
        else:
            state.update(
                step_id,
                StepStatus.FAILED,
                error=response.error,
                duration=duration,
                result={"error_kind": response.error_kind.value} if response.error_kind else None,
            )
        await self._emit(state, on_progress)

    async def _run_form_step(
        self,
        state: _RunState,
        data: AIProcessingInput,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        step_id = StepId.FORM_SUGGESTION
        step_started = self.clock.now()
        state.step_started[step_id] = step_started
        state.update(step_id, StepStatus.PROCESSING, progress=PROCESSING_PROGRESS)
        await self._emit(state, on_progress)

        try:
            form = build_suggested_form(
                label=state.outputs.get(StepId.OPTICAL_EXTRACTION),
                analysis=state.outputs.get(StepId.TEXT_ANALYSIS),
                transcription=state.outputs.get(StepId.SPEECH_TRANSCRIPTION),
                hints=data.wine_hints,
            )
        except Exception as e:
            logger.error(
                "[%s] Form suggestion failed: %s", state.session_id, str(e), exc_info=True
            )
            state.update(
                step_id,
                StepStatus.FAILED,
                error=f"Form suggestion failed: {type(e).__name__}",
                duration=self._elapsed_ms(step_started),
            )
        else:
            state.outputs[step_id] = form
            state.update(
                step_id,
                StepStatus.COMPLETED,
                result=form.model_dump(mode="json"),
                duration=self._elapsed_ms(step_started),
            )
        await self._emit(state, on_progress)

    # ══════════════════════════════════════════════════════════════════════
    # Inputs derived from earlier steps
    # ══════════════════════════════════════════════════════════════════════

    @staticmethod
    def _analysis_text(state: _RunState, data: AIProcessingInput) -> Optional[str]:
        """Transcript, then the caller's notes, then the label text."""
        parts = []
        transcription = state.outputs.get(StepId.SPEECH_TRANSCRIPTION)
        if transcription is not None and transcription.text.strip():
            parts.append(transcription.text.strip())
        if data.text_notes:
            parts.append(data.text_notes)
        label = state.outputs.get(StepId.OPTICAL_EXTRACTION)
        if label is not None and label.raw_text.strip():
            label_text = label.raw_text.strip()
            parts.append(f"Label text: {label_text}" if parts else label_text)
        text = "\n\n".join(parts).strip()
        return text or None

    @staticmethod
    def _wine_context(state: _RunState, data: AIProcessingInput) -> WineContext:
        """Label fields first, caller hints where the label had nothing."""
        hints = data.wine_hints or WineContext()
        label = state.outputs.get(StepId.OPTICAL_EXTRACTION)
        if label is None:
            return hints
        return WineContext(
            name=label.wine_name or hints.name,
            producer=label.producer or hints.producer,
            vintage=label.vintage or hints.vintage,
            wine_type=label.wine_type or hints.wine_type,
            grape_varieties=tuple(label.grape_varieties) or hints.grape_varieties,
        )

    # ══════════════════════════════════════════════════════════════════════
    # Finishing
    # ══════════════════════════════════════════════════════════════════════

    def _finish(
        self,
        state: _RunState,
        started: float,
        error: Optional[str],
        timed_out: bool,
    ) -> ProcessingSession:
        steps = tuple(state.steps[step_id] for step_id in state.order)
        confidence, sources = aggregate_confidence(steps)
        return ProcessingSession(
            session_id=state.session_id,
            steps=steps,
            confidence=confidence,
            confidence_sources=sources,
            processing_time_ms=self._elapsed_ms(started),
            started_at=started,
            label=state.outputs.get(StepId.OPTICAL_EXTRACTION),
            transcription=state.outputs.get(StepId.SPEECH_TRANSCRIPTION),
            analysis=state.outputs.get(StepId.TEXT_ANALYSIS),
            suggested_form=state.outputs.get(StepId.FORM_SUGGESTION),
            error=error,
            timed_out=timed_out,
        )

    async def _persist(self, session: ProcessingSession, options: AIProcessingOptions) -> None:
        # Both stores swallow their own storage errors
        if options.cache_results and self.session_cache is not None:
            await self.session_cache.set(session.session_id, session.model_dump(mode="json"))
        if self.session_log is not None:
            await self.session_log.record(session)

    async def _emit(self, state: _RunState, on_progress: Optional[ProgressCallback]) -> None:
        if on_progress is None:
            return
        snapshot = state.snapshot()
        try:
            outcome = on_progress(snapshot)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(
                "[%s] Progress callback raised, ignoring: %s", state.session_id, str(e)
            )

    def _elapsed_ms(self, since: float) -> int:
        return max(0, int(round((self.clock.now() - since) * 1000)))

    @staticmethod
    def _dump(result: Any) -> Optional[Dict[str, Any]]:
        if isinstance(result, BaseModel):
            return result.model_dump(mode="json")
        return None
