"""
Tasting AI — Pipeline Service
==============================

What:  The façade the HTTP layer (and any other caller) talks to: run the
       pipeline, run the image-only / audio-only workflows, fetch a cached
       session, map it to a tasting-note record, report usage, check health.
Why:   Wiring (which cache namespace, which limits, which client) is done
       once in `build_pipeline_service()`. Callers never assemble adapters.
How:   Everything is constructed from one frozen Settings. Reconfiguring
       means building a new service from `settings.model_copy(update=...)`.
       Nothing is mutated in place.

Wiring:

    Settings ─► Database ─► CacheStore("provider") ─┐
                        ├─► CacheStore("session")   │
                        ├─► CacheStore("usage") ─► UsageStatsRecorder
                        └─► SessionLog              │
    Settings ─► RateLimiter ────────────────────────┤
    Settings ─► GeminiClient × 2 ─► adapters ◄──────┘
                                       └─► PipelineOrchestrator
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from tasting_ai.clock import Clock, SystemClock
from tasting_ai.config import Settings
from tasting_ai.database import Database
from tasting_ai.exceptions import NotFoundError
from tasting_ai.schemas.api import UsageReport
from tasting_ai.schemas.pipeline import (
    AIProcessingInput,
    AIProcessingOptions,
    ProcessingSession,
    WineContext,
)
from tasting_ai.services.adapter_base import AdapterConfig, Sleep
from tasting_ai.services.cache_store import CacheStore
from tasting_ai.services.gemini_client import GeminiClient
from tasting_ai.services.language_adapter import AnalysisAdapter, TranscriptionAdapter
from tasting_ai.services.media import LocalMediaResolver, MediaResolver
from tasting_ai.services.orchestrator import PipelineOrchestrator, ProgressCallback
from tasting_ai.services.rate_limiter import DAY, MINUTE, RateLimiter
from tasting_ai.services.session_log import SessionLog
from tasting_ai.services.tasting_note import TastingNoteSink, to_tasting_note_record
from tasting_ai.services.usage_stats import UsageStatsRecorder
from tasting_ai.services.vision_adapter import LabelExtractionAdapter

logger = logging.getLogger(__name__)


class PipelineService:
    def __init__(
        self,
        *,
        orchestrator: PipelineOrchestrator,
        database: Database,
        session_cache: CacheStore,
        session_log: SessionLog,
        usage: UsageStatsRecorder,
        rate_limiter: RateLimiter,
        vision_client: Optional[GeminiClient] = None,
        note_sink: Optional[TastingNoteSink] = None,
    ):
        self.orchestrator = orchestrator
        self.database = database
        self.session_cache = session_cache
        self.session_log = session_log
        self.usage = usage
        self.rate_limiter = rate_limiter
        self.vision_client = vision_client
        self.note_sink = note_sink

    # ── Pipeline runs ─────────────────────────────────────────────────────

    async def run(
        self,
        processing_input: AIProcessingInput,
        options: Optional[AIProcessingOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessingSession:
        return await self.orchestrator.run(processing_input, options, on_progress)

    async def process_image_only(
        self,
        image_ref: str,
        enable_analysis: bool = False,
        cache_results: bool = True,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessingSession:
        """Label recognition, optionally followed by analysis of the label text."""
        options = AIProcessingOptions(
            enable_optical_extraction=True,
            enable_speech_transcription=False,
            enable_text_analysis=enable_analysis,
            enable_form_suggestion=False,
            cache_results=cache_results,
        )
        return await self.run(AIProcessingInput(image_ref=image_ref), options, on_progress)

    async def process_audio_only(
        self,
        audio_ref: str,
        wine_context: Optional[WineContext] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProcessingSession:
        """Transcribe a voice note, then analyse the transcript."""
        options = AIProcessingOptions(
            enable_optical_extraction=False,
            enable_speech_transcription=True,
            enable_text_analysis=True,
            enable_form_suggestion=False,
        )
        processing_input = AIProcessingInput(audio_ref=audio_ref, wine_hints=wine_context)
        return await self.run(processing_input, options, on_progress)

    # ── Sessions & records ────────────────────────────────────────────────

    async def get_session(self, session_id: str) -> ProcessingSession:
        """
        Raises:
            NotFoundError: unknown, expired, or never cached (cache_results off).
        """
        payload = await self.session_cache.get(session_id)
        if payload is None:
            raise NotFoundError(resource="Processing session", resource_id=session_id)
        return ProcessingSession.model_validate(payload)

    async def create_tasting_note(self, session_id: str, user_id: str) -> Dict[str, Any]:
        """Map a cached session to a tasting-note record and hand it to the sink."""
        session = await self.get_session(session_id)
        record = to_tasting_note_record(session, user_id)
        if self.note_sink is not None:
            note_id = await self.note_sink.save(record)
            logger.info("Tasting note %s created from session %s", note_id, session_id)
        return record

    # ── Reporting ─────────────────────────────────────────────────────────

    async def usage_report(self) -> UsageReport:
        """Processing stats plus per-provider usage. Never raises for storage errors."""
        processing = await self.session_log.processing_stats()
        providers = {}
        for provider_id in sorted(self._provider_ids()):
            usage = await self.usage.get_usage(provider_id)
            remaining = self.rate_limiter.remaining(provider_id)
            providers[provider_id] = usage.model_copy(
                update={
                    "remaining_this_minute": remaining[MINUTE],
                    "remaining_today": remaining[DAY],
                    "minute_window_resets_at": self.rate_limiter.reset_at(MINUTE),
                }
            )
        return UsageReport(processing=processing, providers=providers)

    def _provider_ids(self) -> Set[str]:
        return {adapter.provider_id for adapter in self.orchestrator.adapters.values()}

    async def health(self) -> Dict[str, str]:
        """Dependency status for GET /health."""
        database = "connected"
        try:
            await self.database.ping()
        except Exception as e:
            database = "disconnected"
            logger.warning("Health check: database unreachable: %s", str(e))

        gemini = "not_configured"
        if self.vision_client is not None and self.vision_client.configured:
            gemini = "available" if await self.vision_client.health_check() else "unavailable"

        if database != "connected":
            status = "unhealthy"
        elif gemini != "available":
            status = "degraded"
        else:
            status = "healthy"
        return {"status": status, "database": database, "gemini": gemini}

    async def close(self) -> None:
        await self.database.dispose()


def build_pipeline_service(
    settings: Settings,
    *,
    database: Optional[Database] = None,
    clock: Optional[Clock] = None,
    media: Optional[MediaResolver] = None,
    vision_client: Optional[GeminiClient] = None,
    language_client: Optional[GeminiClient] = None,
    sleep: Sleep = asyncio.sleep,
    note_sink: Optional[TastingNoteSink] = None,
) -> PipelineService:
    """
    Assemble a PipelineService from settings.

    Every collaborator can be injected; tests pass a temporary database, a
    fake clock, a fake sleep and stub Gemini clients.
    """
    database = database or Database.from_settings(settings)
    clock = clock or SystemClock()
    media = media or LocalMediaResolver(settings.media_root, settings.max_media_size)
    vision_client = vision_client or GeminiClient(
        settings.gemini_api_key, settings.vision_model, settings.request_timeout_seconds
    )
    language_client = language_client or GeminiClient(
        settings.gemini_api_key, settings.language_model, settings.request_timeout_seconds
    )

    provider_cache = CacheStore(database, clock, "provider", settings.cache_ttl_seconds)
    session_cache = CacheStore(database, clock, "session", settings.cache_ttl_seconds)
    usage = UsageStatsRecorder(
        CacheStore(database, clock, "usage", None), clock, unit_costs=settings.unit_costs()
    )
    rate_limiter = RateLimiter(settings.provider_limits(), clock)
    session_log = SessionLog(database, settings.session_log_retention)

    shared = {
        "clock": clock,
        "cache": provider_cache,
        "rate_limiter": rate_limiter,
        "usage": usage,
        "sleep": sleep,
    }

    def adapter_config(provider_id: str, min_confidence: int, max_retries: int) -> AdapterConfig:
        return AdapterConfig(
            provider_id=provider_id,
            cache_enabled=settings.cache_enabled,
            cache_min_confidence=min_confidence,
            rate_limiting_enabled=settings.rate_limiting_enabled,
            max_retries=max_retries,
            base_delay=settings.retry_base_delay,
        )

    vision = LabelExtractionAdapter(
        adapter_config("vision", settings.vision_cache_min_confidence, settings.vision_max_retries),
        vision_client,
        media,
        **shared,
    )
    transcription = TranscriptionAdapter(
        adapter_config(
            "transcription",
            settings.transcription_cache_min_confidence,
            settings.language_max_retries,
        ),
        language_client,
        media,
        improve_terminology=settings.improve_wine_terminology,
        **shared,
    )
    analysis = AnalysisAdapter(
        adapter_config(
            "analysis", settings.analysis_cache_min_confidence, settings.language_max_retries
        ),
        language_client,
        temperature=settings.analysis_temperature,
        **shared,
    )

    orchestrator = PipelineOrchestrator(
        vision=vision,
        transcription=transcription,
        analysis=analysis,
        clock=clock,
        session_cache=session_cache,
        session_log=session_log,
        timeout_seconds=settings.session_timeout_seconds,
    )
    return PipelineService(
        orchestrator=orchestrator,
        database=database,
        session_cache=session_cache,
        session_log=session_log,
        usage=usage,
        rate_limiter=rate_limiter,
        vision_client=vision_client,
        note_sink=note_sink,
    )
