"""
Tasting AI — Provider Adapter Base
===================================

What:  The shared algorithm every AI capability runs through: cache lookup,
       rate-limit check, retried remote call, cache write, usage record.
Why:   Label extraction, transcription and analysis differ only in the
       remote call and the cache key. Caching, budgeting, retrying and
       accounting must behave identically for all of them.
How:   Subclasses implement `call_provider()` and `cache_key_material()`.
       `process()` wraps them and always returns a ProviderResponse;
       no exception crosses this boundary.

Flow of `process()`:

    1. cache enabled?      → hit: return SUCCESS, from_cache=True
    2. rate limit enabled? → denied: return ERROR(rate_limited), no retry
    3. call_provider()     → up to max_retries attempts,
                             wait attempt × base_delay between them,
                             only ProviderError is retried
    4. success             → cache result if confidence ≥ threshold
    5. always              → record one usage increment
    6. return the tagged response

Error → outcome mapping:
    ConfigurationError      → ERROR(configuration)  first attempt, no retry
    MediaAccessError        → ERROR(media)          first attempt, no retry
    RateLimitExceededError  → ERROR(rate_limited)   no retry
    ProviderError           → ERROR(provider)       after the last attempt
    anything else           → ERROR(internal)       logged with traceback
    cancellation            → usage recorded, CancelledError re-raised
"""

import asyncio
import hashlib
import inspect
import json
import logging
import uuid
from abc import ABC, abstractmethod
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Generic,
    List,
    Optional,
    Sequence,
    Type,
    TypeVar,
    Union,
)

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from tasting_ai.clock import Clock
from tasting_ai.exceptions import (
    ConfigurationError,
    MediaAccessError,
    ProviderError,
    RateLimitExceededError,
)
from tasting_ai.schemas.pipeline import (
    AdapterOutcome,
    ErrorKind,
    ProcessOptions,
    ProviderResponse,
)
from tasting_ai.services.cache_store import CacheStore
from tasting_ai.services.rate_limiter import RateLimiter
from tasting_ai.services.usage_stats import UsageStatsRecorder

logger = logging.getLogger(__name__)

InputT = TypeVar("InputT")
ResultT = TypeVar("ResultT", bound=BaseModel)

Sleep = Callable[[float], Awaitable[None]]
BatchProgress = Callable[[int, int, ProviderResponse], Union[None, Awaitable[None]]]


class AdapterConfig(BaseModel):
    """
    Immutable per-adapter settings.

    Attributes:
        provider_id:          key for rate limits, usage stats and cache keys
        cache_min_confidence: results below this are returned but not cached
        max_retries:          total attempts, including the first
        base_delay:           seconds; wait before attempt n+1 is n × base_delay
    """

    model_config = ConfigDict(frozen=True)

    provider_id: str
    cache_enabled: bool = True
    cache_min_confidence: int = Field(default=0, ge=0, le=100)
    rate_limiting_enabled: bool = True
    max_retries: int = Field(default=3, ge=1)
    base_delay: float = Field(default=1.0, ge=0.0)


class ProviderAdapter(ABC, Generic[InputT, ResultT]):
    """
    Base class for one external AI capability.

    Subclasses set `result_model` (used to revive cached payloads) and
    implement `call_provider()` and `cache_key_material()`.
    """

    result_model: Type[BaseModel]

    def __init__(
        self,
        config: AdapterConfig,
        *,
        clock: Clock,
        cache: Optional[CacheStore] = None,
        rate_limiter: Optional[RateLimiter] = None,
        usage: Optional[UsageStatsRecorder] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.config = config
        self.clock = clock
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.usage = usage
        self._sleep = sleep

    @property
    def provider_id(self) -> str:
        return self.config.provider_id

    # ── Subclass hooks ────────────────────────────────────────────────────

    @abstractmethod
    async def call_provider(self, raw_input: InputT, options: ProcessOptions) -> ResultT:
        """
        Make exactly one remote attempt.

        Raises:
            ProviderError:      transient failure, will be retried
            ConfigurationError: provider not usable, fails immediately
            MediaAccessError:   input media unusable, fails immediately
        """
        ...

    @abstractmethod
    def cache_key_material(self, raw_input: InputT) -> Any:
        """JSON-serialisable identity of the input (reference, text, context)."""
        ...

    def effective_flags(self, options: ProcessOptions) -> Dict[str, Any]:
        return dict(options.flags)

    def is_empty(self, result: ResultT) -> bool:
        return False

    def confidence_of(self, result: ResultT) -> Optional[int]:
        return getattr(result, "confidence", None)

    # ── Cache key ─────────────────────────────────────────────────────────

    def cache_key(self, raw_input: InputT, options: ProcessOptions) -> str:
        """SHA-256 over canonical JSON of (provider, input, flags)."""
        material = {
            "provider": self.provider_id,
            "input": self.cache_key_material(raw_input),
            "flags": self.effective_flags(options),
        }
        canonical = json.dumps(material, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()

    # ── Main entry point ──────────────────────────────────────────────────

    async def process(
        self,
        raw_input: InputT,
        options: Optional[ProcessOptions] = None,
    ) -> ProviderResponse[ResultT]:
        """
        Run the cache → rate limit → retry → cache write → stats algorithm.

        Never raises. Every outcome is a ProviderResponse.
        """
        options = options or ProcessOptions()
        call_id = str(uuid.uuid4())[:8]
        started = self.clock.now()

        try:
            response = await self._process(raw_input, options, call_id, started)
        except asyncio.CancelledError:
            # Session timeout; the request may already have reached the provider
            logger.warning("[%s] %s call cancelled", call_id, self.provider_id)
            await asyncio.shield(
                self._record_usage(success=False, from_cache=False, latency_ms=self._elapsed_ms(started))
            )
            raise
        except Exception as e:
            logger.error(
                "[%s] Unexpected error in %s adapter: %s",
                call_id,
                self.provider_id,
                str(e),
                exc_info=True,
            )
            response = ProviderResponse(
                outcome=AdapterOutcome.ERROR,
                error=f"Internal error in {self.provider_id} adapter",
                error_kind=ErrorKind.INTERNAL,
                latency_ms=self._elapsed_ms(started),
            )

        await self._record_usage(
            success=response.ok,
            from_cache=response.from_cache,
            latency_ms=response.latency_ms,
        )
        return response

    async def _record_usage(self, *, success: bool, from_cache: bool, latency_ms: int) -> None:
        if self.usage is not None:
            await self.usage.record(
                self.provider_id,
                success=success,
                from_cache=from_cache,
                latency_ms=latency_ms,
            )

    async def _process(
        self,
        raw_input: InputT,
        options: ProcessOptions,
        call_id: str,
        started: float,
    ) -> ProviderResponse[ResultT]:
        use_cache = self.cache is not None and self.config.cache_enabled and options.use_cache
        key: Optional[str] = None

        # Step 1: Cache lookup
        if use_cache:
            key = self.cache_key(raw_input, options)
            cached = await self._read_cache(key, call_id)
            if cached is not None:
                logger.info("[%s] %s served from cache", call_id, self.provider_id)
                return ProviderResponse(
                    outcome=AdapterOutcome.SUCCESS,
                    result=cached,
                    from_cache=True,
                    latency_ms=self._elapsed_ms(started),
                )

        # Step 2: Rate limit
        if self.rate_limiter is not None and self.config.rate_limiting_enabled:
            if not self.rate_limiter.try_acquire(self.provider_id):
                return self._error(
                    f"Rate limit exceeded for {self.provider_id}",
                    ErrorKind.RATE_LIMITED,
                    started,
                    attempts=0,
                )

        # Step 3: Remote call with linear backoff
        attempts = 0
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.config.max_retries),
                wait=wait_incrementing(
                    start=self.config.base_delay,
                    increment=self.config.base_delay,
                ),
                retry=retry_if_exception_type(ProviderError),
                sleep=self._sleep,
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = await self.call_provider(raw_input, options)
        except ConfigurationError as e:
            logger.error("[%s] %s not configured: %s", call_id, self.provider_id, e.message)
            return self._error(e.message, ErrorKind.CONFIGURATION, started, attempts)
        except MediaAccessError as e:
            logger.warning("[%s] %s media error: %s", call_id, self.provider_id, e.message)
            return self._error(e.message, ErrorKind.MEDIA, started, attempts)
        except RateLimitExceededError as e:
            return self._error(e.message, ErrorKind.RATE_LIMITED, started, attempts)
        except ProviderError as e:
            logger.error(
                "[%s] %s failed after %d attempt(s): %s",
                call_id,
                self.provider_id,
                attempts,
                e.message,
            )
            return self._error(e.message, ErrorKind.PROVIDER, started, attempts)

        latency_ms = self._elapsed_ms(started)

        if self.is_empty(result):
            logger.info("[%s] %s returned an empty result", call_id, self.provider_id)
            return ProviderResponse(
                outcome=AdapterOutcome.EMPTY,
                result=result,
                latency_ms=latency_ms,
                attempts=attempts,
            )

        # Step 4: Cache write (best-effort)
        if use_cache and key is not None and self._meets_cache_threshold(result):
            await self.cache.set(key, result.model_dump(mode="json"))

        logger.info(
            "[%s] %s succeeded in %dms after %d attempt(s)",
            call_id,
            self.provider_id,
            latency_ms,
            attempts,
        )
        return ProviderResponse(
            outcome=AdapterOutcome.SUCCESS,
            result=result,
            latency_ms=latency_ms,
            attempts=attempts,
        )

    async def process_many(
        self,
        inputs: Sequence[InputT],
        options: Optional[ProcessOptions] = None,
        on_progress: Optional[BatchProgress] = None,
        pause_seconds: float = 1.0,
    ) -> List[ProviderResponse[ResultT]]:
        """
        Process inputs one after another, pausing between requests.

        `on_progress(processed, total, response)` runs after each item;
        it may be sync or async.
        """
        responses: List[ProviderResponse[ResultT]] = []
        total = len(inputs)
        for index, raw_input in enumerate(inputs):
            response = await self.process(raw_input, options)
            responses.append(response)
            if on_progress is not None:
                try:
                    outcome = on_progress(index + 1, total, response)
                    if inspect.isawaitable(outcome):
                        await outcome
                except Exception as e:
                    logger.warning(
                        "%s batch progress callback raised, ignoring: %s",
                        self.provider_id,
                        str(e),
                    )
            if index < total - 1 and pause_seconds > 0:
                await self._sleep(pause_seconds)
        return responses

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _read_cache(self, key: str, call_id: str) -> Optional[ResultT]:
        payload = await self.cache.get(key)
        if payload is None:
            return None
        try:
            return self.result_model.model_validate(payload)
        except PydanticValidationError as e:
            logger.warning(
                "[%s] Ignoring unreadable cache entry for %s: %s",
                call_id,
                self.provider_id,
                str(e),
            )
            return None

    def _meets_cache_threshold(self, result: ResultT) -> bool:
        confidence = self.confidence_of(result)
        if confidence is None:
            return self.config.cache_min_confidence == 0
        return confidence >= self.config.cache_min_confidence

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int(round((self.clock.now() - started) * 1000)))

    def _error(
        self,
        message: str,
        kind: ErrorKind,
        started: float,
        attempts: int,
    ) -> ProviderResponse[ResultT]:
        return ProviderResponse(
            outcome=AdapterOutcome.ERROR,
            error=message,
            error_kind=kind,
            latency_ms=self._elapsed_ms(started),
            attempts=attempts,
        )
