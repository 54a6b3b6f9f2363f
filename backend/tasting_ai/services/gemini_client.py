"""
Tasting AI — Google Gemini Client
==================================

What:  The one place that talks to the Gemini API.
Why:   Label reading, transcription and analysis are all Gemini calls with
       different prompts. Sharing one client keeps SDK setup, timeouts and
       error translation in one spot.
How:   `generate()` sends prompt parts (text and inline media blobs) to
       `generate_content_async` and returns the response text. SDK errors
       are translated into the service's exception taxonomy:

           Unauthenticated / PermissionDenied → ConfigurationError     (not retried)
           ResourceExhausted                  → RateLimitExceededError (not retried)
           any other SDK or network failure   → ProviderError          (retried)

       Retrying is the adapter's job, not this client's. One call here is
       exactly one attempt.

Why Google Gemini for all three capabilities:
    gemini-1.5-flash accepts images and audio natively, so one key and one
    SDK cover optical extraction, speech transcription and text analysis.
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence, Union

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

from tasting_ai.exceptions import ConfigurationError, ProviderError, RateLimitExceededError
from tasting_ai.services.media import MediaBlob

logger = logging.getLogger(__name__)

PromptPart = Union[str, MediaBlob]


class GeminiClient:
    """
    Thin async wrapper around one Gemini model.

    Args:
        api_key:         Gemini API key; empty means "not configured"
        model_name:      e.g. "gemini-1.5-flash"
        timeout_seconds: per-request response timeout
    """

    def __init__(self, api_key: str, model_name: str, timeout_seconds: int = 60):
        self.model_name = model_name
        self.timeout_seconds = timeout_seconds
        self._configured = bool(api_key) and api_key != "your_gemini_api_key_here"
        self._model = None
        if self._configured:
            # The SDK keeps credentials in module-level state
            genai.configure(api_key=api_key)
            self._model = genai.GenerativeModel(model_name)
        logger.info(
            "GeminiClient initialized with model=%s, configured=%s",
            model_name,
            self._configured,
        )

    @property
    def configured(self) -> bool:
        return self._configured

    @staticmethod
    def _to_sdk_parts(parts: Sequence[PromptPart]) -> List[Any]:
        sdk_parts: List[Any] = []
        for part in parts:
            if isinstance(part, MediaBlob):
                sdk_parts.append({"mime_type": part.mime_type, "data": part.data})
            else:
                sdk_parts.append(part)
        return sdk_parts

    async def generate(
        self,
        parts: Sequence[PromptPart],
        *,
        temperature: Optional[float] = None,
        json_output: bool = False,
    ) -> str:
        """
        Send one request and return the response text (stripped).

        Raises:
            ConfigurationError: no API key, or the key was rejected
            ProviderError:      any other failure of this attempt
        """
        if not self._configured or self._model is None:
            raise ConfigurationError(
                message="GEMINI_API_KEY is not set; AI providers are unavailable",
                model=self.model_name,
            )

        call_id = str(uuid.uuid4())[:8]
        generation_config: Dict[str, Any] = {}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if json_output:
            generation_config["response_mime_type"] = "application/json"

        start_time = time.perf_counter()
        try:
            response = await self._model.generate_content_async(
                self._to_sdk_parts(parts),
                generation_config=generation_config or None,
                request_options={"timeout": self.timeout_seconds},
            )
        except (google_exceptions.Unauthenticated, google_exceptions.PermissionDenied) as e:
            logger.error("[%s] Gemini rejected credentials: %s", call_id, str(e))
            raise ConfigurationError(
                message="Gemini rejected the configured API key",
                model=self.model_name,
                call_id=call_id,
            ) from e
        except google_exceptions.ResourceExhausted as e:
            logger.warning("[%s] Gemini quota exhausted: %s", call_id, str(e))
            raise RateLimitExceededError(
                provider="gemini",
                retry_after=60,
                model=self.model_name,
                call_id=call_id,
            ) from e
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.warning(
                "[%s] Gemini call failed after %.0fms: %s",
                call_id,
                duration_ms,
                str(e),
            )
            raise ProviderError(
                message=f"Gemini request failed: {type(e).__name__}",
                provider="gemini",
                call_id=call_id,
                error=str(e),
            ) from e

        duration_ms = (time.perf_counter() - start_time) * 1000
        try:
            text = response.text or ""
        except ValueError:
            # .text raises when the candidate was blocked or carries no parts
            logger.warning("[%s] Gemini returned no text candidate", call_id)
            text = ""

        logger.info(
            "[%s] Gemini call completed in %.0fms, %d chars",
            call_id,
            duration_ms,
            len(text),
        )
        return text.strip()

    async def health_check(self) -> bool:
        """
        Verify the key and connectivity by listing models (costs no tokens).
        """
        if not self._configured:
            return False
        try:
            model_names = [m.name for m in genai.list_models()]
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False
        target = f"models/{self.model_name}"
        if target not in model_names:
            logger.warning("Configured model %s not found in available models", target)
        return True
