"""
Tasting AI — Language Adapters (Transcription & Analysis)
==========================================================

What:  The two language capabilities of the pipeline.
       - TranscriptionAdapter: voice note → TranscriptionResult
       - AnalysisAdapter:      tasting text + wine context → WineAnalysisResult
Why:   Both go through the same language-model quota and share the adapter
       algorithm (cache, rate limit, retry, stats); they differ only in
       prompt and result parsing.

Transcription confidence:
    Gemini does not return a confidence for transcripts, so one is
    estimated from the text:
        base 50
        +20 if more than 10 words, +10 more if more than 30
        +3 per wine term mentioned (at most +20)
        capped at 95

Terminology pass:
    With `improve_terminology` on, the transcript goes through a second
    call that fixes misheard wine vocabulary ("pee-no noir" → "Pinot Noir").
    If that call fails, the original transcript is kept; a failed polish
    never fails the step.
"""

import json
import logging
import re
from typing import Any, Dict

from pydantic import ValidationError as PydanticValidationError

from tasting_ai.exceptions import ProviderError, RateLimitExceededError
from tasting_ai.schemas.pipeline import AnalysisRequest, ProcessOptions
from tasting_ai.schemas.wine import TranscriptionResult, WineAnalysisResult
from tasting_ai.services.adapter_base import AdapterConfig, ProviderAdapter
from tasting_ai.services.gemini_client import GeminiClient
from tasting_ai.services.media import MediaResolver

logger = logging.getLogger(__name__)

WINE_TERMS = (
    "wine", "tannins", "acidity", "fruit", "oak", "vintage", "finish", "nose",
    "palate", "color", "aroma", "flavor", "dry", "sweet", "cabernet",
    "chardonnay", "pinot", "merlot", "sauvignon",
)


def estimate_transcription_confidence(text: str) -> int:
    words = text.split()
    if not words:
        return 0
    confidence = 50
    if len(words) > 10:
        confidence += 20
    if len(words) > 30:
        confidence += 10
    lowered = text.lower()
    term_bonus = sum(3 for term in WINE_TERMS if term in lowered)
    confidence += min(term_bonus, 20)
    return min(confidence, 95)


# ══════════════════════════════════════════════════════════════════════════
# Transcription
# ══════════════════════════════════════════════════════════════════════════


class TranscriptionAdapter(ProviderAdapter[str, TranscriptionResult]):
    """Transcribes voice notes. Raw input is an audio reference."""

    result_model = TranscriptionResult

    TRANSCRIBE_PROMPT = """Transcribe this voice note from a wine tasting.

Instructions:
1. Return ONLY the spoken words, verbatim, in the language spoken
2. Spell wine terms, grape varieties and regions correctly
3. Do not summarise, translate, or add commentary
4. If nothing is spoken, return an empty response

Transcript:"""

    IMPROVE_PROMPT = """The following is an automatic transcript of spoken wine tasting notes.
Correct misheard wine terminology (grape varieties, regions, WSET descriptors,
producer names) and obvious transcription errors. Keep the taster's wording and
meaning otherwise unchanged. Return ONLY the corrected text.

Transcript:
{text}"""

    def __init__(
        self,
        config: AdapterConfig,
        client: GeminiClient,
        media: MediaResolver,
        improve_terminology: bool = True,
        **dependencies: Any,
    ):
        super().__init__(config, **dependencies)
        self.client = client
        self.media = media
        self.improve_terminology = improve_terminology

    def effective_flags(self, options: ProcessOptions) -> Dict[str, Any]:
        flags = dict(options.flags)
        flags.setdefault("improve_terminology", self.improve_terminology)
        return flags

    def cache_key_material(self, raw_input: str) -> Any:
        return {"audio_ref": raw_input}

    async def call_provider(self, raw_input: str, options: ProcessOptions) -> TranscriptionResult:
        audio = await self.media.load_audio(raw_input)
        text = await self.client.generate([self.TRANSCRIBE_PROMPT, audio], temperature=0.0)
        if not text:
            return TranscriptionResult(text="", confidence=0)

        improved = False
        if self.effective_flags(options)["improve_terminology"]:
            polished = await self._improve(text)
            if polished and polished != text:
                text, improved = polished, True

        return TranscriptionResult(
            text=text,
            confidence=estimate_transcription_confidence(text),
            improved=improved,
        )

    async def _improve(self, text: str) -> str:
        try:
            return await self.client.generate(
                [self.IMPROVE_PROMPT.format(text=text)],
                temperature=0.1,
            )
        except (ProviderError, RateLimitExceededError) as e:
            logger.warning("Terminology pass failed, keeping raw transcript: %s", e.message)
            return text

    def is_empty(self, result: TranscriptionResult) -> bool:
        return not result.text.strip()


# ══════════════════════════════════════════════════════════════════════════
# Analysis
# ══════════════════════════════════════════════════════════════════════════


_JSON_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.I)


class AnalysisAdapter(ProviderAdapter[AnalysisRequest, WineAnalysisResult]):
    """Structures free tasting text using the WSET Systematic Approach."""

    result_model = WineAnalysisResult

    ANALYSIS_PROMPT = """You are a WSET Level 3 certified wine educator. Analyze the tasting
notes below using the WSET Systematic Approach to Tasting.

{context}Tasting notes:
{text}

Respond with JSON only, using exactly this structure:
{{
  "appearance": {{"color": string|null, "intensity": "pale"|"medium"|"deep"|null, "clarity": "clear"|"hazy"|null}},
  "nose": {{"intensity": "light"|"medium(-)"|"medium"|"medium(+)"|"pronounced"|null, "aromas": [string], "faults": [string]}},
  "palate": {{"sweetness": string|null, "acidity": string|null, "tannins": string|null, "alcohol": string|null,
             "body": string|null, "flavors": [string], "finish": string|null}},
  "conclusion": {{"quality": "faulty"|"poor"|"acceptable"|"good"|"very good"|"outstanding"|null,
                  "readiness": string|null, "potential": string|null}},
  "confidence": integer 0-100 (how well the notes support this analysis),
  "suggested_corrections": [string]
}}
Use null or [] for anything the notes do not mention. Do not invent descriptors."""

    def __init__(
        self,
        config: AdapterConfig,
        client: GeminiClient,
        temperature: float = 0.3,
        **dependencies: Any,
    ):
        super().__init__(config, **dependencies)
        self.client = client
        self.temperature = temperature

    def cache_key_material(self, raw_input: AnalysisRequest) -> Any:
        return raw_input.model_dump(mode="json")

    @staticmethod
    def _context_block(request: AnalysisRequest) -> str:
        ctx = request.context
        lines = []
        if ctx.name:
            lines.append(f"Wine: {ctx.name}")
        if ctx.producer:
            lines.append(f"Producer: {ctx.producer}")
        if ctx.vintage:
            lines.append(f"Vintage: {ctx.vintage}")
        if ctx.wine_type:
            lines.append(f"Type: {ctx.wine_type}")
        if ctx.grape_varieties:
            lines.append(f"Grapes: {', '.join(ctx.grape_varieties)}")
        if not lines:
            return ""
        return "Wine context:\n" + "\n".join(lines) + "\n\n"

    async def call_provider(
        self,
        raw_input: AnalysisRequest,
        options: ProcessOptions,
    ) -> WineAnalysisResult:
        prompt = self.ANALYSIS_PROMPT.format(
            context=self._context_block(raw_input),
            text=raw_input.text,
        )
        response_text = await self.client.generate(
            [prompt],
            temperature=self.temperature,
            json_output=True,
        )
        return self.parse_analysis(response_text)

    @staticmethod
    def parse_analysis(response_text: str) -> WineAnalysisResult:
        """
        Parse the model's JSON answer.

        Raises:
            ProviderError: not JSON, or JSON of the wrong shape. Retried,
                           since the next sample usually parses.
        """
        cleaned = _JSON_FENCE.sub("", response_text.strip())
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise ProviderError(
                message="Analysis response was not valid JSON",
                provider="analysis",
                error=str(e),
            ) from e
        if not isinstance(data, dict):
            raise ProviderError(message="Analysis response was not a JSON object", provider="analysis")

        confidence = data.get("confidence")
        if isinstance(confidence, (int, float)):
            data["confidence"] = max(0, min(100, int(round(confidence))))
        else:
            data.pop("confidence", None)

        try:
            return WineAnalysisResult.model_validate(data)
        except PydanticValidationError as e:
            raise ProviderError(
                message="Analysis response did not match the expected structure",
                provider="analysis",
                error=str(e),
            ) from e

    def is_empty(self, result: WineAnalysisResult) -> bool:
        return result.is_empty()
