"""
Tasting AI — Label Extraction Adapter
======================================

What:  Optical extraction: wine label photo → WineLabelInfo.
How:   Gemini reads the label verbatim; `parse_wine_label()` turns the text
       into fields and a confidence. The model is never asked to interpret,
       only to transcribe, so the structured result is deterministic given
       the text.
Who:   Called by the orchestrator's optical-extraction step and by
       `process_image_only()`.

Caching:
    Key = hash(image reference). Results with confidence < 30 are not
    cached, so a blurry first photo does not pin a bad answer for 24h.
"""

import logging
from typing import Any

from tasting_ai.schemas.pipeline import ProcessOptions
from tasting_ai.schemas.wine import WineLabelInfo
from tasting_ai.services.adapter_base import AdapterConfig, ProviderAdapter
from tasting_ai.services.gemini_client import GeminiClient
from tasting_ai.services.label_parser import parse_wine_label
from tasting_ai.services.media import MediaResolver

logger = logging.getLogger(__name__)


class LabelExtractionAdapter(ProviderAdapter[str, WineLabelInfo]):
    """Reads wine labels. Raw input is an image reference."""

    result_model = WineLabelInfo

    LABEL_PROMPT = """You are reading the label of a wine bottle.

Instructions:
1. Transcribe ALL printed text on the label exactly as it appears
2. Keep one label line per output line, top to bottom
3. Include small print: alcohol percentage, appellation, producer, vintage, grape names
4. Do NOT translate, explain, or describe the image
5. If there is no readable text, return an empty response

Label text:"""

    def __init__(
        self,
        config: AdapterConfig,
        client: GeminiClient,
        media: MediaResolver,
        **dependencies: Any,
    ):
        super().__init__(config, **dependencies)
        self.client = client
        self.media = media

    def cache_key_material(self, raw_input: str) -> Any:
        return {"image_ref": raw_input}

    async def call_provider(self, raw_input: str, options: ProcessOptions) -> WineLabelInfo:
        image = await self.media.load_image(raw_input)
        raw_text = await self.client.generate([self.LABEL_PROMPT, image], temperature=0.0)
        info = parse_wine_label(raw_text)
        logger.debug(
            "Label %s parsed: name=%s, vintage=%s, confidence=%d",
            image.name,
            info.wine_name,
            info.vintage,
            info.confidence,
        )
        return info

    def is_empty(self, result: WineLabelInfo) -> bool:
        return not result.raw_text.strip()
