"""
Tasting AI — Vision & Language Adapter Tests
=============================================

What we test:
    ✅ Label extraction parses the model's verbatim text into fields
    ✅ Transcription terminology pass: applied, skipped, and failing safely
    ✅ Analysis JSON parsing: code fences, confidence clamping, bad JSON
    ✅ Malformed analysis JSON is retried like any transient failure
    ✅ Wine context reaches the analysis prompt
"""

import pytest

from tasting_ai.exceptions import ProviderError
from tasting_ai.schemas.pipeline import (
    AdapterOutcome,
    AnalysisRequest,
    ErrorKind,
    ProcessOptions,
    WineContext,
)
from tasting_ai.services.adapter_base import AdapterConfig
from tasting_ai.services.language_adapter import (
    AnalysisAdapter,
    TranscriptionAdapter,
    estimate_transcription_confidence,
)
from tasting_ai.services.vision_adapter import LabelExtractionAdapter

from conftest import ANALYSIS_JSON, TRANSCRIPT, ScriptedGemini


class TestLabelExtractionAdapter:
    @pytest.mark.asyncio
    async def test_extracts_label_fields(self, clock, fake_sleep, media, gemini):
        adapter = LabelExtractionAdapter(
            AdapterConfig(provider_id="vision"), gemini, media, clock=clock, sleep=fake_sleep
        )

        response = await adapter.process("captures/margaux.jpg")

        assert response.outcome is AdapterOutcome.SUCCESS
        label = response.result
        assert label.vintage == 2015
        assert label.appellation == "Bordeaux"
        assert label.grape_varieties == ["Cabernet Sauvignon", "Merlot"]
        assert label.confidence >= 85
        assert media.loaded == ["captures/margaux.jpg"]

    @pytest.mark.asyncio
    async def test_blank_label_is_empty_outcome(self, clock, fake_sleep, media):
        adapter = LabelExtractionAdapter(
            AdapterConfig(provider_id="vision"),
            ScriptedGemini(label_text=""),
            media,
            clock=clock,
            sleep=fake_sleep,
        )

        response = await adapter.process("captures/back-of-bottle.jpg")

        assert response.outcome is AdapterOutcome.EMPTY
        assert response.result.confidence == 0


class TestTranscriptionAdapter:
    def _adapter(self, gemini, media, clock, fake_sleep, **kwargs):
        return TranscriptionAdapter(
            AdapterConfig(provider_id="transcription", max_retries=2),
            gemini,
            media,
            clock=clock,
            sleep=fake_sleep,
            **kwargs,
        )

    @pytest.mark.asyncio
    async def test_terminology_pass_rewrites_transcript(self, clock, fake_sleep, media):
        gemini = ScriptedGemini(
            transcript="lovely pee-no noir with red cherry",
            improved="Lovely Pinot Noir with red cherry",
        )
        adapter = self._adapter(gemini, media, clock, fake_sleep)

        response = await adapter.process("voice/note.m4a")

        assert response.ok
        assert response.result.text == "Lovely Pinot Noir with red cherry"
        assert response.result.improved is True
        assert gemini.calls == ["audio", "improve"]

    @pytest.mark.asyncio
    async def test_terminology_pass_can_be_disabled(self, clock, fake_sleep, media, gemini):
        adapter = self._adapter(gemini, media, clock, fake_sleep, improve_terminology=False)

        response = await adapter.process("voice/note.m4a")

        assert response.result.text == TRANSCRIPT
        assert response.result.improved is False
        assert gemini.calls == ["audio"]

    @pytest.mark.asyncio
    async def test_failed_terminology_pass_keeps_raw_transcript(
        self, clock, fake_sleep, media, gemini
    ):
        gemini.failures["improve"] = [ProviderError("Gemini request failed: DeadlineExceeded")]
        adapter = self._adapter(gemini, media, clock, fake_sleep)

        response = await adapter.process("voice/note.m4a")

        assert response.ok
        assert response.result.text == TRANSCRIPT
        assert response.result.improved is False
        assert response.attempts == 1

    @pytest.mark.asyncio
    async def test_silence_is_empty_outcome(self, clock, fake_sleep, media):
        adapter = self._adapter(ScriptedGemini(transcript=""), media, clock, fake_sleep)

        response = await adapter.process("voice/silence.m4a")

        assert response.outcome is AdapterOutcome.EMPTY

    def test_terminology_setting_is_part_of_cache_key(self, clock, fake_sleep, media, gemini):
        on = self._adapter(gemini, media, clock, fake_sleep, improve_terminology=True)
        off = self._adapter(gemini, media, clock, fake_sleep, improve_terminology=False)

        assert on.cache_key("voice/a.m4a", ProcessOptions()) != off.cache_key(
            "voice/a.m4a", ProcessOptions()
        )


class TestTranscriptionConfidence:
    def test_empty_text_scores_zero(self):
        assert estimate_transcription_confidence("   ") == 0

    def test_short_text_with_one_wine_term(self):
        # base 50 + 3 for "wine"
        assert estimate_transcription_confidence("Nice wine") == 53

    def test_long_detailed_notes_capped_at_95(self):
        text = " ".join(
            ["wine tannins acidity fruit oak vintage finish nose palate color aroma"] * 4
        )
        assert estimate_transcription_confidence(text) == 95


class TestAnalysisParsing:
    def test_parses_plain_json(self):
        result = AnalysisAdapter.parse_analysis(ANALYSIS_JSON)
        assert result.nose.aromas == ["blackcurrant", "cedar"]
        assert result.conclusion.quality == "very good"
        assert result.confidence == 82

    def test_strips_markdown_fence(self):
        result = AnalysisAdapter.parse_analysis("```json\n" + ANALYSIS_JSON + "\n```")
        assert result.palate.tannins == "high"

    def test_confidence_clamped_to_range(self):
        assert AnalysisAdapter.parse_analysis('{"confidence": 140}').confidence == 100
        assert AnalysisAdapter.parse_analysis('{"confidence": -3}').confidence == 0
        assert AnalysisAdapter.parse_analysis('{"confidence": "high"}').confidence == 0

    def test_invalid_json_raises_provider_error(self):
        with pytest.raises(ProviderError):
            AnalysisAdapter.parse_analysis("The wine is lovely.")

    def test_non_object_json_raises_provider_error(self):
        with pytest.raises(ProviderError):
            AnalysisAdapter.parse_analysis("[1, 2, 3]")


class TestAnalysisAdapter:
    @pytest.mark.asyncio
    async def test_malformed_json_is_retried(self, clock, fake_sleep, sleeps):
        gemini = ScriptedGemini()
        gemini.failures["analysis"] = [ProviderError("Analysis response was not valid JSON")]
        adapter = AnalysisAdapter(
            AdapterConfig(provider_id="analysis", max_retries=2),
            gemini,
            clock=clock,
            sleep=fake_sleep,
        )

        response = await adapter.process(AnalysisRequest(text=TRANSCRIPT))

        assert response.ok
        assert response.attempts == 2
        assert sleeps == [1.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, clock, fake_sleep):
        adapter = AnalysisAdapter(
            AdapterConfig(provider_id="analysis", max_retries=2),
            ScriptedGemini(analysis_json="not json at all"),
            clock=clock,
            sleep=fake_sleep,
        )

        response = await adapter.process(AnalysisRequest(text=TRANSCRIPT))

        assert response.outcome is AdapterOutcome.ERROR
        assert response.error_kind is ErrorKind.PROVIDER
        assert response.attempts == 2

    @pytest.mark.asyncio
    async def test_no_tasting_content_is_empty_outcome(self, clock, fake_sleep):
        adapter = AnalysisAdapter(
            AdapterConfig(provider_id="analysis"),
            ScriptedGemini(analysis_json='{"confidence": 10}'),
            clock=clock,
            sleep=fake_sleep,
        )

        response = await adapter.process(AnalysisRequest(text="hmm"))

        assert response.outcome is AdapterOutcome.EMPTY

    def test_context_block_lists_known_fields(self):
        request = AnalysisRequest(
            text="Blackcurrant",
            context=WineContext(
                name="Grand Vin", vintage=2015, grape_varieties=("Cabernet Sauvignon", "Merlot")
            ),
        )
        block = AnalysisAdapter._context_block(request)

        assert block.startswith("Wine context:\n")
        assert "Wine: Grand Vin" in block
        assert "Vintage: 2015" in block
        assert "Grapes: Cabernet Sauvignon, Merlot" in block
        assert "Producer" not in block

    def test_context_block_empty_without_context(self):
        assert AnalysisAdapter._context_block(AnalysisRequest(text="x")) == ""
