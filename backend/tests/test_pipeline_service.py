"""
Tasting AI — Pipeline Service Tests
====================================

What:  The fully wired service (real adapters, scripted Gemini, temp DB).

What we test:
    ✅ End-to-end run through all four steps
    ✅ Image-only and audio-only workflows
    ✅ Session lookup and tasting-note creation (with a sink)
    ✅ Usage report combines session log, counters and remaining budget
    ✅ Health status levels
"""

from unittest.mock import AsyncMock

import pytest

from tasting_ai.exceptions import NotFoundError
from tasting_ai.schemas.pipeline import AIProcessingInput, StepId, StepStatus, WineContext
from tasting_ai.services.pipeline_service import build_pipeline_service


class TestRuns:
    @pytest.mark.asyncio
    async def test_full_capture(self, service, gemini):
        session = await service.run(
            AIProcessingInput(
                image_ref="captures/label.jpg",
                audio_ref="voice/note.m4a",
                text_notes="Decanted for an hour",
            )
        )

        assert session.success is True
        assert session.steps_completed == 4
        assert session.label.vintage == 2015
        assert session.analysis.nose.aromas == ["blackcurrant", "cedar"]
        assert session.suggested_form.region == "Bordeaux"
        assert gemini.calls == ["image", "audio", "improve", "analysis"]

    @pytest.mark.asyncio
    async def test_repeat_capture_served_from_cache(self, service, gemini):
        capture = AIProcessingInput(image_ref="captures/label.jpg")
        await service.run(capture)
        calls_after_first = len(gemini.calls)

        second = await service.run(capture)

        assert len(gemini.calls) == calls_after_first
        assert second.step(StepId.OPTICAL_EXTRACTION).from_cache is True

    @pytest.mark.asyncio
    async def test_image_only_workflow(self, service, gemini):
        session = await service.process_image_only("captures/label.jpg")

        assert [s.id for s in session.steps] == [StepId.OPTICAL_EXTRACTION]
        assert gemini.calls == ["image"]

    @pytest.mark.asyncio
    async def test_image_only_with_analysis(self, service, gemini):
        session = await service.process_image_only("captures/label.jpg", enable_analysis=True)

        assert [s.id for s in session.steps] == [StepId.OPTICAL_EXTRACTION, StepId.TEXT_ANALYSIS]
        assert session.step(StepId.TEXT_ANALYSIS).status is StepStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_audio_only_workflow(self, service):
        session = await service.process_audio_only(
            "voice/note.m4a", wine_context=WineContext(name="Grand Vin")
        )

        assert [s.id for s in session.steps] == [
            StepId.SPEECH_TRANSCRIPTION,
            StepId.TEXT_ANALYSIS,
        ]
        assert session.success is True


class TestSessionsAndRecords:
    @pytest.mark.asyncio
    async def test_get_session_round_trip(self, service):
        session = await service.run(AIProcessingInput(text_notes="Cassis"))
        fetched = await service.get_session(session.session_id)
        assert fetched.model_dump(mode="json") == session.model_dump(mode="json")

    @pytest.mark.asyncio
    async def test_unknown_session(self, service):
        with pytest.raises(NotFoundError):
            await service.get_session("ai_session_missing")

    @pytest.mark.asyncio
    async def test_tasting_note_saved_through_sink(
        self, settings, database, clock, media, gemini, fake_sleep
    ):
        sink = AsyncMock()
        sink.save.return_value = "note-1"
        service = build_pipeline_service(
            settings,
            database=database,
            clock=clock,
            media=media,
            vision_client=gemini,
            language_client=gemini,
            sleep=fake_sleep,
            note_sink=sink,
        )
        session = await service.run(AIProcessingInput(image_ref="captures/label.jpg"))

        record = await service.create_tasting_note(session.session_id, "user-7")

        sink.save.assert_awaited_once_with(record)
        assert record["ai_processing_session_id"] == session.session_id
        assert record["vintage"] == 2015


class TestReporting:
    @pytest.mark.asyncio
    async def test_usage_report(self, service, settings):
        await service.run(AIProcessingInput(text_notes="Cassis and cedar"))

        report = await service.usage_report()

        assert sorted(report.providers) == ["analysis", "transcription", "vision"]
        analysis = report.providers["analysis"]
        assert analysis.requests_today == 1
        assert analysis.remaining_this_minute == 59
        assert analysis.remaining_today == 499
        assert analysis.minute_window_resets_at is not None
        assert analysis.estimated_cost_today == settings.analysis_cost_per_request
        assert report.providers["vision"].requests_today == 0
        assert report.processing.total_sessions == 1

    @pytest.mark.asyncio
    async def test_health_levels(self, service, gemini):
        assert (await service.health())["status"] == "healthy"

        gemini.healthy = False
        health = await service.health()
        assert health == {"status": "degraded", "database": "connected", "gemini": "unavailable"}

        gemini.configured = False
        assert (await service.health())["gemini"] == "not_configured"

    @pytest.mark.asyncio
    async def test_unreachable_database_is_unhealthy(self, service):
        service.database.ping = AsyncMock(side_effect=OSError("connection refused"))
        assert (await service.health())["status"] == "unhealthy"
