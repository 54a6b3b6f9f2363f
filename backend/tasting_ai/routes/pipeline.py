"""
Tasting AI — Pipeline Route Handlers
=====================================

What:  HTTP access to pipeline runs, cached sessions, tasting-note records
       and the usage report.
Why:   The capture screen posts a capture and renders the returned session;
       the "save" action turns that session into a tasting-note record.

Status codes:
    201  run finished (even with failed steps; partial success is normal)
    400  every step disabled, or invalid user id
    404  session unknown or expired from the cache
"""

import logging

from fastapi import APIRouter, Depends, status

from tasting_ai.middleware.request_id import current_request_id
from tasting_ai.routes import get_pipeline_service
from tasting_ai.schemas.api import (
    ErrorResponse,
    RunPipelineRequest,
    TastingNoteRequest,
    TastingNoteResponse,
    UsageReport,
)
from tasting_ai.schemas.pipeline import ProcessingSession
from tasting_ai.services.pipeline_service import PipelineService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pipeline", tags=["Pipeline"])


@router.post(
    "/runs",
    response_model=ProcessingSession,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
    summary="Run the AI pipeline on one capture",
)
async def run_pipeline(
    body: RunPipelineRequest,
    service: PipelineService = Depends(get_pipeline_service),
) -> ProcessingSession:
    rid = current_request_id()
    logger.info(
        "[%s] Pipeline run requested (image=%s, audio=%s, notes=%s)",
        rid,
        body.input.image_ref is not None,
        body.input.audio_ref is not None,
        body.input.text_notes is not None,
    )
    return await service.run(body.input, body.options)


@router.get(
    "/sessions/{session_id}",
    response_model=ProcessingSession,
    responses={404: {"model": ErrorResponse}},
    summary="Fetch a cached pipeline session",
)
async def get_session(
    session_id: str,
    service: PipelineService = Depends(get_pipeline_service),
) -> ProcessingSession:
    return await service.get_session(session_id)


@router.post(
    "/sessions/{session_id}/tasting-note",
    response_model=TastingNoteResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Create a tasting-note record from a session",
)
async def create_tasting_note(
    session_id: str,
    body: TastingNoteRequest,
    service: PipelineService = Depends(get_pipeline_service),
) -> TastingNoteResponse:
    record = await service.create_tasting_note(session_id, body.user_id)
    return TastingNoteResponse(session_id=session_id, record=record)


@router.get(
    "/stats",
    response_model=UsageReport,
    summary="Processing and provider usage statistics",
)
async def usage_stats(
    service: PipelineService = Depends(get_pipeline_service),
) -> UsageReport:
    return await service.usage_report()
