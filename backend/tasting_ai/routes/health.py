"""
Tasting AI — Health Check Route
================================

What:  Liveness/readiness probe for Docker and load balancers.

Status levels:
    healthy:   database reachable and Gemini available        (HTTP 200)
    degraded:  database reachable, Gemini missing or failing  (HTTP 200)
               runs still return sessions, with failed AI steps
    unhealthy: database unreachable                           (HTTP 503)
"""

import time

from fastapi import APIRouter, Depends, Response, status

from tasting_ai import __version__
from tasting_ai.routes import get_pipeline_service
from tasting_ai.schemas.api import HealthResponse
from tasting_ai.services.pipeline_service import PipelineService

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(
    response: Response,
    service: PipelineService = Depends(get_pipeline_service),
) -> HealthResponse:
    result = await service.health()
    if result["status"] == "unhealthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return HealthResponse(
        status=result["status"],
        version=__version__,
        database=result["database"],
        gemini=result["gemini"],
        uptime_seconds=round(time.time() - _start_time, 2),
    )
