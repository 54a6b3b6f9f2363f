"""
Tasting AI — API Routes
========================

Route Inventory:
    - pipeline.py: POST /api/pipeline/runs                          (run the pipeline)
                   GET  /api/pipeline/sessions/{id}                 (cached session)
                   POST /api/pipeline/sessions/{id}/tasting-note    (flat record)
                   GET  /api/pipeline/stats                         (usage report)
    - health.py:   GET  /health

Routes stay thin: they pull the PipelineService from app.state and
translate its results to HTTP.
"""

from fastapi import Request

from tasting_ai.services.pipeline_service import PipelineService


def get_pipeline_service(request: Request) -> PipelineService:
    """FastAPI dependency: the service built during app lifespan."""
    return request.app.state.pipeline_service
