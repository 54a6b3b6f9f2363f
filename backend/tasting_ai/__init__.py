"""
Tasting AI — Package Initializer
=================================

What: The AI orchestration service behind tasting capture: a label photo and/or
      a spoken note goes in, a confidence-scored structured tasting comes out.
Who:  Imported by uvicorn (`tasting_ai.main:app`), Alembic, and the test suite.

Architecture Note:

    ┌─────────────────────────────────────┐
    │        Routes (HTTP surface)        │  ← thin FastAPI handlers
    ├─────────────────────────────────────┤
    │   PipelineService / Orchestrator    │  ← staged run, progress, timeout
    ├─────────────────────────────────────┤
    │         Provider Adapters           │  ← cache → rate limit → retry
    ├─────────────────────────────────────┤
    │  CacheStore · RateLimiter · Stats   │  ← shared infrastructure
    ├─────────────────────────────────────┤
    │   Database (async SQLAlchemy KV)    │  ← persistence
    └─────────────────────────────────────┘

    Each layer receives its collaborators through its constructor, so every
    piece can be exercised in tests with a fake clock and a temporary database.
"""

__version__ = "1.0.0"
