"""
Tasting AI — Middleware Package
================================

Middleware Chain:
    Request → [Request ID] → [Logging] → [GZip] → [CORS] → Route Handler

    1. Request ID first: every later log line can carry the correlation id
    2. Logging: method, path, status and duration with that id

Provider call budgets are enforced per AI provider inside the pipeline
(services/rate_limiter.py), not per client IP at the HTTP layer.
"""
