"""
Tasting AI — Pydantic Schemas
==============================

    - wine.py:     domain payloads produced by the providers
                   (WineLabelInfo, TranscriptionResult, WineAnalysisResult, SuggestedTastingForm)
    - pipeline.py: orchestration types (ProcessingStep, ProcessingSession,
                   AIProcessingInput/Options, ProviderResponse)
    - api.py:      HTTP request/response contracts and usage reports
"""
