# Services package init
"""
Tasting AI — Services Layer
============================

What:  Business logic between the HTTP routes and persistence.
How:   Each service takes its collaborators (clock, database, Gemini
       client, media loader) through its constructor, so tests wire in
       fakes without patching.

Service Inventory:
    - CacheStore / RateLimiter / UsageStatsRecorder: shared infrastructure
    - GeminiClient: the one Google Gemini integration point
    - LocalMediaResolver: resolves image/audio references to bytes
    - ProviderAdapter (abstract) with the vision, transcription and
      analysis adapters built on it
    - PipelineOrchestrator + build_suggested_form: one capture → one session
    - SessionLog: bounded history and processing stats
    - to_tasting_note_record: session → tasting-note payload
    - PipelineService: wires everything for the routes
"""
