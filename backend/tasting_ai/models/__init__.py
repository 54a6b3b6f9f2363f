"""
Tasting AI — ORM Models
========================

    - cache_entry.KeyValueEntry:        namespaced key → JSON payload + stored_at
    - session_log.ProcessingSessionLog: one row per pipeline run
"""
