"""
Durable enrichment job queue.

This package provides:
- Postgres-backed queue with leases claimed via SKIP LOCKED
- Stale lease reclaim after a crashed runner
- Registry-based executors, one per job type
- Exponential backoff retries with a terminal failed state
"""
