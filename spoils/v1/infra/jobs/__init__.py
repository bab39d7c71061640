"""
Background job engine.

This package provides a database-backed job system with:
- A single jobs table shared by any number of worker processes
- Registry-based task types with per-type retry, backoff and uniqueness policy
- Cron recurrence for maintenance task types
- Lease heartbeats with recovery of jobs abandoned by crashed workers
"""
