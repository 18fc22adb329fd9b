"""Background job queue for plugins."""

JOB_DEFAULTS = {
    "MAX_ATTEMPTS": 3,
    "LOCK_TIMEOUT_SECONDS": 300,
    "PRIORITY": 100,
    "BATCH_SIZE": 10,
    "STALE_LOCK_SECONDS": 600,
}
