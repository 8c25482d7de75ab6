"""
recon_batch -- Asynchronous job runner for long-running operations.

Jobs (CSV export/import, audit package assembly, overdue sweeps) are
submitted, run on a worker thread and polled by the caller.  Failures are
captured on the job record, never raised to the poller.

Architecture:
    recon_batch/ is a top-level package.  Nothing in kernel/, engines/ or
    modules/ imports from recon_batch.

Lifecycle:
    PENDING -> PROCESSING -> COMPLETED | FAILED
    PENDING | PROCESSING -> CANCELLED (cooperative, checked per item)
"""
