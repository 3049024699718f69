"""
reimburse_batch -- Durable job queue for deferred checks and exports.

A job row is written by whoever wants work deferred (``JobQueue.enqueue`` /
``JobQueue.submit``).  A poller claims one eligible row at a time with a
skip-locked select plus a conditional claim update, dispatches it to the
registered handler (batch consistency check or export) and records the
outcome.  Failures are retried after a fixed one-minute delay until
``max_attempts`` is reached; exhausted jobs stay ``failed`` forever.

Architecture:
    reimburse_batch sits above reimburse_services.  Nothing in the kernel,
    engines or services imports from it.
"""
