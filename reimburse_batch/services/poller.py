"""
JobPoller -- In-process polling loop over ``JobQueue.run_once``.

Contract:
    Calls ``run_once()`` once per interval, whether or not work was found.
    One job runs to completion before the next poll.

Architecture: reimburse_batch/services.  Uses reimburse_batch.services.queue.

Invariants enforced:
    - No exception terminates the loop.
    - Graceful shutdown: ``stop()`` lets the current job finish.
"""

from __future__ import annotations

import threading

from reimburse_kernel.logging_config import get_logger

from reimburse_batch.domain.types import DEFAULT_POLL_INTERVAL_SECONDS, JobRunResult
from reimburse_batch.services.queue import JobQueue

logger = get_logger("batch.poller")


class JobPoller:
    """Fixed-interval poller for the job queue.

    Contract:
        - ``poll()`` runs one iteration (public for testing).
        - ``start()`` / ``stop()`` for background thread operation.
        - ``run_forever()`` blocks the calling thread until ``stop()``.

    Non-goals:
        - No push notification; throughput is one job per interval.
        - Horizontal scale-out relies on the queue's row claim, not on
          coordination between pollers.
    """

    def __init__(
        self,
        queue: JobQueue,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ):
        self._queue = queue
        self._poll_interval = poll_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def poll(self) -> JobRunResult | None:
        """Run one iteration.  Never raises."""
        try:
            return self._queue.run_once()
        except Exception:
            logger.exception("poller_iteration_failed")
            return None

    def start(self) -> None:
        """Start polling in a background daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="job-poller",
            daemon=True,
        )
        self._thread.start()
        logger.info("poller_started", extra={"poll_interval": self._poll_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current iteration to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("poller_stopped")

    def run_forever(self) -> None:
        """Poll in the calling thread until ``stop()`` is called."""
        self._stop_event.clear()
        logger.info("poller_started", extra={"poll_interval": self._poll_interval})
        self._run_loop()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def poll_interval(self) -> float:
        return self._poll_interval

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self.poll()
            self._stop_event.wait(timeout=self._poll_interval)
