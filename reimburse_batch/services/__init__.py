"""
reimburse_batch.services -- Job queue and background poller.
"""

from reimburse_batch.services.poller import JobPoller
from reimburse_batch.services.queue import JobQueue

__all__ = ["JobPoller", "JobQueue"]
