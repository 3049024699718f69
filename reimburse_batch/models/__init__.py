"""
reimburse_batch.models -- ORM model for the job queue.

Architecture: imports from reimburse_kernel.db only.
"""

from reimburse_batch.models.job import JobModel

__all__ = ["JobModel"]
