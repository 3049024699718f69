"""
reimburse_batch.tasks -- Job handler implementations.

Each handler owns exactly one ``job_type`` and is registered with the
``HandlerRegistry`` by ``JobOrchestrator``.
"""

from reimburse_batch.tasks.base import HandlerRegistry, JobHandler
from reimburse_batch.tasks.batch_check import BatchCheckTask
from reimburse_batch.tasks.export import ExportTask

__all__ = ["BatchCheckTask", "ExportTask", "HandlerRegistry", "JobHandler"]
