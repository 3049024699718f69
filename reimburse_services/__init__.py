"""
reimburse_services -- Store-backed services around the pure engines.

Architecture:
    reimburse_services may import reimburse_kernel and reimburse_engines.
    It never imports reimburse_batch at runtime; the job queue calls into
    these services, not the other way round.
"""

from reimburse_services.batch_check_service import BatchCheckService
from reimburse_services.candidate_service import CandidateService, CandidateView
from reimburse_services.expense_selection import (
    load_active_receipts,
    select_batch_expenses,
)
from reimburse_services.export_requests import (
    request_batch_check,
    request_batch_export,
    request_project_export,
)
from reimburse_services.export_service import (
    DEFAULT_EXPORT_TTL_DAYS,
    ExportOutcome,
    ExportPipeline,
    run_export_sync,
)
from reimburse_services.match_service import MatchService

__all__ = [
    "DEFAULT_EXPORT_TTL_DAYS",
    "BatchCheckService",
    "CandidateService",
    "CandidateView",
    "ExportOutcome",
    "ExportPipeline",
    "MatchService",
    "load_active_receipts",
    "request_batch_check",
    "request_batch_export",
    "request_project_export",
    "run_export_sync",
    "select_batch_expenses",
]
