"""
reimburse_kernel.models -- ORM models for the reimbursement data model.

Architecture: imports from reimburse_kernel.db and reimburse_kernel.domain only.
"""

from reimburse_kernel.models.batch import BatchIssueModel, BatchModel
from reimburse_kernel.models.expense import ExpenseModel
from reimburse_kernel.models.export_record import ExportRecordModel
from reimburse_kernel.models.project import ProjectModel
from reimburse_kernel.models.receipt import ReceiptModel
from reimburse_kernel.models.settings import UserSettingsModel

__all__ = [
    "BatchIssueModel",
    "BatchModel",
    "ExpenseModel",
    "ExportRecordModel",
    "ProjectModel",
    "ReceiptModel",
    "UserSettingsModel",
]
