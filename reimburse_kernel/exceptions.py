"""
Module: reimburse_kernel.exceptions
Responsibility: Typed exception hierarchy for the reimbursement core.  Every
    exception carries a machine-readable ``code`` class attribute and stores
    its context as attributes, so that log records and API layers can surface
    structured data without parsing messages.
Architecture position: Kernel.  Imported by every layer; imports nothing.

===============================================================================
ERROR CODES
===============================================================================

Category        | Code                        | Raised by
----------------|-----------------------------|-----------------------------------
Job             | JOB_NOT_FOUND               | JobQueue lookups
                | UNKNOWN_JOB_TYPE            | handler registry dispatch
                | INVALID_JOB_PAYLOAD         | handler payload validation
----------------|-----------------------------|-----------------------------------
Batch           | BATCH_NOT_FOUND             | export requests
----------------|-----------------------------|-----------------------------------
Export          | EXPORT_NOT_FOUND            | export lookups
                | UNSUPPORTED_EXPORT_TYPE     | ExportPipeline / export requests
                | PROJECT_SELECTION_INVALID   | project-set export requests
----------------|-----------------------------|-----------------------------------
Match           | RECEIPT_NOT_FOUND           | CandidateService / MatchService
                | EXPENSE_NOT_FOUND           | MatchService
                | RECEIPT_ALREADY_MATCHED     | MatchService.match
                | OWNERSHIP_MISMATCH          | MatchService.match
----------------|-----------------------------|-----------------------------------
Storage         | OBJECT_NOT_FOUND            | ObjectStore.download
                | INVALID_STORAGE_KEY         | LocalObjectStore key checks
                | OBJECT_UNREADABLE           | LocalObjectStore.download
----------------|-----------------------------|-----------------------------------
Configuration   | CONFIGURATION_ERROR         | reimburse_config.loader

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Background work never lets these escape to the HTTP layer.  The job queue
   records the message on the job row; the export pipeline records failure on
   the ExportRecord.

2. Interactive callers catch specific classes:

    try:
        match_service.match(receipt_id, expense_id, user_id)
    except ReceiptAlreadyMatchedError as e:
        return conflict(e.code, matched_expense_id=e.matched_expense_id)
"""


class ReimburseError(Exception):
    """
    Base exception for all reimbursement core errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "REIMBURSE_ERROR"


# Job queue exceptions


class JobError(ReimburseError):
    """Base exception for job queue errors."""

    code: str = "JOB_ERROR"


class JobNotFoundError(JobError):
    """Job with given ID was not found."""

    code: str = "JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class UnknownJobTypeError(JobError):
    """No handler is registered for the job's type."""

    code: str = "UNKNOWN_JOB_TYPE"

    def __init__(self, job_type: str, available: tuple[str, ...] = ()):
        self.job_type = job_type
        self.available = available
        super().__init__(
            f"No handler registered for job type '{job_type}'. "
            f"Available: {list(available)}"
        )


class InvalidJobPayloadError(JobError):
    """Job payload is missing a required key or has a malformed value."""

    code: str = "INVALID_JOB_PAYLOAD"

    def __init__(self, job_type: str, field: str, reason: str = "missing"):
        self.job_type = job_type
        self.field = field
        self.reason = reason
        super().__init__(
            f"Invalid payload for '{job_type}' job: {field} is {reason}"
        )


# Batch exceptions


class BatchError(ReimburseError):
    """Base exception for batch errors."""

    code: str = "BATCH_ERROR"


class BatchNotFoundError(BatchError):
    """Batch does not exist for the given user."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


# Export exceptions


class ExportError(ReimburseError):
    """Base exception for export errors."""

    code: str = "EXPORT_ERROR"


class ExportNotFoundError(ExportError):
    """Export record does not exist for the given user."""

    code: str = "EXPORT_NOT_FOUND"

    def __init__(self, export_id: str):
        self.export_id = export_id
        super().__init__(f"Export not found: {export_id}")


class UnsupportedExportTypeError(ExportError):
    """Export type is not one of the supported artifact kinds."""

    code: str = "UNSUPPORTED_EXPORT_TYPE"

    def __init__(self, export_type: str):
        self.export_type = export_type
        super().__init__(f"Unsupported export type: {export_type}")


class ProjectSelectionError(ExportError):
    """A project-set export was requested without any projects."""

    code: str = "PROJECT_SELECTION_INVALID"

    def __init__(self, message: str = "At least one project must be selected"):
        super().__init__(message)


# Matching exceptions


class MatchError(ReimburseError):
    """Base exception for receipt/expense matching errors."""

    code: str = "MATCH_ERROR"


class ReceiptNotFoundError(MatchError):
    """Receipt does not exist (or is deleted) for the given user."""

    code: str = "RECEIPT_NOT_FOUND"

    def __init__(self, receipt_id: str):
        self.receipt_id = receipt_id
        super().__init__(f"Receipt not found: {receipt_id}")


class ExpenseNotFoundError(MatchError):
    """Expense does not exist for the given user."""

    code: str = "EXPENSE_NOT_FOUND"

    def __init__(self, expense_id: str):
        self.expense_id = expense_id
        super().__init__(f"Expense not found: {expense_id}")


class ReceiptAlreadyMatchedError(MatchError):
    """Receipt is linked to a different expense already."""

    code: str = "RECEIPT_ALREADY_MATCHED"

    def __init__(self, receipt_id: str, matched_expense_id: str):
        self.receipt_id = receipt_id
        self.matched_expense_id = matched_expense_id
        super().__init__(
            f"Receipt {receipt_id} is already matched to expense {matched_expense_id}"
        )


class OwnershipMismatchError(MatchError):
    """Receipt and expense belong to different users."""

    code: str = "OWNERSHIP_MISMATCH"

    def __init__(self, receipt_id: str, expense_id: str):
        self.receipt_id = receipt_id
        self.expense_id = expense_id
        super().__init__(
            f"Receipt {receipt_id} and expense {expense_id} have different owners"
        )


# Storage exceptions


class StorageError(ReimburseError):
    """Base exception for object storage errors."""

    code: str = "STORAGE_ERROR"


class ObjectNotFoundError(StorageError):
    """No object is stored under the given key."""

    code: str = "OBJECT_NOT_FOUND"

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Object not found: {key}")


class InvalidStorageKeyError(StorageError, ValueError):
    """Key is empty, absolute or escapes the store root."""

    code: str = "INVALID_STORAGE_KEY"

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Invalid storage key: {key!r}")


class ObjectUnreadableError(StorageError):
    """The object exists but could not be read."""

    code: str = "OBJECT_UNREADABLE"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Object {key} could not be read: {reason}")


# Configuration exceptions


class ConfigurationError(ReimburseError):
    """Configuration file is malformed or holds an invalid value."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)
