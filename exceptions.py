"""
Custom exceptions for the partnership reconciliation engine.

This module defines specific exception types for different error scenarios,
enabling better error handling and recovery throughout the codebase.
"""


class ReconciliationError(Exception):
    """Base exception for reconciliation-related errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ReconciliationError):
    """Raised when input validation fails."""

    def __init__(self, message: str, field: str = None, value=None):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        super().__init__(message, details)
        self.field = field
        self.value = value


class MalformedInputError(ReconciliationError):
    """Raised when an uploaded file (or a value read from it) cannot be used."""

    def __init__(self, message: str, row_number: int = None, column: str = None):
        details = {}
        if row_number is not None:
            details["row_number"] = row_number
        if column:
            details["column"] = column
        super().__init__(message, details)
        self.row_number = row_number
        self.column = column


class StoreError(ReconciliationError):
    """Raised when a record store operation fails."""

    def __init__(self, message: str, operation: str = None, status_code: int = None):
        details = {}
        if operation:
            details["operation"] = operation
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.operation = operation
        self.status_code = status_code


class BatchPersistenceError(StoreError):
    """Raised when a transaction batch fails; earlier batches stay committed."""

    def __init__(self, message: str, committed: int, total: int, status_code: int = None):
        super().__init__(message, operation="create_transactions", status_code=status_code)
        self.details.update({"committed": committed, "total": total})
        self.committed = committed
        self.total = total


class ReplacementError(StoreError):
    """Raised when replacing an upload stops part-way through the cascade."""

    def __init__(self, message: str, upload_id: str, stage: str):
        super().__init__(message, operation="replace_upload")
        self.details.update({"upload_id": upload_id, "stage": stage})
        self.upload_id = upload_id
        self.stage = stage


class DuplicateMonthError(ReconciliationError):
    """Raised when committing a month that already has an upload."""

    def __init__(self, month: str, existing_upload_id: str):
        super().__init__(
            f"An upload already exists for {month}; replace or cancel first",
            {"month": month, "existing_upload_id": existing_upload_id},
        )
        self.month = month
        self.existing_upload_id = existing_upload_id


class PartnerNotFoundError(ReconciliationError):
    """Raised when a partner cannot be found."""

    def __init__(self, partner_id: str):
        super().__init__(f"Partner not found: {partner_id}", {"partner_id": partner_id})
        self.partner_id = partner_id


class UploadNotFoundError(ReconciliationError):
    """Raised when an upload cannot be found."""

    def __init__(self, upload_id: str):
        super().__init__(f"Upload not found: {upload_id}", {"upload_id": upload_id})
        self.upload_id = upload_id


class IneligiblePartnerError(ReconciliationError):
    """Raised when linking a merchant to a partner that cannot receive attribution."""

    def __init__(self, partner_id: str, reason: str):
        super().__init__(
            f"Partner {partner_id} cannot receive attribution: {reason}",
            {"partner_id": partner_id, "reason": reason},
        )
        self.partner_id = partner_id
        self.reason = reason


class ConfigurationError(ReconciliationError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, setting_key: str = None):
        details = {}
        if setting_key:
            details["setting_key"] = setting_key
        super().__init__(message, details)
        self.setting_key = setting_key


class ExternalServiceError(ReconciliationError):
    """Raised when an external service (automation webhook, etc.) fails."""

    def __init__(self, message: str, service: str = None, status_code: int = None):
        details = {}
        if service:
            details["service"] = service
        if status_code:
            details["status_code"] = status_code
        super().__init__(message, details)
        self.service = service
        self.status_code = status_code
