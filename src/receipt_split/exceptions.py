"""Custom exceptions for ReceiptSplit."""


class ReceiptSplitError(Exception):
    """Base exception for all ReceiptSplit errors."""

    pass


class ConfigurationError(ReceiptSplitError):
    """Raised when configuration is invalid or missing."""

    pass


class ReceiptNotFoundError(ReceiptSplitError):
    """Raised when a receipt does not exist in the local database."""

    def __init__(self, receipt_id: str, message: str | None = None):
        self.receipt_id = receipt_id
        super().__init__(message or f"Receipt {receipt_id} not found")


class ReceiptExistsError(ReceiptSplitError):
    """Raised when importing a receipt whose ID is already stored."""

    def __init__(self, receipt_id: str):
        self.receipt_id = receipt_id
        super().__init__(
            f"Receipt {receipt_id} already exists. Edit it instead of importing "
            f"it again."
        )


class ValidationError(ReceiptSplitError):
    """Base class for user-facing precondition failures."""

    pass


class NoPayerError(ValidationError):
    """Raised when settling a receipt that has no payer."""

    def __init__(self, receipt_id: str):
        self.receipt_id = receipt_id
        super().__init__(
            "No payer set for this receipt. Please set a payer before settling."
        )


class NoAssignmentsError(ValidationError):
    """Raised when settling a receipt whose items have not been split."""

    def __init__(self, receipt_id: str):
        self.receipt_id = receipt_id
        super().__init__(
            "No item assignments found. Please split items before settling."
        )


class NoLineItemsError(ValidationError):
    """Raised when a receipt has no valid line items."""

    def __init__(self, receipt_id: str):
        self.receipt_id = receipt_id
        super().__init__(f"Receipt {receipt_id} has no valid line items")


class AssignmentError(ValidationError):
    """Raised when an item split cannot be encoded."""

    pass


class ExportError(ReceiptSplitError):
    """Raised when a settlement cannot be turned into a Splitwise expense."""

    pass


class UnmappedMembersError(ExportError):
    """Raised when members have no linked Splitwise account."""

    def __init__(self, member_names: list[str]):
        self.member_names = member_names
        super().__init__(
            f"Some members are not mapped to Splitwise: {', '.join(member_names)}"
        )


class RoundingError(ExportError):
    """Raised when owed shares cannot be reconciled with the expense cost."""

    pass


class APIError(ReceiptSplitError):
    """Base class for API-related errors."""

    pass


class SplitwiseAPIError(APIError):
    """Raised when Splitwise API request fails."""

    def __init__(self, message: str, status_code: int):
        self.status_code = status_code
        super().__init__(message)


class SplitwiseAuthError(SplitwiseAPIError):
    """Raised when the Splitwise token is rejected (expired or revoked)."""

    def __init__(self, message: str = "Splitwise token expired. Please reconnect."):
        super().__init__(message, status_code=401)


class SplitwiseRateLimitError(SplitwiseAPIError):
    """Raised when Splitwise throttles requests."""

    def __init__(
        self, message: str = "Rate limited by Splitwise. Please try again later."
    ):
        super().__init__(message, status_code=429)
