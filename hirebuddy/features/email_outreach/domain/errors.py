"""
Error taxonomy for the outreach flow.

ValidationError blocks an attempt until the input is corrected. GenerationError
and TransportError are recoverable and leave the draft intact.
PersistenceWarning is attached to a successful outcome and never raised to the
caller.
"""


class OutreachError(Exception):
    """Base exception for outreach operations."""

    def __init__(
        self,
        message: str,
        contact_id: str | None = None,
        error_code: str | None = None,
        recoverable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.contact_id = contact_id
        self.error_code = error_code
        self.recoverable = recoverable


class ValidationError(OutreachError):
    """Missing or invalid input, or an unmet precondition."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        contact_id: str | None = None,
        error_code: str | None = "validation_failed",
    ):
        super().__init__(message, contact_id=contact_id, error_code=error_code, recoverable=False)
        self.field = field


class GenerationError(OutreachError):
    """The draft generator failed or timed out."""


class TransportError(OutreachError):
    """The mail transport rejected or failed to deliver the send."""

    def __init__(
        self,
        message: str,
        contact_id: str | None = None,
        error_code: str | None = "transport_failed",
        status_code: int | None = None,
    ):
        super().__init__(message, contact_id=contact_id, error_code=error_code, recoverable=True)
        self.status_code = status_code


class PersistenceWarning(OutreachError):
    """The send succeeded but its history record could not be written."""


class MalformedRecordError(Exception):
    """A raw email payload could not be turned into an EmailRecord."""
