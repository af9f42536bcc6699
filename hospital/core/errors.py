"""Error kinds raised by the booking services.

Services raise these and never pick HTTP status codes themselves; the
application maps a kind to a transport status in exactly one place
(``http_status_for``).
"""

from enum import Enum

from fastapi import status


class ErrorKind(str, Enum):
    SLOT_UNAVAILABLE = 'slot_unavailable'
    INVALID_PAYMENT = 'invalid_payment'
    FEE_MISMATCH = 'fee_mismatch'
    INVALID_REQUEST = 'invalid_request'
    NOT_FOUND = 'not_found'
    CONFLICT = 'conflict'
    TRANSIENT = 'transient'
    FATAL = 'fatal'


class PortalError(Exception):
    """Base class for every error the services raise on purpose."""

    kind = ErrorKind.FATAL
    default_message = 'Request could not be processed.'

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class SlotUnavailableError(PortalError):
    kind = ErrorKind.SLOT_UNAVAILABLE
    default_message = 'Selected time slot is no longer available. Please choose another slot.'


class InvalidPaymentError(PortalError):
    kind = ErrorKind.INVALID_PAYMENT
    default_message = 'Payment details are invalid.'


class FeeMismatchError(PortalError):
    kind = ErrorKind.FEE_MISMATCH
    default_message = "Payment amount does not match the doctor's consultation fee."


class InvalidRequestError(PortalError):
    kind = ErrorKind.INVALID_REQUEST
    default_message = 'Invalid request.'


class NotFoundError(PortalError):
    kind = ErrorKind.NOT_FOUND
    default_message = 'Resource not found.'


class ConflictError(PortalError):
    kind = ErrorKind.CONFLICT
    default_message = 'Request conflicts with the current state.'


class TransientError(PortalError):
    """Infrastructure failure. ``retryable`` is False when the commit outcome is unknown."""

    kind = ErrorKind.TRANSIENT
    default_message = 'Database temporarily unavailable. Please try again.'

    def __init__(self, message: str | None = None, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class FatalError(PortalError):
    kind = ErrorKind.FATAL
    default_message = 'Internal server error'


STATUS_BY_KIND = {
    ErrorKind.SLOT_UNAVAILABLE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_PAYMENT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.FEE_MISMATCH: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.TRANSIENT: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.FATAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def http_status_for(error: PortalError) -> int:
    return STATUS_BY_KIND[error.kind]


def public_message_for(error: PortalError) -> str:
    # Fatal errors never leak their detail to clients.
    if error.kind is ErrorKind.FATAL:
        return FatalError.default_message
    return error.message
