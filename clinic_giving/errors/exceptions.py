from enum import Enum
from typing import Dict, Optional, Tuple


class AppError(Exception):
    status_code = 500
    error = "Application error"

    def __init__(self, message, status_code=None):
        super().__init__(message)
        if status_code:
            self.status_code = status_code
        self.message = message


class ErrorKind(str, Enum):
    """Closed set of failures the donation core can report."""
    INVALID_PHONE = 'invalid_phone'
    INVALID_NAME = 'invalid_name'
    INVALID_REQUEST = 'invalid_request'
    CONFIGURATION = 'configuration'
    API = 'api'
    CALLBACK = 'callback'
    SUPPORTER_NOT_FOUND = 'supporter_not_found'


# kind -> (HTTP status, wire error code)
ERROR_RESPONSES: Dict[ErrorKind, Tuple[int, str]] = {
    ErrorKind.INVALID_PHONE:       (400, 'invalid-phone'),
    ErrorKind.INVALID_NAME:        (400, 'invalid-name'),
    ErrorKind.INVALID_REQUEST:     (400, 'invalid-request'),
    ErrorKind.CONFIGURATION:       (500, 'configuration'),
    ErrorKind.API:                 (502, 'mpesa'),
    ErrorKind.CALLBACK:            (400, 'invalid-callback'),
    ErrorKind.SUPPORTER_NOT_FOUND: (404, 'not-found'),
}


class DonationError(AppError):
    """
    Error raised by the donation core.

    The HTTP boundary dispatches on ``kind`` only; the subclasses below
    exist so call sites read naturally.
    """
    kind: ErrorKind = ErrorKind.API

    def __init__(self, message: str, kind: Optional[ErrorKind] = None, code: Optional[str] = None):
        if kind is not None:
            self.kind = kind
        self.code = code
        status_code, error = ERROR_RESPONSES[self.kind]
        super().__init__(message, status_code)
        self.error = error

    def to_dict(self) -> dict:
        body = {'error': self.error, 'message': self.message}
        if self.kind is ErrorKind.API:
            body['code'] = self.code
        return body


class InvalidPhone(DonationError):
    kind = ErrorKind.INVALID_PHONE


class InvalidName(DonationError):
    kind = ErrorKind.INVALID_NAME

    def __init__(self, message='Invalid supporter name'):
        super().__init__(message)


class InvalidRequest(DonationError):
    kind = ErrorKind.INVALID_REQUEST

    def __init__(self, message='Invalid supporter request'):
        super().__init__(message)


class ConfigurationError(DonationError):
    kind = ErrorKind.CONFIGURATION


class ApiError(DonationError):
    """Partner rejection or network failure; ``code`` is the partner's response code when known."""
    kind = ErrorKind.API

    @classmethod
    def rejected_input(cls, message: str, code: str) -> 'ApiError':
        """Refused before Daraja is contacted. The donor can correct it, so it is a 400."""
        error = cls(message, code=code)
        error.status_code = 400
        return error


class CallbackError(DonationError):
    """Malformed or unmatched partner callback. ``reason`` is ``malformed`` or ``unmatched``."""
    kind = ErrorKind.CALLBACK

    def __init__(self, message: str, reason: str = 'malformed'):
        super().__init__(message)
        self.reason = reason


class SupporterNotFound(DonationError):
    kind = ErrorKind.SUPPORTER_NOT_FOUND

    def __init__(self, message='Supporter not found'):
        super().__init__(message)
