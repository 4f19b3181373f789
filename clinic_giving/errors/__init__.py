from clinic_giving.errors.exceptions import (
    AppError,
    ErrorKind,
    ERROR_RESPONSES,
    DonationError,
    InvalidPhone,
    InvalidName,
    InvalidRequest,
    ConfigurationError,
    ApiError,
    CallbackError,
    SupporterNotFound,
)

__all__ = [
    'AppError',
    'ErrorKind',
    'ERROR_RESPONSES',
    'DonationError',
    'InvalidPhone',
    'InvalidName',
    'InvalidRequest',
    'ConfigurationError',
    'ApiError',
    'CallbackError',
    'SupporterNotFound',
]
