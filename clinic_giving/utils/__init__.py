"""
Utils Package
Utility functions and helpers
"""

from clinic_giving.utils.logger import get_logger, configure_app_logging, RequestLogger
from clinic_giving.utils.validators import (
    normalize_msisdn,
    sanitize_name,
    to_title_case,
    display_name,
    normalize_name,
    sanitize_account_reference,
    round_amount,
    utcnow,
)

__all__ = [
    'get_logger',
    'configure_app_logging',
    'RequestLogger',
    'normalize_msisdn',
    'sanitize_name',
    'to_title_case',
    'display_name',
    'normalize_name',
    'sanitize_account_reference',
    'round_amount',
    'utcnow',
]
