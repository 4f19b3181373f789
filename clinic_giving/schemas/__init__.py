"""
Schemas Package
Marshmallow schemas for request/response validation
"""

from clinic_giving.schemas.donation_schema import (
    InitiateDonationSchema,
    DonationTransactionSchema,
    CallbackEventSchema
)
from clinic_giving.schemas.supporter_schema import (
    SupporterContributionSchema,
    AcknowledgementSchema
)

__all__ = [
    'InitiateDonationSchema',
    'DonationTransactionSchema',
    'CallbackEventSchema',
    'SupporterContributionSchema',
    'AcknowledgementSchema'
]
