from clinic_giving.services.audit_service import AuditService
from clinic_giving.services.overview_service import OverviewService
from clinic_giving.services.supporter_service import SupporterService
from clinic_giving.services.donation_service import DonationService
from clinic_giving.services.callback_service import CallbackService

__all__ = ['AuditService', 'OverviewService', 'SupporterService', 'DonationService', 'CallbackService']
