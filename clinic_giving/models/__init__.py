from clinic_giving.models.donation_supporter import DonationSupporter
from clinic_giving.models.donation_transaction import DonationTransaction, TransactionStatus
from clinic_giving.models.callback_event import MpesaCallbackEvent, CallbackOutcome
from clinic_giving.models.audit_log import AuditLog

__all__ = ['DonationSupporter', 'DonationTransaction', 'TransactionStatus', 'MpesaCallbackEvent',
           'CallbackOutcome', 'AuditLog']
