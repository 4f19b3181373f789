"""
Audit Service
Step-by-step trail of every donation, readable by operators
"""

import uuid
from typing import Any, Dict, List, Optional

from flask import has_request_context, request

from clinic_giving.extensions import db
from clinic_giving.models import AuditLog
from clinic_giving.utils.decorators import client_ip

# Donor phone numbers are kept on the transaction; the trail only needs enough to recognise one
MASKED_KEYS = ('phone_msisdn',)


def mask_msisdn(msisdn: Optional[str]) -> Optional[str]:
    """254712345678 -> 2547*****678"""
    if not msisdn or len(msisdn) < 8:
        return msisdn
    return f'{msisdn[:4]}{"*" * (len(msisdn) - 7)}{msisdn[-3:]}'


class AuditService:
    """Writes and reads the donation audit trail"""

    @staticmethod
    def log_event(transaction_id: uuid.UUID, event_type: str, event_data: Dict[str, Any]) -> AuditLog:
        """
        Append a step to a donation's trail and commit it

        Request IP and user agent are attached when called from a request
        (initiate, callback, admin repair); Celery sweeps leave them empty.
        """
        data = dict(event_data or {})
        for key in MASKED_KEYS:
            if key in data:
                data[key] = mask_msisdn(data[key])

        entry = AuditLog(transaction_id=transaction_id, event_type=event_type, event_data=data)
        if has_request_context():
            entry.ip_address = client_ip()
            entry.user_agent = (request.headers.get('User-Agent') or '')[:500] or None

        db.session.add(entry)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        return entry

    @staticmethod
    def get_transaction_audit_trail(transaction_id: uuid.UUID) -> List[AuditLog]:
        """Every step of one donation, oldest first"""
        return AuditLog.query.filter_by(transaction_id=transaction_id).order_by(
            AuditLog.recorded_at.asc()
        ).all()
