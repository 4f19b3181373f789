import uuid
from enum import Enum

from sqlalchemy.dialects.postgresql import JSONB

from clinic_giving.extensions import db
from clinic_giving.utils.validators import utcnow


class CallbackOutcome(str, Enum):
    RECEIVED = 'received'
    PROCESSED = 'processed'
    DUPLICATE = 'duplicate'
    MALFORMED = 'malformed'
    UNMATCHED = 'unmatched'
    LEDGER_FAILED = 'ledger_failed'
    ERROR = 'error'


class MpesaCallbackEvent(db.Model):
    __tablename__ = 'mpesa_callback_events'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    transaction_id = db.Column(db.Uuid, db.ForeignKey('donation_transactions.id'), index=True)
    checkout_request_id = db.Column(db.String(64), index=True)

    payload = db.Column(db.JSON().with_variant(JSONB(), 'postgresql'), nullable=False)

    # Processing status
    outcome = db.Column(db.String(20), nullable=False, default=CallbackOutcome.RECEIVED.value, index=True)
    error_message = db.Column(db.Text)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    processed_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            'id': str(self.id),
            'transaction_id': str(self.transaction_id) if self.transaction_id else None,
            'checkout_request_id': self.checkout_request_id,
            'outcome': self.outcome,
            'error_message': self.error_message,
            'created_at': self.created_at.isoformat(),
            'processed_at': self.processed_at.isoformat() if self.processed_at else None
        }

    def __repr__(self):
        return f'<MpesaCallbackEvent {self.id} - {self.outcome}>'
