import uuid

from sqlalchemy.dialects.postgresql import JSONB

from clinic_giving.extensions import db
from clinic_giving.utils.validators import utcnow


class AuditLog(db.Model):
    """One step in a donation's life: initiated, accepted, succeeded, recorded..."""
    __tablename__ = 'donation_audit_logs'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    transaction_id = db.Column(db.Uuid, db.ForeignKey('donation_transactions.id'), nullable=False, index=True)

    event_type = db.Column(db.String(100), nullable=False, index=True)
    event_data = db.Column(db.JSON().with_variant(JSONB(), 'postgresql'))

    # Set only when the step happened inside an HTTP request
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))

    recorded_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def to_dict(self):
        return {
            'id': str(self.id),
            'transaction_id': str(self.transaction_id),
            'event_type': self.event_type,
            'event_data': self.event_data or {},
            'ip_address': self.ip_address,
            'user_agent': self.user_agent,
            'recorded_at': self.recorded_at.isoformat()
        }

    def __repr__(self):
        return f'<AuditLog {self.event_type} for {self.transaction_id}>'
