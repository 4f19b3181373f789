import uuid

from clinic_giving.extensions import db
from clinic_giving.utils.validators import utcnow


class DonationSupporter(db.Model):
    __tablename__ = 'donation_supporters'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    first_name = db.Column(db.String(120), nullable=False)
    # Dedup key, see utils.validators.normalize_name
    normalized_name = db.Column(db.String(120), nullable=False, unique=True, index=True)

    total_amount = db.Column(db.Integer, nullable=False, default=0)
    donation_count = db.Column(db.Integer, nullable=False, default=0)
    last_channel = db.Column(db.String(20), nullable=False, default='M-Pesa')
    last_contribution_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    public_acknowledgement = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_snapshot(self):
        """Public view of a supporter, as listed on the donations page."""
        return {
            'id': str(self.id),
            'first_name': self.first_name,
            'total_amount': self.total_amount,
            'donation_count': self.donation_count,
            'last_channel': self.last_channel,
            'last_contribution_at': self.last_contribution_at.isoformat() if self.last_contribution_at else None,
            'public_acknowledgement': self.public_acknowledgement
        }

    def __repr__(self):
        return f'<DonationSupporter {self.normalized_name} - {self.total_amount}>'
