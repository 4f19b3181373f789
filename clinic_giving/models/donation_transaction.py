import uuid
from enum import Enum

from sqlalchemy.dialects.postgresql import JSONB

from clinic_giving.extensions import db
from clinic_giving.utils.validators import utcnow


class TransactionStatus(str, Enum):
    PENDING = 'PENDING'
    SUCCESS = 'SUCCESS'
    FAILED = 'FAILED'


class DonationTransaction(db.Model):
    __tablename__ = 'donation_transactions'

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)

    # Donor input
    phone_raw = db.Column(db.String(32), nullable=False)
    phone_msisdn = db.Column(db.String(12), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    first_name = db.Column(db.String(120), nullable=False)
    account_reference = db.Column(db.String(12), nullable=False)
    transaction_desc = db.Column(db.String(255), nullable=False)

    status = db.Column(db.String(10), nullable=False, default=TransactionStatus.PENDING.value, index=True)

    # Daraja correlation
    merchant_request_id = db.Column(db.String(64))
    checkout_request_id = db.Column(db.String(64), unique=True, index=True)
    result_code = db.Column(db.String(16))
    result_description = db.Column(db.Text)
    mpesa_receipt_number = db.Column(db.String(32))
    failure_reason = db.Column(db.Text)
    callback_metadata = db.Column(db.JSON().with_variant(JSONB(), 'postgresql'))

    supporter_id = db.Column(db.Uuid, db.ForeignKey('donation_supporters.id'), index=True)

    # Timestamps
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    completed_at = db.Column(db.DateTime)

    supporter = db.relationship('DonationSupporter', backref=db.backref('transactions', lazy='dynamic'))
    audit_logs = db.relationship('AuditLog', backref='transaction', lazy='dynamic', cascade='all, delete-orphan')

    @property
    def is_terminal(self) -> bool:
        return self.status != TransactionStatus.PENDING.value

    def to_dict(self):
        return {
            'id': str(self.id),
            'status': self.status,
            'amount': self.amount,
            'first_name': self.first_name,
            'phone_msisdn': self.phone_msisdn,
            'account_reference': self.account_reference,
            'transaction_desc': self.transaction_desc,
            'merchant_request_id': self.merchant_request_id,
            'checkout_request_id': self.checkout_request_id,
            'result_code': self.result_code,
            'result_description': self.result_description,
            'mpesa_receipt_number': self.mpesa_receipt_number,
            'failure_reason': self.failure_reason,
            'supporter_id': str(self.supporter_id) if self.supporter_id else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None
        }

    def __repr__(self):
        return f'<DonationTransaction {self.id} - {self.status}>'
