"""
Donation Service
M-Pesa donation lifecycle: STK push initiation, callback reconciliation,
status lookup and ledger repair
"""

import uuid
from typing import Any, Dict, Optional

from flask import current_app

from clinic_giving.errors import ApiError, CallbackError, InvalidRequest
from clinic_giving.extensions import db
from clinic_giving.models import DonationTransaction, TransactionStatus
from clinic_giving.providers import get_mpesa_provider, parse_stk_callback
from clinic_giving.services.audit_service import AuditService
from clinic_giving.services.overview_service import OverviewService
from clinic_giving.services.supporter_service import SupporterService
from clinic_giving.utils.logger import get_logger
from clinic_giving.utils.validators import (
    display_name,
    normalize_msisdn,
    round_amount,
    sanitize_account_reference,
    utcnow,
)
from clinic_giving.websockets.events import emit_transaction_update

logger = get_logger(__name__)

MPESA_CHANNEL = 'M-Pesa'


def _as_uuid(value) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _paid_amount(transaction: DonationTransaction, metadata: Dict[str, Any]) -> int:
    """Amount reported by the callback, falling back to the requested amount."""
    reported = metadata.get('Amount')
    if isinstance(reported, (int, float)) and not isinstance(reported, bool):
        rounded = round_amount(reported)
        if rounded is not None:
            return rounded
    return transaction.amount


class DonationService:
    """Core M-Pesa donation service"""

    @staticmethod
    def initiate(
            phone: str,
            amount,
            first_name: str,
            account_reference: Optional[str] = None,
            transaction_desc: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Start an STK push donation

        The PENDING transaction is committed before Daraja is contacted, so
        every attempt leaves exactly one row behind.

        Args:
            phone: Donor phone number in any accepted Kenyan format
            amount: Amount in KES, rounded half-up to whole shillings
            first_name: Donor first name
            account_reference: Reference shown on the donor's phone
            transaction_desc: Description shown on the donor's phone

        Returns:
            {'transaction_id', 'checkout_request_id', 'merchant_request_id', 'status'}

        Raises:
            ConfigurationError: Daraja credentials missing (nothing is written)
            InvalidPhone: phone cannot be normalised
            ApiError: bad amount or name (400, code invalid-amount or invalid-name),
                or Daraja failed or rejected the push (502)
        """
        provider = get_mpesa_provider()

        msisdn = normalize_msisdn(phone)

        rounded = round_amount(amount)
        if rounded is None or rounded <= 0:
            raise ApiError.rejected_input('Donation amount must be greater than zero.', 'invalid-amount')

        name = display_name(first_name)
        if not name:
            raise ApiError.rejected_input('First name is required to initiate the donation.', 'invalid-name')

        reference = sanitize_account_reference(
            account_reference if account_reference is not None else name,
            current_app.config.get('MPESA_ACCOUNT_REFERENCE_FALLBACK', 'MWEINCARE')
        )
        description = transaction_desc or current_app.config.get(
            'DONATION_TRANSACTION_DESC', 'Mwein Emergency Care Donation'
        )

        transaction = DonationTransaction(
            phone_raw=phone,
            phone_msisdn=msisdn,
            amount=rounded,
            first_name=name,
            account_reference=reference,
            transaction_desc=description,
            status=TransactionStatus.PENDING.value
        )
        db.session.add(transaction)
        db.session.commit()

        # Everything from here on either reaches Daraja or leaves the row FAILED
        try:
            AuditService.log_event(
                transaction_id=transaction.id,
                event_type='donation.initiated',
                event_data={'amount': rounded, 'phone_msisdn': msisdn, 'account_reference': reference}
            )
            emit_transaction_update(transaction, 'donation.initiated')

            response = provider.stk_push(
                amount=rounded,
                phone=msisdn,
                account_reference=reference,
                transaction_desc=description
            )

            transaction.merchant_request_id = response.get('MerchantRequestID')
            transaction.checkout_request_id = response.get('CheckoutRequestID')
            transaction.result_code = response.get('ResponseCode')
            transaction.result_description = response.get('ResponseDescription')
            db.session.commit()

        except Exception as e:
            db.session.rollback()

            transaction.status = TransactionStatus.FAILED.value
            transaction.failure_reason = getattr(e, 'message', None) or str(e) or 'Unknown M-Pesa error.'
            if isinstance(e, ApiError) and e.code is not None:
                transaction.result_code = str(e.code)
            transaction.completed_at = utcnow()
            db.session.commit()

            logger.warning(f'STK push failed for transaction {transaction.id}: {transaction.failure_reason}')

            DonationService._record_failure_step(
                transaction,
                'donation.failed',
                {'stage': 'stk_push', 'error': transaction.failure_reason, 'code': transaction.result_code}
            )

            raise

        AuditService.log_event(
            transaction_id=transaction.id,
            event_type='donation.accepted',
            event_data={
                'checkout_request_id': transaction.checkout_request_id,
                'merchant_request_id': transaction.merchant_request_id,
                'customer_message': response.get('CustomerMessage')
            }
        )
        emit_transaction_update(transaction, 'donation.accepted')

        logger.info(f'STK push accepted for transaction {transaction.id} '
                    f'(checkout {transaction.checkout_request_id})')

        return {
            'transaction_id': str(transaction.id),
            'checkout_request_id': transaction.checkout_request_id,
            'merchant_request_id': transaction.merchant_request_id,
            'status': transaction.status
        }

    @staticmethod
    def process_callback(payload) -> Dict[str, Any]:
        """
        Apply a Daraja STK callback to its transaction, exactly once

        Returns:
            {'transaction', 'duplicate'} and, for a new success, also
            {'supporter', 'totals', 'recent_new_supporters'}

        Raises:
            CallbackError: malformed envelope or unknown checkout request id
            DonationError: ledger update failed (the transaction stays SUCCESS
                and carries the reason)
        """
        callback, error = parse_stk_callback(payload)
        if error:
            raise CallbackError(error, reason='malformed')

        transaction = DonationTransaction.query.filter_by(
            checkout_request_id=callback.checkout_request_id
        ).first()

        if not transaction:
            raise CallbackError(
                f'No donation transaction found for checkout request {callback.checkout_request_id}.',
                reason='unmatched'
            )

        if transaction.is_terminal:
            logger.info(f'Duplicate callback for transaction {transaction.id} ({transaction.status})')
            return {'transaction': transaction.to_dict(), 'duplicate': True}

        receipt = callback.metadata.get('MpesaReceiptNumber')
        receipt = receipt if isinstance(receipt, str) else None
        paid_amount = _paid_amount(transaction, callback.metadata)

        succeeded = callback.succeeded
        status = TransactionStatus.SUCCESS if succeeded else TransactionStatus.FAILED
        now = utcnow()

        # Only a PENDING row can move; a concurrent delivery updates nothing
        applied = DonationTransaction.query.filter_by(
            id=transaction.id,
            status=TransactionStatus.PENDING.value
        ).update({
            'status': status.value,
            'result_code': str(callback.result_code) if callback.result_code is not None else None,
            'result_description': callback.result_desc,
            'mpesa_receipt_number': receipt,
            'failure_reason': None if succeeded else (callback.result_desc or 'M-Pesa reported the payment as failed.'),
            'callback_metadata': callback.raw,
            'completed_at': now,
            'updated_at': now,
        }, synchronize_session=False)
        db.session.commit()

        transaction = db.session.get(DonationTransaction, transaction.id)

        if not applied:
            logger.info(f'Callback for transaction {transaction.id} lost the race; already {transaction.status}')
            return {'transaction': transaction.to_dict(), 'duplicate': True}

        event_type = 'donation.succeeded' if succeeded else 'donation.failed'
        try:
            AuditService.log_event(
                transaction_id=transaction.id,
                event_type=event_type,
                event_data={
                    'result_code': transaction.result_code,
                    'result_description': transaction.result_description,
                    'mpesa_receipt_number': receipt,
                    'paid_amount': paid_amount
                }
            )
            emit_transaction_update(transaction, event_type)
        except Exception as e:
            db.session.rollback()
            if succeeded:
                # The ledger step is never reached; leave the row for repair
                DonationService._mark_ledger_failed(transaction, paid_amount, e)
            raise

        if not succeeded:
            return {'transaction': transaction.to_dict(), 'duplicate': False}

        ledger = DonationService._record_ledger(transaction, paid_amount)
        return {
            'transaction': transaction.to_dict(),
            'duplicate': False,
            'supporter': ledger['supporter'],
            'totals': ledger['totals'],
            'recent_new_supporters': ledger['recent_new_supporters']
        }

    @staticmethod
    def get_transaction_status(transaction_id) -> Optional[Dict[str, Any]]:
        """
        Consolidated view of a donation for polling clients

        Returns:
            None for an unknown id; supporter and overview are included only
            for a successful donation linked to a supporter
        """
        key = _as_uuid(transaction_id)
        transaction = db.session.get(DonationTransaction, key) if key else None
        if transaction is None:
            return None

        base = {
            'id': str(transaction.id),
            'status': transaction.status,
            'result_description': transaction.result_description,
            'failure_reason': transaction.failure_reason,
            'mpesa_receipt_number': transaction.mpesa_receipt_number,
            'checkout_request_id': transaction.checkout_request_id,
            'merchant_request_id': transaction.merchant_request_id,
            'supporter_id': str(transaction.supporter_id) if transaction.supporter_id else None,
            'amount': transaction.amount,
            'first_name': transaction.first_name
        }

        if transaction.status != TransactionStatus.SUCCESS.value or not transaction.supporter_id:
            return base

        overview = OverviewService.compute_overview()
        base.update({
            'supporter': transaction.supporter.to_snapshot() if transaction.supporter else None,
            'totals': overview['totals'],
            'recent_new_supporters': overview['recent_new_supporters']
        })
        return base

    @staticmethod
    def repair_ledger(transaction_id) -> Dict[str, Any]:
        """
        Re-record a successful donation whose ledger step failed

        Raises:
            InvalidRequest: unknown transaction, not SUCCESS, or already linked
        """
        key = _as_uuid(transaction_id)
        transaction = db.session.get(DonationTransaction, key) if key else None
        if transaction is None:
            raise InvalidRequest('Donation transaction not found.')

        if transaction.status != TransactionStatus.SUCCESS.value or transaction.supporter_id:
            raise InvalidRequest('Only successful donations without a supporter can be repaired.')

        callback, _ = parse_stk_callback({'Body': {'stkCallback': transaction.callback_metadata or {}}})
        metadata = callback.metadata if callback else {}

        ledger = DonationService._record_ledger(transaction, _paid_amount(transaction, metadata))

        transaction.failure_reason = None
        db.session.commit()

        return {
            'transaction': transaction.to_dict(),
            'supporter': ledger['supporter'],
            'totals': ledger['totals'],
            'recent_new_supporters': ledger['recent_new_supporters']
        }

    @staticmethod
    def find_unrecorded_contributions(limit: int = 100) -> list:
        """Successful donations that never reached the supporter ledger"""
        return DonationTransaction.query.filter(
            DonationTransaction.status == TransactionStatus.SUCCESS.value,
            DonationTransaction.supporter_id.is_(None)
        ).order_by(DonationTransaction.completed_at.asc()).limit(limit).all()

    @staticmethod
    def list_transactions(status: Optional[str] = None, page: int = 1, per_page: int = 50):
        """
        Recent donation transactions, newest first

        Returns:
            Paginated transactions
        """
        query = DonationTransaction.query
        if status:
            query = query.filter_by(status=status.upper())

        return query.order_by(DonationTransaction.created_at.desc()).paginate(
            page=page,
            per_page=per_page,
            error_out=False
        )

    @staticmethod
    def _record_ledger(transaction: DonationTransaction, paid_amount: int) -> Dict[str, Any]:
        """Credit the supporter ledger and link the supporter to the transaction."""
        try:
            ledger = SupporterService.record_contribution(
                transaction.first_name,
                paid_amount,
                MPESA_CHANNEL,
                'pending'
            )
            transaction.supporter_id = uuid.UUID(ledger['supporter']['id'])
            db.session.commit()

        except Exception as e:
            db.session.rollback()
            DonationService._mark_ledger_failed(transaction, paid_amount, e)
            raise

        AuditService.log_event(
            transaction_id=transaction.id,
            event_type='supporter.recorded',
            event_data={'supporter_id': ledger['supporter']['id'], 'amount': paid_amount}
        )
        emit_transaction_update(transaction, 'supporter.recorded')

        return ledger

    @staticmethod
    def _mark_ledger_failed(transaction: DonationTransaction, paid_amount: int, error: Exception) -> None:
        """SUCCESS stays; the reason is kept so the repair sweep and operators can find it."""
        reason = getattr(error, 'message', None) or str(error)
        transaction.failure_reason = f'Supporter ledger update failed: {reason}'
        db.session.commit()

        logger.error(f'Ledger update failed for transaction {transaction.id}: {reason}')
        DonationService._record_failure_step(
            transaction,
            'supporter.ledger_failed',
            {'error': reason, 'paid_amount': paid_amount}
        )

    @staticmethod
    def _record_failure_step(transaction: DonationTransaction, event_type: str, event_data: Dict[str, Any]) -> None:
        """
        Audit and broadcast a failure. The caller re-raises the original error,
        so a broken audit write here is logged rather than replacing it.
        """
        try:
            AuditService.log_event(transaction_id=transaction.id, event_type=event_type, event_data=event_data)
            emit_transaction_update(transaction, event_type)
        except Exception as e:
            db.session.rollback()
            logger.error(f'Could not record {event_type} for transaction {transaction.id}: {str(e)}')
