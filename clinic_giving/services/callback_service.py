"""
Callback Service
Inbox for Daraja STK callbacks: every delivery is stored before it is
reconciled, and its outcome is recorded against it
"""

import uuid
from typing import Any, Optional

from clinic_giving.errors import CallbackError
from clinic_giving.extensions import db
from clinic_giving.models import (
    CallbackOutcome,
    DonationTransaction,
    MpesaCallbackEvent,
    TransactionStatus,
)
from clinic_giving.services.donation_service import DonationService
from clinic_giving.utils.logger import get_logger
from clinic_giving.utils.validators import utcnow

logger = get_logger(__name__)


def _checkout_request_id(payload: Any) -> Optional[str]:
    body = payload.get('Body') if isinstance(payload, dict) else None
    stk = body.get('stkCallback') if isinstance(body, dict) else None
    if isinstance(stk, dict) and stk.get('CheckoutRequestID'):
        return str(stk['CheckoutRequestID'])[:64]
    return None


class CallbackService:
    """Service for receiving and reconciling M-Pesa callbacks"""

    @staticmethod
    def receive_callback(payload: Any) -> MpesaCallbackEvent:
        """
        Store an inbound callback before processing

        Args:
            payload: Parsed JSON body as delivered by Daraja

        Returns:
            Created MpesaCallbackEvent object
        """
        event = MpesaCallbackEvent(
            checkout_request_id=_checkout_request_id(payload),
            payload=payload,
            outcome=CallbackOutcome.RECEIVED.value
        )

        db.session.add(event)
        db.session.commit()

        return event

    @staticmethod
    def handle_callback(payload: Any) -> bool:
        """
        Store and reconcile a callback

        Returns:
            True when the callback was applied or was a harmless duplicate,
            False otherwise. The outcome is kept on the inbox row.
        """
        event = CallbackService.receive_callback(payload)

        try:
            result = DonationService.process_callback(payload)

        except CallbackError as e:
            db.session.rollback()
            logger.warning(f'Rejected M-Pesa callback {event.id} ({e.reason}): {e.message}')
            CallbackService.record_outcome(event, e.reason, error_message=e.message)
            return False

        except Exception as e:
            db.session.rollback()
            outcome = CallbackService._failure_outcome(event.checkout_request_id)
            logger.exception(f'Failed to process M-Pesa callback {event.id}: {str(e)}')
            CallbackService.record_outcome(
                event,
                outcome,
                error_message=getattr(e, 'message', None) or str(e),
                transaction_id=CallbackService._transaction_id(event.checkout_request_id)
            )
            return False

        CallbackService.record_outcome(
            event,
            CallbackOutcome.DUPLICATE.value if result.get('duplicate') else CallbackOutcome.PROCESSED.value,
            transaction_id=uuid.UUID(result['transaction']['id'])
        )
        return True

    @staticmethod
    def record_outcome(
            event: MpesaCallbackEvent,
            outcome: str,
            error_message: Optional[str] = None,
            transaction_id: Optional[uuid.UUID] = None
    ) -> MpesaCallbackEvent:
        """Mark an inbox row as handled"""
        event.outcome = outcome
        event.error_message = error_message
        if transaction_id:
            event.transaction_id = transaction_id
        event.processed_at = utcnow()
        db.session.commit()
        return event

    @staticmethod
    def list_events(outcome: Optional[str] = None, page: int = 1, per_page: int = 50):
        """
        Inbox rows, newest first

        Returns:
            Paginated callback events
        """
        query = MpesaCallbackEvent.query
        if outcome:
            query = query.filter_by(outcome=outcome)

        return query.order_by(MpesaCallbackEvent.created_at.desc()).paginate(
            page=page,
            per_page=per_page,
            error_out=False
        )

    @staticmethod
    def _transaction_id(checkout_request_id: Optional[str]) -> Optional[uuid.UUID]:
        if not checkout_request_id:
            return None
        transaction = DonationTransaction.query.filter_by(checkout_request_id=checkout_request_id).first()
        return transaction.id if transaction else None

    @staticmethod
    def _failure_outcome(checkout_request_id: Optional[str]) -> str:
        """A SUCCESS row without a supporter means the ledger step is what failed."""
        if checkout_request_id:
            transaction = DonationTransaction.query.filter_by(checkout_request_id=checkout_request_id).first()
            if (transaction and transaction.status == TransactionStatus.SUCCESS.value
                    and transaction.supporter_id is None):
                return CallbackOutcome.LEDGER_FAILED.value
        return CallbackOutcome.ERROR.value
