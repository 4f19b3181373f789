"""
Unit Tests for the ledger repair sweep
"""

import uuid
from unittest.mock import patch

from clinic_giving.extensions import db
from clinic_giving.models import DonationSupporter, DonationTransaction, TransactionStatus
from clinic_giving.services.supporter_service import SupporterService
from clinic_giving.tasks.ledger_repair_task import repair_unrecorded_contributions
from clinic_giving.utils.validators import utcnow


def _unrecorded(session, stk_callback, first_name='Amina', amount=1500):
    checkout = f'ws_CO_{uuid.uuid4().hex[:18]}'
    transaction = DonationTransaction(
        phone_raw='0712345678',
        phone_msisdn='254712345678',
        amount=amount,
        first_name=first_name,
        account_reference=first_name.upper(),
        transaction_desc='Mwein Emergency Care Donation',
        status=TransactionStatus.SUCCESS.value,
        checkout_request_id=checkout,
        callback_metadata=stk_callback(checkout, amount=amount)['Body']['stkCallback'],
        failure_reason='Supporter ledger update failed: database unavailable',
        completed_at=utcnow()
    )
    session.add(transaction)
    session.commit()
    return transaction


class TestLedgerRepairTask:

    def test_links_unrecorded_donations(self, session, stk_callback):
        first = _unrecorded(session, stk_callback, 'Amina', 1500)
        second = _unrecorded(session, stk_callback, 'Baraka', 700)

        assert repair_unrecorded_contributions.run(limit=10) == 2

        for transaction in (first, second):
            repaired = db.session.get(DonationTransaction, transaction.id)
            assert repaired.supporter_id is not None
            assert repaired.failure_reason is None
        assert DonationSupporter.query.count() == 2

    def test_nothing_to_repair(self, session, pending_transaction):
        assert repair_unrecorded_contributions.run() == 0
        assert DonationSupporter.query.count() == 0

    def test_one_failure_does_not_stop_the_sweep(self, session, stk_callback):
        _unrecorded(session, stk_callback, 'Amina')
        _unrecorded(session, stk_callback, 'Baraka')

        original = SupporterService.record_contribution
        calls = []

        def flaky(first_name, *args, **kwargs):
            calls.append(first_name)
            if len(calls) == 1:
                raise RuntimeError('database unavailable')
            return original(first_name, *args, **kwargs)

        with patch('clinic_giving.services.donation_service.SupporterService.record_contribution',
                   side_effect=flaky):
            assert repair_unrecorded_contributions.run() == 1

        assert len(calls) == 2
        assert DonationSupporter.query.count() == 1
