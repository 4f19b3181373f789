"""
Unit Tests for Donation Service
"""

import uuid
from unittest.mock import patch

import pytest

from clinic_giving.errors import (
    ApiError,
    CallbackError,
    ConfigurationError,
    InvalidName,
    InvalidPhone,
    InvalidRequest,
)
from clinic_giving.models import AuditLog, DonationSupporter, DonationTransaction, TransactionStatus
from clinic_giving.services.donation_service import DonationService


class TestInitiate:
    """Test cases for DonationService.initiate"""

    def test_initiate_success(self, session, mpesa_provider):
        result = DonationService.initiate(phone='0712 345 678', amount=1499.5, first_name='amina')

        assert result['status'] == 'PENDING'
        assert result['checkout_request_id'].startswith('ws_CO_')

        transaction = DonationTransaction.query.one()
        assert str(transaction.id) == result['transaction_id']
        assert transaction.phone_raw == '0712 345 678'
        assert transaction.phone_msisdn == '254712345678'
        assert transaction.amount == 1500
        assert transaction.first_name == 'Amina'
        assert transaction.account_reference == 'AMINA'
        assert transaction.checkout_request_id == result['checkout_request_id']
        assert transaction.result_code == '0'

        mpesa_provider.stk_push.assert_called_once_with(
            amount=1500,
            phone='254712345678',
            account_reference='AMINA',
            transaction_desc='Mwein Emergency Care Donation'
        )

        events = {log.event_type for log in AuditLog.query.all()}
        assert events == {'donation.initiated', 'donation.accepted'}

    def test_explicit_reference_and_description(self, session, mpesa_provider):
        DonationService.initiate(
            phone='712345678',
            amount=100,
            first_name='Amina',
            account_reference='--',
            transaction_desc='Ambulance fund'
        )

        kwargs = mpesa_provider.stk_push.call_args.kwargs
        assert kwargs['account_reference'] == 'MWEINCARE'
        assert kwargs['transaction_desc'] == 'Ambulance fund'

    def test_rejected_push_leaves_one_failed_row(self, session, mpesa_provider):
        mpesa_provider.stk_push.side_effect = ApiError('Insufficient balance', code='1')

        with pytest.raises(ApiError, match='Insufficient balance'):
            DonationService.initiate(phone='0712345678', amount=1500, first_name='Amina')

        transaction = DonationTransaction.query.one()
        assert transaction.status == TransactionStatus.FAILED.value
        assert transaction.failure_reason == 'Insufficient balance'
        assert transaction.result_code == '1'
        assert transaction.completed_at is not None

    def test_broken_audit_write_fails_the_donation(self, session, mpesa_provider):
        with patch('clinic_giving.services.donation_service.AuditService.log_event',
                   side_effect=RuntimeError('audit table unavailable')):
            with pytest.raises(RuntimeError, match='audit table unavailable'):
                DonationService.initiate(phone='0712345678', amount=100, first_name='Amina')

        transaction = DonationTransaction.query.one()
        assert transaction.status == TransactionStatus.FAILED.value
        assert transaction.failure_reason == 'audit table unavailable'
        assert transaction.completed_at is not None
        mpesa_provider.stk_push.assert_not_called()

    def test_broken_socket_emit_fails_the_donation(self, session, mpesa_provider):
        with patch('clinic_giving.services.donation_service.emit_transaction_update',
                   side_effect=RuntimeError('socket server down')):
            with pytest.raises(RuntimeError):
                DonationService.initiate(phone='0712345678', amount=100, first_name='Amina')

        assert DonationTransaction.query.one().status == TransactionStatus.FAILED.value
        mpesa_provider.stk_push.assert_not_called()

    def test_invalid_phone_writes_nothing(self, session, mpesa_provider):
        with pytest.raises(InvalidPhone):
            DonationService.initiate(phone='12345', amount=1500, first_name='Amina')

        assert DonationTransaction.query.count() == 0
        mpesa_provider.stk_push.assert_not_called()

    @pytest.mark.parametrize('amount', [0, -10, 0.4, float('nan')])
    def test_bad_amount(self, session, mpesa_provider, amount):
        with pytest.raises(ApiError, match='greater than zero') as exc_info:
            DonationService.initiate(phone='0712345678', amount=amount, first_name='Amina')

        assert exc_info.value.code == 'invalid-amount'
        assert exc_info.value.status_code == 400

        assert DonationTransaction.query.count() == 0

    def test_name_without_letters(self, session, mpesa_provider):
        with pytest.raises(ApiError, match='First name is required') as exc_info:
            DonationService.initiate(phone='0712345678', amount=1500, first_name='1234')

        assert exc_info.value.code == 'invalid-name'

        assert DonationTransaction.query.count() == 0

    def test_missing_configuration_writes_nothing(self, app, session, monkeypatch):
        monkeypatch.setitem(app.config, 'MPESA_PASSKEY', None)

        with pytest.raises(ConfigurationError):
            DonationService.initiate(phone='0712345678', amount=1500, first_name='Amina')

        assert DonationTransaction.query.count() == 0


class TestProcessCallback:
    """Test cases for DonationService.process_callback"""

    def test_success_records_supporter(self, session, pending_transaction, stk_callback):
        result = DonationService.process_callback(stk_callback(pending_transaction.checkout_request_id))

        assert result['duplicate'] is False
        assert result['transaction']['status'] == 'SUCCESS'
        assert result['transaction']['mpesa_receipt_number'] == 'NLJ7RT61SV'
        assert result['supporter']['first_name'] == 'Amina'
        assert result['supporter']['total_amount'] == 1500
        assert result['supporter']['public_acknowledgement'] is False
        assert result['totals']['total_gifts'] == 1
        assert len(result['recent_new_supporters']) == 30

        transaction = session.get(DonationTransaction, pending_transaction.id)
        assert transaction.completed_at is not None
        assert transaction.result_code == '0'
        assert transaction.callback_metadata['CheckoutRequestID'] == pending_transaction.checkout_request_id
        assert str(transaction.supporter_id) == result['supporter']['id']

    def test_duplicate_callback_counts_once(self, session, pending_transaction, stk_callback):
        payload = stk_callback(pending_transaction.checkout_request_id)

        DonationService.process_callback(payload)
        again = DonationService.process_callback(payload)

        assert again['duplicate'] is True
        assert 'supporter' not in again

        supporter = DonationSupporter.query.one()
        assert supporter.total_amount == 1500
        assert supporter.donation_count == 1

    def test_failed_payment_skips_ledger(self, session, pending_transaction, stk_callback):
        result = DonationService.process_callback(
            stk_callback(pending_transaction.checkout_request_id, result_code=1032)
        )

        assert result['transaction']['status'] == 'FAILED'
        assert result['transaction']['failure_reason'] == 'Request cancelled by user'
        assert 'supporter' not in result
        assert DonationSupporter.query.count() == 0

    def test_success_after_failure_is_ignored(self, session, pending_transaction, stk_callback):
        DonationService.process_callback(stk_callback(pending_transaction.checkout_request_id, result_code=1))
        result = DonationService.process_callback(stk_callback(pending_transaction.checkout_request_id))

        assert result['duplicate'] is True
        assert result['transaction']['status'] == 'FAILED'
        assert DonationSupporter.query.count() == 0

    def test_paid_amount_from_metadata(self, session, pending_transaction, stk_callback):
        result = DonationService.process_callback(
            stk_callback(pending_transaction.checkout_request_id, amount=2000)
        )
        assert result['supporter']['total_amount'] == 2000

    def test_non_numeric_amount_falls_back_to_requested(self, session, pending_transaction, stk_callback):
        result = DonationService.process_callback(
            stk_callback(pending_transaction.checkout_request_id, amount='2000', receipt=12345)
        )

        assert result['supporter']['total_amount'] == 1500
        assert result['transaction']['mpesa_receipt_number'] is None

    def test_unmatched_checkout_request(self, session, stk_callback):
        with pytest.raises(CallbackError) as exc_info:
            DonationService.process_callback(stk_callback('ws_CO_unknown'))

        assert exc_info.value.reason == 'unmatched'

    @pytest.mark.parametrize('payload', [{}, {'Body': {'stkCallback': {'ResultCode': 0}}}])
    def test_malformed_callback(self, session, payload):
        with pytest.raises(CallbackError) as exc_info:
            DonationService.process_callback(payload)

        assert exc_info.value.reason == 'malformed'

    def test_ledger_failure_keeps_success(self, session, pending_transaction, stk_callback):
        with patch('clinic_giving.services.donation_service.SupporterService.record_contribution',
                   side_effect=InvalidName()):
            with pytest.raises(InvalidName):
                DonationService.process_callback(stk_callback(pending_transaction.checkout_request_id))

        transaction = session.get(DonationTransaction, pending_transaction.id)
        assert transaction.status == TransactionStatus.SUCCESS.value
        assert transaction.supporter_id is None
        assert transaction.failure_reason.startswith('Supporter ledger update failed')

        events = {log.event_type for log in AuditLog.query.all()}
        assert 'supporter.ledger_failed' in events

    def test_broken_audit_write_after_success_is_repairable(self, session, pending_transaction, stk_callback):
        with patch('clinic_giving.services.donation_service.AuditService.log_event',
                   side_effect=RuntimeError('audit table unavailable')):
            with pytest.raises(RuntimeError):
                DonationService.process_callback(stk_callback(pending_transaction.checkout_request_id))

        transaction = session.get(DonationTransaction, pending_transaction.id)
        assert transaction.status == TransactionStatus.SUCCESS.value
        assert transaction.supporter_id is None
        assert transaction.failure_reason == 'Supporter ledger update failed: audit table unavailable'

        DonationService.repair_ledger(pending_transaction.id)

        transaction = session.get(DonationTransaction, pending_transaction.id)
        assert transaction.supporter_id is not None
        assert transaction.failure_reason is None
        assert DonationSupporter.query.one().total_amount == 1500


class TestStatusAndRepair:

    def test_unknown_transaction(self, session):
        assert DonationService.get_transaction_status(uuid.uuid4()) is None
        assert DonationService.get_transaction_status('not-a-uuid') is None

    def test_pending_status(self, session, pending_transaction):
        status = DonationService.get_transaction_status(str(pending_transaction.id))

        assert status['status'] == 'PENDING'
        assert status['amount'] == 1500
        assert status['first_name'] == 'Amina'
        assert status['supporter_id'] is None
        assert 'totals' not in status

    def test_success_status_includes_overview(self, session, pending_transaction, stk_callback):
        DonationService.process_callback(stk_callback(pending_transaction.checkout_request_id))

        status = DonationService.get_transaction_status(pending_transaction.id)

        assert status['status'] == 'SUCCESS'
        assert status['supporter']['first_name'] == 'Amina'
        assert status['totals']['total_amount'] == 1500
        assert len(status['recent_new_supporters']) == 30

    def test_repair_links_supporter_once(self, session, pending_transaction, stk_callback):
        with patch('clinic_giving.services.donation_service.SupporterService.record_contribution',
                   side_effect=RuntimeError('database unavailable')):
            with pytest.raises(RuntimeError):
                DonationService.process_callback(
                    stk_callback(pending_transaction.checkout_request_id, amount=1800)
                )

        assert [t.id for t in DonationService.find_unrecorded_contributions()] == [pending_transaction.id]

        result = DonationService.repair_ledger(pending_transaction.id)

        assert result['supporter']['total_amount'] == 1800
        assert result['transaction']['failure_reason'] is None
        assert DonationService.find_unrecorded_contributions() == []

        with pytest.raises(InvalidRequest):
            DonationService.repair_ledger(pending_transaction.id)

        assert DonationSupporter.query.one().donation_count == 1

    def test_repair_rejects_pending(self, session, pending_transaction):
        with pytest.raises(InvalidRequest):
            DonationService.repair_ledger(pending_transaction.id)
