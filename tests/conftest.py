"""
Pytest Configuration and Fixtures
"""
import os
import uuid
from unittest.mock import Mock, patch

import fakeredis
import pytest
from flask_jwt_extended import create_access_token

from clinic_giving import create_app
from clinic_giving.extensions import db as _db, redis_client as _redis_client
from clinic_giving.models import DonationTransaction, TransactionStatus


@pytest.fixture(scope='session')
def app():
    """Create application for testing"""
    os.environ['FLASK_ENV'] = 'testing'

    app = create_app('testing')

    # Establish application context
    ctx = app.app_context()
    ctx.push()

    yield app

    ctx.pop()


@pytest.fixture(scope='function')
def session(app):
    """Fresh schema for every test"""
    _db.create_all()

    yield _db.session

    _db.session.remove()
    _db.drop_all()


@pytest.fixture(scope='function')
def redis_client():
    """
    Fake Redis for tests + patch the app redis client.
    """
    fake_redis = fakeredis.FakeStrictRedis(decode_responses=True)

    with patch.object(_redis_client, 'client', fake_redis):
        yield fake_redis

    fake_redis.flushall()


@pytest.fixture(autouse=True)
def clear_token_cache(app):
    app.extensions['mpesa_token_cache'].clear()
    yield
    app.extensions['mpesa_token_cache'].clear()


@pytest.fixture(scope='function')
def client(app, session, redis_client):
    """Create a test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def admin_headers(app):
    token = create_access_token(identity='operator', additional_claims={'is_admin': True})
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def mpesa_provider():
    """Daraja client stand-in that accepts every STK push"""
    def _accepted(**kwargs):
        return {
            'MerchantRequestID': f'29115-{uuid.uuid4().hex[:8]}',
            'CheckoutRequestID': f'ws_CO_{uuid.uuid4().hex[:18]}',
            'ResponseCode': '0',
            'ResponseDescription': 'Success. Request accepted for processing',
            'CustomerMessage': 'Success. Request accepted for processing'
        }

    provider = Mock()
    provider.stk_push.side_effect = _accepted

    with patch('clinic_giving.services.donation_service.get_mpesa_provider', return_value=provider):
        yield provider


@pytest.fixture(scope='function')
def pending_transaction(session):
    """A donation waiting for its Daraja callback"""
    transaction = DonationTransaction(
        phone_raw='0712 345 678',
        phone_msisdn='254712345678',
        amount=1500,
        first_name='Amina',
        account_reference='AMINA',
        transaction_desc='Mwein Emergency Care Donation',
        status=TransactionStatus.PENDING.value,
        merchant_request_id='29115-34620561-1',
        checkout_request_id=f'ws_CO_{uuid.uuid4().hex[:18]}'
    )

    session.add(transaction)
    session.commit()

    return transaction


def build_stk_callback(checkout_request_id, result_code=0, amount=1500, receipt='NLJ7RT61SV',
                       result_desc=None):
    """Daraja STK callback envelope"""
    stk = {
        'MerchantRequestID': '29115-34620561-1',
        'CheckoutRequestID': checkout_request_id,
        'ResultCode': result_code,
        'ResultDesc': result_desc or (
            'The service request is processed successfully.' if result_code == 0
            else 'Request cancelled by user'
        ),
    }
    if result_code == 0:
        stk['CallbackMetadata'] = {
            'Item': [
                {'Name': 'Amount', 'Value': amount},
                {'Name': 'MpesaReceiptNumber', 'Value': receipt},
                {'Name': 'TransactionDate', 'Value': 20191219102115},
                {'Name': 'PhoneNumber', 'Value': 254712345678}
            ]
        }
    return {'Body': {'stkCallback': stk}}


@pytest.fixture
def stk_callback():
    return build_stk_callback
