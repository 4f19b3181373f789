"""
Integration Tests for Socket.IO donation rooms
"""

import uuid

import pytest

from clinic_giving.extensions import socketio


@pytest.fixture
def socket_client(app, session):
    client = socketio.test_client(app)
    yield client
    if client.is_connected():
        client.disconnect()


def _received(client):
    return {message['name']: message['args'][0] for message in client.get_received()}


class TestSocketEvents:

    def test_subscribe_sends_current_status(self, socket_client, pending_transaction):
        socket_client.emit('subscribe_transaction', {'transaction_id': str(pending_transaction.id)})

        received = _received(socket_client)
        assert received['subscribed'] == {'room': f'transaction_{pending_transaction.id}'}
        assert received['transaction_status']['status'] == 'PENDING'
        assert received['transaction_status']['id'] == str(pending_transaction.id)

    @pytest.mark.parametrize('data', [{}, {'transaction_id': 'not-a-uuid'}, None])
    def test_subscribe_requires_uuid(self, socket_client, data):
        socket_client.emit('subscribe_transaction', data)

        received = _received(socket_client)
        assert received['subscription_error']['error'] == 'invalid-request'
        assert 'subscribed' not in received

    def test_subscribe_unknown_transaction(self, socket_client):
        socket_client.emit('subscribe_transaction', {'transaction_id': str(uuid.uuid4())})

        assert _received(socket_client)['subscription_error']['error'] == 'not-found'

    def test_callback_reaches_subscribers(self, client, socket_client, pending_transaction, stk_callback):
        socket_client.emit('subscribe_transaction', {'transaction_id': str(pending_transaction.id)})
        socket_client.get_received()

        client.post('/api/v1/donations/mpesa/callback', json=stk_callback(pending_transaction.checkout_request_id))

        updates = [
            message['args'][0]['event_type']
            for message in socket_client.get_received()
            if message['name'] == 'transaction_update'
        ]
        assert updates == ['donation.succeeded', 'supporter.recorded']

    def test_unsubscribe(self, socket_client, pending_transaction):
        socket_client.emit('unsubscribe_transaction', {'transaction_id': str(pending_transaction.id)})

        assert _received(socket_client)['unsubscribed'] == {'room': f'transaction_{pending_transaction.id}'}

    def test_supporter_trail_sends_overview(self, socket_client):
        socket_client.emit('subscribe_supporter_trail')

        received = _received(socket_client)
        assert received['subscribed'] == {'room': 'supporter_trail'}
        assert len(received['overview']['recent_new_supporters']) == 30
