"""
Socket.IO events
Donation pages follow their transaction until the callback lands; the giving
page follows the supporter trail.
"""

import uuid

from flask import request
from flask_socketio import emit, join_room, leave_room

from clinic_giving.extensions import socketio
from clinic_giving.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTER_TRAIL_ROOM = 'supporter_trail'


def transaction_room(transaction_id) -> str:
    return f'transaction_{transaction_id}'


def _requested_transaction(data):
    try:
        return uuid.UUID(str((data or {}).get('transaction_id')))
    except ValueError:
        emit('subscription_error', {'error': 'invalid-request', 'message': 'transaction_id must be a UUID'})
        return None


@socketio.on('connect')
def on_connect():
    logger.debug(f'Socket {request.sid} connected')


@socketio.on('disconnect')
def on_disconnect(reason=None):
    logger.debug(f'Socket {request.sid} disconnected')


@socketio.on('subscribe_transaction')
def on_subscribe_transaction(data):
    """
    Join a donation's room and get its current state straight away, so a
    page that subscribes after the callback still sees the outcome
    """
    from clinic_giving.services.donation_service import DonationService

    transaction_id = _requested_transaction(data)
    if transaction_id is None:
        return

    status = DonationService.get_transaction_status(transaction_id)
    if status is None:
        emit('subscription_error', {'error': 'not-found', 'message': 'Donation transaction not found'})
        return

    join_room(transaction_room(transaction_id))
    emit('subscribed', {'room': transaction_room(transaction_id)})
    emit('transaction_status', status)


@socketio.on('unsubscribe_transaction')
def on_unsubscribe_transaction(data):
    transaction_id = _requested_transaction(data)
    if transaction_id is not None:
        leave_room(transaction_room(transaction_id))
        emit('unsubscribed', {'room': transaction_room(transaction_id)})


@socketio.on('subscribe_supporter_trail')
def on_subscribe_supporter_trail(data=None):
    """Join the giving page broadcast; the current overview is sent on join"""
    from clinic_giving.services.overview_service import OverviewService

    join_room(SUPPORTER_TRAIL_ROOM)
    emit('subscribed', {'room': SUPPORTER_TRAIL_ROOM})
    emit('overview', OverviewService.compute_overview())


def emit_transaction_update(transaction, event_type: str):
    """
    Push a donation state change to its room

    Args:
        transaction: DonationTransaction object
        event_type: Audit event name (e.g. 'donation.succeeded')
    """
    socketio.emit('transaction_update', {
        'event_type': event_type,
        'transaction': transaction.to_dict()
    }, room=transaction_room(transaction.id))


def emit_supporter_update(snapshot: dict):
    """
    Broadcast a ledger change to the supporter trail

    Args:
        snapshot: {supporter, totals, recent_new_supporters}
    """
    socketio.emit('supporter_update', snapshot, room=SUPPORTER_TRAIL_ROOM)
