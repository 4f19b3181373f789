"""
Donation API Endpoints
M-Pesa STK push initiation, Daraja callback, status polling and overview
"""

from flask import Blueprint, request, jsonify
from marshmallow import ValidationError
from werkzeug.exceptions import BadRequest

from clinic_giving.schemas import InitiateDonationSchema
from clinic_giving.services import CallbackService, DonationService, OverviewService
from clinic_giving.utils.decorators import rate_limit, require_callback_secret
from clinic_giving.utils.logger import get_logger

donations_bp = Blueprint('donations', __name__)
logger = get_logger(__name__)

initiate_schema = InitiateDonationSchema()


@donations_bp.route('/mpesa/initiate', methods=['POST'])
@rate_limit(key_prefix='donation_initiate')
def initiate_donation():
    """
    Start an M-Pesa STK push donation

    Body:
        {
            "phone": "0712 345 678",
            "amount": 1500,
            "first_name": "Amina",
            "account_reference": "AMINA",
            "transaction_desc": "Emergency care"
        }
    """
    try:
        data = initiate_schema.load(request.get_json(silent=True) or {})
    except ValidationError as e:
        return jsonify({
            'error': 'invalid-payload',
            'details': e.messages
        }), 400

    transaction = DonationService.initiate(
        phone=data['phone'],
        amount=data['amount'],
        first_name=data['first_name'],
        account_reference=data.get('account_reference'),
        transaction_desc=data.get('transaction_desc')
    )

    return jsonify({'transaction': transaction}), 200


@donations_bp.route('/mpesa/callback', methods=['POST'])
@require_callback_secret
def mpesa_callback():
    """
    Receive the Daraja STK callback

    Daraja retries anything that is not a 200, so every parsed callback is
    acknowledged with 200 and {"ok": true|false}; the outcome is kept in the
    callback inbox.
    """
    try:
        payload = request.get_json(force=True)
    except BadRequest as e:
        logger.error(f'Failed to parse M-Pesa callback payload: {str(e)}')
        return jsonify({'error': 'invalid-payload'}), 400

    ok = CallbackService.handle_callback(payload)
    return jsonify({'ok': ok}), 200


@donations_bp.route('/mpesa/status/<uuid:transaction_id>', methods=['GET'])
def transaction_status(transaction_id):
    """
    Poll a donation

    Path Parameters:
        - transaction_id: Donation transaction UUID
    """
    status = DonationService.get_transaction_status(transaction_id)

    if status is None:
        return jsonify({
            'error': 'not-found',
            'message': 'Donation transaction not found'
        }), 404

    return jsonify({'transaction': status}), 200


@donations_bp.route('/overview', methods=['GET'])
def overview():
    """Giving totals and the 30-day new-supporter series"""
    return jsonify(OverviewService.compute_overview()), 200
