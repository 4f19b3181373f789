"""
Supporter API Endpoints
Public supporter trail, manual contributions and acknowledgement consent
"""

from flask import Blueprint, request, jsonify
from marshmallow import ValidationError

from clinic_giving.schemas import AcknowledgementSchema, SupporterContributionSchema
from clinic_giving.services import SupporterService

supporters_bp = Blueprint('supporters', __name__)

contribution_schema = SupporterContributionSchema()
acknowledgement_schema = AcknowledgementSchema()


def _invalid_payload(error: ValidationError):
    return jsonify({
        'error': 'invalid-payload',
        'details': error.messages
    }), 400


@supporters_bp.route('', methods=['GET'])
def list_supporters():
    """All supporters with totals and the recent series"""
    return jsonify(SupporterService.get_donation_snapshots()), 200


@supporters_bp.route('', methods=['POST'])
def record_contribution():
    """
    Record a contribution made outside M-Pesa

    Body:
        {
            "first_name": "Amina",
            "amount": 1200,
            "channel": "PayPal",
            "share_consent": "granted"
        }
    """
    try:
        data = contribution_schema.load(request.get_json(silent=True) or {})
    except ValidationError as e:
        return _invalid_payload(e)

    result = SupporterService.record_contribution(
        first_name=data['first_name'],
        amount=data['amount'],
        channel=data['channel'],
        share_consent=data.get('share_consent')
    )
    return jsonify(result), 200


@supporters_bp.route('', methods=['PATCH'])
def set_acknowledgement():
    """
    Grant or withdraw public acknowledgement

    Body:
        {"supporter_id": "<uuid>", "share_consent": "declined"}
        or {"first_name": "Amina", "share_consent": "granted"}
    """
    try:
        data = acknowledgement_schema.load(request.get_json(silent=True) or {})
    except ValidationError as e:
        return _invalid_payload(e)

    result = SupporterService.set_acknowledgement(
        share_consent=data['share_consent'],
        supporter_id=data.get('supporter_id'),
        first_name=data.get('first_name')
    )
    return jsonify(result), 200
