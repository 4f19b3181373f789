"""
Admin API Endpoints
Operator views over donations and the callback inbox
"""

from flask import Blueprint, request, jsonify

from clinic_giving.providers import get_mpesa_provider
from clinic_giving.schemas import CallbackEventSchema, DonationTransactionSchema
from clinic_giving.services import AuditService, CallbackService, DonationService
from clinic_giving.models import DonationTransaction
from clinic_giving.extensions import db
from clinic_giving.utils.decorators import admin_required

admin_bp = Blueprint('admin', __name__)

transactions_schema = DonationTransactionSchema(many=True)
callback_events_schema = CallbackEventSchema(many=True)


def _page_args():
    page = request.args.get('page', 1, type=int)
    per_page = min(request.args.get('per_page', 20, type=int), 100)
    return page, per_page


@admin_bp.route('/donations', methods=['GET'])
@admin_required
def list_donations():
    """
    Recent donation transactions

    Query Parameters:
        - status: PENDING, SUCCESS or FAILED
        - page, per_page
    """
    page, per_page = _page_args()
    pagination = DonationService.list_transactions(
        status=request.args.get('status'),
        page=page,
        per_page=per_page
    )

    return jsonify({
        'data': transactions_schema.dump(pagination.items),
        'pagination': {
            'page': pagination.page,
            'per_page': pagination.per_page,
            'total': pagination.total,
            'pages': pagination.pages
        }
    }), 200


@admin_bp.route('/donations/callbacks', methods=['GET'])
@admin_required
def list_callbacks():
    """
    Callback inbox

    Query Parameters:
        - outcome: received, processed, duplicate, malformed, unmatched, ledger_failed, error
        - page, per_page
    """
    page, per_page = _page_args()
    pagination = CallbackService.list_events(
        outcome=request.args.get('outcome'),
        page=page,
        per_page=per_page
    )

    return jsonify({
        'data': callback_events_schema.dump(pagination.items),
        'pagination': {
            'page': pagination.page,
            'per_page': pagination.per_page,
            'total': pagination.total,
            'pages': pagination.pages
        }
    }), 200


@admin_bp.route('/donations/<uuid:transaction_id>/audit', methods=['GET'])
@admin_required
def donation_audit_trail(transaction_id):
    """Audit trail of one donation, oldest first"""
    logs = AuditService.get_transaction_audit_trail(transaction_id)
    return jsonify({'data': [log.to_dict() for log in logs]}), 200


@admin_bp.route('/donations/<uuid:transaction_id>/stk-status', methods=['GET'])
@admin_required
def donation_stk_status(transaction_id):
    """
    Ask Daraja about a donation's STK push. Read-only: the transaction is
    not changed.
    """
    transaction = db.session.get(DonationTransaction, transaction_id)
    if transaction is None or not transaction.checkout_request_id:
        return jsonify({
            'error': 'not-found',
            'message': 'No STK push recorded for this donation'
        }), 404

    result = get_mpesa_provider().query_stk_status(transaction.checkout_request_id)
    return jsonify({'transaction_id': str(transaction.id), 'stk_status': result}), 200


@admin_bp.route('/donations/<uuid:transaction_id>/repair-ledger', methods=['POST'])
@admin_required
def repair_ledger(transaction_id):
    """Re-record a successful donation whose supporter ledger step failed"""
    result = DonationService.repair_ledger(transaction_id)
    return jsonify(result), 200
