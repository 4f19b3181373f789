from marshmallow import Schema, fields, validate, validates, ValidationError


class InitiateDonationSchema(Schema):
    """M-Pesa donation initiation schema"""
    phone = fields.Str(required=True, validate=validate.Length(min=7, error='Phone number is required'))
    amount = fields.Float(required=True, allow_nan=False)
    first_name = fields.Str(required=True, validate=validate.Length(min=1, max=80))
    account_reference = fields.Str(required=False, allow_none=True)
    transaction_desc = fields.Str(required=False, allow_none=True, validate=validate.Length(max=255))

    @validates('amount')
    def validate_amount(self, value, **kwargs):
        if value <= 0:
            raise ValidationError('Amount must be greater than zero')


class DonationTransactionSchema(Schema):
    """Donation transaction response schema (admin listing)"""
    id = fields.UUID(dump_only=True)
    status = fields.Str(dump_only=True)
    amount = fields.Int(dump_only=True)
    first_name = fields.Str(dump_only=True)
    phone_msisdn = fields.Str(dump_only=True)
    account_reference = fields.Str(dump_only=True)
    merchant_request_id = fields.Str(dump_only=True)
    checkout_request_id = fields.Str(dump_only=True)
    result_code = fields.Str(dump_only=True)
    result_description = fields.Str(dump_only=True)
    mpesa_receipt_number = fields.Str(dump_only=True)
    failure_reason = fields.Str(dump_only=True)
    supporter_id = fields.UUID(dump_only=True)
    created_at = fields.DateTime(dump_only=True)
    completed_at = fields.DateTime(dump_only=True)


class CallbackEventSchema(Schema):
    """Callback inbox response schema"""
    id = fields.UUID(dump_only=True)
    transaction_id = fields.UUID(dump_only=True)
    checkout_request_id = fields.Str(dump_only=True)
    outcome = fields.Str(dump_only=True)
    error_message = fields.Str(dump_only=True)
    payload = fields.Raw(dump_only=True)
    created_at = fields.DateTime(dump_only=True)
    processed_at = fields.DateTime(dump_only=True)
