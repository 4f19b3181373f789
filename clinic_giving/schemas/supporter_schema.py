from marshmallow import Schema, fields, validate, validates_schema, ValidationError

from clinic_giving.utils.validators import CHANNELS, SHARE_OPTIONS


class SupporterContributionSchema(Schema):
    """Manual contribution schema (PayPal, cash and other channels)"""
    first_name = fields.Str(required=True, validate=validate.Length(min=1, max=80))
    amount = fields.Float(required=True, allow_nan=False, validate=validate.Range(min=0, min_inclusive=False))
    channel = fields.Str(required=True, validate=validate.OneOf(CHANNELS))
    share_consent = fields.Str(required=False, validate=validate.OneOf(SHARE_OPTIONS))


class AcknowledgementSchema(Schema):
    """Public acknowledgement change schema"""
    supporter_id = fields.UUID(required=False)
    first_name = fields.Str(required=False, validate=validate.Length(min=1, max=80))
    share_consent = fields.Str(required=True, validate=validate.OneOf(('granted', 'declined')))

    @validates_schema
    def validate_target(self, data, **kwargs):
        if not data.get('supporter_id') and not data.get('first_name'):
            raise ValidationError('supporter_id or first_name is required')
