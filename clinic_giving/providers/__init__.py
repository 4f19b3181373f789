from flask import current_app

from clinic_giving.providers.mpesa_provider import (
    MPesaProvider,
    StkCallback,
    parse_stk_callback,
    resolve_callback_url,
    normalize_environment,
)


def get_mpesa_provider() -> MPesaProvider:
    """
    Build the Daraja client from Flask app config.

    Raises:
        ConfigurationError: when credentials are missing or the environment is unknown
    """
    token_cache = current_app.extensions.get('mpesa_token_cache')
    return MPesaProvider(_get_provider_config(), token_cache=token_cache)


def _get_provider_config() -> dict:
    """Get M-Pesa configuration from Flask app config."""
    return {
        # Required
        'consumer_key':    current_app.config.get('MPESA_CONSUMER_KEY'),
        'consumer_secret': current_app.config.get('MPESA_CONSUMER_SECRET'),
        'shortcode':       current_app.config.get('MPESA_SHORT_CODE'),
        'passkey':         current_app.config.get('MPESA_PASSKEY'),
        # Environment
        'environment':     current_app.config.get('MPESA_ENVIRONMENT', 'sandbox'),
        # Callback URL
        'callback_url':    current_app.config.get('MPESA_CALLBACK_URL', ''),
        'site_url':        current_app.config.get('SITE_URL'),
        # Payment behaviour
        'transaction_type': current_app.config.get('MPESA_TRANSACTION_TYPE', 'CustomerBuyGoodsOnline'),
    }


__all__ = ['get_mpesa_provider', 'MPesaProvider', 'StkCallback', 'parse_stk_callback',
           'resolve_callback_url', 'normalize_environment']
