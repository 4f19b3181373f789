"""
M-Pesa Payment Provider
Based on the Safaricom Daraja API.

Supported flows
---------------
STK Push (Lipa na M-Pesa Online)
    POST /mpesa/stkpush/v1/processrequest
    POST /mpesa/stkpushquery/v1/query         (status poll, read-only)

Authentication
    GET  /oauth/v1/generate?grant_type=client_credentials  (Basic auth)
    Tokens are kept in an injectable cache (see utils.caching) and refreshed
    on expiry.

Callback
    Safaricom POSTs the STK result to CallBackURL as
    {"Body": {"stkCallback": {...}}}. parse_stk_callback() turns it into an
    StkCallback.

Required config keys
--------------------
    consumer_key        – From Safaricom Developer Portal app
    consumer_secret     – From Safaricom Developer Portal app
    shortcode           – Business shortcode (PayBill or Buy-Goods)
    passkey             – Lipa na M-Pesa Online passkey
    environment         – "sandbox" (default) | "production"

Optional config keys
--------------------
    callback_url        – Absolute URL, or a path joined to site_url
    site_url            – Public origin of this service
    transaction_type    – "CustomerBuyGoodsOnline" (default) | "CustomerPayBillOnline"
"""

import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlsplit

import requests

from clinic_giving.errors import ApiError, ConfigurationError
from clinic_giving.utils.caching import AccessToken, InMemoryTokenCache

logger = logging.getLogger(__name__)

# Daraja base URLs
_BASE_URLS = {
    "sandbox":    "https://sandbox.safaricom.co.ke",
    "production": "https://api.safaricom.co.ke",
}

DEFAULT_SITE_URL = "https://mweinmed.com"
DEFAULT_CALLBACK_PATH = "api/v1/donations/mpesa/callback"
DEFAULT_EXPIRES_IN = 3599


def normalize_environment(value: Optional[str]) -> str:
    """Map the configured selector onto a Daraja environment; blank means sandbox."""
    environment = (value or "sandbox").strip().lower()
    if environment not in _BASE_URLS:
        raise ConfigurationError(f"Unsupported M-Pesa environment: {value}")
    return environment


def normalize_site_url(value: Optional[str]) -> str:
    if not value:
        return DEFAULT_SITE_URL
    parts = urlsplit(value if value.startswith("http") else f"https://{value}")
    if not parts.netloc:
        return DEFAULT_SITE_URL
    return f"{parts.scheme}://{parts.netloc}"


def resolve_callback_url(callback_url: Optional[str], site_url: Optional[str] = None) -> str:
    """
    An absolute callback URL wins; anything else is treated as a path on the
    site origin (default path api/v1/donations/mpesa/callback).
    """
    explicit = (callback_url or "").strip()
    if explicit.startswith("http"):
        return explicit
    path = explicit.lstrip("/") or DEFAULT_CALLBACK_PATH
    return f"{normalize_site_url(site_url)}/{path}"


# Callback parsing

@dataclass
class StkCallback:
    checkout_request_id: str
    merchant_request_id: Optional[str] = None
    result_code: Optional[int] = None
    result_desc: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.result_code == 0


def _coerce_result_code(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def parse_stk_callback(payload: Any) -> Tuple[Optional[StkCallback], Optional[str]]:
    """
    Parse a Daraja STK callback envelope.

    Returns:
        Tuple of (callback, error_message); exactly one is None
    """
    body = payload.get("Body") if isinstance(payload, dict) else None
    stk = body.get("stkCallback") if isinstance(body, dict) else None
    if not isinstance(stk, dict):
        return None, "Missing stkCallback payload."

    checkout_id = stk.get("CheckoutRequestID")
    if not checkout_id:
        return None, "CheckoutRequestID is required."

    # Extract CallbackMetadata items into a flat dict
    meta: Dict[str, Any] = {}
    container = stk.get("CallbackMetadata")
    items = container.get("Item") if isinstance(container, dict) else None
    for item in items or []:
        if isinstance(item, dict) and item.get("Name"):
            meta[item["Name"]] = item.get("Value")

    return StkCallback(
        checkout_request_id=str(checkout_id),
        merchant_request_id=stk.get("MerchantRequestID"),
        result_code=_coerce_result_code(stk.get("ResultCode")),
        result_desc=stk.get("ResultDesc"),
        metadata=meta,
        raw=stk,
    ), None


# Provider

class MPesaProvider:
    """M-Pesa (Daraja API) client for STK Push donations."""

    # Daraja endpoint paths
    _EP_AUTH      = "/oauth/v1/generate"
    _EP_STK_PUSH  = "/mpesa/stkpush/v1/processrequest"
    _EP_STK_QUERY = "/mpesa/stkpushquery/v1/query"

    def __init__(self, config: Dict[str, Any], token_cache=None):
        self.consumer_key    = config.get("consumer_key") or ""
        self.consumer_secret = config.get("consumer_secret") or ""
        self.shortcode       = str(config.get("shortcode") or "")
        self.passkey         = config.get("passkey") or ""

        if not all((self.consumer_key, self.consumer_secret, self.passkey, self.shortcode)):
            raise ConfigurationError(
                "Missing M-Pesa Daraja credentials. Set MPESA_CONSUMER_KEY, MPESA_CONSUMER_SECRET, "
                "MPESA_PASSKEY, and MPESA_SHORT_CODE."
            )

        self.environment      = normalize_environment(config.get("environment"))
        self.base_url         = _BASE_URLS[self.environment]
        self.callback_url     = resolve_callback_url(config.get("callback_url"), config.get("site_url"))
        self.transaction_type = config.get("transaction_type") or "CustomerBuyGoodsOnline"

        self.token_cache = token_cache if token_cache is not None else InMemoryTokenCache()

        self._session = requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})

    # Public API

    def stk_push(
        self,
        amount: int,
        phone: str,
        account_reference: str,
        transaction_desc: str,
    ) -> Dict[str, Any]:
        """
        Send a Lipa na M-Pesa Online (STK Push) request.

        Returns the Daraja response body when the request was accepted
        (ResponseCode "0").

        Raises:
            ApiError: on a network failure or any rejection; ``code`` carries
                the Daraja response code when one was returned
        """
        timestamp, password = self._generate_password()

        payload = {
            "BusinessShortCode": self.shortcode,
            "Password":          password,
            "Timestamp":         timestamp,
            "TransactionType":   self.transaction_type,
            "Amount":            int(amount),
            "PartyA":            phone,
            "PartyB":            self.shortcode,
            "PhoneNumber":       phone,
            "CallBackURL":       self.callback_url,
            "AccountReference":  account_reference,
            "TransactionDesc":   transaction_desc,
        }

        resp, data = self._post(self._EP_STK_PUSH, payload, context="stk_push")

        response_code = data.get("ResponseCode")
        if not resp.ok or str(response_code) != "0":
            description = (
                data.get("ResponseDescription")
                or data.get("errorMessage")
                or "M-Pesa rejected the STK push request."
            )
            code = response_code if response_code is not None else data.get("errorCode")
            logger.warning("MPesa [stk_push] rejected HTTP %s code=%s: %s", resp.status_code, code, description)
            raise ApiError(description, code=str(code) if code is not None else None)

        return data

    def query_stk_status(self, checkout_request_id: str) -> Dict[str, Any]:
        """
        Ask Daraja for the state of an STK Push. Read-only: callers decide
        what, if anything, to do with the answer.
        """
        timestamp, password = self._generate_password()
        payload = {
            "BusinessShortCode": self.shortcode,
            "Password":          password,
            "Timestamp":         timestamp,
            "CheckoutRequestID": checkout_request_id,
        }

        resp, data = self._post(self._EP_STK_QUERY, payload, context="stk_query")
        if not resp.ok:
            raise ApiError(
                data.get("errorMessage") or f"STK query failed with HTTP {resp.status_code}",
                code=data.get("errorCode"),
            )

        return {
            "checkout_request_id":  data.get("CheckoutRequestID", checkout_request_id),
            "merchant_request_id":  data.get("MerchantRequestID"),
            "response_code":        data.get("ResponseCode"),
            "response_description": data.get("ResponseDescription"),
            "result_code":          data.get("ResultCode"),
            "result_desc":          data.get("ResultDesc"),
            "raw_response":         data,
        }

    def get_access_token(self) -> str:
        """Return a valid OAuth access token, refreshing if expired."""
        cached = self.token_cache.get()
        if cached is not None:
            return cached.value

        url = f"{self.base_url}{self._EP_AUTH}?grant_type=client_credentials"
        try:
            resp = requests.get(
                url,
                auth=(self.consumer_key, self.consumer_secret),
                timeout=15,
            )
        except requests.RequestException as exc:
            raise ApiError(f"Unable to obtain M-Pesa access token: {exc}") from exc

        try:
            data = resp.json()
        except ValueError:
            data = {}

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not resp.ok or not access_token:
            raise ApiError("Unable to obtain M-Pesa access token.")

        try:
            expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        except (TypeError, ValueError):
            expires_in = DEFAULT_EXPIRES_IN

        self.token_cache.set(AccessToken.issued(access_token, expires_in))
        logger.debug("MPesaProvider: access token refreshed (expires in %ds)", expires_in)
        return access_token

    # Private – HTTP helpers

    def _post(
        self, endpoint: str, payload: Dict[str, Any], context: str = ""
    ) -> Tuple[requests.Response, Dict[str, Any]]:
        """Execute an authenticated POST to a Daraja endpoint."""
        token = self.get_access_token()
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type":  "application/json",
        }

        url = f"{self.base_url}{endpoint}"
        try:
            resp = self._session.post(url, json=payload, headers=headers, timeout=30)
        except requests.RequestException as exc:
            raise ApiError(f"M-Pesa request failed: {exc}") from exc

        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        logger.debug("MPesa [%s] HTTP %s: %s", context, resp.status_code, data)
        return resp, data

    def _generate_password(self) -> Tuple[str, str]:
        """
        Generate the STK Push password and timestamp.

        Password = Base64(BusinessShortCode + Passkey + Timestamp)
        Timestamp = YYYYMMDDHHmmss
        """
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        raw = f"{self.shortcode}{self.passkey}{timestamp}"
        password = base64.b64encode(raw.encode("utf-8")).decode("utf-8")
        return timestamp, password
