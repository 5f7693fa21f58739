"""
2Checkout integration: hosted checkout redirect and inbound notifications.
Separated from business logic so the orchestrator only sees
PaymentNotificationChannel and a redirect URL.

Two inbound formats are supported:

Hosted checkout (INS):
  signature = MD5(k1 + v1 + k2 + v2 + ... + secret) over keys sorted
  ascending, excluding the signature fields ``key`` and ``hash``.
  Compared case-insensitively.

IPN:
  HASH = HMAC-SHA256(secret, len(v1) + v1 + len(v2) + v2 + ...) over every
  other field in the order received, lengths in UTF-8 bytes.
  The response must be
  ``<sig algo="sha256" date="YYYYMMDDHHMMSS">HMAC</sig>`` with the HMAC
  taken over IPN_PID[0], IPN_PNAME[0], IPN_DATE and that date.
"""

import hashlib
import hmac
import json
import re
from datetime import datetime, timezone
from typing import Any, Iterable, Dict, Mapping, Optional, Sequence, Tuple
from urllib.parse import urlencode

from boxoffice.core.config import get_settings
from boxoffice.core.exceptions import UpstreamError
from boxoffice.models.order import OrderStatus
from boxoffice.services.interfaces import PaymentNotificationChannel

CHECKOUT_URL = "https://secure.2checkout.com/checkout/purchase"
SANDBOX_CHECKOUT_URL = "https://sandbox.2checkout.com/checkout/purchase"

HOSTED_SIGNATURE_FIELDS = ("key", "hash")
IPN_SIGNATURE_FIELD = "HASH"
IPN_DATE_FORMAT = "%Y%m%d%H%M%S"

# Hosted checkout vocabulary
HOSTED_PAID_MESSAGES = {"ORDER_CREATED"}
HOSTED_PAID_INVOICE_STATUSES = {"approved", "deposited"}
HOSTED_REFUND_MESSAGES = {"REFUND_ISSUED"}
HOSTED_FAILED_INVOICE_STATUSES = {"declined"}

# IPN ORDERSTATUS vocabulary
IPN_STATUS_MAP = {
    "PAYMENT_AUTHORIZED": OrderStatus.PAID,
    "PAYMENT_RECEIVED": OrderStatus.PAID,
    "COMPLETE": OrderStatus.PAID,
    "REFUNDED": OrderStatus.REFUNDED,
    "REVERSED": OrderStatus.REFUNDED,
    "CHARGEBACK": OrderStatus.REFUNDED,
    "FAIL": OrderStatus.FAILED,
    "DENIED": OrderStatus.FAILED,
}

_ARRAY_KEY = re.compile(r"^(?P<name>.+)\[\]$")


def format_amount(minor_units: int) -> str:
    return f"{minor_units / 100:.2f}"


def build_checkout_url(
    order_id: int,
    public_token: str,
    item_name: str,
    total_amount: int,
    currency: str,
    full_name: str,
    email: str,
    phone: Optional[str] = None,
) -> str:
    """Hosted checkout redirect for a single line item covering the whole order."""
    settings = get_settings()
    if not settings.TWOCHECKOUT_MERCHANT_CODE:
        raise UpstreamError("2checkout", "Payment provider is not configured")

    site = settings.SITE_URL.rstrip("/")
    params = {
        "sid": settings.TWOCHECKOUT_MERCHANT_CODE,
        "mode": "2CO",
        "li_0_type": "product",
        "li_0_name": item_name,
        "li_0_price": format_amount(total_amount),
        "li_0_quantity": "1",
        "li_0_tangible": "N",
        "currency_code": currency,
        "merchant_order_id": str(order_id),
        "card_holder_name": full_name,
        "email": email,
        "phone": phone or "",
        "return_url": f"{site}/checkout/success?orderId={order_id}&t={public_token}",
        "cancel_url": f"{site}/checkout/cancelled?orderId={order_id}&t={public_token}",
    }
    if settings.TWOCHECKOUT_SANDBOX:
        params["demo"] = "Y"
        base_url = SANDBOX_CHECKOUT_URL
    else:
        base_url = CHECKOUT_URL
    return f"{base_url}?{urlencode(params)}"


def parse_notification_pairs(pairs: Iterable[Tuple[str, str]]) -> Dict[str, str]:
    """
    Flatten form pairs into an ordered dict. Repeated ``name[]`` keys become
    ``name[0]``, ``name[1]``, ... so no value is lost and order is kept.
    """
    params: Dict[str, str] = {}
    counters: Dict[str, int] = {}
    for key, value in pairs:
        match = _ARRAY_KEY.match(key)
        if match:
            name = match.group("name")
            index = counters.get(name, 0)
            counters[name] = index + 1
            key = f"{name}[{index}]"
        params[key] = "" if value is None else str(value)
    return params


def notification_value_text(value: Any) -> str:
    """
    Text a JSON notification value was signed as. Scalars follow the
    signer's string conversion: ``true``, ``1`` for ``1.0``, empty for null.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (int, float)):
        return repr(value)
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def hosted_signature(params: Mapping[str, str], secret: str) -> str:
    payload = "".join(
        f"{key}{params[key]}" for key in sorted(params) if key not in HOSTED_SIGNATURE_FIELDS
    )
    return hashlib.md5((payload + secret).encode("utf-8")).hexdigest().upper()


def _length_prefixed(values: Sequence[str]) -> str:
    return "".join(f"{len(value.encode('utf-8'))}{value}" for value in values)


def _hmac_sha256(payload: str, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest().upper()


def ipn_hash(params: Mapping[str, str], secret: str) -> str:
    values = [value for key, value in params.items() if key != IPN_SIGNATURE_FIELD]
    return _hmac_sha256(_length_prefixed(values), secret)


def format_ipn_date(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime(IPN_DATE_FORMAT)


def ipn_acknowledgement(params: Mapping[str, str], secret: str, now: Optional[datetime] = None) -> str:
    date = format_ipn_date(now)
    source = _length_prefixed([
        params.get("IPN_PID[0]", ""),
        params.get("IPN_PNAME[0]", ""),
        params.get("IPN_DATE", ""),
        date,
    ])
    return f'<sig algo="sha256" date="{date}">{_hmac_sha256(source, secret)}</sig>'


def _signatures_match(received: Optional[str], expected: str) -> bool:
    if not received:
        return False
    return hmac.compare_digest(received.strip().upper().encode("utf-8"), expected.encode("utf-8"))


class HostedCheckoutChannel(PaymentNotificationChannel):
    name = "hosted"

    def __init__(self, secret: Optional[str] = None):
        self.secret = secret if secret is not None else get_settings().TWOCHECKOUT_SECRET_KEY

    def verify(self, params: Mapping[str, str]) -> bool:
        if not self.secret:
            raise UpstreamError("2checkout", "Payment provider secret is not configured")
        received = params.get("key") or params.get("hash")
        return _signatures_match(received, hosted_signature(params, self.secret))

    def order_id(self, params: Mapping[str, str]) -> Optional[str]:
        return params.get("merchant_order_id") or params.get("vendor_order_id")

    def payment_ref(self, params: Mapping[str, str]) -> Optional[str]:
        return params.get("sale_id") or params.get("order_number") or params.get("invoice_id")

    def provider_status(self, params: Mapping[str, str]) -> Optional[str]:
        return (
            params.get("invoice_status")
            or params.get("message_type")
            or params.get("MESSAGE_TYPE")
        )

    def map_status(self, params: Mapping[str, str]) -> Optional[OrderStatus]:
        message_type = params.get("message_type") or params.get("MESSAGE_TYPE")
        invoice_status = params.get("invoice_status")
        if message_type in HOSTED_PAID_MESSAGES or invoice_status in HOSTED_PAID_INVOICE_STATUSES:
            return OrderStatus.PAID
        if message_type in HOSTED_REFUND_MESSAGES:
            return OrderStatus.REFUNDED
        if invoice_status in HOSTED_FAILED_INVOICE_STATUSES:
            return OrderStatus.FAILED
        return None


class IpnChannel(PaymentNotificationChannel):
    name = "ipn"

    def __init__(self, secret: Optional[str] = None):
        self.secret = secret if secret is not None else get_settings().TWOCHECKOUT_SECRET_KEY

    def verify(self, params: Mapping[str, str]) -> bool:
        if not self.secret:
            raise UpstreamError("2checkout", "Payment provider secret is not configured")
        return _signatures_match(params.get(IPN_SIGNATURE_FIELD), ipn_hash(params, self.secret))

    def order_id(self, params: Mapping[str, str]) -> Optional[str]:
        return params.get("REFNOEXT")

    def payment_ref(self, params: Mapping[str, str]) -> Optional[str]:
        return params.get("REFNO")

    def provider_status(self, params: Mapping[str, str]) -> Optional[str]:
        return params.get("ORDERSTATUS")

    def map_status(self, params: Mapping[str, str]) -> Optional[OrderStatus]:
        return IPN_STATUS_MAP.get(params.get("ORDERSTATUS", ""))

    def acknowledge(self, params: Mapping[str, str], now: Optional[datetime] = None) -> str:
        return ipn_acknowledgement(params, self.secret, now)
