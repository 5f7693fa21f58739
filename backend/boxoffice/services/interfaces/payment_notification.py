"""
Payment notification channel interface.
Each inbound payment callback format implements it; reconciliation logic
only talks to this interface.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Mapping, Optional

from boxoffice.models.order import OrderStatus


class PaymentNotificationChannel(ABC):
    """
    Interface for inbound payment notifications.

    Implementations:
    - HostedCheckoutChannel: 2Checkout hosted checkout INS (sorted keys, MD5)
    - IpnChannel: 2Checkout IPN (length-prefixed HMAC-SHA256, XML acknowledgement)
    """

    name: str = "unknown"

    @abstractmethod
    def verify(self, params: Mapping[str, str]) -> bool:
        """True when the payload carries a valid signature for our secret."""

    @abstractmethod
    def order_id(self, params: Mapping[str, str]) -> Optional[str]:
        """Merchant order id we sent with the redirect."""

    @abstractmethod
    def payment_ref(self, params: Mapping[str, str]) -> Optional[str]:
        """Provider-side reference for the payment."""

    @abstractmethod
    def provider_status(self, params: Mapping[str, str]) -> Optional[str]:
        """Raw provider status string, stored on the order as-is."""

    @abstractmethod
    def map_status(self, params: Mapping[str, str]) -> Optional[OrderStatus]:
        """
        Internal status the notification asks for, or None when the provider
        status carries no transition (e.g. still pending).
        """

    def acknowledge(self, params: Mapping[str, str], now: Optional[datetime] = None) -> Optional[str]:
        """Body the provider expects back, if any."""
        return None
