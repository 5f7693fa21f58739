"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .payment_notification import PaymentNotificationChannel

__all__ = ['PaymentNotificationChannel']
