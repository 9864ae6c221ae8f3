"""
Notification Service Abstract Base Class

Defines the interface for sending short text messages to customers.
Supports both Mock (development) and Real (production) implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


STATUS_MESSAGES = {
    "pending": "has been received and is waiting for the store to confirm",
    "confirmed": "has been confirmed by the store",
    "preparing": "is being prepared",
    "ready": "is ready and waiting for the courier",
    "delivered": "has been delivered. Enjoy your meal!",
    "cancelled": "has been cancelled",
}


@dataclass
class NotificationResult:
    """Result from sending a notification."""
    success: bool
    message_id: Optional[str] = None
    error_message: Optional[str] = None
    provider: str = "unknown"

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message_id": self.message_id,
            "error_message": self.error_message,
            "provider": self.provider,
        }


def format_status_message(brand_name: str, order_id: str, status: str) -> str:
    """Customer-facing SMS body for a status change."""
    detail = STATUS_MESSAGES.get(status, f"is now {status}")
    return f"{brand_name}: your order #{order_id[:8]} {detail}."


class BaseNotificationService(ABC):
    """Abstract base class for notification services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send an SMS message."""
        pass

    async def send_order_status_update(
        self,
        order_id: str,
        to_phone: str,
        status: str,
        brand_name: str,
    ) -> NotificationResult:
        """Tell the customer their order moved to ``status``."""
        return await self.send_sms(to_phone, format_status_message(brand_name, order_id, status))

    @abstractmethod
    async def health_check(self) -> bool:
        """Check service connectivity."""
        pass
