"""
Real Notification Service

Production implementation sending SMS through Twilio.
"""

import asyncio
import logging

from twilio.rest import Client as TwilioClient
from twilio.base.exceptions import TwilioException

from food_delivery.services.notifications.base import (
    BaseNotificationService,
    NotificationResult,
)
from food_delivery.core.config import get_settings

logger = logging.getLogger(__name__)


class RealNotificationService(BaseNotificationService):
    """Production notification service using Twilio."""

    def __init__(self):
        settings = get_settings()

        if settings.twilio_account_sid and settings.twilio_auth_token:
            self.twilio_client = TwilioClient(
                settings.twilio_account_sid,
                settings.twilio_auth_token
            )
            self.twilio_from_number = settings.twilio_phone_number
        else:
            self.twilio_client = None
            logger.warning("Twilio credentials not configured")

        logger.info("RealNotificationService initialized")

    @property
    def provider_name(self) -> str:
        return "twilio"

    async def send_sms(
        self,
        to_phone: str,
        message: str,
    ) -> NotificationResult:
        """Send SMS via Twilio."""
        if not self.twilio_client:
            return NotificationResult(
                success=False,
                error_message="Twilio not configured",
                provider="twilio"
            )

        try:
            # The Twilio client is blocking
            result = await asyncio.to_thread(
                self.twilio_client.messages.create,
                body=message,
                from_=self.twilio_from_number,
                to=to_phone,
            )

            logger.info(f"SMS sent to {to_phone}: {result.sid}")

            return NotificationResult(
                success=True,
                message_id=result.sid,
                provider="twilio"
            )

        except TwilioException as e:
            logger.error(f"Twilio error: {e}")
            return NotificationResult(
                success=False,
                error_message=str(e),
                provider="twilio"
            )

    async def health_check(self) -> bool:
        """Check the Twilio account is reachable."""
        if not self.twilio_client:
            return False
        try:
            await asyncio.to_thread(
                self.twilio_client.api.accounts(self.twilio_client.account_sid).fetch
            )
            return True
        except TwilioException as e:
            logger.error(f"Twilio health check failed: {e}")
            return False
