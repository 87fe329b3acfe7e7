"""
Outbound email dispatch.

Delivery is owned by the mailer, which consumes ``email.requested`` events.
Sends are fire-and-forget: failures are logged and counted, never raised.
"""

import logging
from typing import Optional

from account_service import metrics
from account_service.services.event_service import EventService
from account_service.utils.security import mask_email

logger = logging.getLogger(__name__)


class EmailService:
    """Queues templated emails for the mailer"""

    def __init__(self, event_service: EventService, otp_ttl_minutes: int = 10):
        self.event_service = event_service
        self.otp_ttl_minutes = otp_ttl_minutes

    def _send(self, template: str, to: str, name: Optional[str] = None, **context) -> bool:
        try:
            event_id = self.event_service.publish_email_requested(
                template=template,
                to=to,
                name=name,
                context=context
            )
        except Exception as e:
            logger.error(f"Failed to queue {template} email for {mask_email(to)}: {e}")
            event_id = None

        status = "queued" if event_id else "failed"
        metrics.email_operations_total.labels(email_type=template, status=status).inc()
        if event_id is None:
            logger.warning(f"{template} email for {mask_email(to)} was not queued")
            return False
        return True

    def send_otp(self, email: str, otp: str, name: Optional[str] = None) -> bool:
        """Email verification code"""
        return self._send("otp", email, name, otp=otp, expires_in_minutes=self.otp_ttl_minutes)

    def send_welcome(self, email: str, name: Optional[str] = None) -> bool:
        return self._send("welcome", email, name)

    def send_password_reset(self, email: str, reset_token: str, name: Optional[str] = None) -> bool:
        return self._send("password_reset", email, name, reset_token=reset_token)

    def send_password_changed(self, email: str, name: Optional[str] = None) -> bool:
        return self._send("password_changed", email, name)
