"""
Event Publishing Service

Publishes events to Redis pub/sub channels. Fire-and-forget: a publish
failure is logged and never breaks the operation that triggered it.
"""

import uuid
import logging
from datetime import datetime
from typing import Optional, Dict, Any

from account_service.core.redis_client import RedisClient
from account_service.schemas.events import (
    EmailRequestedEvent,
    Event,
    EventType,
    EventPriority,
    EventChannel,
    EVENT_CHANNEL_MAP
)

logger = logging.getLogger(__name__)


class EventService:
    """Service for publishing events to Redis pub/sub"""

    def __init__(self, redis: RedisClient):
        self.redis = redis

    def publish_event(
        self,
        event_type: EventType,
        subject: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        priority: EventPriority = EventPriority.NORMAL
    ) -> Optional[str]:
        """
        Publish an event to Redis pub/sub channels

        Args:
            event_type: Type of event (from EventType enum)
            subject: Subject of the event (e.g., "account:123")
            data: Event-specific data payload
            metadata: Additional metadata (IP, user agent, etc.)
            priority: Event priority

        Returns:
            Event ID (UUID) if published to at least one channel, None otherwise
        """
        try:
            event_id = str(uuid.uuid4())
            event = Event(
                event_id=event_id,
                event_type=event_type,
                timestamp=datetime.utcnow().isoformat(),
                priority=priority,
                subject=subject,
                data=data or {},
                metadata=metadata or {}
            )
            event_json = event.model_dump_json()

            channels = EVENT_CHANNEL_MAP.get(event_type, [EventChannel.ALL_EVENTS])

            published_count = 0
            for channel in channels:
                try:
                    subscriber_count = self.redis.publish(channel.value, event_json)
                    published_count += 1
                    logger.debug(
                        f"Published event {event_id} ({event_type.value}) to channel {channel.value} "
                        f"({subscriber_count} subscribers)"
                    )
                except Exception as e:
                    logger.error(f"Failed to publish event {event_id} to channel {channel.value}: {str(e)}")

            if published_count == 0:
                logger.warning(f"Event {event_id} ({event_type.value}) not published to any channels")
                return None
            return event_id

        except Exception as e:
            logger.error(f"Failed to publish event {event_type.value}: {str(e)}")
            return None

    def publish_login_success(
        self,
        account_id: int,
        second_factor_used: bool,
        trusted_device: bool,
        ip: Optional[str] = None
    ) -> Optional[str]:
        """Publish login.success event"""
        return self.publish_event(
            event_type=EventType.LOGIN_SUCCESS,
            subject=f"account:{account_id}",
            data={
                "account_id": account_id,
                "second_factor_used": second_factor_used,
                "trusted_device": trusted_device
            },
            metadata={"ip": ip}
        )

    def publish_login_failed(self, account_id: int, reason: str, ip: Optional[str] = None) -> Optional[str]:
        """Publish login.failed event"""
        return self.publish_event(
            event_type=EventType.LOGIN_FAILED,
            subject=f"account:{account_id}",
            data={"account_id": account_id, "reason": reason},
            metadata={"ip": ip},
            priority=EventPriority.HIGH
        )

    def publish_account_locked(self, account_id: int, scope: str, locked_until: datetime) -> Optional[str]:
        """Publish account.locked event"""
        return self.publish_event(
            event_type=EventType.ACCOUNT_LOCKED,
            subject=f"account:{account_id}",
            data={
                "account_id": account_id,
                "scope": scope,
                "locked_until": locked_until.isoformat()
            },
            priority=EventPriority.CRITICAL
        )

    def publish_second_factor_enabled(self, account_id: int, recovery_codes_count: int) -> Optional[str]:
        """Publish second_factor.enabled event"""
        return self.publish_event(
            event_type=EventType.SECOND_FACTOR_ENABLED,
            subject=f"account:{account_id}",
            data={"account_id": account_id, "method": "totp", "recovery_codes_count": recovery_codes_count},
            priority=EventPriority.HIGH
        )

    def publish_second_factor_disabled(self, account_id: int) -> Optional[str]:
        """Publish second_factor.disabled event"""
        return self.publish_event(
            event_type=EventType.SECOND_FACTOR_DISABLED,
            subject=f"account:{account_id}",
            data={"account_id": account_id, "method": "totp"},
            priority=EventPriority.HIGH
        )

    def publish_recovery_codes_regenerated(self, account_id: int, count: int) -> Optional[str]:
        return self.publish_event(
            event_type=EventType.RECOVERY_CODES_REGENERATED,
            subject=f"account:{account_id}",
            data={"account_id": account_id, "count": count},
            priority=EventPriority.HIGH
        )

    def publish_recovery_code_used(self, account_id: int, remaining: int) -> Optional[str]:
        return self.publish_event(
            event_type=EventType.RECOVERY_CODE_USED,
            subject=f"account:{account_id}",
            data={"account_id": account_id, "remaining": remaining},
            priority=EventPriority.HIGH
        )

    def publish_second_factor_failed(self, account_id: int, method: str, failed_attempts: int) -> Optional[str]:
        return self.publish_event(
            event_type=EventType.SECOND_FACTOR_FAILED,
            subject=f"account:{account_id}",
            data={"account_id": account_id, "method": method, "failed_attempts": failed_attempts},
            priority=EventPriority.HIGH
        )

    def publish_trusted_device_added(self, account_id: int, device_name: str) -> Optional[str]:
        return self.publish_event(
            event_type=EventType.TRUSTED_DEVICE_ADDED,
            subject=f"account:{account_id}",
            data={"account_id": account_id, "device_name": device_name}
        )

    def publish_trusted_device_removed(self, account_id: int, device_id: int) -> Optional[str]:
        return self.publish_event(
            event_type=EventType.TRUSTED_DEVICE_REMOVED,
            subject=f"account:{account_id}",
            data={"account_id": account_id, "device_id": device_id}
        )

    def publish_logout(self, account_id: int, all_sessions: bool = False) -> Optional[str]:
        return self.publish_event(
            event_type=EventType.LOGOUT_ALL if all_sessions else EventType.LOGOUT,
            subject=f"account:{account_id}",
            data={"account_id": account_id}
        )

    def publish_account_registered(self, account_id: int, email: str) -> Optional[str]:
        return self.publish_event(
            event_type=EventType.ACCOUNT_REGISTERED,
            subject=f"account:{account_id}",
            data={"account_id": account_id, "email": email}
        )

    def publish_account_verified(self, account_id: int) -> Optional[str]:
        return self.publish_event(
            event_type=EventType.ACCOUNT_VERIFIED,
            subject=f"account:{account_id}",
            data={"account_id": account_id}
        )

    def publish_password_reset(self, account_id: int, completed: bool) -> Optional[str]:
        """Publish password.reset_requested or password.reset_completed"""
        return self.publish_event(
            event_type=EventType.PASSWORD_RESET_COMPLETED if completed else EventType.PASSWORD_RESET_REQUESTED,
            subject=f"account:{account_id}",
            data={"account_id": account_id},
            priority=EventPriority.HIGH
        )

    def publish_email_requested(
        self,
        template: str,
        to: str,
        name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Hand an outbound email to the mailer"""
        payload = EmailRequestedEvent(template=template, to=to, name=name, context=context or {})
        return self.publish_event(
            event_type=EventType.EMAIL_REQUESTED,
            data=payload.model_dump()
        )
