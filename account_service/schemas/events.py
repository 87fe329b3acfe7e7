"""
Event schemas for pub/sub messaging

Events are published to Redis pub/sub channels when authentication state
changes. The mailer subscribes to email.requested; monitoring subscribes to
the security channel.
"""

from typing import Optional, Dict, Any, List
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class EventType(str, Enum):
    """Event type enumeration"""
    # Account lifecycle
    ACCOUNT_REGISTERED = "account.registered"
    ACCOUNT_VERIFIED = "account.verified"

    # Authentication
    LOGIN_SUCCESS = "login.success"
    LOGIN_FAILED = "login.failed"
    ACCOUNT_LOCKED = "account.locked"
    LOGOUT = "logout"
    LOGOUT_ALL = "logout.all"

    # Second factor
    SECOND_FACTOR_ENABLED = "second_factor.enabled"
    SECOND_FACTOR_DISABLED = "second_factor.disabled"
    SECOND_FACTOR_FAILED = "second_factor.failed"
    RECOVERY_CODES_REGENERATED = "second_factor.recovery_codes_regenerated"
    RECOVERY_CODE_USED = "second_factor.recovery_code_used"

    # Devices
    TRUSTED_DEVICE_ADDED = "trusted_device.added"
    TRUSTED_DEVICE_REMOVED = "trusted_device.removed"

    # Password
    PASSWORD_RESET_REQUESTED = "password.reset_requested"
    PASSWORD_RESET_COMPLETED = "password.reset_completed"

    # Outbound email
    EMAIL_REQUESTED = "email.requested"


class EventPriority(str, Enum):
    """Event priority for routing and processing"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class Event(BaseModel):
    """
    Base event model for all published events

    All events follow this structure for consistent processing.
    """
    model_config = ConfigDict(use_enum_values=True)

    event_id: str = Field(..., description="Unique event ID (UUID)")
    event_type: EventType = Field(..., description="Type of event")
    timestamp: str = Field(..., description="Event timestamp (ISO 8601 format)")
    source: str = Field(default="account_service", description="Service that generated the event")
    priority: EventPriority = Field(default=EventPriority.NORMAL, description="Event priority for routing")
    subject: Optional[str] = Field(None, description="Subject of the event (e.g., account:123)")
    data: Dict[str, Any] = Field(default_factory=dict, description="Event-specific data payload")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional metadata (IP, user agent, etc.)")


class EmailRequestedEvent(BaseModel):
    """Payload consumed by the mailer"""
    template: str  # "otp", "welcome", "password_reset", "password_changed"
    to: str
    name: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)


# Channel routing

class EventChannel(str, Enum):
    """Redis pub/sub channels for event routing"""
    ALL_EVENTS = "account_service.events.all"
    AUTH_EVENTS = "account_service.events.auth"
    SECURITY_EVENTS = "account_service.events.security"
    EMAIL_EVENTS = "account_service.events.email"


EVENT_CHANNEL_MAP: Dict[EventType, List[EventChannel]] = {
    EventType.ACCOUNT_REGISTERED: [EventChannel.AUTH_EVENTS, EventChannel.ALL_EVENTS],
    EventType.ACCOUNT_VERIFIED: [EventChannel.AUTH_EVENTS, EventChannel.ALL_EVENTS],

    EventType.LOGIN_SUCCESS: [EventChannel.AUTH_EVENTS, EventChannel.ALL_EVENTS],
    EventType.LOGIN_FAILED: [EventChannel.AUTH_EVENTS, EventChannel.SECURITY_EVENTS, EventChannel.ALL_EVENTS],
    EventType.ACCOUNT_LOCKED: [EventChannel.SECURITY_EVENTS, EventChannel.ALL_EVENTS],
    EventType.LOGOUT: [EventChannel.AUTH_EVENTS, EventChannel.ALL_EVENTS],
    EventType.LOGOUT_ALL: [EventChannel.AUTH_EVENTS, EventChannel.SECURITY_EVENTS, EventChannel.ALL_EVENTS],

    EventType.SECOND_FACTOR_ENABLED: [EventChannel.AUTH_EVENTS, EventChannel.SECURITY_EVENTS, EventChannel.ALL_EVENTS],
    EventType.SECOND_FACTOR_DISABLED: [EventChannel.AUTH_EVENTS, EventChannel.SECURITY_EVENTS, EventChannel.ALL_EVENTS],
    EventType.SECOND_FACTOR_FAILED: [EventChannel.SECURITY_EVENTS, EventChannel.ALL_EVENTS],
    EventType.RECOVERY_CODES_REGENERATED: [EventChannel.SECURITY_EVENTS, EventChannel.ALL_EVENTS],
    EventType.RECOVERY_CODE_USED: [EventChannel.SECURITY_EVENTS, EventChannel.ALL_EVENTS],

    EventType.TRUSTED_DEVICE_ADDED: [EventChannel.SECURITY_EVENTS, EventChannel.ALL_EVENTS],
    EventType.TRUSTED_DEVICE_REMOVED: [EventChannel.SECURITY_EVENTS, EventChannel.ALL_EVENTS],

    EventType.PASSWORD_RESET_REQUESTED: [EventChannel.AUTH_EVENTS, EventChannel.SECURITY_EVENTS, EventChannel.ALL_EVENTS],
    EventType.PASSWORD_RESET_COMPLETED: [EventChannel.AUTH_EVENTS, EventChannel.SECURITY_EVENTS, EventChannel.ALL_EVENTS],

    EventType.EMAIL_REQUESTED: [EventChannel.EMAIL_EVENTS],
}
