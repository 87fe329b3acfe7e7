"""
Device fingerprinting for trusted-device bypass.

Fingerprints are a stable hash of user agent and network address with no
time component, so a device trusted once matches on later logins.
"""

import hashlib
from dataclasses import dataclass
from typing import Optional

from account_service.utils.device import describe_user_agent

FINGERPRINT_LENGTH = 32


@dataclass(frozen=True)
class ClientMetadata:
    """Connection metadata supplied by the HTTP layer"""
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


def compute_fingerprint(client: ClientMetadata) -> str:
    """
    Generate a device fingerprint from user agent and IP

    Args:
        client: Client metadata

    Returns:
        Device fingerprint hash (32 hex chars)
    """
    data = f"{client.user_agent or ''}:{client.ip_address or ''}".encode()
    return hashlib.sha256(data).hexdigest()[:FINGERPRINT_LENGTH]


def describe_device(client: ClientMetadata) -> str:
    """Display name for a trusted device, e.g. 'Firefox on Linux'"""
    return describe_user_agent(client.user_agent)
