"""
Redis connection, pending second-factor references and rate limiting
"""

from typing import Optional
from redis import Redis, ConnectionPool

from account_service.core.config import Settings


class RedisClient:
    """Redis client wrapper for short-lived auth state and pub/sub"""

    def __init__(self, url: str, max_connections: int = 50):
        self.pool = ConnectionPool.from_url(
            url,
            max_connections=max_connections,
            decode_responses=True
        )
        self.client = Redis(connection_pool=self.pool)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisClient":
        return cls(settings.REDIS_URL, max_connections=settings.REDIS_POOL_SIZE)

    def get(self, key: str) -> Optional[str]:
        """Get value by key"""
        return self.client.get(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        """Set value with optional TTL (seconds)"""
        return self.client.set(key, value, ex=ttl)

    def delete(self, key: str) -> int:
        """Delete key"""
        return self.client.delete(key)

    def incr(self, key: str) -> int:
        """Increment counter"""
        return self.client.incr(key)

    def publish(self, channel: str, message: str) -> int:
        """Publish message to channel"""
        return self.client.publish(channel, message)

    # Pending second-factor references
    def set_pending_second_factor(self, reference: str, account_id: int, ttl: int) -> bool:
        """Map an opaque login reference to the account awaiting a second factor"""
        return self.set(f"second_factor_pending:{reference}", str(account_id), ttl=ttl)

    def get_pending_second_factor(self, reference: str) -> Optional[int]:
        """Resolve an opaque login reference, None if unknown or expired"""
        value = self.get(f"second_factor_pending:{reference}")
        return int(value) if value else None

    def delete_pending_second_factor(self, reference: str) -> int:
        """Consume an opaque login reference"""
        return self.delete(f"second_factor_pending:{reference}")

    # Rate limiting
    def check_rate_limit(self, key: str, limit: int, window_seconds: int) -> tuple[bool, int]:
        """
        Check rate limit using a fixed window
        Returns (allowed, remaining)
        """
        current = self.get(key)
        if current is None:
            self.set(key, "1", ttl=window_seconds)
            return True, limit - 1

        count = int(current)
        if count >= limit:
            return False, 0

        self.incr(key)
        return True, limit - count - 1

    def ping(self) -> bool:
        return bool(self.client.ping())

    def close(self):
        """Close Redis connection"""
        self.client.close()
        self.pool.disconnect()

