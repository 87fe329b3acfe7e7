"""
Token Issuer - JWT access/refresh token generation, validation, and rotation
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from jose import jwt, JWTError, ExpiredSignatureError

from account_service.core.config import Settings
from account_service.core.exceptions import ConfigurationError, TokenExpired, TokenInvalid
from account_service.models import Account
from account_service.services.account_store import AccountStore
from account_service.utils.security import hash_token

logger = logging.getLogger(__name__)

MIN_SECRET_LENGTH = 32

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int


class TokenIssuer:
    """Service for JWT token operations"""

    def __init__(self, settings: Settings, store: AccountStore):
        self.access_secret = self._require_secret("JWT_ACCESS_SECRET", settings.JWT_ACCESS_SECRET)
        self.refresh_secret = self._require_secret("JWT_REFRESH_SECRET", settings.JWT_REFRESH_SECRET)
        self.algorithm = settings.JWT_ALGORITHM
        self.issuer = settings.JWT_ISSUER
        self.access_token_ttl = timedelta(minutes=settings.JWT_ACCESS_TOKEN_TTL_MINUTES)
        self.refresh_token_ttl = timedelta(days=settings.JWT_REFRESH_TOKEN_TTL_DAYS)
        self.store = store

    @staticmethod
    def _require_secret(name: str, value: Optional[str]) -> str:
        if not value or len(value) < MIN_SECRET_LENGTH:
            raise ConfigurationError(f"{name} must be set to at least {MIN_SECRET_LENGTH} characters")
        return value

    @staticmethod
    def validate_settings(settings: Settings) -> None:
        """Fail fast at startup if signing secrets are missing or too short"""
        TokenIssuer._require_secret("JWT_ACCESS_SECRET", settings.JWT_ACCESS_SECRET)
        TokenIssuer._require_secret("JWT_REFRESH_SECRET", settings.JWT_REFRESH_SECRET)

    def generate_access_token(self, account: Account, additional_claims: Optional[Dict[str, Any]] = None) -> str:
        """
        Generate an access token

        Args:
            account: Account the token is issued for
            additional_claims: Optional additional claims

        Returns:
            JWT access token
        """
        now = datetime.utcnow()
        expires_at = now + self.access_token_ttl

        claims = {
            "iss": self.issuer,
            "sub": str(account.account_id),
            "email": account.email,
            "role": account.role.value if account.role else None,
            "exp": expires_at,
            "iat": now,
            "typ": ACCESS_TOKEN_TYPE,
        }
        if additional_claims:
            claims.update(additional_claims)

        return jwt.encode(claims, self.access_secret, algorithm=self.algorithm)

    def generate_refresh_token(self, account_id: int, jti: Optional[str] = None) -> tuple[str, str]:
        """
        Generate a refresh token

        Returns:
            Tuple of (refresh_token, jti)
        """
        if jti is None:
            jti = str(uuid.uuid4())

        now = datetime.utcnow()
        expires_at = now + self.refresh_token_ttl

        claims = {
            "iss": self.issuer,
            "jti": jti,
            "sub": str(account_id),
            "exp": expires_at,
            "iat": now,
            "typ": REFRESH_TOKEN_TYPE,
        }
        return jwt.encode(claims, self.refresh_secret, algorithm=self.algorithm), jti

    def issue(self, account: Account, claims: Optional[Dict[str, Any]] = None) -> TokenPair:
        """
        Issue an access/refresh pair and add the refresh token to the account's active set.

        Must be called inside ``AccountStore.lock`` for the account; the caller's
        unit of work persists the new refresh token (and any evicted ones).
        """
        access_token = self.generate_access_token(account, claims)
        refresh_token, jti = self.generate_refresh_token(account.account_id)

        self.store.add_refresh_token(account, hash_token(refresh_token), jti, datetime.utcnow())

        return TokenPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=int(self.access_token_ttl.total_seconds()),
        )

    def _decode(self, token: str, secret: str, token_type: str) -> Dict[str, Any]:
        if not token:
            raise TokenInvalid()
        try:
            payload = jwt.decode(token, secret, algorithms=[self.algorithm], issuer=self.issuer)
        except ExpiredSignatureError:
            raise TokenExpired()
        except JWTError as e:
            logger.debug(f"Token validation failed: {e}")
            raise TokenInvalid()

        if payload.get("typ") != token_type:
            raise TokenInvalid("Invalid token type")
        try:
            int(payload.get("sub", ""))
        except (TypeError, ValueError):
            raise TokenInvalid()
        return payload

    def verify_access(self, token: str) -> Dict[str, Any]:
        """
        Validate and decode an access token

        Raises:
            TokenExpired: If the token has expired
            TokenInvalid: If the signature, issuer or type is wrong
        """
        return self._decode(token, self.access_secret, ACCESS_TOKEN_TYPE)

    def verify_refresh(self, token: str) -> Dict[str, Any]:
        """Validate and decode a refresh token (signature only, no membership check)"""
        return self._decode(token, self.refresh_secret, REFRESH_TOKEN_TYPE)

    def rotate(self, refresh_token: str) -> str:
        """
        Mint a new access token from a refresh token in the account's active set

        Raises:
            TokenExpired, TokenInvalid: If the token fails validation or has been revoked
        """
        payload = self.verify_refresh(refresh_token)
        account_id = int(payload["sub"])

        if self.store.get(account_id) is None:
            raise TokenInvalid()

        with self.store.lock(account_id) as account:
            if not self.store.has_refresh_token(account, hash_token(refresh_token)):
                logger.warning(f"Refresh token not in active set for account {account_id}")
                raise TokenInvalid("Refresh token has been revoked")
            access_token = self.generate_access_token(account)

        logger.info(f"Access token refreshed for account {account_id}")
        return access_token

    def revoke(self, refresh_token: str) -> bool:
        """
        Remove a refresh token from its account's active set (logout).

        Idempotent: unknown, expired or already revoked tokens are not an error.

        Returns:
            True if a token was removed
        """
        try:
            payload = jwt.decode(
                refresh_token,
                self.refresh_secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
                options={"verify_exp": False},
            )
            account_id = int(payload["sub"])
        except (JWTError, KeyError, TypeError, ValueError):
            return False

        if self.store.get(account_id) is None:
            return False

        with self.store.lock(account_id) as account:
            removed = self.store.remove_refresh_token(account, hash_token(refresh_token))

        if removed:
            logger.info(f"Refresh token revoked for account {account_id}")
        return removed

    def revoke_all(self, account_id: int) -> int:
        """Drop every refresh token for an account (logout everywhere)"""
        with self.store.lock(account_id) as account:
            count = self.store.clear_refresh_tokens(account)
        logger.info(f"Revoked {count} refresh tokens for account {account_id}")
        return count
