"""
Secret codec for second-factor material.

The TOTP secret is the only value stored reversibly (AES-256-GCM), because
codes are computed from the raw seed. Recovery codes are stored as one-way
digests and compared by hashing the submitted value.
"""

import base64
import binascii
import hashlib
import logging
import os
import re
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from account_service.core.config import Settings
from account_service.core.exceptions import ConfigurationError
from account_service.utils.security import constant_time_compare

logger = logging.getLogger(__name__)

NONCE_SIZE = 12  # 96-bit nonce for GCM
KEY_SIZE = 32

_CODE_SEPARATORS = re.compile(r"[\s-]+")


class SecretDecryptionError(Exception):
    """Stored ciphertext could not be authenticated with the configured key"""


class SecretCodec:
    """
    Secret encryption using AES-256-GCM plus one-way code hashing.

    The key must be exactly 32 bytes, supplied as 64 hex characters.
    """

    def __init__(self, encryption_key: Optional[str]):
        """
        Args:
            encryption_key: hex-encoded 32-byte key

        Raises:
            ConfigurationError: If the key is missing, not hex, or the wrong length
        """
        if not encryption_key:
            raise ConfigurationError(
                "SECOND_FACTOR_ENCRYPTION_KEY is required. "
                "Generate one with: python -c 'import os; print(os.urandom(32).hex())'"
            )

        try:
            key = bytes.fromhex(encryption_key)
        except ValueError as e:
            raise ConfigurationError(f"SECOND_FACTOR_ENCRYPTION_KEY must be a hex string: {e}")

        if len(key) != KEY_SIZE:
            raise ConfigurationError(
                f"SECOND_FACTOR_ENCRYPTION_KEY must be exactly {KEY_SIZE} bytes "
                f"({KEY_SIZE * 2} hex characters), got {len(key)} bytes"
            )

        self.cipher = AESGCM(key)
        logger.info("Second factor secret codec initialized")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SecretCodec":
        return cls(settings.SECOND_FACTOR_ENCRYPTION_KEY)

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a secret.

        Returns:
            base64 of [12 bytes: nonce][N bytes: ciphertext + tag]
        """
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self.cipher.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt(self, encrypted: str) -> str:
        """
        Decrypt a value produced by encrypt().

        Raises:
            SecretDecryptionError: If the blob is malformed or fails authentication
        """
        try:
            blob = base64.b64decode(encrypted.encode("ascii"), validate=True)
        except (binascii.Error, ValueError) as e:
            raise SecretDecryptionError("Malformed secret ciphertext") from e

        if len(blob) <= NONCE_SIZE:
            raise SecretDecryptionError("Malformed secret ciphertext")

        try:
            plaintext = self.cipher.decrypt(blob[:NONCE_SIZE], blob[NONCE_SIZE:], None)
        except InvalidTag as e:
            raise SecretDecryptionError("Secret ciphertext failed authentication") from e
        return plaintext.decode("utf-8")

    @staticmethod
    def normalize_code(code: str) -> str:
        """Canonical form of a recovery code: uppercase, no whitespace or hyphens"""
        return _CODE_SEPARATORS.sub("", code or "").upper()

    def hash_code(self, code: str) -> str:
        """One-way digest of a recovery code"""
        return hashlib.sha256(self.normalize_code(code).encode("utf-8")).hexdigest()

    def matches(self, code: str, code_hash: str) -> bool:
        """Hash the submitted code and compare digests in constant time"""
        return constant_time_compare(self.hash_code(code), code_hash)
