"""
TOTP Engine - Time-based One-Time Password implementation

Implements 6-digit, 30-second codes per RFC 6238 using pyotp.
"""

import base64
import io
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pyotp
import qrcode
from pyotp.utils import strings_equal

from account_service.core.config import Settings
from account_service.services.secret_codec import SecretCodec, SecretDecryptionError

logger = logging.getLogger(__name__)

CODE_DIGITS = 6
TIME_STEP_SECONDS = 30

_CODE_PATTERN = re.compile(r"^[0-9]{6}$")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class GeneratedSecret:
    """Freshly generated TOTP seed and its authenticator provisioning URI"""
    secret: str
    provisioning_uri: str


def normalize_code(code: Optional[str]) -> Optional[str]:
    """
    Strip whitespace and require exactly 6 ASCII digits.

    Returns:
        The normalized code, or None if malformed
    """
    if code is None:
        return None
    candidate = _WHITESPACE.sub("", str(code))
    if not _CODE_PATTERN.match(candidate):
        return None
    return candidate


class TotpEngine:
    """Generates per-account secrets and verifies submitted codes"""

    def __init__(self, codec: SecretCodec, issuer: str, max_window_steps: int = 1):
        self.codec = codec
        self.issuer = issuer
        self.max_window_steps = max_window_steps

    @classmethod
    def from_settings(cls, settings: Settings, codec: SecretCodec) -> "TotpEngine":
        return cls(codec, issuer=settings.TOTP_ISSUER, max_window_steps=settings.TOTP_VALID_WINDOW)

    def generate_secret(self, identity_label: str) -> GeneratedSecret:
        """
        Generate a new base32 secret

        Args:
            identity_label: Account label shown in the authenticator app (email)

        Returns:
            GeneratedSecret with the plaintext seed and otpauth:// URI
        """
        secret = pyotp.random_base32()
        provisioning_uri = pyotp.TOTP(secret).provisioning_uri(
            name=identity_label,
            issuer_name=self.issuer
        )
        return GeneratedSecret(secret=secret, provisioning_uri=provisioning_uri)

    def verify(
        self,
        code: Optional[str],
        encrypted_secret: Optional[str],
        window_steps: int = 1,
        for_time: Optional[datetime] = None
    ) -> bool:
        """True if the code matches the current step or an accepted neighbour"""
        return self.matched_step(code, encrypted_secret, window_steps, for_time) is not None

    def matched_step(
        self,
        code: Optional[str],
        encrypted_secret: Optional[str],
        window_steps: int = 1,
        for_time: Optional[datetime] = None
    ) -> Optional[int]:
        """
        Find the time step a submitted code belongs to

        Args:
            code: Submitted code (whitespace tolerated)
            encrypted_secret: Secret as stored by SecretCodec.encrypt
            window_steps: Adjacent 30s steps accepted either side, capped at the configured maximum
            for_time: Verification instant (defaults to now)

        Returns:
            The matching 30s step counter, or None if the code is not accepted
        """
        normalized = normalize_code(code)
        if normalized is None or not encrypted_secret:
            return None

        try:
            secret = self.codec.decrypt(encrypted_secret)
        except SecretDecryptionError:
            logger.error("Stored second factor secret could not be decrypted")
            return None

        window = max(0, min(window_steps, self.max_window_steps))
        totp = pyotp.TOTP(secret)
        current = totp.timecode(for_time or datetime.now())
        for step in range(current - window, current + window + 1):
            if strings_equal(normalized, totp.generate_otp(step)):
                return step
        return None

    @staticmethod
    def render_qr_code(data: str) -> str:
        """
        Generate QR code as data URI

        Args:
            data: Data to encode in QR code

        Returns:
            QR code as data URI (can be used in <img src="">)
        """
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_L,
            box_size=10,
            border=4,
        )
        qr.add_data(data)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format='PNG')
        buffer.seek(0)

        img_base64 = base64.b64encode(buffer.read()).decode()
        return f"data:image/png;base64,{img_base64}"
