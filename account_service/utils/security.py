"""
Security utilities for password hashing, validation, and token generation
"""

import hashlib
import secrets
import string
from functools import lru_cache
from typing import Optional
from passlib.context import CryptContext
import zxcvbn


# Password hashing context using bcrypt
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto"
)


@lru_cache()
def _context_for_rounds(rounds: int) -> CryptContext:
    return CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)


RECOVERY_CODE_ALPHABET = string.ascii_uppercase + string.digits


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password
        rounds: bcrypt cost factor (context default if None)

    Returns:
        Hashed password
    """
    if rounds:
        return _context_for_rounds(rounds).hash(password)
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Verify a password against a hash

    Args:
        plain_password: Plain text password to verify
        hashed_password: Hashed password to check against

    Returns:
        True if password matches, False otherwise
    """
    if not plain_password or not hashed_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


@lru_cache()
def dummy_password_hash(rounds: int) -> str:
    """Hash compared against when the identifier is unknown, so both paths cost the same"""
    return hash_password(secrets.token_urlsafe(16), rounds=rounds)


def validate_password_strength(
    password: str,
    min_length: int,
    min_score: int,
    user_inputs: Optional[list] = None
) -> dict:
    """
    Validate password strength

    Args:
        password: Password to validate
        min_length: Minimum accepted length
        min_score: Minimum zxcvbn score (0-4)
        user_inputs: Optional list of user-specific strings (email, name) to check against

    Returns:
        dict with 'valid' (bool), 'errors' (list) and 'strength_score' keys
    """
    errors = []

    if len(password) < min_length:
        errors.append(f"Password must be at least {min_length} characters long")

    result = zxcvbn.zxcvbn(password, user_inputs=user_inputs or [])

    if result['score'] < min_score:
        warning = result['feedback']['warning']
        errors.append(f"Password is too weak. {warning}".strip())
        if result['feedback']['suggestions']:
            errors.extend(result['feedback']['suggestions'])

    return {
        'valid': len(errors) == 0,
        'errors': errors,
        'strength_score': result['score']
    }


def generate_random_token(length: int = 32) -> str:
    """
    Generate a cryptographically secure random token

    Args:
        length: Number of random bytes

    Returns:
        Random token string
    """
    return secrets.token_urlsafe(length)


def generate_numeric_code(digits: int = 6) -> str:
    """Generate a zero-padded numeric one-time code"""
    return f"{secrets.randbelow(10 ** digits):0{digits}d}"


def hash_token(token: str) -> str:
    """SHA-256 hex digest for storing bearer secrets (reset tokens, refresh tokens, OTPs)"""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_recovery_codes(count: int = 10, length: int = 8) -> list[str]:
    """
    Generate recovery codes for the second factor

    Args:
        count: Number of recovery codes to generate
        length: Length of each recovery code

    Returns:
        List of plaintext recovery codes
    """
    codes = []
    for _ in range(count):
        code = ''.join(secrets.choice(RECOVERY_CODE_ALPHABET) for _ in range(length))
        # Format as XXXX-XXXX for readability
        formatted = f"{code[:4]}-{code[4:]}" if length == 8 else code
        codes.append(formatted)
    return codes


def mask_email(email: str) -> str:
    """
    Mask email address for logging and hints

    Args:
        email: Email address to mask

    Returns:
        Masked email (e.g., u***r@example.com)
    """
    if '@' not in email:
        return email

    local, domain = email.split('@', 1)
    if len(local) <= 2:
        masked_local = '*' * len(local)
    else:
        masked_local = f"{local[0]}***{local[-1]}"

    return f"{masked_local}@{domain}"


def mask_ip(ip: Optional[str]) -> str:
    """
    Mask IP address for logging (last octet)

    Args:
        ip: IP address to mask

    Returns:
        Masked IP (e.g., 203.0.113.xxx)
    """
    if not ip:
        return "unknown"
    parts = ip.split('.')
    if len(parts) == 4:  # IPv4
        parts[-1] = 'xxx'
        return '.'.join(parts)
    return ip[:20] + '...'


def constant_time_compare(a: str, b: str) -> bool:
    """
    Constant-time string comparison to prevent timing attacks

    Args:
        a: First string
        b: Second string

    Returns:
        True if strings are equal, False otherwise
    """
    return secrets.compare_digest(a.encode(), b.encode())
