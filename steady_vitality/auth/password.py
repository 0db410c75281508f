"""
Steady Vitality - Password Hashing and Strength Utilities

Password hashing using bcrypt with a configurable work factor
(settings.BCRYPT_ROUNDS, 12 by default), strength validation and
random password generation.

Security:
- Never log or expose plaintext passwords
- bcrypt includes salt automatically
- Supports hash upgrades on login
"""

import asyncio
import re
import secrets
import string
from dataclasses import dataclass, field
from typing import List, Optional

import bcrypt

from steady_vitality.config import settings


MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128

# bcrypt only considers the first 72 bytes of input
BCRYPT_MAX_BYTES = 72

LOWERCASE = string.ascii_lowercase
UPPERCASE = string.ascii_uppercase
DIGITS = string.digits
SYMBOLS = "!@#$%^&*()_+-=[]{}|;:,.<>?"

_SYMBOL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")

COMMON_PASSWORDS = frozenset({
    "password",
    "password123",
    "123456",
    "123456789",
    "qwerty",
    "abc123",
    "password1",
    "admin",
    "letmein",
    "welcome",
})

SEQUENTIAL_PATTERNS = ("123456", "abcdef", "qwerty")


@dataclass
class PasswordValidation:
    """Outcome of a strength check; ``errors`` lists every failed rule."""
    valid: bool
    errors: List[str] = field(default_factory=list)


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: Optional[int] = None) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plaintext password
        rounds: Work factor override (defaults to settings.BCRYPT_ROUNDS)

    Returns:
        bcrypt hash string (includes salt)

    Example:
        >>> hashed = hash_password("SecureP@ss123")
        >>> hashed.startswith("$2b$")
        True
    """
    salt = bcrypt.gensalt(rounds=rounds or settings.BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(_encode(password), salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against a bcrypt hash.

    bcrypt.checkpw compares in constant time. A malformed hash
    verifies as False instead of raising.
    """
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(_encode(plain_password), hashed_password.encode("utf-8"))
    except (ValueError, TypeError):
        return False


async def hash_password_async(password: str, rounds: Optional[int] = None) -> str:
    """hash_password on a worker thread so the event loop keeps running."""
    return await asyncio.to_thread(hash_password, password, rounds)


async def verify_password_async(plain_password: str, hashed_password: str) -> bool:
    return await asyncio.to_thread(verify_password, plain_password, hashed_password)


def needs_rehash(hashed_password: str, target_work_factor: Optional[int] = None) -> bool:
    """
    Check if a password hash was produced with a lower work factor.

    Example:
        # After raising BCRYPT_ROUNDS from 10 to 12:
        >>> needs_rehash(old_hash)  # Generated with factor 10
        True
    """
    target = target_work_factor or settings.BCRYPT_ROUNDS
    try:
        # bcrypt hash format: $2b$XX$...
        _, work_factor_str, _ = hashed_password.split("$")[1:4]
        return int(work_factor_str) < target
    except (ValueError, IndexError):
        return True


def validate_password_strength(password: str) -> PasswordValidation:
    """
    Check a candidate password against every strength rule.

    All failing rules are reported together so a client can show
    every violation at once. Never raises.

    Example:
        >>> validate_password_strength("short").errors[0]
        'Password must be at least 8 characters long'
    """
    if not password:
        return PasswordValidation(valid=False, errors=["Password is required"])

    errors: List[str] = []

    if len(password) < MIN_PASSWORD_LENGTH:
        errors.append(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(password) > MAX_PASSWORD_LENGTH:
        errors.append(f"Password must be no more than {MAX_PASSWORD_LENGTH} characters long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not _SYMBOL_RE.search(password):
        errors.append("Password must contain at least one special character")

    lowered = password.lower()
    if lowered in COMMON_PASSWORDS:
        errors.append("Password is too common. Please choose a stronger password")
    if any(pattern in lowered for pattern in SEQUENTIAL_PATTERNS):
        errors.append("Password should not contain sequential characters")

    return PasswordValidation(valid=not errors, errors=errors)


def generate_random_password(length: int = 16) -> str:
    """
    Generate a random password that passes validate_password_strength.

    At least one character of each class is placed, the remainder is drawn
    uniformly from all classes, and the result is shuffled.

    Raises:
        ValueError: If length is outside the accepted password range
    """
    if not MIN_PASSWORD_LENGTH <= length <= MAX_PASSWORD_LENGTH:
        raise ValueError(
            f"length must be between {MIN_PASSWORD_LENGTH} and {MAX_PASSWORD_LENGTH}"
        )

    rng = secrets.SystemRandom()
    alphabet = LOWERCASE + UPPERCASE + DIGITS + SYMBOLS

    while True:
        chars = [
            secrets.choice(LOWERCASE),
            secrets.choice(UPPERCASE),
            secrets.choice(DIGITS),
            secrets.choice(SYMBOLS),
        ]
        chars.extend(secrets.choice(alphabet) for _ in range(length - len(chars)))
        rng.shuffle(chars)
        password = "".join(chars)

        # Random fill can still land on a sequential pattern
        if validate_password_strength(password).valid:
            return password
