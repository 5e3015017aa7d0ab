"""Password hashing and strength rules for staff accounts."""

import re
import secrets
import string
from dataclasses import dataclass, field

from passlib.context import CryptContext

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

SPECIAL_CHARACTERS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"
_SPECIAL_RE = re.compile("[" + re.escape(SPECIAL_CHARACTERS) + "]")
MIN_LENGTH = 8


@dataclass
class PasswordCheck:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    strength: int = 0


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    if not hashed_password:
        return False
    return pwd_context.verify(password, hashed_password)


def password_strength(password: str) -> int:
    """Score from 0 to 100 based on length, character classes and variety."""
    score = 0
    if len(password) >= 8:
        score += 20
    if len(password) >= 12:
        score += 10
    if len(password) >= 16:
        score += 10

    if re.search(r"[a-z]", password):
        score += 10
    if re.search(r"[A-Z]", password):
        score += 10
    if re.search(r"\d", password):
        score += 10
    if _SPECIAL_RE.search(password):
        score += 15

    if password and len(set(password)) >= len(password) * 0.7:
        score += 15

    return min(score, 100)


def validate_password_strength(password: str) -> PasswordCheck:
    errors = []
    if len(password) < MIN_LENGTH:
        errors.append(f"Password must be at least {MIN_LENGTH} characters long")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain an uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain a lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain a number")
    if not _SPECIAL_RE.search(password):
        errors.append("Password must contain a special character")
    if re.search(r"\s", password):
        errors.append("Password must not contain spaces")

    return PasswordCheck(is_valid=not errors, errors=errors, strength=password_strength(password))


def generate_temporary_password(length: int = 12) -> str:
    symbols = "!@#$%^&*"
    pools = (string.ascii_lowercase, string.ascii_uppercase, string.digits, symbols)
    everything = "".join(pools)

    chars = [secrets.choice(pool) for pool in pools]
    chars += [secrets.choice(everything) for _ in range(max(length, len(pools)) - len(pools))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)
