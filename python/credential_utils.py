"""
Credential helpers for distributor account provisioning.

- bcrypt password hashing with a configurable cost factor
- cryptographically random password generation
- deterministic username derivation from an application id
"""

import secrets
import string
import uuid
from typing import Callable, Iterator, Union

import bcrypt

MASKED_PASSWORD = "••••••••"

# Alphanumeric only so generated passwords survive copy/paste from email
PASSWORD_ALPHABET = string.ascii_letters + string.digits


def hash_password(password: str, rounds: int = 10) -> str:
    """Hash a password with bcrypt.

    Args:
        password: Plain-text password
        rounds: bcrypt cost factor (4-31)

    Returns:
        The encoded bcrypt hash as text
    """
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a plain-text password against a stored bcrypt hash."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # malformed hash
        return False


def generate_password(length: int = 12) -> str:
    """Generate a random password of the given length."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(length))


def _hex_id(application_id: Union[str, uuid.UUID]) -> str:
    if isinstance(application_id, uuid.UUID):
        return application_id.hex
    return str(application_id).replace("-", "").lower()


def username_candidates(
    application_id: Union[str, uuid.UUID],
    prefix: str = "dist_",
) -> Iterator[str]:
    """Yield usernames derived from an application id, shortest first.

    The first candidate uses the last 8 hex characters of the id. Longer
    suffixes follow so a collision on the short form still resolves to a
    name tied to the same application.
    """
    hex_id = _hex_id(application_id)
    seen = set()
    for width in (8, 12, len(hex_id)):
        candidate = f"{prefix}{hex_id[-width:]}"
        if candidate not in seen:
            seen.add(candidate)
            yield candidate


def derive_username(
    application_id: Union[str, uuid.UUID],
    is_taken: Callable[[str], bool],
    prefix: str = "dist_",
) -> str:
    """Pick the first derived username that is not already taken.

    Raises:
        ValueError: If every candidate is taken
    """
    for candidate in username_candidates(application_id, prefix):
        if not is_taken(candidate):
            return candidate
    raise ValueError(f"No free username for application {application_id}")


def random_username(prefix: str = "dist_") -> str:
    """Random username used when credentials are reset."""
    return f"{prefix}{secrets.token_hex(4)}"


def split_full_name(full_name: str):
    """Split a full name into (first, last) for the distributor profile.

    First name is the text before the first whitespace; last name is the
    remainder. Blank names fall back to "Unknown"/"Distributor".
    """
    parts = (full_name or "").split()
    if not parts:
        return "Unknown", "Distributor"
    first = parts[0]
    last = " ".join(parts[1:]) or "Distributor"
    return first, last
