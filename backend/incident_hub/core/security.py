"""Password hashing and credential helpers."""

import bcrypt

from incident_hub.config import settings

# bcrypt only considers the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72
MIN_PASSWORD_LENGTH = 6


def hash_password(password: str) -> str:
    """Hash a password with bcrypt using the configured cost factor."""
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    hashed = bcrypt.hashpw(password.encode("utf-8")[:MAX_PASSWORD_BYTES], salt)
    return hashed.decode("utf-8")


def verify_password(password: str, hashed_password: str) -> bool:
    """Check a password against a stored bcrypt hash."""
    try:
        return bcrypt.checkpw(
            password.encode("utf-8")[:MAX_PASSWORD_BYTES],
            hashed_password.encode("utf-8"),
        )
    except ValueError:
        # Malformed stored hash
        return False


def mask_email(email: str) -> str:
    """
    Mask an email address for logging purposes.

    Example: jane.doe@example.com -> ja****@example.com
    """
    if not email or "@" not in email:
        return "****"
    local, domain = email.split("@", 1)
    return f"{local[:2]}****@{domain}"
