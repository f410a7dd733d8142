from __future__ import annotations

from passlib.context import CryptContext

# argon2 is preferred; pbkdf2_sha256 hashes still verify and are upgraded on login.
pwd_context = CryptContext(
    schemes=["argon2", "pbkdf2_sha256"],
    deprecated="auto",
    pbkdf2_sha256__default_rounds=120000,
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_and_upgrade(password: str, hashed: str) -> tuple[bool, str | None]:
    """Return (valid, replacement_hash); the replacement is set when the stored scheme is deprecated."""
    return pwd_context.verify_and_update(password, hashed)
