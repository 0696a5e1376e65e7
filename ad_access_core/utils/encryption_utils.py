"""
Encryption utilities for token storage.

Handles cross-database encryption (PostgreSQL pgcrypto, SQLite plaintext for
testing). Keys are derived per principal and platform so a leaked key for one
principal does not open another's tokens.
"""

from typing import Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from ..config import get_config


def _key_for(principal_id: str, key_suffix: str) -> str:
    secret = get_config().security.encryption_key or ""
    parts = [p for p in (secret, principal_id, key_suffix) if p]
    return "_".join(parts)


def encrypt_value(session: Session, value: str, principal_id: str, key_suffix: str = "") -> bytes:
    """
    Encrypt a value using database-specific encryption.

    Args:
        session: Database session
        value: Value to encrypt
        principal_id: Owner of the value, mixed into the key
        key_suffix: Additional key suffix for different data types

    Returns:
        Encrypted bytes
    """
    if session.bind.dialect.name == "postgresql":
        return session.execute(
            text("SELECT pgp_sym_encrypt(:data, :key)"),
            {"data": value, "key": _key_for(principal_id, key_suffix)},
        ).scalar()

    # SQLite for testing
    return value.encode() if isinstance(value, str) else value


def decrypt_value(
    session: Session, encrypted_value: Optional[bytes], principal_id: str, key_suffix: str = ""
) -> Optional[str]:
    """Decrypt a value produced by encrypt_value with the same key inputs."""
    if not encrypted_value:
        return None

    if session.bind.dialect.name == "postgresql":
        return session.execute(
            text("SELECT pgp_sym_decrypt(:data, :key)"),
            {"data": encrypted_value, "key": _key_for(principal_id, key_suffix)},
        ).scalar()

    if isinstance(encrypted_value, bytes):
        return encrypted_value.decode()
    return encrypted_value


def encrypt_token(session: Session, token: str, principal_id: str, platform: str) -> bytes:
    """Encrypt a platform token with principal and platform isolation."""
    return encrypt_value(session, token, principal_id, f"token_{platform}")


def decrypt_token(
    session: Session, encrypted: Optional[bytes], principal_id: str, platform: str
) -> Optional[str]:
    return decrypt_value(session, encrypted, principal_id, f"token_{platform}")
