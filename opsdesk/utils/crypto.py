"""
Crypto utilities — bcrypt password hashing & Fernet symmetric encryption.

Password hashing:
  bcrypt ($2b$), with werkzeug hashes accepted for imported accounts.

Symmetric encryption (credential vault):
  `encrypt_secret` / `decrypt_secret` use Fernet (AES-128-CBC + HMAC-SHA256)
  keyed by ENCRYPTION_KEY (app config first, then environment).

  `seal` / `unseal` are the vault entry points: they encrypt when a key is
  configured and pass values through unchanged otherwise (local development).
  Sealed values carry an ``enc:`` prefix so rows written before a key was
  configured still read back.

  Generate a key with:
    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

import os

import bcrypt
from cryptography.fernet import Fernet, InvalidToken
from flask import current_app, has_app_context
from werkzeug.security import check_password_hash

SEALED_PREFIX = "enc:"
PLAIN_PREFIX = "raw:"


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt (12 rounds)."""
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify a plain-text password against its hash.

    Handles both bcrypt ($2b$/$2a$) and werkzeug (scrypt/pbkdf2) formats.
    """
    if not password_hash or plain_password is None:
        return False

    if password_hash.startswith(("$2b$", "$2a$")):
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8"),
        )

    return check_password_hash(password_hash, plain_password)


# ── Fernet symmetric encryption ──────────────────────────────────────────────


def _raw_key() -> str | None:
    if has_app_context() and current_app.config.get("ENCRYPTION_KEY"):
        return current_app.config["ENCRYPTION_KEY"]
    return os.getenv("ENCRYPTION_KEY")


def encryption_enabled() -> bool:
    return bool(_raw_key())


def _get_fernet() -> Fernet:
    """Return a Fernet instance keyed by ENCRYPTION_KEY.

    Raises RuntimeError if no key is configured.
    """
    raw_key = _raw_key()
    if not raw_key:
        raise RuntimeError(
            "ENCRYPTION_KEY is not set. "
            "Generate one with: python -c \""
            "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
        )
    return Fernet(raw_key.encode() if isinstance(raw_key, str) else raw_key)


def encrypt_secret(plaintext: str) -> str:
    """Encrypt a plaintext secret and return URL-safe base64 ciphertext.

    Raises:
        RuntimeError: If ENCRYPTION_KEY is not set.
    """
    return _get_fernet().encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt_secret(ciphertext: str) -> str:
    """Decrypt a Fernet-encrypted ciphertext back to plaintext.

    Raises:
        RuntimeError: If ENCRYPTION_KEY is not set.
        cryptography.fernet.InvalidToken: If ciphertext is tampered or
            encrypted with a different key.
    """
    return _get_fernet().decrypt(ciphertext.encode("utf-8")).decode("utf-8")


def seal(plaintext: str) -> str:
    """Encrypt for storage when a key is configured; otherwise store as-is.

    Without a key, plaintext that already starts with a marker prefix gets
    ``raw:`` in front so :func:`unseal` never mistakes it for ciphertext.
    """
    if plaintext is None:
        return plaintext
    if encryption_enabled():
        return SEALED_PREFIX + encrypt_secret(plaintext)
    if plaintext.startswith((SEALED_PREFIX, PLAIN_PREFIX)):
        return PLAIN_PREFIX + plaintext
    return plaintext


def unseal(stored: str) -> str:
    """Reverse of :func:`seal`. Unprefixed values are returned unchanged.

    Raises RuntimeError for a sealed value when no key is configured.
    """
    if not stored:
        return stored
    if stored.startswith(PLAIN_PREFIX):
        return stored[len(PLAIN_PREFIX):]
    if not stored.startswith(SEALED_PREFIX):
        return stored
    return decrypt_secret(stored[len(SEALED_PREFIX):])


__all__ = [
    "InvalidToken",
    "PLAIN_PREFIX",
    "SEALED_PREFIX",
    "decrypt_secret",
    "encrypt_secret",
    "encryption_enabled",
    "hash_password",
    "seal",
    "unseal",
    "verify_password",
]
