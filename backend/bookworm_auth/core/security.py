"""Security helpers for password hashing, opaque tokens, and CSRF signing."""
from __future__ import annotations

import secrets

from itsdangerous import BadSignature, URLSafeSerializer
from passlib.context import CryptContext

from .config import Settings


class PasswordHasher:
    """Hash and verify user passwords using Argon2id with a tunable work factor."""

    def __init__(self, rounds: int = 3, memory_kib: int = 65536) -> None:
        self._context = CryptContext(
            schemes=["argon2"],
            deprecated="auto",
            argon2__rounds=rounds,
            argon2__memory_cost=memory_kib,
        )
        self._dummy_hash: str | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "PasswordHasher":
        return cls(rounds=settings.password_hash_rounds, memory_kib=settings.password_hash_memory_kib)

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, hashed: str | None) -> bool:
        if not hashed:
            return False
        try:
            return self._context.verify(password, hashed)
        except (ValueError, TypeError):
            # Unrecognised or corrupted hash
            return False

    def dummy_verify(self, password: str) -> bool:
        """Spend a verification's worth of CPU when there is no stored hash to check."""
        if self._dummy_hash is None:
            self._dummy_hash = self._context.hash(secrets.token_hex(16))
        self._context.verify(password, self._dummy_hash)
        return False


class TokenGenerator:
    """Cryptographically random, hex-encoded opaque tokens."""

    SESSION_BYTES = 32
    CSRF_BYTES = 16
    VERIFICATION_BYTES = 32

    def generate(self, byte_length: int = 32) -> str:
        if byte_length < 16:
            raise ValueError("Tokens need at least 128 bits of entropy")
        return secrets.token_hex(byte_length)


class CsrfSigner:
    """Sign a session's CSRF secret for the double-submit header."""

    def __init__(self, secret_key: str, salt: str = "bookworm-csrf") -> None:
        self._serializer = URLSafeSerializer(secret_key, salt=salt)

    def dumps(self, csrf_secret: str) -> str:
        return self._serializer.dumps(csrf_secret)

    def loads(self, token: str) -> str:
        try:
            value = self._serializer.loads(token)
        except BadSignature as exc:
            raise ValueError("Invalid CSRF token") from exc
        if not isinstance(value, str):
            raise ValueError("Invalid CSRF token")
        return value
