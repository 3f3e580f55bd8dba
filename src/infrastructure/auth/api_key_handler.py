"""
API key generation and hashing using Argon2id.

Keys look like ``nm_{environment}_{pk|sk|sr}_{random}``. Only the salted
Argon2id hash is persisted; the plaintext is shown to the caller once.
"""

from __future__ import annotations

import secrets

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from domain.models.api_key import ApiKeyType

KEY_PREFIX = "nm"
PREVIEW_LENGTH = 20


class ApiKeyHandler:
    """
    Generates API keys and wraps argon2-cffi for hashing them.

    Cost parameters default to the OWASP interactive-login profile; tests
    pass cheaper values.
    """

    def __init__(
        self,
        time_cost: int = 3,
        memory_cost: int = 65536,
        parallelism: int = 4,
        random_bytes: int = 24,
    ) -> None:
        self._hasher = PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            type=Type.ID,
        )
        self._random_bytes = random_bytes

    def generate_key(self, environment: str, key_type: ApiKeyType) -> str:
        return f"{KEY_PREFIX}_{environment}_{key_type.short_code}_{secrets.token_hex(self._random_bytes)}"

    def hash_key(self, plain_key: str) -> str:
        return self._hasher.hash(plain_key)

    def verify_key(self, plain_key: str, key_hash: str) -> bool:
        """Return ``True`` on match, ``False`` on mismatch or malformed hash."""
        try:
            return self._hasher.verify(key_hash, plain_key)
        except (VerifyMismatchError, VerificationError, InvalidHashError):
            return False

    @staticmethod
    def preview(plain_key: str) -> str:
        return plain_key[:PREVIEW_LENGTH]
