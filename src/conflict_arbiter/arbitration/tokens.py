"""Opaque token issuing for leases and shared-access grants."""

from __future__ import annotations

import secrets

from conflict_arbiter.core.constants import (
    READ_TOKEN_PREFIX,
    READ_TOKEN_SUFFIX_LENGTH,
    TOKEN_ALPHABET,
    TOKEN_LENGTH,
)


class TokenIssuer:
    """Mint short random tokens.

    Lease tokens are ``TOKEN_LENGTH`` characters from ``TOKEN_ALPHABET``.
    No collision check is made; callers only ever compare a token against
    the single lease of one object.
    """

    def __init__(self, length: int = TOKEN_LENGTH, alphabet: str = TOKEN_ALPHABET):
        if length <= 0:
            raise ValueError("token length must be positive")
        if "_" in alphabet:
            raise ValueError("token alphabet must not contain '_'")
        self.length = length
        self.alphabet = alphabet

    def lease_token(self) -> str:
        return "".join(secrets.choice(self.alphabet) for _ in range(self.length))

    def read_token(self) -> str:
        """Token echoed back on release of a shared access; it grants nothing."""
        return READ_TOKEN_PREFIX + secrets.token_hex(READ_TOKEN_SUFFIX_LENGTH // 2)

    @staticmethod
    def is_read_token(token: str | None) -> bool:
        return token is not None and token.startswith(READ_TOKEN_PREFIX)
