"""PKCE (RFC 7636) verifier and challenge generation.

Verifiers carry 256 bits of CSPRNG output. The random source is injectable so
tests can pin it; production code must keep the ``secrets`` default.
"""

import base64
import hashlib
import secrets
from typing import Callable

# 32 bytes -> 43 base64url characters, inside RFC 7636's 43..128 range
VERIFIER_BYTES = 32
STATE_BYTES = 32

CHALLENGE_METHOD = "S256"


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def challenge(verifier: str) -> str:
    """Return the S256 code challenge for ``verifier``."""
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


class PkceGenerator:
    """Produces verifiers and anti-forgery state nonces.

    Args:
        token_bytes: Callable returning ``n`` random bytes.
    """

    def __init__(self, token_bytes: Callable[[int], bytes] = secrets.token_bytes):
        self._token_bytes = token_bytes

    def new_verifier(self) -> str:
        return _b64url(self._token_bytes(VERIFIER_BYTES))

    def new_state(self) -> str:
        return _b64url(self._token_bytes(STATE_BYTES))

    def new_pair(self) -> tuple[str, str]:
        """Return ``(verifier, challenge)``."""
        verifier = self.new_verifier()
        return verifier, challenge(verifier)
