"""Infrastructure components for Cadence.

- Token encryption at rest
- PKCE verifier/challenge generation
"""

from cadence_core.infrastructure.crypto import (
    DecryptionError,
    InvalidKeyError,
    TokenCipher,
)
from cadence_core.infrastructure.pkce import PkceGenerator, challenge

__all__ = [
    "DecryptionError",
    "InvalidKeyError",
    "PkceGenerator",
    "TokenCipher",
    "challenge",
]
