"""
edsign.crypto: Ed25519 detached signatures over opaque byte buffers.

The payload is signed exactly as given. Ed25519 is deterministic, so the same
key and payload always produce the same 64-byte signature.
"""

from __future__ import annotations

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey, Ed25519PublicKey
)

from .errors import SigningError
from .keys import PrivateKeyMaterial

SIGNATURE_LEN = 64
PUBLIC_KEY_LEN = 32


def sign(payload: bytes, key: PrivateKeyMaterial) -> bytes:
    """Sign ``payload`` with ``key`` and return the 64-byte signature."""
    try:
        private_key = Ed25519PrivateKey.from_private_bytes(key.secret)
    except (TypeError, ValueError) as e:
        raise SigningError(f"malformed private key material: {e}") from e
    return private_key.sign(bytes(payload))


def verify(payload: bytes, signature: bytes, public_key_bytes: bytes) -> bool:
    """Verify a detached signature against a raw 32-byte public key."""
    if len(public_key_bytes) != PUBLIC_KEY_LEN or len(signature) != SIGNATURE_LEN:
        return False
    try:
        public_key = Ed25519PublicKey.from_public_bytes(bytes(public_key_bytes))
        public_key.verify(bytes(signature), bytes(payload))
        return True
    except InvalidSignature:
        return False
