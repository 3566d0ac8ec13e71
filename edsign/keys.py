"""
edsign.keys: Ed25519 private key material loading.

The private key travels as a PEM block wrapping a PKCS#8 structure. For
Ed25519 that structure is a fixed 16-byte header followed by the 32-byte
private scalar, so loading is a plain slice of the decoded contents:

    contents[0:16]   structural header (skipped, not validated)
    contents[16:48]  raw private scalar

Keys are supplied at startup by one of the loaders below (PEM bytes, a file,
or environment variables). Nothing in the package embeds a key.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
import re
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from .errors import KeyFormatError, KeyLengthError, SigningError

logger = logging.getLogger("edsign.keys")

PEM_HEADER_LEN = 16
PRIVATE_KEY_LEN = 32
MIN_PEM_CONTENTS_LEN = PEM_HEADER_LEN + PRIVATE_KEY_LEN

# DER prefix of a PKCS#8 Ed25519 private key (OID 1.3.101.112).
PKCS8_ED25519_PREFIX = bytes.fromhex("302e020100300506032b657004220420")

DEFAULT_PEM_ENV = "EDSIGN_PRIVATE_KEY_PEM"
DEFAULT_FILE_ENV = "EDSIGN_PRIVATE_KEY_FILE"

_PEM_RE = re.compile(
    r"-----BEGIN (?P<label>[A-Z0-9 ]+)-----(?P<body>.*?)-----END (?P=label)-----",
    re.DOTALL,
)


@dataclass(frozen=True)
class PrivateKeyMaterial:
    """Raw 32-byte Ed25519 private scalar.

    The repr never shows the secret.
    """

    secret: bytes = field(repr=False)

    @property
    def public_key_bytes(self) -> bytes:
        try:
            private_key = Ed25519PrivateKey.from_private_bytes(self.secret)
        except (TypeError, ValueError) as e:
            raise SigningError(f"malformed private key material: {e}") from e
        return private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @property
    def public_key_hex(self) -> str:
        return self.public_key_bytes.hex()


def decode_pem(pem_bytes: Union[bytes, str]) -> bytes:
    """Return the binary contents of the first PEM block in ``pem_bytes``."""
    if isinstance(pem_bytes, (bytes, bytearray)):
        try:
            text = bytes(pem_bytes).decode("ascii")
        except UnicodeDecodeError as e:
            raise KeyFormatError("PEM input is not ASCII text") from e
    else:
        text = str(pem_bytes)

    m = _PEM_RE.search(text)
    if not m:
        raise KeyFormatError("no PEM block found (missing or mismatched BEGIN/END lines)")

    body = "".join(m.group("body").split())
    try:
        return base64.b64decode(body.encode("ascii"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyFormatError(f"PEM body is not valid base64: {e}") from e


def load_key(pem_bytes: Union[bytes, str]) -> PrivateKeyMaterial:
    """Load Ed25519 private key material from a PEM block.

    Raises KeyFormatError if the input is not PEM, KeyLengthError if the
    decoded contents are shorter than 48 bytes.
    """
    contents = decode_pem(pem_bytes)
    if len(contents) < MIN_PEM_CONTENTS_LEN:
        raise KeyLengthError(
            f"decoded PEM contents must be at least {MIN_PEM_CONTENTS_LEN} bytes, got {len(contents)}",
            details={"length": len(contents)},
        )

    # The header is skipped without validation; a same-length header of the
    # wrong structure yields a wrong key rather than an error.
    if contents[:PEM_HEADER_LEN] != PKCS8_ED25519_PREFIX:
        logger.warning("PEM header is not a PKCS#8 Ed25519 prefix; using bytes [16:48) anyway")

    return PrivateKeyMaterial(secret=contents[PEM_HEADER_LEN:MIN_PEM_CONTENTS_LEN])


def load_key_from_file(path: Union[str, Path]) -> PrivateKeyMaterial:
    """Load a PEM private key file.

    Loose file permissions are reported but do not block loading.
    """
    key_path = Path(path)
    try:
        mode = key_path.stat().st_mode
        if mode & (stat.S_IRWXG | stat.S_IRWXO):
            logger.warning(
                "Key file %s has insecure permissions %s; run: chmod 600 %s",
                key_path, oct(mode & 0o777), key_path,
            )
    except OSError:
        pass  # the read below reports a missing file

    return load_key(key_path.read_bytes())


def load_key_from_env(
    pem_env: str = DEFAULT_PEM_ENV,
    file_env: str = DEFAULT_FILE_ENV,
) -> Optional[PrivateKeyMaterial]:
    """Load the signing key from environment variables.

    Priority:
    1) PEM text in ``pem_env``
    2) Path to a PEM file in ``file_env``

    Returns None if neither is set. Malformed material raises.
    """
    pem_text = (os.getenv(pem_env, "") or "").strip()
    if pem_text:
        return load_key(pem_text.encode("ascii", errors="replace"))

    key_file = (os.getenv(file_env, "") or "").strip()
    if key_file:
        return load_key_from_file(key_file)

    return None


def generate_key_pem() -> bytes:
    """Generate a new Ed25519 private key as unencrypted PKCS#8 PEM."""
    private_key = Ed25519PrivateKey.generate()
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def pem_from_secret(secret: bytes, label: str = "PRIVATE KEY") -> bytes:
    """Wrap a 32-byte scalar in a PKCS#8 Ed25519 PEM block."""
    if len(secret) != PRIVATE_KEY_LEN:
        raise KeyLengthError(f"secret must be {PRIVATE_KEY_LEN} bytes, got {len(secret)}")
    b64 = base64.b64encode(PKCS8_ED25519_PREFIX + bytes(secret)).decode("ascii")
    lines = [b64[i:i + 64] for i in range(0, len(b64), 64)]
    return ("\n".join([f"-----BEGIN {label}-----", *lines, f"-----END {label}-----"]) + "\n").encode("ascii")
