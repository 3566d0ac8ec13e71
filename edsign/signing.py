"""
edsign.signing: signing backends behind one small interface.

- InProcessSigner: signs with key material held by this process.
- ExternalCommandSigner: delegates to a signer executable over stdin/stdout,
  so the private key can live outside the Python process (HSM wrapper,
  enclave daemon, or the bundled ``edsign-signer``).

All modes fail closed: any signer error propagates and no signature is
produced.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Protocol, Sequence, Union, runtime_checkable

from . import crypto
from .errors import ConfigError, ExternalSigningError
from .external import sign_via_subprocess
from .keys import PrivateKeyMaterial


@runtime_checkable
class Signer(Protocol):
    """Protocol implemented by signing backends."""

    @property
    def public_key_bytes(self) -> Optional[bytes]: ...

    def sign(self, message: bytes) -> bytes: ...


@dataclass
class InProcessSigner:
    """Signer that wraps loaded PrivateKeyMaterial."""

    key: PrivateKeyMaterial

    @property
    def public_key_bytes(self) -> bytes:
        return self.key.public_key_bytes

    @property
    def public_key_hex(self) -> str:
        return self.key.public_key_hex

    def sign(self, message: bytes) -> bytes:
        return crypto.sign(message, self.key)


@dataclass
class ExternalCommandSigner:
    """Signer that delegates to an external signing command.

    ``public_key_bytes`` is optional; the command holds the private key and
    the caller may not know the public half.
    """

    command: Union[str, Sequence[str]]
    public_key_bytes: Optional[bytes] = None
    timeout_seconds: Optional[float] = None
    env: Optional[Mapping[str, str]] = field(default=None, repr=False)

    @property
    def public_key_hex(self) -> Optional[str]:
        return self.public_key_bytes.hex() if self.public_key_bytes is not None else None

    def sign(self, message: bytes) -> bytes:
        sig = sign_via_subprocess(
            self.command,
            bytes(message),
            env=self.env,
            timeout_seconds=self.timeout_seconds,
        )
        if len(sig) != crypto.SIGNATURE_LEN:
            raise ExternalSigningError(
                f"signer returned invalid Ed25519 signature length: {len(sig)} bytes",
                details={"length": len(sig)},
            )
        return sig


def coerce_signer(obj: Any) -> Signer:
    """Coerce a supported object into a Signer."""
    if obj is None:
        raise TypeError("signer is None")
    if isinstance(obj, PrivateKeyMaterial):
        return InProcessSigner(obj)
    if isinstance(obj, (InProcessSigner, ExternalCommandSigner)):
        return obj
    # Duck-typed
    if isinstance(obj, Signer):
        return obj
    raise TypeError(f"Unsupported signer type: {type(obj)}")


def build_signer_from_env(
    key: Optional[PrivateKeyMaterial] = None,
    *,
    mode_env: str = "EDSIGN_SIGNER_MODE",
    cmd_env: str = "EDSIGN_SIGNER_CMD",
    timeout_env: str = "EDSIGN_SIGNER_TIMEOUT_SECONDS",
) -> Signer:
    """Build a signer based on environment configuration.

    - EDSIGN_SIGNER_MODE=file (default): sign in-process with ``key``.
    - EDSIGN_SIGNER_MODE=external: run EDSIGN_SIGNER_CMD. The public key is
      taken from ``key`` when one is given.
    """
    mode = (os.getenv(mode_env, "") or "file").strip().lower()

    if mode in ("file", "inproc", "in-process", "software"):
        if key is None:
            raise ConfigError(f"{mode_env}={mode} requires a private key")
        return InProcessSigner(key)

    if mode in ("external", "cmd", "command"):
        cmd = (os.getenv(cmd_env, "") or "").strip()
        if not cmd:
            raise ConfigError(f"{cmd_env} must be set when {mode_env}=external")
        tout = (os.getenv(timeout_env, "") or "").strip()
        timeout: Optional[float] = None
        if tout:
            try:
                timeout = float(tout)
            except ValueError:
                raise ConfigError(f"{timeout_env} must be a number (seconds)")
        return ExternalCommandSigner(
            command=cmd,
            public_key_bytes=key.public_key_bytes if key is not None else None,
            timeout_seconds=timeout,
        )

    raise ConfigError(f"Unsupported {mode_env}={mode!r}; expected file|external")
