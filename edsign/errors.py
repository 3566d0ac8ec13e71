"""Stable error taxonomy for edsign.

Every failure raised by the library is an ``EdSignError`` subclass carrying a
machine-readable ``code``. Transport failures while talking to a signer
subprocess (broken pipe, truncated read) are not wrapped and propagate as the
original ``OSError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


# Key material
EDSIGN_E_KEY_FORMAT = "EDSIGN_E_KEY_FORMAT"
EDSIGN_E_KEY_LENGTH = "EDSIGN_E_KEY_LENGTH"

# Signing
EDSIGN_E_SIGNING = "EDSIGN_E_SIGNING"
EDSIGN_E_SPAWN = "EDSIGN_E_SPAWN"
EDSIGN_E_EXTERNAL = "EDSIGN_E_EXTERNAL"

# Generic
EDSIGN_E_CONFIG = "EDSIGN_E_CONFIG"
EDSIGN_E_EMBED = "EDSIGN_E_EMBED"
EDSIGN_E_INTERNAL = "EDSIGN_E_INTERNAL"


@dataclass
class EdSignError(Exception):
    """Base edsign exception with stable error code."""

    message: str
    code: str = EDSIGN_E_INTERNAL
    details: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            d["details"] = self.details
        return d

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


@dataclass
class KeyFormatError(EdSignError):
    """Input is not a decodable PEM block."""

    code: str = EDSIGN_E_KEY_FORMAT


@dataclass
class KeyLengthError(EdSignError):
    """Decoded PEM contents are too short to hold the private scalar."""

    code: str = EDSIGN_E_KEY_LENGTH


@dataclass
class SigningError(EdSignError):
    code: str = EDSIGN_E_SIGNING


@dataclass
class SpawnError(EdSignError):
    """The signer executable could not be started."""

    code: str = EDSIGN_E_SPAWN


@dataclass
class ExternalSigningError(EdSignError):
    """The signer executable ran but did not produce a signature.

    ``stderr`` holds whatever the process wrote to standard error, decoded as
    UTF-8 with invalid sequences replaced.
    """

    code: str = EDSIGN_E_EXTERNAL
    stderr: str = ""
    returncode: Optional[int] = None

    def as_dict(self) -> Dict[str, Any]:
        d = super().as_dict()
        d["stderr"] = self.stderr
        d["returncode"] = self.returncode
        return d


@dataclass
class ConfigError(EdSignError):
    code: str = EDSIGN_E_CONFIG


@dataclass
class EmbedError(EdSignError):
    """The manifest-embedding SDK is unavailable or rejected the request."""

    code: str = EDSIGN_E_EMBED
