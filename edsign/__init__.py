"""edsign package.

Ed25519 detached signing over opaque byte buffers:

- PEM private key loading (edsign.keys)
- In-process signing and verification (edsign.crypto, edsign.signing)
- Out-of-process signing over stdin/stdout (edsign.external, edsign.signer_main)
- C2PA manifest embedding through a signing callback (edsign.manifest)

Convenience imports
------------------
The common entry points are available at the package root and are loaded
lazily:

    from edsign import load_key, sign, sign_via_subprocess
"""

from __future__ import annotations

import re
from importlib import import_module
from pathlib import Path
from typing import Any


def _read_version_from_pyproject() -> str | None:
    """Best-effort version discovery for dev/test environments."""

    try:
        pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"
        txt = pyproject.read_text(encoding="utf-8")
        m = re.search(r"^version\s*=\s*\"([^\"]+)\"\s*$", txt, flags=re.MULTILINE)
        return m.group(1) if m else None
    except Exception:
        return None


__version__ = (
    _read_version_from_pyproject()
    or "0.3.0"
)

__all__ = [
    "__version__",
    "PrivateKeyMaterial",
    "load_key",
    "load_key_from_file",
    "load_key_from_env",
    "sign",
    "verify",
    "sign_via_subprocess",
    "InProcessSigner",
    "ExternalCommandSigner",
    "build_signer_from_env",
    "SigningCallback",
    "embed_manifest",
    "EdSignError",
    "KeyFormatError",
    "KeyLengthError",
    "SigningError",
    "SpawnError",
    "ExternalSigningError",
]

# Lazy export map: name -> (module, attribute)
_LAZY_EXPORTS: dict[str, tuple[str, str]] = {
    "PrivateKeyMaterial": ("edsign.keys", "PrivateKeyMaterial"),
    "load_key": ("edsign.keys", "load_key"),
    "load_key_from_file": ("edsign.keys", "load_key_from_file"),
    "load_key_from_env": ("edsign.keys", "load_key_from_env"),
    "sign": ("edsign.crypto", "sign"),
    "verify": ("edsign.crypto", "verify"),
    "sign_via_subprocess": ("edsign.external", "sign_via_subprocess"),
    "InProcessSigner": ("edsign.signing", "InProcessSigner"),
    "ExternalCommandSigner": ("edsign.signing", "ExternalCommandSigner"),
    "build_signer_from_env": ("edsign.signing", "build_signer_from_env"),
    "SigningCallback": ("edsign.manifest", "SigningCallback"),
    "embed_manifest": ("edsign.manifest", "embed_manifest"),
    "EdSignError": ("edsign.errors", "EdSignError"),
    "KeyFormatError": ("edsign.errors", "KeyFormatError"),
    "KeyLengthError": ("edsign.errors", "KeyLengthError"),
    "SigningError": ("edsign.errors", "SigningError"),
    "SpawnError": ("edsign.errors", "SpawnError"),
    "ExternalSigningError": ("edsign.errors", "ExternalSigningError"),
}


def __getattr__(name: str) -> Any:
    if name in _LAZY_EXPORTS:
        module_name, attr = _LAZY_EXPORTS[name]
        module = import_module(module_name)
        value = getattr(module, attr)
        # Cache the resolved attribute on the module for faster future access.
        globals()[name] = value
        return value
    raise AttributeError(f"module 'edsign' has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(set(list(globals().keys()) + list(_LAZY_EXPORTS.keys())))
