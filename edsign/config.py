"""
edsign.config: configuration for the command-line programs.

Sources, highest priority first:
1) command-line flags (passed in as ``overrides``)
2) an optional JSON config file, validated against CONFIG_SCHEMA
3) environment variables (EDSIGN_*)

The private key is never part of the config itself; the config names where to
load it from.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import jsonschema

from .errors import ConfigError
from .keys import PrivateKeyMaterial, load_key_from_env, load_key_from_file
from .signing import ExternalCommandSigner, InProcessSigner, Signer


CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "private_key_file": {"type": "string", "minLength": 1},
        "signer_mode": {"enum": ["file", "external"]},
        "signer_cmd": {"type": "string", "minLength": 1},
        "signer_timeout_seconds": {"type": "number", "exclusiveMinimum": 0},
        "certs_file": {"type": "string", "minLength": 1},
        "tsa_url": {"type": "string", "minLength": 1},
        "verify_after_sign": {"type": "boolean"},
    },
}

_ENV_VARS: Dict[str, str] = {
    "private_key_file": "EDSIGN_PRIVATE_KEY_FILE",
    "signer_mode": "EDSIGN_SIGNER_MODE",
    "signer_cmd": "EDSIGN_SIGNER_CMD",
    "signer_timeout_seconds": "EDSIGN_SIGNER_TIMEOUT_SECONDS",
    "certs_file": "EDSIGN_CERTS_FILE",
    "tsa_url": "EDSIGN_TSA_URL",
}


@dataclass
class EdSignConfig:
    private_key_file: Optional[str] = None
    signer_mode: str = "file"
    signer_cmd: Optional[str] = None
    signer_timeout_seconds: Optional[float] = None
    certs_file: Optional[str] = None
    tsa_url: Optional[str] = None
    verify_after_sign: bool = False


def validate_config(obj: Any) -> None:
    """Raise ConfigError listing every schema violation in ``obj``."""
    validator = jsonschema.Draft202012Validator(CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(obj), key=lambda e: list(e.absolute_path))
    if errors:
        problems = []
        for e in errors:
            loc = "/".join(str(p) for p in e.absolute_path) or "<root>"
            problems.append(f"{loc}: {e.message}")
        raise ConfigError("invalid config: " + "; ".join(problems), details={"errors": problems})


def load_config(config_path: Optional[Path]) -> Dict[str, Any]:
    """Load and validate a JSON config file. Missing path means empty config."""
    if config_path is None:
        return {}
    try:
        with open(config_path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file '{config_path}': {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config file '{config_path}': {e}") from e
    validate_config(data)
    return data


def _env_config() -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for name, env_var in _ENV_VARS.items():
        val = (os.getenv(env_var, "") or "").strip()
        if not val:
            continue
        if name == "signer_timeout_seconds":
            try:
                out[name] = float(val)
            except ValueError:
                raise ConfigError(f"{env_var} must be a number (seconds)")
        elif name == "signer_mode":
            out[name] = val.lower()
        else:
            out[name] = val
    return out


def resolve_config(
    file_config: Optional[Dict[str, Any]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> EdSignConfig:
    """Merge environment, config file and flag overrides into EdSignConfig."""
    merged: Dict[str, Any] = _env_config()
    merged.update(file_config or {})
    merged.update({k: v for k, v in (overrides or {}).items() if v is not None})

    known = {f.name for f in fields(EdSignConfig)}
    unknown = sorted(set(merged) - known)
    if unknown:
        raise ConfigError(f"unknown config keys: {', '.join(unknown)}")

    cfg = EdSignConfig(**merged)
    if cfg.signer_mode not in ("file", "external"):
        raise ConfigError(f"Unsupported signer_mode={cfg.signer_mode!r}; expected file|external")
    if cfg.signer_mode == "external" and not cfg.signer_cmd:
        raise ConfigError("signer_cmd must be set when signer_mode=external")
    return cfg


def load_configured_key(cfg: EdSignConfig) -> Optional[PrivateKeyMaterial]:
    if cfg.private_key_file:
        return load_key_from_file(cfg.private_key_file)
    return load_key_from_env()


def build_signer(cfg: EdSignConfig) -> Signer:
    """Build the signer described by ``cfg``."""
    key = load_configured_key(cfg)
    if cfg.signer_mode == "external":
        return ExternalCommandSigner(
            command=cfg.signer_cmd or "",
            public_key_bytes=key.public_key_bytes if key is not None else None,
            timeout_seconds=cfg.signer_timeout_seconds,
        )
    if key is None:
        raise ConfigError(
            "no signing key configured (use --key, private_key_file, "
            "EDSIGN_PRIVATE_KEY_PEM or EDSIGN_PRIVATE_KEY_FILE)"
        )
    return InProcessSigner(key)
