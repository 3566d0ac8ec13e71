import json

import pytest

from edsign.config import (
    EdSignConfig,
    build_signer,
    load_config,
    resolve_config,
    validate_config,
)
from edsign.errors import ConfigError
from edsign.signing import ExternalCommandSigner, InProcessSigner

from conftest import RFC8032_PUBLIC_HEX

_ENV = (
    "EDSIGN_PRIVATE_KEY_PEM",
    "EDSIGN_PRIVATE_KEY_FILE",
    "EDSIGN_SIGNER_MODE",
    "EDSIGN_SIGNER_CMD",
    "EDSIGN_SIGNER_TIMEOUT_SECONDS",
    "EDSIGN_CERTS_FILE",
    "EDSIGN_TSA_URL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)


def test_load_config_missing_path_is_empty():
    assert load_config(None) == {}


def test_load_config_valid(tmp_path):
    p = tmp_path / "config.json"
    p.write_text(json.dumps({"signer_mode": "external", "signer_cmd": "edsign-signer", "signer_timeout_seconds": 3}))
    assert load_config(p)["signer_cmd"] == "edsign-signer"


def test_load_config_invalid_json(tmp_path):
    p = tmp_path / "config.json"
    p.write_text("{oops")
    with pytest.raises(ConfigError) as ei:
        load_config(p)
    assert "Invalid JSON" in ei.value.message


def test_load_config_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.json")


def test_schema_rejects_unknown_keys_and_bad_types():
    with pytest.raises(ConfigError) as ei:
        validate_config({"signer_mode": "hsm", "private_key": "inline secrets are not allowed", "signer_timeout_seconds": -1})
    problems = ei.value.details["errors"]
    assert len(problems) == 3


def test_resolve_priority_flags_over_file_over_env(monkeypatch):
    monkeypatch.setenv("EDSIGN_SIGNER_CMD", "from-env")
    monkeypatch.setenv("EDSIGN_TSA_URL", "http://env.tsa")
    cfg = resolve_config(
        {"signer_mode": "external", "signer_cmd": "from-file"},
        {"signer_cmd": "from-flag", "tsa_url": None},
    )
    assert cfg.signer_mode == "external"
    assert cfg.signer_cmd == "from-flag"
    assert cfg.tsa_url == "http://env.tsa"


def test_resolve_env_timeout_must_be_numeric(monkeypatch):
    monkeypatch.setenv("EDSIGN_SIGNER_TIMEOUT_SECONDS", "later")
    with pytest.raises(ConfigError):
        resolve_config()


def test_resolve_external_requires_cmd():
    with pytest.raises(ConfigError):
        resolve_config({"signer_mode": "external"})


def test_build_signer_in_process_from_key_file(tmp_path, rfc_pem):
    key = tmp_path / "key.pem"
    key.write_bytes(rfc_pem)
    key.chmod(0o600)
    signer = build_signer(EdSignConfig(private_key_file=str(key)))
    assert isinstance(signer, InProcessSigner)
    assert signer.public_key_hex == RFC8032_PUBLIC_HEX


def test_build_signer_without_key_fails():
    with pytest.raises(ConfigError):
        build_signer(EdSignConfig())


def test_build_signer_external_without_local_key():
    signer = build_signer(EdSignConfig(signer_mode="external", signer_cmd="edsign-signer", signer_timeout_seconds=2.0))
    assert isinstance(signer, ExternalCommandSigner)
    assert signer.public_key_bytes is None
    assert signer.timeout_seconds == 2.0
