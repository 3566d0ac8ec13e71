import os
import sys
from pathlib import Path

import pytest

from edsign.keys import load_key, pem_from_secret

REPO_ROOT = Path(__file__).resolve().parents[1]
FIXTURES = Path(__file__).parent / "fixtures"

# RFC 8032, section 7.1, TEST 1 (empty message)
RFC8032_SECRET_HEX = "9d61b19deffd5a60ba844af492ec2cc44449c5697b326919703bac031cae7f60"
RFC8032_PUBLIC_HEX = "d75a980182b10ab7d54bfed3c964073a0ee172f3daa62325af021a68f707511a"
RFC8032_SIGNATURE_HEX = (
    "e5564300c360ac729086e2cc806e828a84877f1eb8e5d974d873e065224901555fb8821590a33bacc61e39701cf9b46bd25bf5f0595bbe24655141438e7a100b"
)


@pytest.fixture
def rfc_pem() -> bytes:
    return pem_from_secret(bytes.fromhex(RFC8032_SECRET_HEX))


@pytest.fixture
def rfc_key(rfc_pem):
    return load_key(rfc_pem)


@pytest.fixture
def signer_env(rfc_pem):
    """Environment for running the bundled signer process against the test key."""
    env = dict(os.environ)
    env.pop("EDSIGN_PRIVATE_KEY_FILE", None)
    env["EDSIGN_PRIVATE_KEY_PEM"] = rfc_pem.decode("ascii")
    env["PYTHONPATH"] = os.pathsep.join(p for p in [str(REPO_ROOT), env.get("PYTHONPATH", "")] if p)
    return env


@pytest.fixture
def signer_cmd():
    return [sys.executable, "-m", "edsign.signer_main"]


def fixture_cmd(name: str) -> list:
    return [sys.executable, str(FIXTURES / name)]
