import os
import sys
import time

import pytest

from edsign.crypto import sign, verify
from edsign.errors import ExternalSigningError, SpawnError
from edsign.external import sign_via_subprocess
from edsign.signing import ExternalCommandSigner

from conftest import FIXTURES, RFC8032_SIGNATURE_HEX, fixture_cmd


def test_subprocess_matches_in_process(rfc_key, signer_cmd, signer_env):
    payload = b"bytes to be signed by the claim generator"
    sig = sign_via_subprocess(signer_cmd, payload, env=signer_env)
    assert sig == sign(payload, rfc_key)
    assert verify(payload, sig, rfc_key.public_key_bytes)


def test_subprocess_empty_payload(signer_cmd, signer_env):
    sig = sign_via_subprocess(signer_cmd, b"", env=signer_env)
    assert sig.hex() == RFC8032_SIGNATURE_HEX


def test_subprocess_large_payload(rfc_key, signer_cmd, signer_env):
    payload = os.urandom(4 * 1024 * 1024)
    sig = sign_via_subprocess(signer_cmd, payload, env=signer_env)
    assert sig == sign(payload, rfc_key)


def test_streaming_child_does_not_deadlock():
    # The child writes output while input is still arriving.
    payload = os.urandom(3 * 1024 * 1024 + 7)
    out = sign_via_subprocess(fixture_cmd("echo_signer.py"), payload, timeout_seconds=60)
    assert out == payload


def test_nonexistent_executable_raises_spawn_error(tmp_path):
    with pytest.raises(SpawnError) as ei:
        sign_via_subprocess(str(tmp_path / "no-such-signer"), b"payload")
    assert ei.value.code == "EDSIGN_E_SPAWN"


def test_non_executable_file_raises_spawn_error(tmp_path):
    script = tmp_path / "not_executable.sh"
    script.write_text("#!/bin/sh\nexit 0\n")
    script.chmod(0o644)
    with pytest.raises(SpawnError):
        sign_via_subprocess(script, b"payload")


def test_empty_command_raises_spawn_error():
    with pytest.raises(SpawnError):
        sign_via_subprocess("   ", b"payload")
    with pytest.raises(SpawnError):
        sign_via_subprocess([], b"payload")


def test_failing_signer_raises_external_signing_error_with_stderr():
    with pytest.raises(ExternalSigningError) as ei:
        sign_via_subprocess(fixture_cmd("failing_signer.py"), b"payload")
    err = ei.value
    assert "boom" in err.stderr
    assert "boom" in str(err)
    assert err.returncode == 1
    assert err.as_dict()["stderr"].strip() == "boom"


def test_command_string_is_split_with_shlex():
    cmd = f"{sys.executable} {FIXTURES / 'failing_signer.py'}"
    with pytest.raises(ExternalSigningError) as ei:
        sign_via_subprocess(cmd, b"payload")
    assert "boom" in ei.value.stderr


def test_invalid_utf8_in_stderr_is_replaced(tmp_path):
    script = tmp_path / "bad_stderr.py"
    script.write_text(
        "import sys\n"
        "sys.stdin.buffer.read()\n"
        "sys.stderr.buffer.write(b'boom \\xff\\xfe')\n"
        "raise SystemExit(3)\n"
    )
    with pytest.raises(ExternalSigningError) as ei:
        sign_via_subprocess([sys.executable, str(script)], b"")
    assert ei.value.stderr.startswith("boom ")
    assert "�" in ei.value.stderr
    assert ei.value.returncode == 3


def test_write_failure_propagates_as_os_error():
    # The child exits 0 without reading, so the payload write hits a closed pipe.
    payload = b"\x00" * (8 * 1024 * 1024)
    with pytest.raises(OSError):
        sign_via_subprocess(fixture_cmd("early_exit_signer.py"), payload)


def test_write_failure_wins_over_nonzero_exit():
    # The child fails before reading; the broken pipe is what the caller sees,
    # with the child's exit status and stderr chained behind it.
    payload = b"\x00" * (8 * 1024 * 1024)
    with pytest.raises(OSError) as ei:
        sign_via_subprocess(fixture_cmd("early_failing_signer.py"), payload)
    cause = ei.value.__cause__
    assert isinstance(cause, ExternalSigningError)
    assert cause.returncode == 1
    assert "boom" in cause.stderr


def test_unparseable_command_string_raises_spawn_error():
    with pytest.raises(SpawnError) as ei:
        sign_via_subprocess("signer 'unterminated", b"payload")
    assert "cannot be parsed" in ei.value.message


def test_timeout_kills_grandchildren_holding_pipes():
    # The shell forks `sleep`, which inherits stdout/stderr.
    start = time.monotonic()
    with pytest.raises(ExternalSigningError) as ei:
        sign_via_subprocess(["sh", "-c", "sleep 8; exit 0"], b"x", timeout_seconds=0.5)
    assert time.monotonic() - start < 4
    assert "timed out" in ei.value.message


def test_timeout_kills_child_and_raises():
    start = time.monotonic()
    with pytest.raises(ExternalSigningError) as ei:
        sign_via_subprocess(fixture_cmd("slow_signer.py"), b"payload", timeout_seconds=0.5)
    assert time.monotonic() - start < 30
    assert "timed out" in ei.value.message


def test_external_command_signer(rfc_key, signer_cmd, signer_env):
    signer = ExternalCommandSigner(
        command=signer_cmd,
        public_key_bytes=rfc_key.public_key_bytes,
        env=signer_env,
        timeout_seconds=30,
    )
    payload = b"hello-world"
    sig = signer.sign(payload)
    assert verify(payload, sig, signer.public_key_bytes)


def test_external_command_signer_rejects_short_signature():
    signer = ExternalCommandSigner(command=fixture_cmd("short_signer.py"))
    with pytest.raises(ExternalSigningError) as ei:
        signer.sign(b"payload")
    assert ei.value.details["length"] == 10


def test_external_command_signer_does_not_retry(tmp_path):
    counter = tmp_path / "count"
    script = tmp_path / "count_and_fail.py"
    script.write_text(
        "import sys\n"
        f"p = {str(counter)!r}\n"
        "sys.stdin.buffer.read()\n"
        "open(p, 'a').write('x')\n"
        "sys.stderr.write('boom')\n"
        "raise SystemExit(1)\n"
    )
    signer = ExternalCommandSigner(command=[sys.executable, str(script)])
    with pytest.raises(ExternalSigningError):
        signer.sign(b"payload")
    assert counter.read_text() == "x"
