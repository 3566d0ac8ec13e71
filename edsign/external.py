"""
edsign.external: drive an out-of-process signer over stdin/stdout.

Command contract:
- stdin: raw payload bytes, closed after the last byte
- stdout: raw signature bytes
- stderr: diagnostics, surfaced when the exit status is non-zero

The payload is written on a separate thread while stdout and stderr are
drained, so payloads larger than the OS pipe buffer cannot deadlock the two
processes. No retries are attempted.
"""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import threading
from typing import IO, List, Mapping, Optional, Sequence, Union

from .errors import ExternalSigningError, SpawnError

logger = logging.getLogger("edsign.external")

# How long to wait for the pipes to close once the signer has been killed.
_KILL_GRACE_SECONDS = 5.0

Command = Union[str, "os.PathLike[str]", Sequence[str]]


def _resolve_argv(executable_path: Command) -> List[str]:
    if isinstance(executable_path, os.PathLike):
        return [os.fspath(executable_path)]
    if isinstance(executable_path, str):
        if not executable_path.strip():
            raise SpawnError("signer command is empty")
        # An existing path is taken literally even if it contains spaces.
        if os.path.exists(executable_path):
            return [executable_path]
        try:
            return shlex.split(executable_path)
        except ValueError as e:
            raise SpawnError(f"signer command {executable_path!r} cannot be parsed: {e}") from e
    argv = [os.fspath(a) for a in executable_path]
    if not argv:
        raise SpawnError("signer command is empty")
    return argv


def _feed(stream: IO[bytes], data: bytes, errors: List[BaseException]) -> None:
    try:
        if data:
            stream.write(data)
    except OSError as e:
        errors.append(e)
    finally:
        try:
            stream.close()
        except OSError as e:
            # Flushing the remaining buffer can hit the same broken pipe.
            if not errors:
                errors.append(e)


def _drain(stream: IO[bytes], sink: List[bytes], errors: List[BaseException]) -> None:
    try:
        sink.append(stream.read())
    except OSError as e:
        errors.append(e)
    finally:
        stream.close()


def _kill(proc: subprocess.Popen) -> None:
    """Kill the signer and everything it spawned into its session."""
    if hasattr(os, "killpg"):
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            pass
    else:  # pragma: no cover
        proc.kill()
    proc.wait()


def sign_via_subprocess(
    executable_path: Command,
    payload: bytes,
    *,
    env: Optional[Mapping[str, str]] = None,
    timeout_seconds: Optional[float] = None,
) -> bytes:
    """Sign ``payload`` by piping it through an external signer process.

    Returns everything the process wrote to stdout.

    Raises:
        SpawnError: the process could not be started.
        ExternalSigningError: the process exited non-zero or timed out.
        OSError: writing the payload failed (e.g. the process exited before
            reading it). If the process also exited non-zero, the
            ExternalSigningError is chained as ``__cause__``.
    """
    argv = _resolve_argv(executable_path)
    data = bytes(payload)
    logger.debug("Spawning signer %s for %d payload bytes", argv[0], len(data))

    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=dict(env) if env is not None else None,
            start_new_session=True,
        )
    except (OSError, ValueError) as e:
        raise SpawnError(f"could not start signer {argv[0]!r}: {e}", details={"argv": argv}) from e

    write_errors: List[BaseException] = []
    read_errors: List[BaseException] = []
    out: List[bytes] = []
    err: List[bytes] = []
    threads = [
        threading.Thread(target=_feed, args=(proc.stdin, data, write_errors), daemon=True),
        threading.Thread(target=_drain, args=(proc.stdout, out, read_errors), daemon=True),
        threading.Thread(target=_drain, args=(proc.stderr, err, read_errors), daemon=True),
    ]
    for t in threads:
        t.start()

    killed = False
    timed_out = False
    try:
        proc.wait(timeout=timeout_seconds)
    except subprocess.TimeoutExpired:
        timed_out = True
        killed = True
        _kill(proc)
    except BaseException:
        killed = True
        _kill(proc)
        raise
    finally:
        for t in threads:
            # A killed signer's pipes close with it unless something outside
            # its session inherited them; don't wait on those forever.
            t.join(_KILL_GRACE_SECONDS if killed else None)

    stderr_text = b"".join(err).decode("utf-8", errors="replace")
    returncode = proc.returncode

    if timed_out:
        raise ExternalSigningError(
            f"signer {argv[0]!r} timed out after {timeout_seconds}s",
            stderr=stderr_text,
            returncode=returncode,
        )

    failure: Optional[ExternalSigningError] = None
    if returncode != 0:
        logger.debug("Signer %s exited with code %s", argv[0], returncode)
        failure = ExternalSigningError(
            f"signer {argv[0]!r} returned code {returncode}: {stderr_text.strip()}",
            stderr=stderr_text,
            returncode=returncode,
        )

    # A failed payload write is reported as-is; the exit status and stderr
    # stay reachable through __cause__.
    if write_errors:
        raise write_errors[0] from failure
    if failure is not None:
        raise failure
    if read_errors:
        raise read_errors[0]

    return b"".join(out)
