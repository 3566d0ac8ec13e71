#!/usr/bin/env python3
"""Standalone Ed25519 signer process.

Reads the payload from stdin until EOF and writes the raw 64-byte signature
to stdout. Takes no flags; the key is loaded at startup from
EDSIGN_PRIVATE_KEY_PEM or EDSIGN_PRIVATE_KEY_FILE.

On failure nothing is written to stdout, a description goes to stderr and the
exit status is 1.

Usage:
  edsign-signer < payload.bin > payload.sig
  python -m edsign.signer_main < payload.bin > payload.sig
"""

import logging
import sys

from edsign.crypto import sign
from edsign.errors import EdSignError
from edsign.keys import DEFAULT_FILE_ENV, DEFAULT_PEM_ENV, load_key_from_env


def main() -> int:
    # stdout carries the signature; logs go to stderr only.
    logging.basicConfig(level=logging.WARNING, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")

    try:
        key = load_key_from_env()
        if key is None:
            print(f"ERROR: no signing key configured (set {DEFAULT_PEM_ENV} or {DEFAULT_FILE_ENV})", file=sys.stderr)
            return 1
        payload = sys.stdin.buffer.read()
        signature = sign(payload, key)
    except (EdSignError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    sys.stdout.buffer.write(signature)
    sys.stdout.buffer.flush()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
