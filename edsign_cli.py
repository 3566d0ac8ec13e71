#!/usr/bin/env python3
"""
edsign - Command Line Interface

Usage:
    edsign keygen --out <key.pem>            Generate a new Ed25519 private key (PEM)
    edsign pubkey                            Print the public key (hex) of the configured key
    edsign sign [FILE] [--out SIG]           Sign a file (or stdin) and write the signature
    edsign verify FILE --signature SIG       Verify a detached signature
    edsign embed IMAGE [--manifest M.json]   Embed a signed C2PA manifest into an image

Global options:
    --config <config.json>   JSON config (private_key_file, signer_mode, signer_cmd, ...)
    --key <key.pem>          Private key file (overrides config and environment)
    --verbose                Debug logging (stderr)
"""

import argparse
import base64
import binascii
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from edsign.config import EdSignConfig, build_signer, load_config, load_configured_key, resolve_config
from edsign.crypto import verify
from edsign.errors import ConfigError, EdSignError
from edsign.keys import generate_key_pem
from edsign.manifest import embed_manifest, load_manifest

logger = logging.getLogger("edsign")


def setup_logging(verbose: bool = False):
    """Configure logging for CLI usage. Logs go to stderr."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S"
    )
    logger.setLevel(level)


def _config_from_args(args, **overrides) -> EdSignConfig:
    file_config = load_config(Path(args.config) if args.config else None)
    overrides["private_key_file"] = getattr(args, "key", None)
    external = getattr(args, "external", None)
    if external:
        overrides["signer_mode"] = "external"
        overrides["signer_cmd"] = external
    return resolve_config(file_config, overrides)


def _read_input(path: Optional[str]) -> bytes:
    if path is None or path == "-":
        return sys.stdin.buffer.read()
    return Path(path).read_bytes()


def _write_output(path: Optional[str], data: bytes) -> None:
    if path is None or path == "-":
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
    else:
        Path(path).write_bytes(data)


def cmd_keygen(args) -> int:
    """Write a fresh private key with owner-only permissions."""
    out = Path(args.out)
    if out.exists() and not args.force:
        print(f"Error: {out} already exists (use --force to overwrite)", file=sys.stderr)
        return 1
    pem = generate_key_pem()
    fd = os.open(str(out), os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(pem)
    os.chmod(str(out), 0o600)
    logger.info("Private key written to %s", out)
    return 0


def cmd_pubkey(args) -> int:
    cfg = _config_from_args(args)
    key = load_configured_key(cfg)
    if key is None:
        raise ConfigError("no signing key configured")
    print(key.public_key_hex)
    return 0


def cmd_sign(args) -> int:
    cfg = _config_from_args(args)
    signer = build_signer(cfg)
    payload = _read_input(args.file)
    signature = signer.sign(payload)

    if args.encoding == "hex":
        out = (signature.hex() + "\n").encode("ascii")
    elif args.encoding == "base64":
        out = (base64.b64encode(signature).decode("ascii") + "\n").encode("ascii")
    else:
        out = signature
    _write_output(args.out, out)
    logger.debug("Signed %d bytes", len(payload))
    return 0


def cmd_verify(args) -> int:
    if args.signature_hex:
        try:
            signature = bytes.fromhex(args.signature_hex.strip())
        except ValueError:
            print("Error: --signature-hex is not valid hex", file=sys.stderr)
            return 1
    else:
        signature = Path(args.signature).read_bytes()
        # Accept hex/base64 text as written by `edsign sign --encoding`.
        if len(signature) != 64:
            text = signature.strip()
            try:
                signature = bytes.fromhex(text.decode("ascii"))
            except (UnicodeDecodeError, ValueError):
                try:
                    signature = base64.b64decode(text, validate=True)
                except (binascii.Error, ValueError):
                    pass

    if args.public_key:
        try:
            public_key = bytes.fromhex(args.public_key.strip())
        except ValueError:
            print("Error: --public-key is not valid hex", file=sys.stderr)
            return 1
    else:
        key = load_configured_key(_config_from_args(args))
        if key is None:
            raise ConfigError("no public key given and no signing key configured")
        public_key = key.public_key_bytes

    payload = _read_input(args.file)
    if verify(payload, signature, public_key):
        print("OK: signature valid")
        return 0
    print("FAIL: signature invalid")
    return 2


def cmd_embed(args) -> int:
    cfg = _config_from_args(
        args,
        certs_file=args.certs,
        tsa_url=args.tsa_url,
        verify_after_sign=True if args.verify_after_sign else None,
    )
    if not cfg.certs_file:
        raise ConfigError("a certificate chain is required (use --certs or certs_file)")
    certs = Path(cfg.certs_file).read_bytes()
    manifest = load_manifest(args.manifest) if args.manifest else None

    embed_manifest(
        args.image,
        args.output,
        manifest,
        build_signer(cfg),
        certs,
        tsa_url=cfg.tsa_url,
        verify_after_sign=cfg.verify_after_sign,
    )
    print(f"Output written to {args.output}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="edsign",
        description="Ed25519 detached signing and C2PA manifest embedding",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", "-c", help="Path to JSON config file")
    parser.add_argument("--key", "-k", help="Path to PEM private key file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    keygen_parser = subparsers.add_parser("keygen", help="Generate a new Ed25519 private key")
    keygen_parser.add_argument("--out", "-o", required=True, help="Output PEM path")
    keygen_parser.add_argument("--force", action="store_true", help="Overwrite an existing file")
    keygen_parser.set_defaults(func=cmd_keygen)

    pubkey_parser = subparsers.add_parser("pubkey", help="Print the public key of the configured key")
    pubkey_parser.set_defaults(func=cmd_pubkey)

    sign_parser = subparsers.add_parser("sign", help="Sign a file or stdin")
    sign_parser.add_argument("file", nargs="?", help="File to sign (default: stdin)")
    sign_parser.add_argument("--out", "-o", help="Signature output path (default: stdout)")
    sign_parser.add_argument("--encoding", choices=["raw", "hex", "base64"], default="raw", help="Signature encoding (default: raw)")
    sign_parser.add_argument("--external", help="Sign with an external signer command instead of in-process")
    sign_parser.set_defaults(func=cmd_sign)

    verify_parser = subparsers.add_parser("verify", help="Verify a detached signature")
    verify_parser.add_argument("file", help="Signed file ('-' for stdin)")
    sig_group = verify_parser.add_mutually_exclusive_group(required=True)
    sig_group.add_argument("--signature", "-s", help="Signature file (raw, hex or base64)")
    sig_group.add_argument("--signature-hex", help="Signature as hex")
    verify_parser.add_argument("--public-key", help="Public key hex (default: derived from the configured key)")
    verify_parser.set_defaults(func=cmd_verify)

    embed_parser = subparsers.add_parser("embed", help="Embed a signed C2PA manifest into an image")
    embed_parser.add_argument("image", help="Path to the image file")
    embed_parser.add_argument("--manifest", "-m", default=os.getenv("MANIFEST"), help="Manifest JSON (default: $MANIFEST or a minimal manifest)")
    embed_parser.add_argument("--output", "-o", default="output.jpg", help="Output image path (default: output.jpg)")
    embed_parser.add_argument("--certs", help="PEM certificate chain for the signing key")
    embed_parser.add_argument("--tsa-url", help="Timestamp authority URL")
    embed_parser.add_argument("--external", help="Sign with an external signer command instead of in-process")
    embed_parser.add_argument("--verify-after-sign", action="store_true", help="Have the SDK verify the output after signing")
    embed_parser.set_defaults(func=cmd_embed)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    setup_logging(args.verbose)
    try:
        return args.func(args)
    except EdSignError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
