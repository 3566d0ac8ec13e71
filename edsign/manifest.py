"""
edsign.manifest: hand an edsign Signer to the C2PA SDK.

The SDK (``c2pa-python``) builds the manifest, asks for one signature per
manifest through a callback, and embeds signature plus certificate chain into
the image. This module only provides that callback and a small driver around
``c2pa.Builder.sign_file``.

The SDK is an optional dependency (``pip install edsign[c2pa]``) and is
imported on first use.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .errors import EdSignError, EmbedError
from .signing import Signer, coerce_signer

logger = logging.getLogger("edsign.manifest")

CLAIM_GENERATOR = "edsign"

_MIME_TYPES: Dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "heic": "image/heic",
    "avif": "image/avif",
}


def _import_c2pa():
    try:
        import c2pa
    except ImportError as e:
        raise EmbedError(
            "c2pa-python is required for manifest embedding. Install with: pip install edsign[c2pa]"
        ) from e
    return c2pa


def mime_type_for(path: Union[str, Path]) -> str:
    ext = Path(path).suffix.lstrip(".").lower()
    if not ext:
        raise EmbedError(f"cannot determine image format of {str(path)!r}: no file extension")
    return _MIME_TYPES.get(ext, ext)


@dataclass
class SigningCallback:
    """Callable ``(payload) -> signature`` registered with the SDK.

    ``context`` is an opaque token for signers that need shared state; the
    bundled signers ignore it. The first signer error is kept in
    ``last_error`` so it can be re-raised after the SDK wraps it.
    """

    signer: Signer
    context: Optional[Any] = None
    last_error: Optional[BaseException] = field(default=None, repr=False)

    def __call__(self, data: bytes) -> bytes:
        try:
            return self.signer.sign(bytes(data))
        except Exception as e:
            self.last_error = e
            raise


def default_manifest(title: str, fmt: str) -> Dict[str, Any]:
    """Minimal manifest declaring a newly created asset."""
    return {
        "claim_generator": CLAIM_GENERATOR,
        "claim_generator_info": [{"name": CLAIM_GENERATOR}],
        "format": fmt,
        "title": title,
        "ingredients": [],
        "assertions": [
            {
                "label": "c2pa.actions",
                "data": {
                    "actions": [
                        {
                            "action": "c2pa.created",
                            "digitalSourceType": "http://cv.iptc.org/newscodes/digitalsourcetype/digitalCreation",
                        }
                    ]
                },
            }
        ],
    }


def load_manifest(path: Union[str, Path]) -> Dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            manifest = json.load(f)
    except json.JSONDecodeError as e:
        raise EmbedError(f"Invalid JSON in manifest file '{path}': {e}") from e
    if not isinstance(manifest, dict):
        raise EmbedError(f"manifest file '{path}' must contain a JSON object")
    return manifest


def embed_manifest(
    source_path: Union[str, Path],
    dest_path: Union[str, Path],
    manifest: Optional[Dict[str, Any]],
    signer: Any,
    certs: bytes,
    *,
    tsa_url: Optional[str] = None,
    verify_after_sign: bool = False,
    context: Optional[Any] = None,
) -> None:
    """Sign ``manifest`` with ``signer`` and embed it into a copy of the image.

    ``verify_after_sign`` is written to the SDK settings right before signing.
    The SDK keeps settings process-wide and has no way to read them back, so
    the value stays in effect after this call returns; every call sets it
    again and never relies on what an earlier call left behind.
    """
    c2pa = _import_c2pa()
    source_path = Path(source_path)
    dest_path = Path(dest_path)
    if manifest is None:
        manifest = default_manifest(source_path.name, mime_type_for(source_path))

    callback = SigningCallback(coerce_signer(signer), context=context)
    certs_text = certs.decode("utf-8") if isinstance(certs, (bytes, bytearray)) else str(certs)

    try:
        c2pa.load_settings(json.dumps({"verify": {"verify_after_sign": bool(verify_after_sign)}}))
        with c2pa.Signer.from_callback(
            callback=callback,
            alg=c2pa.C2paSigningAlg.ED25519,
            certs=certs_text,
            tsa_url=tsa_url,
        ) as c2pa_signer:
            with c2pa.Builder(manifest) as builder:
                builder.sign_file(
                    source_path=str(source_path),
                    dest_path=str(dest_path),
                    signer=c2pa_signer,
                )
    except EdSignError:
        raise
    except Exception as e:
        if isinstance(callback.last_error, (EdSignError, OSError)):
            raise callback.last_error from e
        raise EmbedError(f"manifest embedding failed: {e}", details={"source": str(source_path)}) from e

    logger.info("Output written to %s", dest_path)
