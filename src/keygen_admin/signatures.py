"""
Keygen response signature verification.

Keygen signs every API response with the account's Ed25519 key:
- `Digest: sha-256=<b64 sha256 of body>`
- `Keygen-Signature: keyid="...", algorithm="ed25519", signature="...", headers="..."`

The signed string is the request target, host, date and digest joined by
newlines. Verification is optional and only runs when a public key is
configured.
"""

from __future__ import annotations

import base64
import hashlib
import re
import typing as t
from urllib.parse import quote, unquote, urlparse

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from keygen_admin.errors import SignatureError

__all__ = [
    "parse_signature_header",
    "signing_string",
    "verify_response_signature",
    "make_verifier",
]


def parse_signature_header(header: str) -> dict[str, str]:
    params: dict[str, str] = {}
    for part in re.split(r"\s*,\s*", header):
        if "=" not in part:
            continue
        k, v = part.split("=", 1)
        params[k.strip()] = v.strip().strip('"')
    return params


def body_digest(text: str) -> str:
    return "sha-256=" + base64.b64encode(hashlib.sha256(text.encode()).digest()).decode()


def signing_string(*, method: str, uri: str, host: str, date: str, digest: str) -> str:
    return "".join(
        [
            f"(request-target): {method.lower()} {quote(uri, safe='/?=&')}\n",
            f"host: {host}\n",
            f"date: {date}\n",
            f"digest: {digest}",
        ]
    )


def verify_response_signature(
    res,
    uri: str,
    public_key_hex: str,
    *,
    host: str = "api.keygen.sh",
    method: str = "get",
) -> None:
    """
    Verify the Keygen signature and digest of a response.

    - res: requests.Response-like object (needs .text and .headers)
    - uri: request path and query the signature covers

    Raises SignatureError on missing headers, digest mismatch, bad key or
    bad signature.
    """
    header = res.headers.get("Keygen-Signature")
    if not header:
        raise SignatureError("signature is missing")

    params = parse_signature_header(header)
    if params.get("algorithm") != "ed25519":
        raise SignatureError("algorithm is unsupported")
    sig_b64 = params.get("signature")
    if not sig_b64:
        raise SignatureError("signature parameter missing")

    digest = body_digest(res.text)
    if digest != res.headers.get("Digest"):
        raise SignatureError("digest did not match")

    date = res.headers.get("Date")
    if not date:
        raise SignatureError("Date header missing")

    message = signing_string(method=method, uri=uri, host=host, date=date, digest=digest)
    try:
        verify_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
        verify_key.verify(base64.b64decode(sig_b64), message.encode())
    except InvalidSignature as exc:
        raise SignatureError("signature did not verify") from exc
    except ValueError as exc:
        raise SignatureError(f"invalid public key or signature encoding: {exc}") from exc


def make_verifier(public_key_hex: str, host: str) -> t.Callable[[t.Any, str], None]:
    """Build a RequestSender verifier bound to one public key and host."""

    def verify(res, method: str) -> None:
        parsed = urlparse(res.url)
        uri = unquote(parsed.path + (f"?{parsed.query}" if parsed.query else ""))
        verify_response_signature(res, uri, public_key_hex, host=host, method=method.lower())

    return verify
