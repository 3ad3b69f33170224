"""Canonical message construction and HMAC primitives.

The signed message is ``timestamp || endpoint || body`` over raw bytes:
no separators, no re-encoding, and no body segment at all when the
exchange carries no payload. ``None`` is the only way to express "no
payload"; any placeholder (``b"{}"``, ``b"null"``, ``b" "``) is a real
body and produces a different digest.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac

ALGORITHM_TAG = "hmac-sha256"
DIGEST_SIZE = hashlib.sha256().digest_size


def encode_field(value: str) -> bytes:
    """Encode a header field to the bytes it carried on the wire.

    Undecodable wire bytes travel as surrogate escapes and come back
    unchanged.
    """
    return value.encode("utf-8", "surrogateescape")


def build_message(timestamp: str, endpoint: str, body: bytes | None) -> bytes:
    """Concatenate the signed fields into the exact HMAC input."""
    message = encode_field(timestamp) + encode_field(endpoint)
    if body is not None:
        message += body
    return message


def compute_digest(secret: bytes, message: bytes) -> bytes:
    """Compute the raw HMAC-SHA256 digest of ``message``."""
    return hmac.new(secret, message, hashlib.sha256).digest()


def encode_digest(digest: bytes) -> str:
    """Encode a digest for header transport (standard base64, padded)."""
    return base64.b64encode(digest).decode("ascii")


def decode_digest(encoded: str) -> bytes | None:
    """Decode a presented digest, or return None if it is not valid base64."""
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        return None


def format_signature(digest: bytes) -> str:
    """Render the ``<algorithm> <digest>`` signature header value."""
    return f"{ALGORITHM_TAG} {encode_digest(digest)}"


def parse_signature(value: str) -> tuple[str, str]:
    """Split a signature header value into (algorithm tag, encoded digest).

    The encoded digest is empty when the header carries no second token.
    """
    algorithm, _, encoded = value.partition(" ")
    return algorithm, encoded


def digests_match(expected: bytes, presented: bytes) -> bool:
    """Compare two digests in constant time.

    ``hmac.compare_digest`` runs in time independent of where the first
    differing byte sits.
    """
    return hmac.compare_digest(expected, presented)


def signature_for(secret: bytes, timestamp: str, endpoint: str, body: bytes | None) -> str:
    """Build the signature header value for the given envelope."""
    return format_signature(compute_digest(secret, build_message(timestamp, endpoint, body)))
