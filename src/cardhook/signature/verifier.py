"""Inbound request signature verification."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from cardhook.common.settings import Settings
from cardhook.signature.canonical import (
    ALGORITHM_TAG,
    build_message,
    compute_digest,
    decode_digest,
    digests_match,
    parse_signature,
)
from cardhook.signature.keys import KeyNotFoundError, KeyResolver


@dataclass(frozen=True)
class HeaderNames:
    """Header names agreed with the counterparty."""

    endpoint: str = "X-Endpoint"
    timestamp: str = "X-Timestamp"
    signature: str = "X-Signature"
    api_key: str = "X-Api-Key"

    @classmethod
    def from_settings(cls, settings: Settings) -> HeaderNames:
        return cls(
            endpoint=settings.endpoint_header,
            timestamp=settings.timestamp_header,
            signature=settings.signature_header,
            api_key=settings.api_key_header,
        )


class RejectionReason(str, Enum):
    """Why an inbound request failed verification."""

    MALFORMED_REQUEST = "malformed_request"
    UNSUPPORTED_ALGORITHM = "unsupported_algorithm"
    UNKNOWN_KEY = "unknown_key"
    SIGNATURE_MISMATCH = "signature_mismatch"


@dataclass(frozen=True)
class InboundSignature:
    """Signature metadata extracted from request headers.

    Every field has been checked for presence; values are exactly as
    received.
    """

    endpoint: str
    timestamp: str
    signature: str
    key_id: str

    @classmethod
    def from_headers(
        cls,
        headers: Mapping[str, str],
        names: HeaderNames | None = None,
    ) -> InboundSignature | None:
        """Extract the signature fields, or None if any is missing or empty."""
        names = names or HeaderNames()
        endpoint = headers.get(names.endpoint)
        timestamp = headers.get(names.timestamp)
        signature = headers.get(names.signature)
        key_id = headers.get(names.api_key)
        if not endpoint or not timestamp or not signature or not key_id:
            return None
        return cls(endpoint=endpoint, timestamp=timestamp, signature=signature, key_id=key_id)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of verifying one request."""

    accepted: bool
    reason: RejectionReason | None = None
    inbound: InboundSignature | None = None

    @property
    def outcome(self) -> str:
        return "accepted" if self.accepted else self.reason.value  # type: ignore[union-attr]


def _rejected(reason: RejectionReason, inbound: InboundSignature | None = None) -> VerificationResult:
    return VerificationResult(accepted=False, reason=reason, inbound=inbound)


def verify(
    headers: Mapping[str, str],
    raw_body: bytes,
    resolver: KeyResolver,
    names: HeaderNames | None = None,
) -> VerificationResult:
    """
    Verify the HMAC signature of an inbound request.

    Args:
        headers: Request headers (case-insensitive mapping for HTTP headers)
        raw_body: Complete request body exactly as received
        resolver: Key resolver used to look up the request's secret
        names: Header names, defaults to the counterparty's standard names

    Returns:
        VerificationResult, accepted only if the presented digest matches
    """
    inbound = InboundSignature.from_headers(headers, names)
    if inbound is None:
        return _rejected(RejectionReason.MALFORMED_REQUEST)

    # Algorithm is checked before key lookup or any HMAC work.
    algorithm, encoded = parse_signature(inbound.signature)
    if algorithm != ALGORITHM_TAG:
        return _rejected(RejectionReason.UNSUPPORTED_ALGORITHM, inbound)
    if not encoded:
        return _rejected(RejectionReason.MALFORMED_REQUEST, inbound)

    try:
        secret = resolver.resolve(inbound.key_id)
    except KeyNotFoundError:
        return _rejected(RejectionReason.UNKNOWN_KEY, inbound)

    expected = compute_digest(secret, build_message(inbound.timestamp, inbound.endpoint, raw_body))

    presented = decode_digest(encoded)
    if presented is None or not digests_match(expected, presented):
        return _rejected(RejectionReason.SIGNATURE_MISMATCH, inbound)

    return VerificationResult(accepted=True, inbound=inbound)
