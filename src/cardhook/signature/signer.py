"""Outbound response signing."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass

from cardhook.signature.canonical import signature_for
from cardhook.signature.keys import KeyNotFoundError, KeyResolver
from cardhook.signature.verifier import HeaderNames


class SigningConfigurationError(Exception):
    """A response cannot be signed because its key is not configured."""

    def __init__(self, key_id: str) -> None:
        super().__init__(f"No secret configured for API key {key_id!r}, cannot sign response")
        self.key_id = key_id


@dataclass(frozen=True)
class SignatureHeaders:
    """Headers that must precede a signed response body."""

    endpoint: str
    timestamp: str
    signature: str

    def as_dict(self, names: HeaderNames | None = None) -> dict[str, str]:
        names = names or HeaderNames()
        return {
            names.endpoint: self.endpoint,
            names.timestamp: self.timestamp,
            names.signature: self.signature,
        }


def current_timestamp(clock: Callable[[], float] = time.time) -> str:
    """Current time as whole epoch seconds in decimal."""
    return str(int(clock()))


def sign(
    body: bytes | None,
    endpoint: str,
    key_id: str,
    resolver: KeyResolver,
    clock: Callable[[], float] = time.time,
) -> SignatureHeaders:
    """
    Sign an outbound response.

    The timestamp is always taken from ``clock``, never from the request
    being answered. A ``None`` body leaves the body segment out of the
    signed message entirely.

    Raises:
        SigningConfigurationError: If ``key_id`` has no configured secret
    """
    try:
        secret = resolver.resolve(key_id)
    except KeyNotFoundError:
        raise SigningConfigurationError(key_id) from None

    timestamp = current_timestamp(clock)
    return SignatureHeaders(
        endpoint=endpoint,
        timestamp=timestamp,
        signature=signature_for(secret, timestamp, endpoint, body),
    )
