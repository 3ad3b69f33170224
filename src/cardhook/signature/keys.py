"""API key resolution for signing and verification."""

from __future__ import annotations

import base64
import binascii
import json
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Protocol

from cardhook.common.logging import get_logger
from cardhook.common.settings import Settings

logger = get_logger(__name__)


class KeyNotFoundError(LookupError):
    """No secret is registered for the requested key id."""

    def __init__(self, key_id: str) -> None:
        super().__init__(f"Unknown API key: {key_id}")
        self.key_id = key_id


class KeyConfigurationError(Exception):
    """Configured key material could not be loaded."""

    pass


class KeyResolver(Protocol):
    """Maps a key id to its HMAC secret."""

    def resolve(self, key_id: str) -> bytes:
        """Return the secret for ``key_id`` or raise KeyNotFoundError."""
        ...


class KeyRing:
    """Immutable snapshot of active key pairs.

    Rotation swaps the whole snapshot in one assignment, so concurrent
    readers see either the old set or the new one, never a mix.
    """

    def __init__(self, keys: Mapping[str, bytes] | None = None) -> None:
        self._keys: Mapping[str, bytes] = _freeze(keys or {})

    def resolve(self, key_id: str) -> bytes:
        try:
            return self._keys[key_id]
        except KeyError:
            raise KeyNotFoundError(key_id) from None

    def replace(self, keys: Mapping[str, bytes]) -> None:
        """Atomically replace the active key set."""
        snapshot = _freeze(keys)
        self._keys = snapshot
        logger.info("API key set replaced", key_count=len(snapshot))

    def key_ids(self) -> tuple[str, ...]:
        return tuple(sorted(self._keys))

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key_id: object) -> bool:
        return key_id in self._keys

    def __repr__(self) -> str:
        return f"KeyRing(key_ids={list(self.key_ids())!r})"

    @classmethod
    def from_encoded(cls, encoded: Mapping[str, str]) -> KeyRing:
        """Build a key ring from base64-encoded secrets."""
        return cls({key_id: decode_secret(key_id, value) for key_id, value in encoded.items()})


def _freeze(keys: Mapping[str, bytes]) -> Mapping[str, bytes]:
    return MappingProxyType({str(key_id): bytes(secret) for key_id, secret in keys.items()})


def decode_secret(key_id: str, value: str) -> bytes:
    """Decode a base64 secret into raw bytes."""
    try:
        secret = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyConfigurationError(f"Secret for key {key_id!r} is not valid base64") from e
    if not secret:
        raise KeyConfigurationError(f"Secret for key {key_id!r} is empty")
    return secret


def read_keys_file(path: str) -> dict[str, str]:
    """Read a JSON object of key id -> base64 secret."""
    keys_path = Path(path).expanduser()
    try:
        data = json.loads(keys_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise KeyConfigurationError(f"Cannot read keys file {keys_path}: {e}") from e
    except json.JSONDecodeError as e:
        raise KeyConfigurationError(f"Keys file {keys_path} is not valid JSON: {e}") from e

    if not isinstance(data, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in data.items()
    ):
        raise KeyConfigurationError(f"Keys file {keys_path} must map key ids to base64 strings")
    return data


def load_encoded_keys(settings: Settings) -> dict[str, str]:
    """Collect encoded keys from settings, with the keys file taking precedence."""
    encoded = dict(settings.api_keys)
    if settings.api_keys_file:
        encoded.update(read_keys_file(settings.api_keys_file))
    return encoded


def load_key_ring(settings: Settings) -> KeyRing:
    """Build the key ring configured for this process."""
    ring = KeyRing.from_encoded(load_encoded_keys(settings))
    if not len(ring):
        logger.warning("No API keys configured, every signed request will be rejected")
    else:
        logger.info("API keys loaded", key_count=len(ring))
    return ring
