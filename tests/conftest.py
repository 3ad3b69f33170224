"""Pytest configuration and fixtures."""

import base64

import pytest

from cardhook.common.settings import Settings
from cardhook.signature.keys import KeyNotFoundError, KeyRing

KEY_ID = "Lp0g+cwb19eEfTn1YIOydEnqPcZOg8YxHctnMe+1cQA="
ZERO_SECRET = bytes(32)


class RecordingResolver:
    """Key resolver that records every lookup."""

    def __init__(self, keys: dict[str, bytes]) -> None:
        self._keys = dict(keys)
        self.calls: list[str] = []

    def resolve(self, key_id: str) -> bytes:
        self.calls.append(key_id)
        try:
            return self._keys[key_id]
        except KeyError:
            raise KeyNotFoundError(key_id) from None


@pytest.fixture
def key_id() -> str:
    return KEY_ID


@pytest.fixture
def secret() -> bytes:
    """32 zero bytes."""
    return ZERO_SECRET


@pytest.fixture
def key_ring() -> KeyRing:
    return KeyRing({KEY_ID: ZERO_SECRET})


@pytest.fixture
def recording_resolver() -> RecordingResolver:
    return RecordingResolver({KEY_ID: ZERO_SECRET})


@pytest.fixture
def settings() -> Settings:
    """Create test settings."""
    return Settings(
        api_keys={KEY_ID: base64.b64encode(ZERO_SECRET).decode("ascii")},
        api_keys_file=None,
    )
