"""Tests for inbound signature verification."""

import pytest

from cardhook.signature.canonical import signature_for
from cardhook.signature.verifier import (
    HeaderNames,
    InboundSignature,
    RejectionReason,
    verify,
)

TIMESTAMP = "1700000000"
ENDPOINT = "orders"
BODY = b'{"a":1}'


def _headers(key_id: str, signature: str, **overrides: str) -> dict[str, str]:
    headers = {
        "X-Endpoint": ENDPOINT,
        "X-Timestamp": TIMESTAMP,
        "X-Signature": signature,
        "X-Api-Key": key_id,
    }
    headers.update(overrides)
    return headers


def _flip_last_char(signature: str) -> str:
    algorithm, encoded = signature.split(" ")
    stripped = encoded.rstrip("=")
    padding = encoded[len(stripped):]
    # Canonical last characters carry data in their high bits; swapping
    # between "A" and another canonical character changes the decoded bytes.
    last = "Q" if stripped[-1] == "A" else "A"
    return f"{algorithm} {stripped[:-1]}{last}{padding}"


@pytest.fixture
def valid_signature(secret) -> str:
    return signature_for(secret, TIMESTAMP, ENDPOINT, BODY)


class TestVerifyAccepts:
    """Test accepted requests."""

    def test_known_vector(self, key_ring, key_id, valid_signature):
        result = verify(_headers(key_id, valid_signature), BODY, key_ring)

        assert result.accepted is True
        assert result.reason is None
        assert result.outcome == "accepted"
        assert result.inbound == InboundSignature(
            endpoint=ENDPOINT, timestamp=TIMESTAMP, signature=valid_signature, key_id=key_id
        )

    def test_empty_body(self, key_ring, key_id, secret):
        signature = signature_for(secret, TIMESTAMP, ENDPOINT, None)
        assert verify(_headers(key_id, signature), b"", key_ring).accepted is True

    def test_second_active_key(self, secret):
        from cardhook.signature.keys import KeyRing

        ring = KeyRing({"old": b"\x07" * 32, "new": secret})
        signature = signature_for(secret, TIMESTAMP, ENDPOINT, BODY)

        assert verify(_headers("new", signature), BODY, ring).accepted is True

    def test_custom_header_names(self, key_ring, key_id, valid_signature):
        names = HeaderNames(endpoint="E", timestamp="T", signature="S", api_key="K")
        headers = {"E": ENDPOINT, "T": TIMESTAMP, "S": valid_signature, "K": key_id}

        assert verify(headers, BODY, key_ring, names).accepted is True


class TestVerifyRejects:
    """Test rejected requests."""

    def test_flipped_last_character(self, key_ring, key_id, valid_signature):
        tampered = _flip_last_char(valid_signature)
        assert tampered != valid_signature

        result = verify(_headers(key_id, tampered), BODY, key_ring)

        assert result.accepted is False
        assert result.reason is RejectionReason.SIGNATURE_MISMATCH

    def test_altered_body_byte(self, key_ring, key_id, valid_signature):
        result = verify(_headers(key_id, valid_signature), b'{"a":2}', key_ring)
        assert result.reason is RejectionReason.SIGNATURE_MISMATCH

    def test_reserialized_body(self, key_ring, key_id, valid_signature):
        result = verify(_headers(key_id, valid_signature), b'{"a": 1}', key_ring)
        assert result.reason is RejectionReason.SIGNATURE_MISMATCH

    def test_altered_timestamp(self, key_ring, key_id, valid_signature):
        headers = _headers(key_id, valid_signature, **{"X-Timestamp": "1700000001"})
        assert verify(headers, BODY, key_ring).reason is RejectionReason.SIGNATURE_MISMATCH

    def test_altered_endpoint(self, key_ring, key_id, valid_signature):
        headers = _headers(key_id, valid_signature, **{"X-Endpoint": "orderz"})
        assert verify(headers, BODY, key_ring).reason is RejectionReason.SIGNATURE_MISMATCH

    def test_wrong_secret(self, key_id, valid_signature):
        from cardhook.signature.keys import KeyRing

        ring = KeyRing({key_id: b"\x01" * 32})
        assert verify(_headers(key_id, valid_signature), BODY, ring).reason is (
            RejectionReason.SIGNATURE_MISMATCH
        )

    def test_truncated_digest(self, key_ring, key_id, valid_signature):
        assert verify(_headers(key_id, valid_signature[:-8]), BODY, key_ring).reason is (
            RejectionReason.SIGNATURE_MISMATCH
        )

    def test_invalid_base64_digest(self, key_ring, key_id):
        result = verify(_headers(key_id, "hmac-sha256 ***"), BODY, key_ring)
        assert result.reason is RejectionReason.SIGNATURE_MISMATCH

    @pytest.mark.parametrize("missing", ["X-Endpoint", "X-Timestamp", "X-Signature", "X-Api-Key"])
    def test_missing_header(self, key_ring, key_id, valid_signature, missing):
        headers = _headers(key_id, valid_signature)
        del headers[missing]

        result = verify(headers, BODY, key_ring)

        assert result.reason is RejectionReason.MALFORMED_REQUEST
        assert result.inbound is None

    def test_empty_header_is_missing(self, key_ring, key_id, valid_signature):
        headers = _headers(key_id, valid_signature, **{"X-Endpoint": ""})
        assert verify(headers, BODY, key_ring).reason is RejectionReason.MALFORMED_REQUEST

    def test_supported_tag_without_digest(self, recording_resolver, key_id):
        result = verify(_headers(key_id, "hmac-sha256"), BODY, recording_resolver)

        assert result.reason is RejectionReason.MALFORMED_REQUEST
        assert recording_resolver.calls == []

    @pytest.mark.parametrize(
        "signature",
        [
            "hmac-sha1 whk5MLlMd+zJBkEDGa9LYZVUsNsdKWJ94Qm3EXy6VK8=",
            "HMAC-SHA256 whk5MLlMd+zJBkEDGa9LYZVUsNsdKWJ94Qm3EXy6VK8=",
            "hmac-sha256-v2 whk5MLlMd+zJBkEDGa9LYZVUsNsdKWJ94Qm3EXy6VK8=",
            "whk5MLlMd+zJBkEDGa9LYZVUsNsdKWJ94Qm3EXy6VK8=",
        ],
    )
    def test_unsupported_algorithm_skips_key_lookup(self, recording_resolver, key_id, signature):
        result = verify(_headers(key_id, signature), BODY, recording_resolver)

        assert result.reason is RejectionReason.UNSUPPORTED_ALGORITHM
        assert recording_resolver.calls == []

    def test_unknown_key_computes_no_hmac(self, monkeypatch, recording_resolver, valid_signature):
        def fail(*_args, **_kwargs):
            raise AssertionError("HMAC computed for an unknown key")

        monkeypatch.setattr("cardhook.signature.verifier.compute_digest", fail)

        result = verify(_headers("unknown", valid_signature), BODY, recording_resolver)

        assert result.reason is RejectionReason.UNKNOWN_KEY
        assert result.outcome == "unknown_key"
        assert recording_resolver.calls == ["unknown"]
