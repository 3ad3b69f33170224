"""HMAC request verification and response signing."""

from cardhook.signature.canonical import ALGORITHM_TAG, build_message, signature_for
from cardhook.signature.keys import (
    KeyConfigurationError,
    KeyNotFoundError,
    KeyResolver,
    KeyRing,
    load_key_ring,
)
from cardhook.signature.signer import SignatureHeaders, SigningConfigurationError, sign
from cardhook.signature.verifier import (
    HeaderNames,
    InboundSignature,
    RejectionReason,
    VerificationResult,
    verify,
)

__all__ = [
    "ALGORITHM_TAG",
    "build_message",
    "signature_for",
    "KeyConfigurationError",
    "KeyNotFoundError",
    "KeyResolver",
    "KeyRing",
    "load_key_ring",
    "SignatureHeaders",
    "SigningConfigurationError",
    "sign",
    "HeaderNames",
    "InboundSignature",
    "RejectionReason",
    "VerificationResult",
    "verify",
]
