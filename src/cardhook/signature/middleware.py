"""Starlette integration for request verification and response signing."""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from cardhook.common.errors import ErrorCode, error_response
from cardhook.common.http import set_api_key_id
from cardhook.common.logging import get_logger
from cardhook.common.metrics import record_signing, record_verification
from cardhook.common.settings import Settings
from cardhook.signature.canonical import encode_field
from cardhook.signature.keys import KeyResolver
from cardhook.signature.signer import SigningConfigurationError, sign
from cardhook.signature.verifier import HeaderNames, VerificationResult, verify

logger = get_logger(__name__)


def wire_text(value: str) -> str:
    """Recover header text as it was encoded on the wire.

    Starlette decodes header bytes as latin-1; re-read them as UTF-8 so
    ``encode_field`` reproduces the exact bytes the counterparty signed.
    """
    return value.encode("latin-1").decode("utf-8", "surrogateescape")


def header_value(value: str) -> str:
    """Inverse of ``wire_text``: text that Starlette writes as the wire bytes."""
    return encode_field(value).decode("latin-1")


def wire_headers(request: Request, names: HeaderNames) -> dict[str, str]:
    """Signature headers of ``request`` keyed by their configured names."""
    headers: dict[str, str] = {}
    for name in (names.endpoint, names.timestamp, names.signature, names.api_key):
        value = request.headers.get(name)
        if value is not None:
            headers[name] = wire_text(value)
    return headers


async def verify_request(
    request: Request,
    resolver: KeyResolver,
    names: HeaderNames | None = None,
) -> tuple[VerificationResult, bytes]:
    """Read the full raw body and verify the request signature.

    The body is buffered before any decoding so the route can still read
    it, and the verified bytes are the ones the route sees.
    """
    names = names or HeaderNames()
    raw_body = await request.body()
    return verify(wire_headers(request, names), raw_body, resolver, names), raw_body


def unauthorized_response() -> Response:
    # Same response for every rejection reason.
    return error_response(ErrorCode.UNAUTHORIZED, "Invalid signature", 401)


class SignatureVerificationMiddleware(BaseHTTPMiddleware):
    """Reject requests whose HMAC signature does not verify."""

    def __init__(self, app: ASGIApp, settings: Settings, resolver: KeyResolver) -> None:
        super().__init__(app)
        self._resolver = resolver
        self._names = HeaderNames.from_settings(settings)
        self._exempt_paths = set(settings.auth_exempt_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self._exempt_paths:
            return await call_next(request)

        result, _ = await verify_request(request, self._resolver, self._names)
        record_verification(result.outcome)

        if not result.accepted:
            inbound = result.inbound
            logger.warning(
                "Request signature rejected",
                reason=result.outcome,
                path=request.url.path,
                endpoint=inbound.endpoint if inbound else None,
                api_key_id=inbound.key_id if inbound else None,
            )
            return unauthorized_response()

        request.state.signature = result.inbound
        set_api_key_id(result.inbound.key_id)  # type: ignore[union-attr]
        return await call_next(request)


def signed_response(
    request: Request,
    body: bytes | None,
    status_code: int = 200,
    media_type: str | None = "application/json",
) -> Response:
    """
    Build a response whose signature headers are fixed before the body.

    ``body`` must be the exact bytes to transmit; ``None`` sends no body
    and leaves the body out of the signature.

    Args:
        request: Verified request being answered
        body: Serialized response payload, or None
        status_code: HTTP status
        media_type: Content type of the response

    Returns:
        Response carrying the endpoint, timestamp and signature headers
    """
    inbound = request.state.signature
    resolver: KeyResolver = request.app.state.key_resolver
    names: HeaderNames = request.app.state.header_names

    try:
        headers = sign(body, inbound.endpoint, inbound.key_id, resolver)
    except SigningConfigurationError as e:
        record_signing("signing_error")
        logger.error("Cannot sign response", api_key_id=e.key_id, path=request.url.path)
        return error_response(ErrorCode.SIGNING_FAILED, "Internal server error", 500)

    record_signing("signed")
    return Response(
        content=body,
        status_code=status_code,
        headers={name: header_value(value) for name, value in headers.as_dict(names).items()},
        media_type=media_type,
    )
