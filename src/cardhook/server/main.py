"""Webhook server for card transaction authorizations and adjustments."""

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route
import uvicorn

from cardhook.common.http import RequestIdMiddleware
from cardhook.common.logging import get_logger, setup_logging
from cardhook.common.metrics import MetricsMiddleware, metrics_endpoint
from cardhook.common.settings import Settings, get_settings
from cardhook.signature.keys import KeyResolver, load_key_ring
from cardhook.signature.middleware import SignatureVerificationMiddleware, signed_response
from cardhook.signature.verifier import HeaderNames

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthorizationDecision:
    """Answer to an authorization request."""

    status: str
    status_detail: str
    message: str

    def to_body(self) -> bytes:
        """Serialize once; these exact bytes are both signed and sent."""
        payload = {
            "status": self.status,
            "status_detail": self.status_detail,
            "message": self.message,
        }
        return json.dumps(payload, separators=(",", ":")).encode("utf-8")


APPROVED = AuthorizationDecision(status="APPROVED", status_detail="APPROVED", message="Ok")

Authorizer = Callable[[dict[str, Any]], AuthorizationDecision]


def approve_all(_transaction: dict[str, Any]) -> AuthorizationDecision:
    """Default authorizer: approve every transaction."""
    return APPROVED


class TransactionServer:
    """HTTP handlers for the card processor's transaction webhooks."""

    def __init__(self, authorizer: Authorizer | None = None):
        """Initialize server."""
        self._authorizer = authorizer or approve_all

    async def _read_transaction(self, request: Request) -> dict[str, Any] | None:
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        return payload if isinstance(payload, dict) else None

    async def handle_authorization(self, request: Request) -> Response:
        """Approve or reject a card transaction."""
        transaction = await self._read_transaction(request)
        if transaction is None:
            body = json.dumps({"error": "Invalid JSON"}, separators=(",", ":")).encode("utf-8")
            return signed_response(request, body, status_code=400)

        decision = self._authorizer(transaction)
        logger.info("Authorization processed", status=decision.status)
        return signed_response(request, decision.to_body())

    async def handle_adjustment(self, request: Request) -> Response:
        """Register a forced adjustment; it cannot be rejected."""
        adjustment_id = request.path_params.get("adjustment_id", "")
        logger.info("Adjustment processed", adjustment_id=adjustment_id)
        # Adjustments answer with no body at all, not "{}" or "null".
        return signed_response(request, None)

    async def handle_health(self, request: Request) -> JSONResponse:
        """Health check."""
        return JSONResponse({"status": "healthy"})


def create_app(
    settings: Settings | None = None,
    resolver: KeyResolver | None = None,
    authorizer: Authorizer | None = None,
) -> Starlette:
    """Create the Starlette application."""
    settings = settings or get_settings()
    resolver = resolver if resolver is not None else load_key_ring(settings)
    server = TransactionServer(authorizer)

    routes = [
        Route("/transactions/authorizations", server.handle_authorization, methods=["POST"]),
        Route(
            "/transactions/adjustments/{adjustment_id}",
            server.handle_adjustment,
            methods=["POST"],
        ),
        Route("/health", server.handle_health, methods=["GET"]),
        Route("/metrics", metrics_endpoint, methods=["GET"]),
    ]

    app = Starlette(routes=routes)
    app.state.key_resolver = resolver
    app.state.header_names = HeaderNames.from_settings(settings)

    app.add_middleware(SignatureVerificationMiddleware, settings=settings, resolver=resolver)
    app.add_middleware(
        MetricsMiddleware,
        exclude_paths=list(settings.auth_exempt_paths),
    )
    app.add_middleware(RequestIdMiddleware)

    return app


def main():
    """Entry point for the webhook server."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_json)
    app = create_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
