"""Edge gateway service.

:class:`EdgeHandler` ties together the origin gate, the route table and the
upstream adapter.  It only depends on a Starlette ``Request`` so the same
object can sit behind the FastAPI app in :mod:`apps.gateway.main` or be
driven directly in tests.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional

import httpx
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from lib.config.gateway_loader import GatewayConfig, load_gateway_config
from lib.contracts.envelope import ErrorBody
from lib.telemetry.logger import get_logger

from .gate import OriginGate, gate_request
from .routes import ROUTES, RequestContext, Route, resolve
from .upstream import UpstreamAdapter

log = get_logger(__name__)


@dataclass
class EdgeHandler:
    """Stateless request handler; one instance serves every request."""

    config: GatewayConfig | None = field(default=None)
    transport: Optional[httpx.AsyncBaseTransport] = None
    token_lookup: Optional[Callable[[str], Optional[str]]] = None
    routes: List[Route] = field(default_factory=lambda: list(ROUTES))

    def __post_init__(self) -> None:
        if self.config is None:
            self.config = load_gateway_config()
        self.gate = OriginGate(self.config.gate)
        self.upstream = UpstreamAdapter(
            self.config.upstream,
            transport=self.transport,
            token_lookup=self.token_lookup,
        )

    async def handle(self, request: Request) -> Response:
        decision = gate_request(self.gate, request.headers)

        if request.method == "OPTIONS":
            return self.gate.preflight(decision)
        if not decision.allowed:
            log.info(
                "Denied %s %s (origin=%s, user_agent=%s)",
                request.method,
                request.url.path,
                decision.origin,
                decision.user_agent,
            )
            return self.gate.denied(decision)

        cors = self.gate.cors_headers(decision)
        ctx = RequestContext(request, decision, self.config, self.upstream)
        handler = resolve(request.url.path, request.method, self.routes)
        try:
            body, status = await handler(ctx)
        except Exception as exc:
            log.exception("Unhandled error on %s %s", request.method, request.url.path)
            body = ErrorBody(error="Internal server error", message=str(exc) or repr(exc)).to_json()
            status = 500
        return JSONResponse(body, status_code=status, headers=cors)

    async def __call__(self, scope, receive, send) -> None:
        """ASGI entry point; lets the handler be mounted as a route endpoint."""

        response = await self.handle(Request(scope, receive))
        await response(scope, receive, send)


__all__ = ["EdgeHandler"]
