"""Route table for the gateway.

Routes are matched top to bottom; the first entry whose path equals the
request path and whose method set admits the request method wins.  An empty
method set admits every method.  Unmatched requests fall through to
:func:`not_found`.

Handlers receive a :class:`RequestContext` and return ``(body, status)``;
CORS headers are attached by the caller.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, FrozenSet, List, Optional, Tuple

from starlette.requests import Request

from lib.config.gateway_loader import GatewayConfig
from lib.contracts.envelope import ErrorBody, OriginDecision, QueryEnvelope
from lib.telemetry.logger import get_logger
from lib.utils.helpers import _or_placeholder, _utcnow_iso

from .upstream import TokenNotConfigured, UpstreamAdapter

log = get_logger(__name__)

HandlerResult = Tuple[Dict[str, Any], int]


@dataclass
class RequestContext:
    request: Request
    decision: OriginDecision
    config: GatewayConfig
    upstream: UpstreamAdapter

    @property
    def origin_or_direct(self) -> str:
        return _or_placeholder(self.decision.origin, "direct_access")

    @property
    def user_agent(self) -> str:
        return _or_placeholder(self.decision.user_agent, "none")


Handler = Callable[[RequestContext], Awaitable[HandlerResult]]


@dataclass(frozen=True)
class Route:
    path: str
    handler: Handler
    methods: FrozenSet[str] = frozenset()

    def matches(self, path: str, method: str) -> bool:
        return path == self.path and (not self.methods or method in self.methods)


# ---------------------------------------------------------------------------
# Static routes
# ---------------------------------------------------------------------------

async def banner(ctx: RequestContext) -> HandlerResult:
    return {
        "message": f"{ctx.config.name} is running!",
        "version": ctx.config.version,
        "endpoints": ["/health", "/api/query", "/test", "/debug"],
        "timestamp": _utcnow_iso(),
        "access_type": ctx.decision.access_type,
    }, 200


async def health(ctx: RequestContext) -> HandlerResult:
    return {
        "status": "J.A.R.V.I.S. online",
        "timestamp": _utcnow_iso(),
        "version": ctx.config.version,
        "origin": ctx.origin_or_direct,
        "access_type": ctx.decision.access_type,
        "user_agent": ctx.user_agent,
    }, 200


async def debug(ctx: RequestContext) -> HandlerResult:
    req = ctx.request
    return {
        "message": "Debug information",
        "method": req.method,
        "url": str(req.url),
        "path": req.url.path,
        "origin": ctx.origin_or_direct,
        "access_type": ctx.decision.access_type,
        "user_agent": ctx.user_agent,
        "headers": dict(req.headers),
        "query_params": dict(req.query_params),
    }, 200


async def echo_test(ctx: RequestContext) -> HandlerResult:
    return {
        "message": "Test endpoint working!",
        "method": ctx.request.method,
        "url": str(ctx.request.url),
        "origin": ctx.origin_or_direct,
        "access_type": ctx.decision.access_type,
        "timestamp": _utcnow_iso(),
    }, 200


async def query_method_not_allowed(ctx: RequestContext) -> HandlerResult:
    body = ErrorBody(
        error="Method not allowed",
        message="/api/query only accepts POST requests",
        received_method=ctx.request.method,
        required_method="POST",
        usage={
            "endpoint": "/api/query",
            "method": "POST",
            "body": {"query": "Your question here"},
        },
    )
    return body.to_json(), 405


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------

def _extract_query(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    query = payload.get("query")
    if query is None:
        query = payload.get("input")
    if not isinstance(query, str) or not query.strip():
        return None
    return query


async def _read_json(request: Request) -> Any:
    return json.loads(await request.body())


async def ai_query(ctx: RequestContext) -> HandlerResult:
    try:
        query = _extract_query(await _read_json(ctx.request))
        if query is None:
            body = ErrorBody(
                error="Query is required",
                message="Please provide a query in request body",
                example={"query": "What is the weather like?"},
            )
            return body.to_json(), 400

        result = await ctx.upstream.generate(query)
        if not result.ok:
            body = ErrorBody(
                error="AI service error",
                status=result.status_code,
                details=result.details,
            )
            return body.to_json(), result.status_code

        envelope = QueryEnvelope(
            response=result.text,
            timestamp=_utcnow_iso(),
            model=ctx.upstream.model,
            access_type=ctx.decision.access_type,
        )
        return envelope.model_dump(), 200
    except TokenNotConfigured as exc:
        log.error("Query rejected: %s", exc)
        return ErrorBody(error="API token not configured", debug=str(exc)).to_json(), 500
    except Exception as exc:
        log.exception("AI query failed")
        body = ErrorBody(error="Failed to process query", message=str(exc) or repr(exc))
        return body.to_json(), 500


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------

ROUTES: List[Route] = [
    Route("/", banner),
    Route("/health", health),
    Route("/debug", debug),
    Route("/test", echo_test),
    Route("/api/query", ai_query, frozenset({"POST"})),
    Route("/api/query", query_method_not_allowed),
]

AVAILABLE_ENDPOINTS = ["/", "/health", "/api/query", "/test", "/debug"]


async def not_found(ctx: RequestContext) -> HandlerResult:
    path = ctx.request.url.path
    body = ErrorBody(
        error="Endpoint not found",
        message=f"The path {path} is not available",
        available_endpoints=AVAILABLE_ENDPOINTS,
        received_path=path,
        received_method=ctx.request.method,
    )
    return body.to_json(), 404


def resolve(path: str, method: str, routes: List[Route] = ROUTES) -> Handler:
    for route in routes:
        if route.matches(path, method):
            return route.handler
    return not_found
