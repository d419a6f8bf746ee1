"""Origin gate.

Decides whether a request may reach the route table and which
``Access-Control-Allow-Origin`` value is echoed back.  Two policies exist:

``permissive``
    Allow-listed origins, plus requests that carry no ``Origin`` header but
    whose ``User-Agent`` looks like a browser or ``curl`` (direct access while
    testing).
``strict``
    Allow-listed origins only.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from starlette.responses import JSONResponse, Response

from lib.config.gateway_loader import GateConfig
from lib.contracts.envelope import ErrorBody, OriginDecision
from lib.utils.helpers import _or_placeholder

ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization"
MAX_AGE = "86400"


class GatePolicy(str, Enum):
    PERMISSIVE = "permissive"
    STRICT = "strict"


class OriginGate:
    """Evaluate ``Origin``/``User-Agent`` pairs against a :class:`GateConfig`."""

    def __init__(self, cfg: GateConfig):
        self.cfg = cfg
        self.policy = GatePolicy(cfg.policy)
        self._allowed = frozenset(cfg.allowed_origins)

    def _direct_access(self, user_agent: Optional[str]) -> bool:
        if self.policy is GatePolicy.STRICT or not user_agent:
            return False
        return any(sig in user_agent for sig in self.cfg.direct_access_agents)

    def evaluate(self, origin: Optional[str], user_agent: Optional[str]) -> OriginDecision:
        if origin:
            allowed = origin in self._allowed
        else:
            allowed = self._direct_access(user_agent)
        return OriginDecision(
            allowed=allowed,
            allow_origin=origin or self.cfg.fallback_allow_origin,
            origin=origin or None,
            user_agent=user_agent or None,
        )

    def cors_headers(self, decision: OriginDecision) -> dict:
        """Headers attached to every non-preflight response."""

        if not decision.allowed and not self.cfg.cors_on_denial:
            return {}
        return {"Access-Control-Allow-Origin": decision.allow_origin}

    def preflight(self, decision: OriginDecision) -> Response:
        if not decision.allowed:
            return Response(status_code=403)
        return Response(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": decision.allow_origin,
                "Access-Control-Allow-Methods": ALLOW_METHODS,
                "Access-Control-Allow-Headers": ALLOW_HEADERS,
                "Access-Control-Max-Age": MAX_AGE,
            },
        )

    def denied(self, decision: OriginDecision) -> JSONResponse:
        allowed = ", ".join(o for o in self.cfg.allowed_origins if o != "null")
        body = ErrorBody(
            error="Access denied",
            message=(
                f"This API can only be accessed from {allowed or 'an allow-listed origin'}"
                + (" or directly for testing" if self.policy is GatePolicy.PERMISSIVE else "")
            ),
            debug={
                "origin": _or_placeholder(decision.origin, "none"),
                "user_agent": _or_placeholder(decision.user_agent, "none"),
            },
        )
        return JSONResponse(body.to_json(), status_code=403, headers=self.cors_headers(decision))


def gate_request(gate: OriginGate, headers) -> OriginDecision:
    """Run ``gate`` over a case-insensitive header mapping."""

    return gate.evaluate(headers.get("origin"), headers.get("user-agent"))
