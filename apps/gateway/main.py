"""HTTP entry point for the edge gateway.

Every path and method is funnelled into :meth:`EdgeHandler.handle`, which owns
origin checks, preflight answers, routing and error envelopes.  FastAPI's own
docs routes are switched off so the route table is the only source of paths.
"""

from typing import Callable, Optional

import httpx
from fastapi import FastAPI

from apps.gateway import EdgeHandler
from lib.config.gateway_loader import GatewayConfig, load_gateway_config
from lib.telemetry.logger import configure_logging


def create_app(
    config: Optional[GatewayConfig] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    token_lookup: Optional[Callable[[str], Optional[str]]] = None,
) -> FastAPI:
    config = config or load_gateway_config()
    configure_logging(config.log_level)
    handler = EdgeHandler(config, transport=transport, token_lookup=token_lookup)

    app = FastAPI(
        title=config.name,
        version=config.version,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.handler = handler

    # Mounted as a raw ASGI endpoint so no method filter applies: every verb
    # reaches the gate.
    app.add_route("/{full_path:path}", handler, include_in_schema=False)

    return app


app = create_app()
