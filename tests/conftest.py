import json
from typing import Any, Callable, Dict, List

import httpx
import pytest
from fastapi.testclient import TestClient

from apps.gateway.main import create_app
from lib.config.gateway_loader import build_gateway_config

ALLOWED_ORIGIN = "https://jarvis-997.pages.dev"
TOKEN = "hf_test_token"


class FakeUpstream:
    """Scripted upstream; records every request it receives."""

    def __init__(self, status: int = 200, payload: Any = None, text: str | None = None):
        self.status = status
        self.payload = payload
        self.text = text
        self.error: Exception | None = None
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.text is not None:
            return httpx.Response(self.status, text=self.text)
        return httpx.Response(self.status, json=self.payload)

    @property
    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream(payload={"choices": [{"message": {"content": "At your service, Sir."}}]})


@pytest.fixture
def make_client(upstream) -> Callable[..., TestClient]:
    def _make(raw: Dict[str, Any] | None = None, token: str | None = TOKEN, origin: str | None = ALLOWED_ORIGIN) -> TestClient:
        env = {"HUGGINGFACE_TOKEN": token} if token else {}
        app = create_app(
            build_gateway_config(raw or {}),
            transport=httpx.MockTransport(upstream),
            token_lookup=env.get,
        )
        client = TestClient(app)
        if origin:
            client.headers["Origin"] = origin
        return client

    return _make


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client()
