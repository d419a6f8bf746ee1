import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from apps.gateway import EdgeHandler
from apps.gateway.routes import Route
from lib.config.gateway_loader import build_gateway_config

ALLOWED_ORIGIN = "https://jarvis-997.pages.dev"


# ---------------------------------------------------------------------------
# Origin gate
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("path", ["/", "/health", "/api/query", "/nowhere"])
def test_unknown_origin_is_denied_without_cors(make_client, path):
    client = make_client(origin="https://evil.example")
    response = client.get(path)
    assert response.status_code == 403
    body = response.json()
    assert body["error"] == "Access denied"
    assert body["debug"] == {"origin": "https://evil.example", "user_agent": "testclient"}
    assert "access-control-allow-origin" not in response.headers


def test_denial_can_carry_cors_header(make_client):
    client = make_client({"gate": {"cors_on_denial": True}}, origin="https://evil.example")
    response = client.post("/api/query", json={"query": "hi"})
    assert response.status_code == 403
    assert response.headers["access-control-allow-origin"] == "https://evil.example"


def test_no_origin_and_unknown_agent_is_denied(make_client):
    client = make_client(origin=None)
    response = client.get("/health")
    assert response.status_code == 403
    assert response.json()["debug"]["origin"] == "none"


def test_direct_browser_access_uses_wildcard(make_client):
    client = make_client(origin=None)
    response = client.get("/health", headers={"User-Agent": "Mozilla/5.0"})
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
    body = response.json()
    assert body["access_type"] == "direct"
    assert body["origin"] == "direct_access"
    assert body["user_agent"] == "Mozilla/5.0"


def test_strict_policy_rejects_direct_access(make_client):
    client = make_client({"gate": {"policy": "strict"}}, origin=None)
    response = client.get("/", headers={"User-Agent": "curl/8.4.0"})
    assert response.status_code == 403


def test_preflight_allowed(client):
    response = client.options("/api/query")
    assert response.status_code == 200
    assert response.content == b""
    assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN
    assert response.headers["access-control-allow-methods"] == "GET, POST, PUT, DELETE, OPTIONS"
    assert response.headers["access-control-allow-headers"] == "Content-Type, Authorization"
    assert response.headers["access-control-max-age"] == "86400"


def test_preflight_denied_is_bare(make_client):
    client = make_client(origin="https://evil.example")
    response = client.options("/anything")
    assert response.status_code == 403
    assert response.content == b""
    assert "access-control-allow-origin" not in response.headers


def test_null_origin_is_allow_listed(make_client):
    response = make_client(origin="null").get("/test")
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "null"


# ---------------------------------------------------------------------------
# Static routes
# ---------------------------------------------------------------------------

def test_banner(client):
    response = client.get("/")
    assert response.status_code == 200
    body = response.json()
    assert body["version"] == "3.0.0"
    assert body["endpoints"] == ["/health", "/api/query", "/test", "/debug"]
    assert body["access_type"] == "cors"
    assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN


def test_health_echoes_caller(client):
    body = client.get("/health").json()
    assert body["status"] == "J.A.R.V.I.S. online"
    assert body["origin"] == ALLOWED_ORIGIN
    assert body["access_type"] == "cors"


def test_debug_echoes_request(client):
    response = client.put("/debug?a=1&b=two", headers={"X-Trace": "abc"})
    assert response.status_code == 200
    body = response.json()
    assert body["method"] == "PUT"
    assert body["path"] == "/debug"
    assert body["url"].endswith("/debug?a=1&b=two")
    assert body["query_params"] == {"a": "1", "b": "two"}
    assert body["headers"]["x-trace"] == "abc"
    assert body["headers"]["origin"] == ALLOWED_ORIGIN


def test_test_endpoint_accepts_any_method(client):
    body = client.delete("/test").json()
    assert body["message"] == "Test endpoint working!"
    assert body["method"] == "DELETE"


def test_query_requires_post(client):
    response = client.get("/api/query")
    assert response.status_code == 405
    body = response.json()
    assert body["required_method"] == "POST"
    assert body["received_method"] == "GET"
    assert body["usage"]["body"] == {"query": "Your question here"}
    assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN


def test_unknown_path(client):
    response = client.get("/nonexistent")
    assert response.status_code == 404
    body = response.json()
    assert body["received_path"] == "/nonexistent"
    assert body["received_method"] == "GET"
    assert body["message"] == "The path /nonexistent is not available"
    assert "/api/query" in body["available_endpoints"]


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("payload", [{}, {"query": ""}, {"query": "   "}, {"query": 5}, ["hello"]])
def test_query_missing(client, upstream, payload):
    response = client.post("/api/query", json=payload)
    assert response.status_code == 400
    assert response.json()["error"] == "Query is required"
    assert upstream.requests == []


def test_input_field_is_accepted(client, upstream):
    response = client.post("/api/query", json={"input": "status report"})
    assert response.status_code == 200
    assert upstream.last_json["messages"][1]["content"] == "status report"


def test_malformed_body(client):
    response = client.post(
        "/api/query", content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 500
    assert response.json()["error"] == "Failed to process query"


def test_empty_body(client, upstream):
    response = client.post("/api/query", content=b"")
    assert response.status_code == 500
    assert response.json()["error"] == "Failed to process query"
    assert upstream.requests == []


def test_missing_token(make_client, upstream):
    response = make_client(token=None).post("/api/query", json={"query": "hello"})
    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "API token not configured"
    assert "HUGGINGFACE_TOKEN" in body["debug"]
    assert upstream.requests == []


def test_upstream_error_status_is_propagated(client, upstream):
    upstream.status, upstream.text = 503, "overloaded"
    response = client.post("/api/query", json={"query": "hello"})
    assert response.status_code == 503
    assert response.json() == {"error": "AI service error", "status": 503, "details": "overloaded"}
    assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN


def test_upstream_unreachable(client, upstream):
    upstream.error = httpx.ConnectError("connection refused")
    response = client.post("/api/query", json={"query": "hello"})
    assert response.status_code == 502
    body = response.json()
    assert body["error"] == "AI service error"
    assert body["details"] == "connection refused"


def test_upstream_invalid_json(client, upstream):
    upstream.text = "<html>oops</html>"
    response = client.post("/api/query", json={"query": "hello"})
    assert response.status_code == 500
    assert response.json()["error"] == "Failed to process query"


def test_unexpected_upstream_shape_gets_apology(client, upstream):
    upstream.payload = {"weird": True}
    body = client.post("/api/query", json={"query": "hello"}).json()
    assert body["response"] == "I'm sorry, Sir. I couldn't process that request."
    assert body["status"] == "success"


def test_text_generation_variant(make_client, upstream):
    upstream.payload = [{"generated_text": "You are Jarvis... User query: hello\nX"}]
    client = make_client({"upstream": {"variant": "text_generation"}})
    response = client.post("/api/query", json={"query": "hello"})
    assert response.status_code == 200
    body = response.json()
    assert body["response"] == "X"
    assert body["model"] == "deepseek-ai/deepseek-coder-6.7b-instruct"
    sent = upstream.requests[-1]
    assert str(sent.url) == (
        "https://api-inference.huggingface.co/models/deepseek-ai/deepseek-coder-6.7b-instruct"
    )
    assert upstream.last_json["parameters"]["max_new_tokens"] == 150
    assert upstream.last_json["inputs"].endswith("User query: hello\n")


def test_query_containing_prompt_marker(make_client, upstream):
    query = "What does 'User query: x' mean?"
    upstream.payload = [
        {"generated_text": f"You are Jarvis...\n\nUser query: {query}\nIt is a label, Sir."}
    ]
    client = make_client({"upstream": {"variant": "text_generation"}})
    body = client.post("/api/query", json={"query": query}).json()
    assert body["response"] == "It is a label, Sir."


# ---------------------------------------------------------------------------
# Methods and failures outside the route table
# ---------------------------------------------------------------------------

def test_unlisted_method_from_unknown_origin_is_denied(make_client):
    client = make_client(origin="https://evil.example")
    response = client.request("PROPFIND", "/test")
    assert response.status_code == 403
    assert response.json()["error"] == "Access denied"


def test_unlisted_method_reaches_route_table(client):
    response = client.request("PROPFIND", "/test")
    assert response.status_code == 200
    assert response.json()["method"] == "PROPFIND"


def test_handler_failure_is_reported_without_stack():
    async def explode(ctx):
        raise RuntimeError("reactor offline")

    handler = EdgeHandler(build_gateway_config({}), routes=[Route("/boom", explode)])
    app = FastAPI()
    app.add_route("/{full_path:path}", handler)
    client = TestClient(app)

    response = client.get("/boom", headers={"Origin": ALLOWED_ORIGIN})
    assert response.status_code == 500
    body = response.json()
    assert body == {"error": "Internal server error", "message": "reactor offline"}
    assert "stack" not in body
    assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN

    # routes outside the custom table still fall back to 404
    assert client.get("/", headers={"Origin": ALLOWED_ORIGIN}).status_code == 404
