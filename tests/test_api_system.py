from __future__ import annotations

import json

import httpx
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from gridstor_analytics.api import dependencies
from gridstor_analytics.api.app import create_app
from gridstor_analytics.config import get_shared_header_url


class UnavailableRepository:
    """Repository stand-in whose database is unreachable."""

    def ping(self) -> None:
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    def count_rows(self):
        raise OperationalError("SELECT count(*)", {}, Exception("connection refused"))


class MissingTablesRepository:
    """Repository stand-in whose database answers but has no curve tables."""

    def ping(self) -> None:
        return None

    def count_rows(self):
        raise OperationalError("SELECT count(*)", {}, Exception("no such table: curve_definitions"))


class MisconfiguredRepository:
    """Repository stand-in whose driver fails outside SQLAlchemy."""

    def ping(self) -> None:
        raise RuntimeError("driver not loaded")

    def count_rows(self):
        raise RuntimeError("driver not loaded")


def create_proxy_client(handler) -> TestClient:
    """Build a test client whose outbound HTTP calls go to ``handler``."""
    app = create_app()

    async def get_http_client():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            yield client

    app.dependency_overrides[dependencies.get_http_client] = get_http_client
    return TestClient(app)


def test_health_reports_counts(client: TestClient, definition, instance):
    resp = client.get("/api/health")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["timestamp"].endswith("Z")
    assert body["checks"]["database"]["healthy"] is True
    assert body["checks"]["tables"]["counts"] == {"curveDefinitions": 1, "curveInstances": 1}
    assert body["checks"]["system"]["healthy"] is True


def test_health_unavailable_database_returns_503():
    app = create_app()
    app.dependency_overrides[dependencies.get_repository] = lambda: UnavailableRepository()

    resp = TestClient(app).get("/api/health")

    assert resp.status_code == 503
    body = resp.json()
    assert body["status"] == "unhealthy"
    assert body["checks"]["database"]["healthy"] is False
    assert "connection refused" in body["checks"]["database"]["error"]
    assert body["checks"]["tables"]["healthy"] is False


def test_health_table_failure_returns_503():
    app = create_app()
    app.dependency_overrides[dependencies.get_repository] = lambda: MissingTablesRepository()

    resp = TestClient(app).get("/api/health")

    assert resp.status_code == 503
    body = resp.json()
    assert body["status"] == "unhealthy"
    assert body["checks"]["database"]["healthy"] is True
    assert body["checks"]["tables"]["healthy"] is False
    assert "no such table" in body["checks"]["tables"]["error"]


def test_health_reports_unexpected_errors():
    app = create_app()
    app.dependency_overrides[dependencies.get_repository] = lambda: MisconfiguredRepository()

    resp = TestClient(app).get("/api/health")

    assert resp.status_code == 503
    body = resp.json()
    assert body["status"] == "unhealthy"
    assert body["checks"]["database"] == {"healthy": False, "error": "driver not loaded"}
    assert body["checks"]["tables"]["healthy"] is False


def test_shared_header_proxied_with_cache_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["user_agent"] = request.headers["user-agent"]
        return httpx.Response(200, text="console.log('nav');")

    resp = create_proxy_client(handler).get("/api/shared-header.js")

    assert resp.status_code == 200
    assert resp.text == "console.log('nav');"
    assert resp.headers["content-type"].startswith("application/javascript")
    assert resp.headers["cache-control"] == "public, max-age=3600"
    assert resp.headers["access-control-allow-origin"] == "*"
    assert seen["url"] == get_shared_header_url()
    assert seen["user_agent"] == "Mozilla/5.0 (compatible; GridStor-Proxy/1.0)"


def test_shared_header_password_protected_returns_warning_script():
    resp = create_proxy_client(lambda request: httpx.Response(401)).get("/api/shared-header.js")

    assert resp.status_code == 200
    assert resp.text.startswith('console.warn("Shared navigation header is currently unavailable.')
    assert resp.text.endswith('");')
    assert "password-protected" in resp.text
    assert resp.headers["cache-control"] == "no-cache"


def test_password_protected_warning_escapes_source_url(monkeypatch):
    source_url = "https://example.com/nav's-header.js"
    monkeypatch.setenv("GRIDSTOR_SHARED_HEADER_URL", source_url)

    resp = create_proxy_client(lambda request: httpx.Response(401)).get("/api/shared-header.js")

    message = (
        "Shared navigation header is currently unavailable. "
        f"The file at {source_url} is password-protected and needs to be made "
        "publicly accessible with CORS headers."
    )
    assert resp.status_code == 200
    assert resp.text == f"console.warn({json.dumps(message)});"


def test_shared_header_upstream_error_returns_console_error():
    resp = create_proxy_client(lambda request: httpx.Response(500)).get("/api/shared-header.js")

    assert resp.status_code == 200
    assert resp.text == (
        "console.error('Failed to load shared-header.js:', "
        '"Failed to fetch shared-header.js: 500 Internal Server Error");'
    )
    assert resp.headers["content-type"].startswith("application/javascript")


def test_shared_header_network_failure_returns_console_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection reset", request=request)

    resp = create_proxy_client(handler).get("/api/shared-header.js")

    assert resp.status_code == 200
    assert resp.text == "console.error('Failed to load shared-header.js:', \"connection reset\");"
    assert resp.headers["cache-control"] == "no-cache"
