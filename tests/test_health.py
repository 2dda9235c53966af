from __future__ import annotations

from fastapi.testclient import TestClient

from notion_connect.main import create_app


def test_healthz_ok() -> None:
    app = create_app()
    client = TestClient(app)
    res = client.get("/healthz")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"
    assert res.json()["environment"] == "test"


def test_readyz_checks_database() -> None:
    app = create_app()
    client = TestClient(app)
    res = client.get("/readyz")
    assert res.status_code == 200
    assert res.json() == {"status": "ready"}


def test_responses_carry_request_id_and_security_headers() -> None:
    app = create_app()
    client = TestClient(app)

    res = client.get("/healthz", headers={"x-request-id": "req-123"})
    assert res.headers["x-request-id"] == "req-123"
    assert res.headers["X-Content-Type-Options"] == "nosniff"
    assert res.headers["X-Frame-Options"] == "DENY"

    generated = client.get("/healthz")
    assert generated.headers["x-request-id"]
