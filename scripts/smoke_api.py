from __future__ import annotations

import os
import sys

import httpx


def _assert_ok(response: httpx.Response, *, label: str) -> None:
    if response.status_code >= 400:
        raise RuntimeError(f"{label} failed: HTTP {response.status_code} body={response.text}")


def main() -> None:
    base_url = os.environ.get("API_BASE_URL", "http://localhost:5000")
    user_id = os.environ.get("SMOKE_USER_ID", "smoke-user")

    with httpx.Client(base_url=base_url, timeout=20.0) as client:
        health = client.get("/healthz")
        _assert_ok(health, label="GET /healthz")
        print("ok: GET /healthz")

        ready = client.get("/readyz")
        _assert_ok(ready, label="GET /readyz")
        print("ok: GET /readyz")

        auth_url = client.get("/notion/auth/url", params={"user_id": user_id})
        _assert_ok(auth_url, label="GET /notion/auth/url")
        print(f"ok: GET /notion/auth/url -> {auth_url.json()['auth_url'][:60]}...")

        connections = client.get("/notion/connections", params={"user_id": user_id})
        _assert_ok(connections, label="GET /notion/connections")
        print(f"ok: GET /notion/connections ({len(connections.json())} connections)")

        print(f"smoke complete: user={user_id}")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # noqa: BLE001
        print(f"smoke failed: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
