from __future__ import annotations

import logging


def test_preserves_incoming_request_id_header(client):
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing(client):
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert isinstance(generated, str)

    duration = resp.headers.get("X-Request-Duration-ms")
    assert duration is not None


def test_request_id_survives_throttling(client):
    for _ in range(3):
        client.post("/v1/auth/sign-up")

    resp = client.post("/v1/auth/sign-up", headers={"X-Request-ID": "throttled-1"})

    assert resp.status_code == 429
    assert resp.headers.get("X-Request-ID") == "throttled-1"


def test_access_log_carries_rate_limit_outcome(client, caplog):
    with caplog.at_level(logging.INFO, logger="app.core.middleware"):
        client.post("/v1/auth/sign-in")

    record = next(r for r in caplog.records if r.getMessage() == "http.request")
    assert record.route == "/v1/auth/sign-in"
    assert record.status == 200
    assert record.rate_limit_remaining == "19"
