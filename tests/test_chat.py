"""Tests for the Chat API endpoints."""

from fastapi.testclient import TestClient


def test_root_endpoint(client):
    resp = client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["service"] == "Batlokoa Sales Assistant"
    assert data["status"] == "operational"
    assert "version" in data


def test_health_endpoint(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["services"]["components"]["product_engine"]["products"] == 12
    assert data["services"]["knowledge"]["patterns"] == "1.3.0"


def test_not_ready_returns_503():
    from api.main import create_app
    from api.services import reset_services

    reset_services()
    # No lifespan: services are never initialized
    test_client = TestClient(create_app())
    assert test_client.get("/api/v1/categories").status_code == 503
    assert test_client.get("/health").json()["status"] == "degraded"


def test_chat_basic(client):
    resp = client.post("/api/v1/chat", json={"message": "Hello", "visitor_id": "visitor-1"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    assert data["intent"] == "GREETING"
    assert "Welcome to Batlokoa Innovative Projects" in data["response"]["text"]
    assert data["response"]["quick_replies"]
    assert data["session"]["session_id"]
    assert isinstance(data["latency_ms"], (int, float))
    assert data["timestamp"]


def test_chat_price_quote(client):
    resp = client.post("/api/v1/chat", json={
        "message": "I need 150 M12 bolts delivered to Durban",
        "visitor_id": "visitor-1",
    })
    data = resp.json()
    assert data["intent"] == "PRICE_QUOTE"
    assert data["data"]["unit_price"] == 4.05
    assert data["data"]["delivery_cost"] == 410.0
    assert data["entities"]["quantities"][0]["value"] == 150
    assert data["session"]["lead_score"] == 12


def test_chat_conversation_continuity(client):
    """Messages from the same visitor share a session and its context."""
    r1 = client.post("/api/v1/chat", json={"message": "How much are M12 bolts?", "visitor_id": "visitor-1"})
    r2 = client.post("/api/v1/chat", json={"message": "How much for 500?", "visitor_id": "visitor-1"})
    assert r1.json()["session"]["session_id"] == r2.json()["session"]["session_id"]
    assert r2.json()["data"]["product_name"] == "Hex Bolt M12 x 50mm Grade 8.8"


def test_chat_unknown_message(client):
    resp = client.post("/api/v1/chat", json={"message": "xyz qwerty", "visitor_id": "visitor-1"})
    data = resp.json()
    assert data["intent"] == "UNKNOWN"
    assert data["suggestions"]


def test_chat_empty_message(client):
    """Empty message should fail validation."""
    resp = client.post("/api/v1/chat", json={"message": "", "visitor_id": "visitor-1"})
    assert resp.status_code == 422


def test_chat_long_message(client):
    """Message exceeding max length should fail."""
    resp = client.post("/api/v1/chat", json={"message": "x" * 2001, "visitor_id": "visitor-1"})
    assert resp.status_code == 422


def test_chat_requires_visitor(client):
    resp = client.post("/api/v1/chat", json={"message": "Hello"})
    assert resp.status_code == 422


def test_close_session(client):
    session_id = client.post(
        "/api/v1/chat", json={"message": "Hello", "visitor_id": "visitor-1"}
    ).json()["session"]["session_id"]

    resp = client.post(f"/api/v1/sessions/{session_id}/close", json={"outcome": "quote"})
    assert resp.status_code == 200
    assert resp.json()["outcome"] == "quote"

    fresh = client.post("/api/v1/chat", json={"message": "Hello", "visitor_id": "visitor-1"}).json()
    assert fresh["session"]["session_id"] != session_id


def test_close_unknown_session(client):
    resp = client.post("/api/v1/sessions/does-not-exist/close")
    assert resp.status_code == 404


def test_chat_stats(client):
    client.post("/api/v1/chat", json={"message": "Hello", "visitor_id": "visitor-1"})
    resp = client.get("/api/v1/chat/stats")
    assert resp.status_code == 200
    data = resp.json()
    assert data["total_requests"] == 1
    assert data["intent_distribution"] == {"GREETING": 1}


def test_metrics_endpoint(client):
    client.get("/")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "assistant_http_requests_total" in resp.text


def test_docs_endpoint(client):
    """Swagger docs should be available."""
    resp = client.get("/docs")
    assert resp.status_code == 200
