"""Tests for the catalog, pricing, compliance and lead API endpoints."""

from datetime import datetime, timedelta

import pytest

from api.services import get_services
from lead_scoring import LeadTier, ScoreUpdate


def product_id(client, sku):
    """Catalog ids are generated on seed; look one up by SKU."""
    products = client.get("/api/v1/search", params={"q": sku}).json()["products"]
    return next(p["id"] for p in products if p["sku"] == sku)


def start_session(client, message="Hello"):
    resp = client.post("/api/v1/chat", json={"message": message, "visitor_id": "visitor-1"})
    return resp.json()["session"]["session_id"]


# ── Catalog ───────────────────────────────────────────

def test_search(client):
    resp = client.get("/api/v1/search", params={"q": "hex bolt"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["query"] == "hex bolt"
    assert data["products"][0]["sku"] == "FB-HB-M10-50-88"


def test_search_out_of_stock_flag(client):
    default = client.get("/api/v1/search", params={"q": "bearing"}).json()
    everything = client.get("/api/v1/search", params={"q": "bearing", "include_out_of_stock": True}).json()
    assert default["count"] == 1
    assert everything["count"] == 2


def test_categories(client):
    categories = client.get("/api/v1/categories").json()["categories"]
    assert len(categories) == 8
    assert categories[0]["slug"] == "fasteners"


def test_get_product(client):
    pid = product_id(client, "FB-HB-M12-50-88")
    data = client.get(f"/api/v1/products/{pid}").json()
    assert data["name"] == "Hex Bolt M12 x 50mm Grade 8.8"
    assert client.get("/api/v1/products/missing").status_code == 404


def test_compatibility(client):
    bolt = product_id(client, "FB-HB-M12-50-88")
    nut = product_id(client, "FB-HN-M12-8")
    data = client.get(
        "/api/v1/products/compatibility", params={"product_one": bolt, "product_two": nut}
    ).json()
    assert data["compatible"] is True
    assert data["match_type"] == "size_match"


def test_recommendations(client):
    bolt = product_id(client, "FB-HB-M12-50-88")
    data = client.get(f"/api/v1/products/{bolt}/recommendations", params={"kind": "alternative"}).json()
    assert [p["sku"] for p in data["recommendations"]] == ["FB-HB-M10-50-88"]
    assert client.get(f"/api/v1/products/{bolt}/recommendations", params={"kind": "cheaper"}).status_code == 422


# ── Pricing ───────────────────────────────────────────

def test_price(client):
    pid = product_id(client, "FB-HB-M12-50-88")
    resp = client.post("/api/v1/price", json={"product_id": pid, "quantity": 150, "location": "Durban"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["pricing"]["unit_price"] == 4.05
    assert data["pricing"]["delivery"] == 410.0
    assert data["discounts"]["bulk_discount"] == 10.0
    assert data["delivery"]["estimated_days"] == 4


def test_price_validation(client):
    assert client.post("/api/v1/price", json={"product_id": "missing", "quantity": 1}).status_code == 404
    assert client.post("/api/v1/price", json={"product_id": "x", "quantity": 0}).status_code == 422


def test_quote(client):
    bolt = product_id(client, "FB-HB-M12-50-88")
    nut = product_id(client, "FB-HN-M12-8")
    resp = client.post("/api/v1/quote", json={
        "items": [{"product_id": bolt, "quantity": 150}, {"product_id": nut, "quantity": 150}],
        "location": "gauteng",
        "customer_id": "cust-1",
    })
    assert resp.status_code == 200
    data = resp.json()
    assert data["item_count"] == 2
    assert data["summary"]["delivery"] == 210.0
    assert data["loyalty_applied"] is True


def test_quote_validation(client):
    assert client.post("/api/v1/quote", json={"items": []}).status_code == 422
    resp = client.post("/api/v1/quote", json={"items": [{"product_id": "missing", "quantity": 1}]})
    assert resp.status_code == 404


def test_bulk_discounts(client):
    data = client.get("/api/v1/bulk-discounts").json()
    assert [t["min_quantity"] for t in data["tiers"]] == [100, 500, 1000]
    assert client.get("/api/v1/bulk-discounts", params={"product_id": "missing"}).status_code == 404


def test_delivery(client):
    data = client.get("/api/v1/delivery", params={"location": "cape town"}).json()
    assert data["cost"] == 500.0
    assert data["estimated_days"] == 5
    assert client.get("/api/v1/delivery").status_code == 422


# ── Compliance ────────────────────────────────────────

def test_compliance_check(client):
    bolt = product_id(client, "FB-HB-M12-50-88")
    data = client.get("/api/v1/compliance/check", params={"product_id": bolt, "industry": "mining"}).json()
    assert data["compliant"] is False
    assert data["standards"]["missing"][0]["id"] == "MHSA"


def test_compliance_single_standard(client):
    bolt = product_id(client, "FB-HB-M12-50-88")
    data = client.get("/api/v1/compliance/check", params={"product_id": bolt, "standard": "SANS-1700"}).json()
    assert data["compliant"] is True
    resp = client.get("/api/v1/compliance/check", params={"product_id": bolt, "standard": "NOPE"})
    assert resp.status_code == 404


def test_product_compliance_summary(client):
    hat = product_id(client, "SE-HH-CLB")
    data = client.get(f"/api/v1/compliance/products/{hat}").json()
    assert "mining" in [i["id"] for i in data["suitable_industries"]]


def test_reference_data(client):
    industries = client.get("/api/v1/compliance/industries").json()["industries"]
    standards = client.get("/api/v1/compliance/standards").json()["standards"]
    assert len(industries) == 5
    # Database standards are merged over the configured table
    assert "SANS-1507" in [s["id"] for s in standards]


def test_bbbee(client):
    data = client.get("/api/v1/bbbee").json()
    assert data["level"] == 1
    assert data["recognition_level"] == 135


# ── Leads ─────────────────────────────────────────────

def test_track_event(client):
    session_id = start_session(client)
    resp = client.post("/api/v1/track", json={"session_id": session_id, "event_type": "quote_request"})
    assert resp.status_code == 200
    data = resp.json()
    # Greeting turn scored chat_message_sent (3) first
    assert data["score"] == 33
    assert data["tier"] == "COOL"
    assert data["points_added"] == 30


def test_track_unknown_session(client):
    resp = client.post("/api/v1/track", json={"session_id": "missing", "event_type": "quote_request"})
    assert resp.status_code == 404


def test_track_with_store_down(client, monkeypatch):
    async def dropped(session_id, event_type, metadata=None):
        return ScoreUpdate(score=0, tier=LeadTier.COLD, points_added=30, recorded=False, store_unavailable=True)

    monkeypatch.setattr(get_services().scoring_engine, "track_event", dropped)
    resp = client.post("/api/v1/track", json={"session_id": "any", "event_type": "quote_request"})
    assert resp.status_code == 503


def test_get_score(client):
    session_id = start_session(client)
    data = client.get(f"/api/v1/score/{session_id}").json()
    assert data["score"] == 3
    assert data["next_tier"]["tier"] == "COOL"
    assert client.get("/api/v1/score/missing").status_code == 404


def test_hot_leads(client):
    session_id = start_session(client)
    client.post("/api/v1/track", json={"session_id": session_id, "event_type": "order_completed"})
    data = client.get("/api/v1/leads/hot").json()
    assert data["count"] == 1
    assert data["leads"][0]["session_id"] == session_id


@pytest.mark.parametrize("path", ["/api/v1/analytics", "/api/v1/events", "/api/v1/assistant/metrics"])
def test_lead_reporting_endpoints(client, path):
    start_session(client)
    assert client.get(path).status_code == 200


def test_event_catalog(client):
    data = client.get("/api/v1/events").json()
    assert data["event_types"]["quote_request"] == 30
    assert data["tier_thresholds"]["HOT"] == 80


# ── Housekeeping ──────────────────────────────────────

def test_background_sweep_is_running(client):
    services = get_services()
    assert services._housekeeper is not None
    assert not services._housekeeper.done()


def test_housekeeping_evicts_idle_sessions_and_cooldowns(client):
    services = get_services()
    session_id = start_session(client)
    services.scoring_engine.cooldown.try_acquire(session_id)
    assert services.context_store.stats()["cached_sessions"] == 1

    later = datetime.utcnow() + timedelta(days=8)
    services.context_store.clock = lambda: later
    services.scoring_engine.cooldown.clock = lambda: later

    assert services.housekeeping() == {"sessions_evicted": 1, "cooldowns_pruned": 1}
    assert services.context_store.stats()["cached_sessions"] == 0
    assert len(services.scoring_engine.cooldown) == 0
