from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

from conftest import BUSINESS_ID, build_store
from crm_assistant.api.main import _load_config, create_app
from crm_assistant.config import AssistantConfig, RateLimitPolicy


def _ingest(client: TestClient, business_id: str) -> None:
    now = datetime.now(timezone.utc)
    visits = [
        ("Maya", 1200.0, 12, 3),
        ("Noah", 300.0, 2, 40),
        ("Omar", 40.0, 1, 400),
    ]
    for name, spent, count, days_ago in visits:
        customer_id = f"{business_id}-{name.lower()}"
        resp = client.post(
            f"/businesses/{business_id}/customers",
            json={"customer_id": customer_id, "name": name},
        )
        assert resp.status_code == 200
        for index in range(count):
            start = now - timedelta(days=days_ago + index)
            resp = client.post(
                f"/businesses/{business_id}/appointments",
                json={
                    "appointment_id": f"{customer_id}-{index}",
                    "customer_id": customer_id,
                    "title": "Massage",
                    "start_time": start.isoformat(),
                    "end_time": (start + timedelta(hours=1)).isoformat(),
                    "price": spent / count,
                },
            )
            assert resp.status_code == 200


def test_api_chat_transcript_traces_metrics() -> None:
    client = TestClient(create_app())
    _ingest(client, "api-biz")

    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["store"] == "InMemoryBusinessStore"
    assert len(health.json()["example_questions"]) == 4

    reply = client.post(
        "/sessions/api-s1/messages",
        json={"business_id": "api-biz", "text": "Who is my best customer?"},
    )
    assert reply.status_code == 200
    turn = reply.json()
    assert turn["status"] == "resolved"
    assert turn["intent"] == "best_customer"
    assert turn["result"]["payload"]["customer"]["name"] == "Maya"
    assert turn["result"]["follow_ups"]

    blank = client.post("/sessions/api-s1/messages", json={"business_id": "api-biz", "text": " "})
    assert blank.status_code == 400

    transcript = client.get("/sessions/api-s1/transcript")
    assert [item["turn_id"] for item in transcript.json()["items"]] == [1]

    (trace,) = client.get("/traces", params={"limit": 50}).json()["items"]
    assert trace["dispatch_traces"][0]["handler"] == "best_customer"
    assert client.get(f"/traces/{trace['trace_id']}").status_code == 200
    assert client.get("/traces/missing").status_code == 404

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    assert metrics.json()["total_requests"] == 1


def test_api_answers_from_an_injected_store() -> None:
    client = TestClient(create_app(build_store()))

    reply = client.post(
        "/sessions/s-1/messages",
        json={"business_id": BUSINESS_ID, "text": "Show me customers at risk"},
    )

    assert reply.status_code == 200
    names = [c["name"] for c in reply.json()["result"]["payload"]["customers"]]
    assert names[:3] == ["Dan", "Fay", "Carol"]


def test_api_ingest_rejects_bad_records() -> None:
    client = TestClient(create_app())

    orphan = client.post(
        "/businesses/b-1/appointments",
        json={
            "appointment_id": "a-1",
            "customer_id": "missing",
            "title": "Trim",
            "start_time": "2026-03-18T10:00:00+00:00",
            "end_time": "2026-03-18T11:00:00+00:00",
            "price": 20.0,
        },
    )
    naive = client.post(
        "/businesses/b-1/appointments",
        json={
            "appointment_id": "a-2",
            "customer_id": "missing",
            "title": "Trim",
            "start_time": "2026-03-18T10:00:00",
            "end_time": "2026-03-18T11:00:00",
            "price": 20.0,
        },
    )

    assert orphan.status_code == 400
    assert naive.status_code == 422


def test_api_ingest_is_unavailable_for_read_only_stores() -> None:
    class _RemoteStore:
        async def fetch_customer_profiles(self, business_id, *, as_of):
            return []

    read_only = TestClient(create_app(_RemoteStore()))  # type: ignore[arg-type]
    assert read_only.post(
        "/businesses/b-1/customers", json={"customer_id": "c-1", "name": "Ann"}
    ).status_code == 501
    assert read_only.get("/businesses/b-1/segments").json() == {
        "segments": [],
        "high_value_customers": [],
    }


def test_api_rate_limit_returns_429_and_ending_session_resets_it() -> None:
    config = AssistantConfig(chat_rate_limit=RateLimitPolicy(max_per_window=1))
    client = TestClient(create_app(config=config))
    body = {"business_id": "api-limited", "text": "Show me customers at risk"}

    assert client.post("/sessions/api-limited/messages", json=body).status_code == 200
    denied = client.post("/sessions/api-limited/messages", json=body)

    assert denied.status_code == 429
    assert denied.json()["detail"]["notice"] == "Please wait a moment before asking another question."
    assert len(client.get("/sessions/api-limited/transcript").json()["items"]) == 1

    assert client.delete("/sessions/api-limited").status_code == 200
    assert client.delete("/sessions/api-limited").status_code == 404
    assert client.get("/sessions/api-limited/transcript").json()["items"] == []
    assert client.post("/sessions/api-limited/messages", json=body).status_code == 200


def test_api_segments() -> None:
    client = TestClient(create_app())
    _ingest(client, "seg-biz")

    assert client.post("/segments", json={"recency": 4, "frequency": 1, "monetary": 1}).json() == {
        "segment": "New"
    }
    assert client.post("/segments", json={"recency": 0, "frequency": 1, "monetary": 1}).status_code == 400

    summary = client.get("/businesses/seg-biz/segments").json()
    assert {item["segment"]: item["count"] for item in summary["segments"]} == {
        "Champions": 1,
        "At-Risk": 1,
        "Lost": 1,
    }
    assert [p["name"] for p in summary["high_value_customers"]] == ["Maya"]
    assert client.get("/businesses/seg-biz/segments", params={"share": 0}).status_code == 400


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("CRM_ASSISTANT_CHAT_MAX_PER_MINUTE", "5")
    monkeypatch.setenv("CRM_ASSISTANT_AT_RISK_DAYS", "90")

    config = _load_config()

    assert config.chat_rate_limit.max_per_window == 5
    assert config.processor.at_risk_threshold_days == 90
