import pytest

from crm_assistant.obs.tracing import Timer, TraceStore


def _record(store: TraceStore, turn_id: int, outcome: str, latency_ms: float, intent: str = "revenue"):
    return store.create_record(
        session_id="s-1",
        business_id="biz-1",
        turn_id=turn_id,
        question="How much revenue did I make today?",
        intent=intent,
        result_kind="revenue" if outcome == "resolved" else None,
        outcome=outcome,
        summary="...",
        dispatch_traces=[],
        latency_ms=latency_ms,
    )


def test_summary_aggregates_outcomes_and_intents() -> None:
    store = TraceStore()
    assert store.summary()["total_requests"] == 0

    _record(store, 1, "resolved", 10.0)
    _record(store, 2, "failed", 30.0, intent="best_customer")
    summary = store.summary()

    assert summary["total_requests"] == 2
    assert (summary["resolved"], summary["failed"]) == (1, 1)
    assert summary["avg_latency_ms"] == pytest.approx(20.0)
    assert summary["intents"] == {"revenue": 1, "best_customer": 1}


def test_store_evicts_oldest_and_looks_up_by_id() -> None:
    store = TraceStore(max_records=2)
    first = _record(store, 1, "resolved", 1.0)
    second = _record(store, 2, "resolved", 1.0)
    third = _record(store, 3, "resolved", 1.0)

    assert [r.turn_id for r in store.list_recent(limit=10)] == [2, 3]
    assert store.get(third.trace_id) is third
    assert store.get(second.trace_id).turn_id == 2
    assert store.list_recent(limit=0) == []
    with pytest.raises(KeyError):
        store.get(first.trace_id)


def test_timer_measures_elapsed_time() -> None:
    with Timer() as timer:
        sum(range(1000))
    assert timer.elapsed_ms >= 0.0
