"""Per-turn audit trail and latency accounting."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from crm_assistant.types import DispatchTrace


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    session_id: str
    business_id: str
    turn_id: int
    question: str
    intent: str
    result_kind: str | None
    outcome: str
    summary: str
    dispatch_traces: list[DispatchTrace]
    latency_ms: float


class TraceStore:
    """In-memory audit log of settled chat turns.

    One record is written per terminal outcome, resolved or failed, so the
    log doubles as the analytics-access audit trail for chat queries.
    """

    def __init__(self, max_records: int = 5000) -> None:
        self._records: dict[str, TraceRecord] = {}
        self._max_records = max_records

    def create_record(
        self,
        *,
        session_id: str,
        business_id: str,
        turn_id: int,
        question: str,
        intent: str,
        result_kind: str | None,
        outcome: str,
        summary: str,
        dispatch_traces: list[DispatchTrace],
        latency_ms: float,
        timestamp: datetime | None = None,
    ) -> TraceRecord:
        trace_id = str(uuid.uuid4())
        moment = timestamp or datetime.now(timezone.utc)
        record = TraceRecord(
            trace_id=trace_id,
            timestamp_utc=moment.isoformat(),
            session_id=session_id,
            business_id=business_id,
            turn_id=turn_id,
            question=question,
            intent=intent,
            result_kind=result_kind,
            outcome=outcome,
            summary=summary,
            dispatch_traces=dispatch_traces,
            latency_ms=latency_ms,
        )
        self._records[trace_id] = record
        while len(self._records) > self._max_records:
            del self._records[next(iter(self._records))]
        return record

    def get(self, trace_id: str) -> TraceRecord:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(self, limit: int = 20) -> list[TraceRecord]:
        if limit <= 0:
            return []
        return list(self._records.values())[-limit:]

    def summary(self) -> dict[str, object]:
        """Aggregate audit metrics for dashboard display."""
        records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "resolved": 0,
                "failed": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "intents": {},
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        intents: dict[str, int] = {}
        for record in records:
            intents[record.intent] = intents.get(record.intent, 0) + 1

        return {
            "total_requests": total,
            "resolved": sum(1 for record in records if record.outcome == "resolved"),
            "failed": sum(1 for record in records if record.outcome == "failed"),
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "intents": intents,
        }


class Timer:
    """Simple context timer used by the session controller."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0
