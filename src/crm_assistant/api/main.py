"""FastAPI entrypoint for chat, segmentation, ingest and audit endpoints."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import AwareDatetime, BaseModel, Field

from crm_assistant.analytics.segmentation import (
    high_value_customers,
    segment,
    segment_customers,
    summarize_segments,
)
from crm_assistant.config import AssistantConfig, ProcessorConfig, RateLimitPolicy
from crm_assistant.errors import InvalidScoreError, RateLimitExceeded
from crm_assistant.obs.tracing import TraceStore
from crm_assistant.query.formatter import EXAMPLE_QUESTIONS
from crm_assistant.query.processor import QueryProcessor
from crm_assistant.session.controller import ChatSessionController
from crm_assistant.session.rate_limiter import FixedWindowRateLimiter
from crm_assistant.store import (
    COMPLETED,
    AppointmentRecord,
    BusinessDataStore,
    CustomerRecord,
    InMemoryBusinessStore,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _load_config() -> AssistantConfig:
    config = AssistantConfig()
    max_per_minute = os.getenv("CRM_ASSISTANT_CHAT_MAX_PER_MINUTE")
    if max_per_minute:
        config.chat_rate_limit = RateLimitPolicy(
            max_per_window=int(max_per_minute), window_length_ms=60_000
        )
    at_risk_days = os.getenv("CRM_ASSISTANT_AT_RISK_DAYS")
    if at_risk_days:
        config.processor = ProcessorConfig(at_risk_threshold_days=int(at_risk_days))
    return config


class MessageRequest(BaseModel):
    business_id: str = Field(min_length=1)
    text: str


class SegmentRequest(BaseModel):
    recency: int
    frequency: int
    monetary: int


class CustomerIngestRequest(BaseModel):
    customer_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    email: str | None = None
    phone: str | None = None


class AppointmentIngestRequest(BaseModel):
    appointment_id: str = Field(min_length=1)
    customer_id: str = Field(min_length=1)
    title: str
    start_time: AwareDatetime
    end_time: AwareDatetime
    price: float = Field(ge=0.0)
    status: str = COMPLETED


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_app(
    store: BusinessDataStore | None = None,
    *,
    config: AssistantConfig | None = None,
) -> FastAPI:
    """Build the HTTP surface around a business data store.

    Without a store the app runs on an empty `InMemoryBusinessStore`, filled
    through the ingest endpoints. Any other `BusinessDataStore` is read-only
    here and the ingest endpoints answer 501.
    """

    config = config or _load_config()
    store = store if store is not None else InMemoryBusinessStore()
    trace_store = TraceStore()
    controller = ChatSessionController(
        QueryProcessor(store, config=config.processor),
        rate_limiter=FixedWindowRateLimiter(),
        policy=config.chat_rate_limit,
        trace_store=trace_store,
    )

    app = FastAPI(title="CRM Assistant", version="0.1.0")
    app.state.store = store
    app.state.controller = controller
    app.state.trace_store = trace_store

    logger.info(
        "CRM assistant ready on %s: chat limit %d per %d ms, at-risk after %d days",
        type(store).__name__,
        config.chat_rate_limit.max_per_window,
        config.chat_rate_limit.window_length_ms,
        config.processor.at_risk_threshold_days,
    )

    def _writable_store() -> InMemoryBusinessStore:
        if not isinstance(store, InMemoryBusinessStore):
            raise HTTPException(status_code=501, detail="The configured store is read-only")
        return store

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "store": type(store).__name__,
            "chat_max_per_window": config.chat_rate_limit.max_per_window,
            "at_risk_threshold_days": config.processor.at_risk_threshold_days,
            "trace_count": len(trace_store.list_recent(limit=1000)),
            "example_questions": list(EXAMPLE_QUESTIONS),
        }

    @app.post("/businesses/{business_id}/customers")
    def ingest_customer(business_id: str, request: CustomerIngestRequest) -> dict[str, Any]:
        record = CustomerRecord(business_id=business_id, **request.model_dump())
        _writable_store().add_customer(record)
        return asdict(record)

    @app.post("/businesses/{business_id}/appointments")
    def ingest_appointment(business_id: str, request: AppointmentIngestRequest) -> dict[str, Any]:
        target = _writable_store()
        try:
            record = AppointmentRecord(business_id=business_id, **request.model_dump())
            target.add_appointment(record)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return asdict(record)

    @app.post("/sessions/{session_id}/messages")
    async def submit_message(session_id: str, request: MessageRequest) -> dict[str, Any]:
        try:
            turn = await controller.handle_submit(
                session_id, request.business_id, request.text, _utcnow()
            )
        except RateLimitExceeded as exc:
            raise HTTPException(
                status_code=429,
                detail={"notice": exc.notice, "retry_after_ms": exc.retry_after_ms},
            ) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return asdict(turn)

    @app.get("/sessions/{session_id}/transcript")
    def transcript(session_id: str) -> dict[str, Any]:
        return {"items": [asdict(turn) for turn in controller.transcript(session_id)]}

    @app.delete("/sessions/{session_id}")
    def end_session(session_id: str) -> dict[str, Any]:
        if not controller.end_session(session_id):
            raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
        return {"ended": session_id}

    @app.post("/segments")
    def classify(request: SegmentRequest) -> dict[str, Any]:
        try:
            label = segment(request.recency, request.frequency, request.monetary)
        except InvalidScoreError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"segment": label.value}

    @app.get("/businesses/{business_id}/segments")
    async def business_segments(business_id: str, share: float = 0.2) -> dict[str, Any]:
        profiles = await store.fetch_customer_profiles(business_id, as_of=_utcnow())
        try:
            top = high_value_customers(profiles, share=share)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {
            "segments": [asdict(item) for item in summarize_segments(segment_customers(profiles))],
            "high_value_customers": [asdict(profile) for profile in top],
        }

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        records = [asdict(record) for record in trace_store.list_recent(limit=limit)]
        return {"items": records}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        try:
            record = trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        return trace_store.summary()

    return app


app = create_app()
