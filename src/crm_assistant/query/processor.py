"""Dispatch of parsed queries to business aggregations."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from crm_assistant.config import ProcessorConfig
from crm_assistant.query.handlers import build_result, register_query_handlers
from crm_assistant.query.registry import IntentRegistry
from crm_assistant.store import BusinessDataStore
from crm_assistant.types import (
    DispatchTrace,
    EmptyPayload,
    Intent,
    ParsedQuery,
    QueryResult,
    ResultKind,
)

logger = logging.getLogger(__name__)


class QueryProcessor:
    """Turns a `ParsedQuery` into a render-ready `QueryResult`.

    The processor owns the per-intent defaults (at-risk threshold, list
    limits) and translates a parsed query into the argument payload of the
    matching registry handler. Unknown queries never reach the store.

    Store failures surface as `ProcessingError`; nothing is retried here.
    """

    def __init__(
        self,
        store: BusinessDataStore,
        *,
        config: ProcessorConfig | None = None,
        registry: IntentRegistry | None = None,
    ) -> None:
        self.store = store
        self.config = config or ProcessorConfig()
        if registry is None:
            registry = IntentRegistry()
            register_query_handlers(registry, store)
        registry.ensure_complete()
        self.registry = registry

    async def process(
        self,
        query: ParsedQuery,
        business_id: str,
        now: datetime,
        *,
        observer: Callable[[DispatchTrace], None] | None = None,
    ) -> QueryResult:
        if query.intent is Intent.UNKNOWN:
            return build_result(ResultKind.EMPTY, EmptyPayload(intent=Intent.UNKNOWN))

        payload = self.build_payload(query, business_id, now)
        logger.info("Dispatching %s query for business %s", query.intent.value, business_id)
        return await self.registry.dispatch(query.intent, payload, observer=observer)

    def build_payload(
        self, query: ParsedQuery, business_id: str, now: datetime
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"business_id": business_id, "now": now}
        if query.date_range is not None:
            payload.update(
                start=query.date_range.start,
                end=query.date_range.end,
                period=query.date_range.label,
            )

        match query.intent:
            case Intent.REVENUE | Intent.BEST_CUSTOMER:
                pass
            case Intent.AT_RISK_CUSTOMERS:
                payload["threshold_days"] = self.config.at_risk_threshold_days
                payload["limit"] = self._limit(query, self.config.at_risk_limit)
            case Intent.APPOINTMENTS_IN_RANGE:
                payload["limit"] = self._limit(query, self.config.appointments_limit)
            case Intent.GENERIC_LIST:
                payload["limit"] = self._limit(query, self.config.generic_list_limit)
                payload["name_filter"] = query.entity
            case _:
                raise ValueError(f"No payload mapping for intent {query.intent.value}")
        return payload

    def _limit(self, query: ParsedQuery, default: int) -> int:
        return min(query.limit or default, self.config.max_limit)
