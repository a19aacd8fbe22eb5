"""Built-in intent handlers backed by the business data store."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from datetime import datetime, timezone
from typing import TypeVar

from pydantic import BaseModel, Field

from crm_assistant.errors import ProcessingError
from crm_assistant.query.dates import today
from crm_assistant.query.formatter import format_result
from crm_assistant.query.registry import HandlerSpec, IntentRegistry
from crm_assistant.store import BusinessDataStore
from crm_assistant.types import (
    AppointmentsPayload,
    BestCustomerPayload,
    CustomerListPayload,
    DateRange,
    EmptyPayload,
    Intent,
    QueryResult,
    ResultKind,
    ResultPayload,
    RevenuePayload,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScopedInput(BaseModel):
    business_id: str = Field(min_length=1)
    now: datetime = Field(default_factory=_utcnow)


class RangeInput(ScopedInput):
    start: datetime | None = None
    end: datetime | None = None
    period: str | None = None

    def date_range(self) -> DateRange | None:
        if self.start is None or self.end is None:
            return None
        label = self.period or f"between {self.start:%Y-%m-%d} and {self.end:%Y-%m-%d}"
        return DateRange(start=self.start, end=self.end, label=label)


class RevenueInput(RangeInput):
    pass


class BestCustomerInput(RangeInput):
    pass


class AtRiskInput(ScopedInput):
    threshold_days: int = Field(default=60, ge=1)
    limit: int = Field(default=10, ge=1)


class AppointmentsInput(RangeInput):
    limit: int = Field(default=25, ge=1)


class RecentCustomersInput(ScopedInput):
    limit: int = Field(default=10, ge=1)
    name_filter: str | None = None


def build_result(kind: ResultKind, payload: ResultPayload) -> QueryResult:
    formatted = format_result(kind, payload)
    return QueryResult(
        kind=kind,
        payload=payload,
        summary=formatted.summary,
        follow_ups=formatted.follow_ups,
    )


async def _fetch(intent: Intent, call: Awaitable[T]) -> T:
    try:
        return await call
    except Exception as exc:
        logger.warning("Data access failed for %s query: %s", intent.value, exc)
        raise ProcessingError(intent) from exc


def register_query_handlers(registry: IntentRegistry, store: BusinessDataStore) -> None:
    """Register one handler per answerable intent.

    Handlers:
    - `revenue_summary`: completed-appointment revenue for a window.
    - `best_customer`: highest spender in a window (or all time).
    - `at_risk_customers`: customers absent longer than a threshold.
    - `appointments_in_range`: appointments in a window, earliest first.
    - `recent_customers`: most recently seen customers, optionally by name.
    """

    async def _revenue(data: RevenueInput) -> QueryResult:
        date_range = data.date_range() or today(data.now)
        aggregate = await _fetch(
            Intent.REVENUE, store.fetch_revenue_aggregate(data.business_id, date_range)
        )
        return build_result(
            ResultKind.REVENUE, RevenuePayload(aggregate=aggregate, date_range=date_range)
        )

    async def _best_customer(data: BestCustomerInput) -> QueryResult:
        date_range = data.date_range()
        customer = await _fetch(
            Intent.BEST_CUSTOMER, store.fetch_best_customer(data.business_id, date_range)
        )
        if customer is None:
            return build_result(
                ResultKind.EMPTY,
                EmptyPayload(intent=Intent.BEST_CUSTOMER, date_range=date_range),
            )
        return build_result(
            ResultKind.CUSTOMER, BestCustomerPayload(customer=customer, date_range=date_range)
        )

    async def _at_risk(data: AtRiskInput) -> QueryResult:
        customers = await _fetch(
            Intent.AT_RISK_CUSTOMERS,
            store.fetch_at_risk_customers(
                data.business_id, data.threshold_days, data.limit, as_of=data.now
            ),
        )
        return build_result(
            ResultKind.LIST,
            CustomerListPayload(
                customers=tuple(customers),
                ranking="at_risk",
                threshold_days=data.threshold_days,
            ),
        )

    async def _appointments(data: AppointmentsInput) -> QueryResult:
        date_range = data.date_range() or today(data.now)
        appointments = await _fetch(
            Intent.APPOINTMENTS_IN_RANGE,
            store.fetch_appointments(data.business_id, date_range, data.limit),
        )
        return build_result(
            ResultKind.APPOINTMENTS,
            AppointmentsPayload(appointments=tuple(appointments), date_range=date_range),
        )

    async def _recent_customers(data: RecentCustomersInput) -> QueryResult:
        customers = await _fetch(
            Intent.GENERIC_LIST,
            store.fetch_recent_customers(
                data.business_id, data.limit, as_of=data.now, name_filter=data.name_filter
            ),
        )
        return build_result(
            ResultKind.LIST,
            CustomerListPayload(
                customers=tuple(customers), ranking="recent", name_filter=data.name_filter
            ),
        )

    registry.register(
        HandlerSpec(
            intent=Intent.REVENUE,
            name="revenue_summary",
            description="Total revenue, appointment count and average ticket for a period.",
            args_schema=RevenueInput,
            handler=_revenue,
            tags=["revenue"],
        )
    )
    registry.register(
        HandlerSpec(
            intent=Intent.BEST_CUSTOMER,
            name="best_customer",
            description="The customer who spent the most in a period (all time if omitted).",
            args_schema=BestCustomerInput,
            handler=_best_customer,
            tags=["customers"],
        )
    )
    registry.register(
        HandlerSpec(
            intent=Intent.AT_RISK_CUSTOMERS,
            name="at_risk_customers",
            description="Customers who have not visited for longer than a number of days.",
            args_schema=AtRiskInput,
            handler=_at_risk,
            tags=["customers", "retention"],
        )
    )
    registry.register(
        HandlerSpec(
            intent=Intent.APPOINTMENTS_IN_RANGE,
            name="appointments_in_range",
            description="Appointments scheduled in a period, earliest first.",
            args_schema=AppointmentsInput,
            handler=_appointments,
            tags=["appointments"],
        )
    )
    registry.register(
        HandlerSpec(
            intent=Intent.GENERIC_LIST,
            name="recent_customers",
            description="Most recently seen customers, optionally filtered by name.",
            args_schema=RecentCustomersInput,
            handler=_recent_customers,
            tags=["customers"],
        )
    )
