"""Shared domain models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Literal, Union


class Intent(str, Enum):
    """Classified purpose of a chat query."""

    REVENUE = "revenue"
    BEST_CUSTOMER = "best_customer"
    AT_RISK_CUSTOMERS = "at_risk_customers"
    APPOINTMENTS_IN_RANGE = "appointments_in_range"
    GENERIC_LIST = "generic_list"
    UNKNOWN = "unknown"


class ResultKind(str, Enum):
    """Display contract of a processed query."""

    CUSTOMER = "customer"
    REVENUE = "revenue"
    APPOINTMENTS = "appointments"
    LIST = "list"
    EMPTY = "empty"


@dataclass(frozen=True, slots=True)
class DateRange:
    """Inclusive time window resolved from a relative phrase."""

    start: datetime
    end: datetime
    label: str

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("date range end must not precede its start")

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass(frozen=True, slots=True)
class ParsedQuery:
    """Typed intent plus extracted parameters for one chat message."""

    intent: Intent
    raw_text: str
    date_range: DateRange | None = None
    limit: int | None = None
    entity: str | None = None

    def __post_init__(self) -> None:
        if self.intent is Intent.UNKNOWN and (
            self.date_range is not None or self.limit is not None or self.entity is not None
        ):
            raise ValueError("unknown queries carry no parameters")


@dataclass(frozen=True, slots=True)
class CustomerProjection:
    """Customer row as returned by the data-access boundary."""

    customer_id: str
    name: str
    total_spent: float
    appointment_count: int
    last_visit: datetime | None = None
    days_since_last_visit: int | None = None
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True, slots=True)
class AppointmentProjection:
    """Appointment row joined with its customer name."""

    appointment_id: str
    customer_name: str
    title: str
    start_time: datetime
    end_time: datetime
    status: str
    price: float


@dataclass(frozen=True, slots=True)
class RevenueAggregate:
    """Completed-appointment revenue for one business and window."""

    total_revenue: float = 0.0
    appointment_count: int = 0
    unique_customers: int = 0
    avg_transaction_value: float = 0.0


@dataclass(frozen=True, slots=True)
class BestCustomerPayload:
    customer: CustomerProjection
    date_range: DateRange | None


@dataclass(frozen=True, slots=True)
class RevenuePayload:
    aggregate: RevenueAggregate
    date_range: DateRange


@dataclass(frozen=True, slots=True)
class AppointmentsPayload:
    appointments: tuple[AppointmentProjection, ...]
    date_range: DateRange


@dataclass(frozen=True, slots=True)
class CustomerListPayload:
    customers: tuple[CustomerProjection, ...]
    ranking: Literal["at_risk", "recent"]
    threshold_days: int | None = None
    name_filter: str | None = None


@dataclass(frozen=True, slots=True)
class EmptyPayload:
    """Nothing to show; `intent` says which question came up empty."""

    intent: Intent
    date_range: DateRange | None = None


ResultPayload = Union[
    BestCustomerPayload,
    RevenuePayload,
    AppointmentsPayload,
    CustomerListPayload,
    EmptyPayload,
]

PAYLOAD_TYPES: dict[ResultKind, type] = {
    ResultKind.CUSTOMER: BestCustomerPayload,
    ResultKind.REVENUE: RevenuePayload,
    ResultKind.APPOINTMENTS: AppointmentsPayload,
    ResultKind.LIST: CustomerListPayload,
    ResultKind.EMPTY: EmptyPayload,
}


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Self-contained, render-ready answer to one query."""

    kind: ResultKind
    payload: ResultPayload
    summary: str
    follow_ups: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        expected = PAYLOAD_TYPES[self.kind]
        if not isinstance(self.payload, expected):
            raise TypeError(
                f"{self.kind.value} results require {expected.__name__}, "
                f"got {type(self.payload).__name__}"
            )
        if len(self.follow_ups) > 4:
            raise ValueError("at most four follow-up suggestions are allowed")


@dataclass(frozen=True, slots=True)
class CustomerScoreProfile:
    """RFM scores plus the measures they were derived from."""

    customer_id: str
    name: str
    recency_score: int
    frequency_score: int
    monetary_score: int
    customer_lifetime_value: float
    total_spent: float
    total_appointments: int
    days_since_last_visit: int | None


@dataclass(slots=True)
class RateWindow:
    """Per-session fixed-window counter."""

    window_start_ms: float
    count: int = 0


class TurnStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ChatTurn:
    """One user message and its assistant reply (or loading placeholder)."""

    turn_id: int
    session_id: str
    user_message: str
    submitted_at: datetime
    status: TurnStatus = TurnStatus.PENDING
    assistant_message: str = "Let me analyze that for you..."
    intent: Intent | None = None
    result: QueryResult | None = None

    @property
    def is_loading(self) -> bool:
        return self.status is TurnStatus.PENDING


@dataclass(slots=True)
class DispatchTrace:
    """Trace record for an executed intent handler."""

    intent: str
    handler: str
    input_payload: dict[str, Any]
    latency_ms: float
