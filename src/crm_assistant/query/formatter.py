"""Summary templates and follow-up suggestions for query results."""

from __future__ import annotations

from dataclasses import dataclass

from crm_assistant.types import (
    AppointmentsPayload,
    BestCustomerPayload,
    CustomerListPayload,
    EmptyPayload,
    Intent,
    ResultKind,
    ResultPayload,
    RevenuePayload,
)

EXAMPLE_QUESTIONS: tuple[str, ...] = (
    "Who is my best customer this month?",
    "How much revenue did I make today?",
    "Show me today's appointments",
    "Show me customers at risk",
)

CLARIFICATION = (
    "I didn't understand your question. Try asking about customers, revenue, or appointments."
)

# Static follow-up policy. Every entry is itself a question the parser
# classifies to a known intent.
FOLLOW_UPS: dict[str, tuple[str, ...]] = {
    "revenue": (
        "Who is my best customer this month?",
        "Show me customers at risk",
        "How much revenue did I make last month?",
    ),
    "customer": (
        "Show me customers at risk",
        "How much revenue did I make this month?",
        "Show me this week's appointments",
    ),
    "appointments": (
        "Show me tomorrow's appointments",
        "How much revenue did I make today?",
        "Who is my best customer this month?",
    ),
    "list:at_risk": (
        "Who are my top customers?",
        "Show me my recent customers",
        "How much revenue did I make this month?",
    ),
    "list:recent": (
        "Who is my best customer this month?",
        "Show me customers at risk",
        "Show me today's appointments",
    ),
    "empty:best_customer": (
        "Who is my best customer this year?",
        "Show me my recent customers",
        "Show me customers at risk",
    ),
    "empty": EXAMPLE_QUESTIONS,
}


@dataclass(frozen=True, slots=True)
class FormattedResponse:
    summary: str
    follow_ups: tuple[str, ...]


def money(amount: float) -> str:
    return f"${amount:,.2f}"


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def _period(label: str | None) -> str:
    return label or "all time"


def format_result(kind: ResultKind, payload: ResultPayload) -> FormattedResponse:
    """Render a one-line summary and follow-ups for a result.

    Total over `ResultKind`; a payload that does not belong to `kind` is a
    programming error and raises `TypeError`.
    """

    match kind:
        case ResultKind.REVENUE if isinstance(payload, RevenuePayload):
            return FormattedResponse(_revenue_summary(payload), FOLLOW_UPS["revenue"])
        case ResultKind.CUSTOMER if isinstance(payload, BestCustomerPayload):
            return FormattedResponse(_customer_summary(payload), FOLLOW_UPS["customer"])
        case ResultKind.APPOINTMENTS if isinstance(payload, AppointmentsPayload):
            return FormattedResponse(_appointments_summary(payload), FOLLOW_UPS["appointments"])
        case ResultKind.LIST if isinstance(payload, CustomerListPayload):
            return FormattedResponse(_list_summary(payload), FOLLOW_UPS[f"list:{payload.ranking}"])
        case ResultKind.EMPTY if isinstance(payload, EmptyPayload):
            return _empty(payload)
    raise TypeError(f"Payload {type(payload).__name__} does not match result kind {kind.value}")


def _revenue_summary(payload: RevenuePayload) -> str:
    aggregate = payload.aggregate
    period = payload.date_range.label
    if aggregate.appointment_count == 0:
        return f"No completed appointments {period}, so revenue is {money(0.0)}."
    return (
        f"{period.capitalize()}, you made {money(aggregate.total_revenue)} from "
        f"{_plural(aggregate.appointment_count, 'appointment')} with "
        f"{_plural(aggregate.unique_customers, 'customer')}. "
        f"Average transaction: {money(aggregate.avg_transaction_value)}."
    )


def _customer_summary(payload: BestCustomerPayload) -> str:
    customer = payload.customer
    label = payload.date_range.label if payload.date_range else None
    return (
        f"Your best customer {_period(label)} is {customer.name} with "
        f"{money(customer.total_spent)} in revenue from "
        f"{_plural(customer.appointment_count, 'appointment')}."
    )


def _appointments_summary(payload: AppointmentsPayload) -> str:
    count = len(payload.appointments)
    period = payload.date_range.label
    if count == 0:
        return f"You have no appointments {period}."
    first = payload.appointments[0]
    return (
        f"You have {_plural(count, 'appointment')} {period}. "
        f"First up: {first.title} with {first.customer_name} at {first.start_time:%H:%M}."
    )


def _list_summary(payload: CustomerListPayload) -> str:
    count = len(payload.customers)
    if payload.ranking == "at_risk":
        if count == 0:
            return f"Good news: no customers have been away for more than {payload.threshold_days} days."
        verb = "hasn't" if count == 1 else "haven't"
        return (
            f"Found {_plural(count, 'customer')} who {verb} visited in "
            f"{payload.threshold_days}+ days."
        )
    if payload.name_filter:
        return f'Found {_plural(count, "customer")} matching "{payload.name_filter}".'
    if count == 0:
        return "You don't have any customers yet."
    return f"Showing your {_plural(count, 'most recent customer')}."


def _empty(payload: EmptyPayload) -> FormattedResponse:
    if payload.intent is Intent.BEST_CUSTOMER:
        label = payload.date_range.label if payload.date_range else None
        return FormattedResponse(
            f"No customers with completed appointments found for {_period(label)}.",
            FOLLOW_UPS["empty:best_customer"],
        )
    return FormattedResponse(CLARIFICATION, FOLLOW_UPS["empty"])
