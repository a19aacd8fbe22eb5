"""Data-access boundary and a deterministic in-memory implementation."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from crm_assistant.analytics.segmentation import build_profile
from crm_assistant.config import ScoringConfig
from crm_assistant.types import (
    AppointmentProjection,
    CustomerProjection,
    CustomerScoreProfile,
    DateRange,
    RevenueAggregate,
)

COMPLETED = "completed"


class BusinessDataStore(Protocol):
    """Business-scoped read contract consumed by the query processor.

    Every method takes the business id; implementations must never return
    rows belonging to another business.
    """

    async def fetch_revenue_aggregate(
        self, business_id: str, date_range: DateRange
    ) -> RevenueAggregate:
        """Aggregate completed appointments inside the range."""

    async def fetch_best_customer(
        self, business_id: str, date_range: DateRange | None
    ) -> CustomerProjection | None:
        """Customer with the highest spend in the range (None = all time)."""

    async def fetch_at_risk_customers(
        self, business_id: str, threshold_days: int, limit: int, *, as_of: datetime
    ) -> list[CustomerProjection]:
        """Customers whose last completed visit is older than the threshold."""

    async def fetch_appointments(
        self, business_id: str, date_range: DateRange, limit: int
    ) -> list[AppointmentProjection]:
        """Appointments starting inside the range, earliest first."""

    async def fetch_recent_customers(
        self,
        business_id: str,
        limit: int,
        *,
        as_of: datetime,
        name_filter: str | None = None,
    ) -> list[CustomerProjection]:
        """Customers ordered by most recent completed visit."""

    async def fetch_customer_profiles(
        self, business_id: str, *, as_of: datetime
    ) -> list[CustomerScoreProfile]:
        """RFM profiles for every customer of the business."""


@dataclass(frozen=True, slots=True)
class CustomerRecord:
    customer_id: str
    business_id: str
    name: str
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True, slots=True)
class AppointmentRecord:
    appointment_id: str
    business_id: str
    customer_id: str
    title: str
    start_time: datetime
    end_time: datetime
    price: float
    status: str = COMPLETED


def rank_best_customers(candidates: Iterable[CustomerProjection]) -> list[CustomerProjection]:
    """Order customers by spend, then most recent visit, then name.

    The backing store does not guarantee row order, so ties are always broken
    here: equal spend goes to the customer seen most recently, and equal
    spend and visit time goes to the lexically smaller name.
    """

    ranked = sorted(candidates, key=lambda c: (c.name, c.customer_id))
    ranked.sort(key=lambda c: (c.last_visit is not None, c.last_visit), reverse=True)
    ranked.sort(key=lambda c: c.total_spent, reverse=True)
    return ranked


class InMemoryBusinessStore:
    """Deterministic store used for tests and local prototyping.

    Aggregations mirror the reporting queries of the production database:
    revenue, spend and visit recency only count completed appointments, while
    appointment listings include every status.
    """

    def __init__(
        self,
        customers: Iterable[CustomerRecord] = (),
        appointments: Iterable[AppointmentRecord] = (),
        *,
        scoring: ScoringConfig | None = None,
    ) -> None:
        self._customers: dict[str, CustomerRecord] = {}
        self._appointments: dict[str, AppointmentRecord] = {}
        self._scoring = scoring or ScoringConfig()
        for customer in customers:
            self.add_customer(customer)
        for appointment in appointments:
            self.add_appointment(appointment)

    def add_customer(self, customer: CustomerRecord) -> None:
        self._customers[customer.customer_id] = customer

    def add_appointment(self, appointment: AppointmentRecord) -> None:
        customer = self._customers.get(appointment.customer_id)
        if customer is None or customer.business_id != appointment.business_id:
            raise ValueError(
                f"Appointment {appointment.appointment_id} references an unknown customer"
            )
        self._appointments[appointment.appointment_id] = appointment

    async def fetch_revenue_aggregate(
        self, business_id: str, date_range: DateRange
    ) -> RevenueAggregate:
        completed = [
            a
            for a in self._business_appointments(business_id)
            if a.status == COMPLETED and date_range.contains(a.start_time)
        ]
        if not completed:
            return RevenueAggregate()
        total = sum(a.price for a in completed)
        return RevenueAggregate(
            total_revenue=total,
            appointment_count=len(completed),
            unique_customers=len({a.customer_id for a in completed}),
            avg_transaction_value=total / len(completed),
        )

    async def fetch_best_customer(
        self, business_id: str, date_range: DateRange | None
    ) -> CustomerProjection | None:
        candidates = [
            projection
            for projection in self._project_customers(business_id, date_range=date_range)
            if projection.appointment_count > 0
        ]
        ranked = rank_best_customers(candidates)
        return ranked[0] if ranked else None

    async def fetch_at_risk_customers(
        self, business_id: str, threshold_days: int, limit: int, *, as_of: datetime
    ) -> list[CustomerProjection]:
        at_risk = [
            c
            for c in self._project_customers(business_id, as_of=as_of)
            if c.days_since_last_visit is None or c.days_since_last_visit > threshold_days
        ]
        # Never-visited customers first, then the longest absence.
        at_risk.sort(key=lambda c: c.name)
        at_risk.sort(
            key=lambda c: (c.days_since_last_visit is not None, -(c.days_since_last_visit or 0))
        )
        return at_risk[:limit]

    async def fetch_appointments(
        self, business_id: str, date_range: DateRange, limit: int
    ) -> list[AppointmentProjection]:
        rows = sorted(
            (
                a
                for a in self._business_appointments(business_id)
                if date_range.contains(a.start_time)
            ),
            key=lambda a: (a.start_time, a.appointment_id),
        )
        return [
            AppointmentProjection(
                appointment_id=a.appointment_id,
                customer_name=self._customers[a.customer_id].name,
                title=a.title,
                start_time=a.start_time,
                end_time=a.end_time,
                status=a.status,
                price=a.price,
            )
            for a in rows[:limit]
        ]

    async def fetch_recent_customers(
        self,
        business_id: str,
        limit: int,
        *,
        as_of: datetime,
        name_filter: str | None = None,
    ) -> list[CustomerProjection]:
        customers = self._project_customers(business_id, as_of=as_of)
        if name_filter:
            needle = name_filter.lower()
            customers = [c for c in customers if needle in c.name.lower()]
        customers.sort(key=lambda c: c.name)
        customers.sort(
            key=lambda c: (c.days_since_last_visit is None, c.days_since_last_visit or 0)
        )
        return customers[:limit]

    async def fetch_customer_profiles(
        self, business_id: str, *, as_of: datetime
    ) -> list[CustomerScoreProfile]:
        return [
            build_profile(
                customer_id=c.customer_id,
                name=c.name,
                total_spent=c.total_spent,
                total_appointments=c.appointment_count,
                days_since_last_visit=c.days_since_last_visit,
                config=self._scoring,
            )
            for c in self._project_customers(business_id, as_of=as_of)
        ]

    def _business_appointments(self, business_id: str) -> list[AppointmentRecord]:
        return [a for a in self._appointments.values() if a.business_id == business_id]

    def _project_customers(
        self,
        business_id: str,
        *,
        date_range: DateRange | None = None,
        as_of: datetime | None = None,
    ) -> list[CustomerProjection]:
        completed = [
            a
            for a in self._business_appointments(business_id)
            if a.status == COMPLETED and (date_range is None or date_range.contains(a.start_time))
        ]
        projections: list[CustomerProjection] = []
        for customer in self._customers.values():
            if customer.business_id != business_id:
                continue
            visits = [a for a in completed if a.customer_id == customer.customer_id]
            last_visit = max((a.start_time for a in visits), default=None)
            days_since = None
            if last_visit is not None and as_of is not None:
                days_since = max(0, (as_of.date() - last_visit.date()).days)
            projections.append(
                CustomerProjection(
                    customer_id=customer.customer_id,
                    name=customer.name,
                    total_spent=sum(a.price for a in visits),
                    appointment_count=len(visits),
                    last_visit=last_visit,
                    days_since_last_visit=days_since,
                    email=customer.email,
                    phone=customer.phone,
                )
            )
        return projections
