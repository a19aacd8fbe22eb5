from datetime import timedelta

import pytest

from conftest import BUSINESS_ID, NOW
from crm_assistant.query.dates import resolve_date_phrase, today
from crm_assistant.store import AppointmentRecord, rank_best_customers
from crm_assistant.types import CustomerProjection


def test_appointment_must_reference_customer_of_same_business(store) -> None:
    with pytest.raises(ValueError):
        store.add_appointment(
            AppointmentRecord("a-x", BUSINESS_ID, "c-eve", "Trim", NOW, NOW, 10.0)
        )
    with pytest.raises(ValueError):
        store.add_appointment(
            AppointmentRecord("a-y", BUSINESS_ID, "c-nobody", "Trim", NOW, NOW, 10.0)
        )


def test_rank_best_customers_breaks_ties_by_recency_then_name() -> None:
    seen = NOW - timedelta(days=3)
    ranked = rank_best_customers(
        [
            CustomerProjection("c-3", "Zed", 500.0, 1, last_visit=seen),
            CustomerProjection("c-4", "Never", 500.0, 0),
            CustomerProjection("c-2", "Amy", 500.0, 1, last_visit=seen),
            CustomerProjection("c-1", "Old", 500.0, 1, last_visit=seen - timedelta(days=5)),
            CustomerProjection("c-5", "Rich", 900.0, 1, last_visit=seen - timedelta(days=50)),
        ]
    )

    assert [c.name for c in ranked] == ["Rich", "Amy", "Zed", "Old", "Never"]


@pytest.mark.asyncio
async def test_revenue_counts_completed_appointments_only(store) -> None:
    month = resolve_date_phrase("this month", NOW)

    day = await store.fetch_revenue_aggregate(BUSINESS_ID, today(NOW))
    whole_month = await store.fetch_revenue_aggregate(BUSINESS_ID, month)

    assert (day.total_revenue, day.appointment_count) == (0.0, 0)
    assert whole_month.total_revenue == 1000.0
    assert whole_month.unique_customers == 2
    assert whole_month.avg_transaction_value == 500.0


@pytest.mark.asyncio
async def test_at_risk_lists_never_visited_first_then_longest_absence(store) -> None:
    customers = await store.fetch_at_risk_customers(BUSINESS_ID, 60, 10, as_of=NOW)

    assert [(c.name, c.days_since_last_visit) for c in customers] == [
        ("Dan", None),
        ("Fay", 200),
        ("Carol", 100),
    ]
    capped = await store.fetch_at_risk_customers(BUSINESS_ID, 60, 2, as_of=NOW)
    assert [c.name for c in capped] == ["Dan", "Fay"]


@pytest.mark.asyncio
async def test_appointments_include_every_status_in_start_order(store) -> None:
    rows = await store.fetch_appointments(BUSINESS_ID, today(NOW), 25)

    assert [(row.title, row.status) for row in rows] == [("Trim", "scheduled"), ("Blowout", "scheduled")]
    assert rows[0].customer_name == "Bob"


@pytest.mark.asyncio
async def test_recent_customers_are_business_scoped_and_filterable(store) -> None:
    recent = await store.fetch_recent_customers(BUSINESS_ID, 10, as_of=NOW)
    filtered = await store.fetch_recent_customers(BUSINESS_ID, 10, as_of=NOW, name_filter="CAR")

    assert [c.name for c in recent] == ["Alice", "Bob", "Carol", "Fay", "Dan"]
    assert [c.name for c in filtered] == ["Carol"]


@pytest.mark.asyncio
async def test_customer_profiles_are_scored(store) -> None:
    profiles = {p.name: p for p in await store.fetch_customer_profiles(BUSINESS_ID, as_of=NOW)}

    assert set(profiles) == {"Alice", "Bob", "Carol", "Dan", "Fay"}
    assert profiles["Alice"].recency_score == 5
    assert profiles["Carol"].recency_score == 2
    assert profiles["Fay"].recency_score == 1
    assert profiles["Dan"].days_since_last_visit is None
