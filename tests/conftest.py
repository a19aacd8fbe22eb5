from datetime import datetime, timedelta, timezone

import pytest

from crm_assistant.store import AppointmentRecord, CustomerRecord, InMemoryBusinessStore

# Wednesday afternoon; the surrounding week runs Sunday 15th to Saturday 21st.
NOW = datetime(2026, 3, 18, 14, 30, tzinfo=timezone.utc)
BUSINESS_ID = "biz-1"


def _visit(appointment_id: str, customer_id: str, days_ago: int, price: float, **kwargs) -> AppointmentRecord:
    start = (NOW - timedelta(days=days_ago)).replace(hour=10, minute=0)
    return AppointmentRecord(
        appointment_id=appointment_id,
        business_id=kwargs.pop("business_id", BUSINESS_ID),
        customer_id=customer_id,
        title=kwargs.pop("title", "Haircut"),
        start_time=start,
        end_time=start + timedelta(hours=1),
        price=price,
        **kwargs,
    )


def build_store() -> InMemoryBusinessStore:
    """Alice and Bob tie on spend this month; Alice was seen more recently.

    Carol lapsed 100 days ago and Fay 200 days ago, Dan never completed a
    visit, and today's two bookings are still scheduled, so today has no
    completed revenue.
    """

    customers = [
        CustomerRecord("c-alice", BUSINESS_ID, "Alice", email="alice@example.com"),
        CustomerRecord("c-bob", BUSINESS_ID, "Bob"),
        CustomerRecord("c-carol", BUSINESS_ID, "Carol"),
        CustomerRecord("c-dan", BUSINESS_ID, "Dan"),
        CustomerRecord("c-fay", BUSINESS_ID, "Fay"),
        CustomerRecord("c-eve", "biz-2", "Eve"),
    ]
    today_start = NOW.replace(hour=16, minute=0)
    appointments = [
        _visit("a-1", "c-alice", 2, 500.0, title="Color"),
        _visit("a-2", "c-bob", 10, 500.0, title="Color"),
        _visit("a-3", "c-carol", 100, 80.0),
        _visit("a-7", "c-fay", 200, 150.0),
        _visit("a-4", "c-eve", 1, 2000.0, business_id="biz-2"),
        AppointmentRecord(
            "a-5", BUSINESS_ID, "c-alice", "Blowout",
            today_start, today_start + timedelta(hours=1), 120.0, status="scheduled",
        ),
        AppointmentRecord(
            "a-6", BUSINESS_ID, "c-bob", "Trim",
            NOW.replace(hour=9, minute=0), NOW.replace(hour=9, minute=30), 60.0, status="scheduled",
        ),
    ]
    return InMemoryBusinessStore(customers, appointments)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store() -> InMemoryBusinessStore:
    return build_store()
