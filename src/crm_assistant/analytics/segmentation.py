"""RFM scoring and customer segmentation.

Segments are a pure projection of three ordinal scores. Nothing here keeps
state: profiles are rebuilt from raw measures on every read and segmented on
the fly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from math import ceil
from typing import Iterable, Sequence

from crm_assistant.config import ScoringConfig
from crm_assistant.errors import InvalidScoreError
from crm_assistant.types import CustomerScoreProfile


class SegmentLabel(str, Enum):
    CHAMPIONS = "Champions"
    LOYAL = "Loyal"
    AT_RISK = "At-Risk"
    LOST = "Lost"
    NEW = "New"
    POTENTIAL = "Potential"


@dataclass(frozen=True, slots=True)
class SegmentedCustomer:
    profile: CustomerScoreProfile
    segment: SegmentLabel


@dataclass(frozen=True, slots=True)
class SegmentSummary:
    segment: SegmentLabel
    count: int
    total_value: float


def segment(recency: int, frequency: int, monetary: int) -> SegmentLabel:
    """Map recency/frequency/monetary scores to a segment label.

    Rules are checked in a fixed order and the first match wins:

    1. r >= 4, f >= 4, m >= 4 -> Champions
    2. r >= 3, f >= 3, m >= 3 -> Loyal
    3. r >= 4, f <= 1         -> New
    4. r >= 3, f <= 2         -> At-Risk
    5. r <= 2, f <= 2         -> Lost
    6. anything else          -> Potential

    The New guard is a strict subset of the At-Risk guard, so it is checked
    first; otherwise no input could ever be labelled New.

    Raises:
        InvalidScoreError: if any score is not an integer in [1, 5].
    """

    _check_score("recency", recency)
    _check_score("frequency", frequency)
    _check_score("monetary", monetary)

    if recency >= 4 and frequency >= 4 and monetary >= 4:
        return SegmentLabel.CHAMPIONS
    if recency >= 3 and frequency >= 3 and monetary >= 3:
        return SegmentLabel.LOYAL
    if recency >= 4 and frequency <= 1:
        return SegmentLabel.NEW
    if recency >= 3 and frequency <= 2:
        return SegmentLabel.AT_RISK
    if recency <= 2 and frequency <= 2:
        return SegmentLabel.LOST
    return SegmentLabel.POTENTIAL


def score_recency(days_since_last_visit: int | None, config: ScoringConfig | None = None) -> int:
    """Score recency; customers who never visited score 1."""
    if days_since_last_visit is None:
        return 1
    bands = (config or ScoringConfig()).recency_days
    for offset, limit in enumerate(bands):
        if days_since_last_visit <= limit:
            return 5 - offset
    return 1


def score_frequency(total_appointments: int, config: ScoringConfig | None = None) -> int:
    bands = (config or ScoringConfig()).frequency_visits
    for offset, minimum in enumerate(bands):
        if total_appointments >= minimum:
            return 5 - offset
    return 1


def score_monetary(total_spent: float, config: ScoringConfig | None = None) -> int:
    bands = (config or ScoringConfig()).monetary_spend
    for offset, minimum in enumerate(bands):
        if total_spent >= minimum:
            return 5 - offset
    return 1


def build_profile(
    *,
    customer_id: str,
    name: str,
    total_spent: float,
    total_appointments: int,
    days_since_last_visit: int | None,
    config: ScoringConfig | None = None,
) -> CustomerScoreProfile:
    """Derive a score profile from raw completed-visit measures."""

    config = config or ScoringConfig()
    avg_order_value = total_spent / total_appointments if total_appointments else 0.0
    return CustomerScoreProfile(
        customer_id=customer_id,
        name=name,
        recency_score=score_recency(days_since_last_visit, config),
        frequency_score=score_frequency(total_appointments, config),
        monetary_score=score_monetary(total_spent, config),
        customer_lifetime_value=avg_order_value * total_appointments * config.lifespan_factor,
        total_spent=total_spent,
        total_appointments=total_appointments,
        days_since_last_visit=days_since_last_visit,
    )


def segment_profile(profile: CustomerScoreProfile) -> SegmentLabel:
    return segment(profile.recency_score, profile.frequency_score, profile.monetary_score)


def segment_customers(profiles: Iterable[CustomerScoreProfile]) -> list[SegmentedCustomer]:
    return [SegmentedCustomer(profile=p, segment=segment_profile(p)) for p in profiles]


def summarize_segments(segmented: Iterable[SegmentedCustomer]) -> list[SegmentSummary]:
    """Count customers and total lifetime value per segment.

    Only segments that have at least one customer are returned, in the
    declaration order of `SegmentLabel`.
    """

    counts: dict[SegmentLabel, int] = {}
    values: dict[SegmentLabel, float] = {}
    for item in segmented:
        counts[item.segment] = counts.get(item.segment, 0) + 1
        values[item.segment] = values.get(item.segment, 0.0) + item.profile.customer_lifetime_value

    return [
        SegmentSummary(segment=label, count=counts[label], total_value=values[label])
        for label in SegmentLabel
        if label in counts
    ]


def high_value_customers(
    profiles: Sequence[CustomerScoreProfile], share: float = 0.2
) -> list[CustomerScoreProfile]:
    """Return the top `share` of customers by lifetime value (rounded up)."""

    if not 0.0 < share <= 1.0:
        raise ValueError("share must be in (0, 1]")
    if not profiles:
        return []
    ranked = sorted(profiles, key=lambda p: (-p.customer_lifetime_value, p.name))
    return ranked[: ceil(len(ranked) * share)]


def _check_score(axis: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
        raise InvalidScoreError(axis, value)
