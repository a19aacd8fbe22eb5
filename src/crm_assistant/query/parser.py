"""Rule-based classification of chat messages into typed intents."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from crm_assistant.query.dates import resolve_date_phrase, today
from crm_assistant.types import Intent, ParsedQuery

_WHITESPACE = re.compile(r"\s+")
_APOSTROPHES = str.maketrans({"’": "'", "‘": "'", "`": "'"})

_AT_RISK = re.compile(
    r"\bat[\s-]risk\b|\bchurn\w*|\binactive\b|\blapsed\b"
    r"|\bhaven'?t\s+(?:visited|been\s+(?:back|in))\b|\bnot\s+(?:visited|been\s+back)\b"
)
_SUPERLATIVE = re.compile(
    r"\b(?:best|top|biggest|highest|most\s+valuable|favou?rite|vip|loyal(?:est)?)\b"
    r"|\bspent\s+the\s+most\b"
)
_CUSTOMER_WORD = re.compile(r"\b(?:customers?|clients?|spenders?|buyers?|regulars?|who)\b")
_REVENUE = re.compile(
    r"\brevenue\b|\bearn(?:ed|ing|ings|s)?\b|\bincome\b|\bsales\b|\bmoney\b"
    r"|\bprofits?\b|\bturnover\b|\bhow\s+much\b.*\bma(?:de|ke)\b"
)
_SCHEDULING = re.compile(
    r"\bappointments?\b|\bschedule[ds]?\b|\bbooked\b|\bbookings?\b|\bcalendar\b|\bmeetings?\b"
)
_ENTITY_NOUN = re.compile(r"\b(customer|client|service|appointment)s?\b")
_NAMED = re.compile(r"\b(?:named|called)\s+([a-z][a-z'-]*)")
_LIMIT_PATTERNS = (
    re.compile(r"\b(?:top|first)\s+(\d{1,4})\b"),
    re.compile(r"\b(\d{1,4})\s+(?:customers|clients|appointments|bookings)\b"),
)


@dataclass(frozen=True, slots=True)
class IntentRule:
    """Predicate over normalized text plus the parameter extractor for it."""

    intent: Intent
    matches: Callable[[str], bool]
    extract: Callable[[str, datetime], dict[str, object]]


def normalize(text: str) -> str:
    return _WHITESPACE.sub(" ", text.translate(_APOSTROPHES).lower()).strip()


def extract_limit(text: str) -> int | None:
    for pattern in _LIMIT_PATTERNS:
        match = pattern.search(text)
        if match:
            value = int(match.group(1))
            return value if value >= 1 else None
    return None


def extract_name(text: str) -> str | None:
    match = _NAMED.search(text)
    return match.group(1) if match else None


def _no_params(text: str, now: datetime) -> dict[str, object]:
    return {"limit": extract_limit(text)}


def _optional_range(text: str, now: datetime) -> dict[str, object]:
    return {"date_range": resolve_date_phrase(text, now), "limit": extract_limit(text)}


def _range_default_today(text: str, now: datetime) -> dict[str, object]:
    return {
        "date_range": resolve_date_phrase(text, now) or today(now),
        "limit": extract_limit(text),
    }


def _generic(text: str, now: datetime) -> dict[str, object]:
    return {"entity": extract_name(text), "limit": extract_limit(text)}


DEFAULT_RULES: tuple[IntentRule, ...] = (
    IntentRule(Intent.AT_RISK_CUSTOMERS, lambda t: bool(_AT_RISK.search(t)), _no_params),
    IntentRule(
        Intent.BEST_CUSTOMER,
        lambda t: bool(_SUPERLATIVE.search(t) and _CUSTOMER_WORD.search(t)),
        _optional_range,
    ),
    IntentRule(Intent.REVENUE, lambda t: bool(_REVENUE.search(t)), _optional_range),
    IntentRule(
        Intent.APPOINTMENTS_IN_RANGE,
        lambda t: bool(_SCHEDULING.search(t)),
        _range_default_today,
    ),
    IntentRule(Intent.GENERIC_LIST, lambda t: bool(_ENTITY_NOUN.search(t)), _generic),
)


class QueryParser:
    """Classifies free text with an ordered list of intent rules.

    The first rule whose predicate matches wins. Ordering is explicit so that
    the outcome for any input is predictable: at-risk vocabulary beats
    superlatives, which beat revenue vocabulary, which beats scheduling
    vocabulary. A bare entity noun falls through to `GENERIC_LIST`, and text
    that matches nothing is `UNKNOWN`.
    """

    def __init__(self, rules: tuple[IntentRule, ...] | None = None) -> None:
        self.rules = rules if rules is not None else DEFAULT_RULES

    def parse(self, text: str, now: datetime) -> ParsedQuery:
        normalized = normalize(text or "")
        for rule in self.rules:
            if rule.matches(normalized):
                params = rule.extract(normalized, now)
                return ParsedQuery(intent=rule.intent, raw_text=text, **params)  # type: ignore[arg-type]
        return ParsedQuery(intent=Intent.UNKNOWN, raw_text=text)
