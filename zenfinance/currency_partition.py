from __future__ import annotations

from decimal import Decimal
from typing import Callable, Iterable, Optional, TypeVar

from zenfinance.records import ZERO, coerce_amount

T = TypeVar("T")


def resolve_currency(value: Optional[str], default_currency: str) -> str:
    if value is None:
        return default_currency
    stripped = value.strip()
    return stripped if stripped else default_currency


def partition_by_currency(
    records: Iterable[T],
    amount_of: Callable[[T], Decimal],
    currency_of: Callable[[T], Optional[str]],
    default_currency: str,
) -> dict[str, Decimal]:
    """Sum ``amount_of`` per resolved currency, in first-seen order."""
    totals: dict[str, Decimal] = {}
    for record in records:
        currency = resolve_currency(currency_of(record), default_currency)
        totals[currency] = totals.get(currency, ZERO) + coerce_amount(amount_of(record))
    return totals
