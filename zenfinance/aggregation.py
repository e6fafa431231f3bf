from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from zenfinance.currency_partition import partition_by_currency, resolve_currency
from zenfinance.records import (
    ZERO,
    FinancialRecords,
    Frequency,
    MalformedRecordError,
    OutgoingRecord,
    SpendingLogRecord,
    coerce_amount,
    month_key,
)

TOTAL_KINDS = {"income", "outgoings", "savings", "debt"}
DAYS_IN_BILLING_MONTH = 30
DEFAULT_UPCOMING_LIMIT = 6
DEFAULT_TREND_WINDOW = 6
DEFAULT_RECENT_LIMIT = 6


@dataclass(frozen=True)
class CategoryTotal:
    name: str
    value: Decimal


@dataclass(frozen=True)
class UpcomingExpense:
    id: int
    description: str
    amount: Decimal
    currency: str
    category: str
    day_of_month: int
    days_until: int


@dataclass(frozen=True)
class TrendBucket:
    month: str
    label: str
    income: Decimal
    expenses: Decimal


@dataclass(frozen=True)
class DashboardSummary:
    income_by_currency: Dict[str, Decimal]
    outgoings_by_currency: Dict[str, Decimal]
    savings_by_currency: Dict[str, Decimal]
    debt_by_currency: Dict[str, Decimal]
    available_by_currency: Dict[str, Decimal]
    capital_by_currency: Dict[str, Decimal]
    category_spending: Dict[str, List[CategoryTotal]]
    upcoming_expenses: List[UpcomingExpense]
    trend: Dict[str, List[TrendBucket]]
    recent_activity: List[OutgoingRecord]


def days_until_due(day_of_month: int, today: date) -> int:
    """Days from ``today`` to the next ``day_of_month``.

    Uses a fixed 30-day month when wrapping, so day 31 or a short February
    are reported approximately.
    """
    if not 1 <= day_of_month <= 31:
        raise MalformedRecordError(f"day_of_month out of range: {day_of_month}")
    days = day_of_month - today.day
    if days < 0:
        days += DAYS_IN_BILLING_MONTH
    return days


def current_month_spending(
    records: FinancialRecords, now: datetime
) -> List[SpendingLogRecord]:
    current = month_key(now)
    return [entry for entry in records.spending_log if month_key(entry.date) == current]


def totals_by_currency(
    records: FinancialRecords,
    kind: str,
    now: datetime,
    default_currency: str,
) -> Dict[str, Decimal]:
    normalized_kind = kind.strip().lower()
    if normalized_kind == "income":
        return partition_by_currency(
            records.income, _amount, _currency, default_currency
        )
    if normalized_kind == "outgoings":
        combined = [*records.outgoings, *current_month_spending(records, now)]
        return partition_by_currency(combined, _amount, _currency, default_currency)
    if normalized_kind == "savings":
        return partition_by_currency(
            records.savings, _balance, _currency, default_currency
        )
    if normalized_kind == "debt":
        return partition_by_currency(
            records.debt, lambda item: item.min_payment, _currency, default_currency
        )
    raise ValueError(f"Unsupported totals kind: {kind}")


def available_by_currency(
    records: FinancialRecords, now: datetime, default_currency: str
) -> Dict[str, Decimal]:
    income = totals_by_currency(records, "income", now, default_currency)
    outgoings = totals_by_currency(records, "outgoings", now, default_currency)
    debt = totals_by_currency(records, "debt", now, default_currency)

    available: Dict[str, Decimal] = {}
    for currency in [*income, *outgoings, *debt]:
        if currency in available:
            continue
        available[currency] = (
            income.get(currency, ZERO)
            - outgoings.get(currency, ZERO)
            - debt.get(currency, ZERO)
        )
    return available


def category_spending_by_currency(
    records: FinancialRecords, now: datetime, default_currency: str
) -> Dict[str, List[CategoryTotal]]:
    grouped: Dict[str, Dict[str, Decimal]] = {}
    for entry in [*records.outgoings, *current_month_spending(records, now)]:
        currency = resolve_currency(entry.currency, default_currency)
        categories = grouped.setdefault(currency, {})
        categories[entry.category] = categories.get(entry.category, ZERO) + coerce_amount(
            entry.amount
        )

    return {
        currency: sorted(
            (CategoryTotal(name=name, value=value) for name, value in categories.items()),
            key=lambda total: total.value,
            reverse=True,
        )
        for currency, categories in grouped.items()
    }


def upcoming_expenses(
    records: FinancialRecords,
    now: datetime,
    default_currency: str,
    limit: int = DEFAULT_UPCOMING_LIMIT,
) -> List[UpcomingExpense]:
    if limit < 0:
        raise ValueError("limit must not be negative.")
    today = _as_date(now)
    upcoming = [
        UpcomingExpense(
            id=item.id,
            description=item.description,
            amount=coerce_amount(item.amount),
            currency=resolve_currency(item.currency, default_currency),
            category=item.category,
            day_of_month=item.day_of_month,
            days_until=days_until_due(item.day_of_month, today),
        )
        for item in records.outgoings
        if item.is_recurring and item.day_of_month is not None
    ]
    upcoming.sort(key=lambda expense: expense.days_until)
    return upcoming[:limit]


def income_expense_trend(
    records: FinancialRecords,
    now: datetime,
    default_currency: str,
    window_months: int = DEFAULT_TREND_WINDOW,
) -> Dict[str, List[TrendBucket]]:
    if window_months < 1:
        raise ValueError("window_months must be at least 1.")
    months = trailing_months(_as_date(now), window_months)
    month_keys = [month_key(value) for value in months]

    income_totals: Dict[str, Dict[str, Decimal]] = {}
    expense_totals: Dict[str, Dict[str, Decimal]] = {}
    currencies: List[str] = []

    def _bucket(table: Dict[str, Dict[str, Decimal]], currency: str) -> Dict[str, Decimal]:
        if currency not in currencies:
            currencies.append(currency)
        return table.setdefault(currency, {key: ZERO for key in month_keys})

    for item in records.income:
        buckets = _bucket(income_totals, resolve_currency(item.currency, default_currency))
        if not Frequency.is_monthly(item.frequency):
            continue
        amount = coerce_amount(item.amount)
        for key in month_keys:
            buckets[key] += amount

    for item in records.outgoings:
        buckets = _bucket(expense_totals, resolve_currency(item.currency, default_currency))
        amount = coerce_amount(item.amount)
        if item.is_recurring or Frequency.is_monthly(item.frequency):
            for key in month_keys:
                buckets[key] += amount
            continue
        item_month = month_key(item.date)
        if item_month in buckets:
            buckets[item_month] += amount

    trend: Dict[str, List[TrendBucket]] = {}
    for currency in currencies:
        incomes = income_totals.get(currency, {})
        expenses = expense_totals.get(currency, {})
        trend[currency] = [
            TrendBucket(
                month=key,
                label=value.strftime("%b %Y"),
                income=incomes.get(key, ZERO),
                expenses=expenses.get(key, ZERO),
            )
            for key, value in zip(month_keys, months)
        ]
    return trend


def capital_by_currency(
    records: FinancialRecords, now: datetime, default_currency: str
) -> Dict[str, Decimal]:
    """Account balances when the user tracks accounts, else income + savings - debt."""
    if records.accounts:
        return partition_by_currency(
            records.accounts, _balance, _currency, default_currency
        )

    income = totals_by_currency(records, "income", now, default_currency)
    savings = totals_by_currency(records, "savings", now, default_currency)
    debt_balances = partition_by_currency(
        records.debt, _balance, _currency, default_currency
    )
    capital: Dict[str, Decimal] = {}
    for currency in [*income, *savings, *debt_balances]:
        if currency in capital:
            continue
        capital[currency] = (
            income.get(currency, ZERO)
            + savings.get(currency, ZERO)
            - debt_balances.get(currency, ZERO)
        )
    return capital


def recent_activity(
    records: FinancialRecords, limit: int = DEFAULT_RECENT_LIMIT
) -> List[OutgoingRecord]:
    if limit <= 0:
        return []
    return list(reversed(records.outgoings[-limit:]))


def build_dashboard(
    records: FinancialRecords, now: datetime, default_currency: str
) -> DashboardSummary:
    return DashboardSummary(
        income_by_currency=totals_by_currency(records, "income", now, default_currency),
        outgoings_by_currency=totals_by_currency(records, "outgoings", now, default_currency),
        savings_by_currency=totals_by_currency(records, "savings", now, default_currency),
        debt_by_currency=totals_by_currency(records, "debt", now, default_currency),
        available_by_currency=available_by_currency(records, now, default_currency),
        capital_by_currency=capital_by_currency(records, now, default_currency),
        category_spending=category_spending_by_currency(records, now, default_currency),
        upcoming_expenses=upcoming_expenses(records, now, default_currency),
        trend=income_expense_trend(records, now, default_currency),
        recent_activity=recent_activity(records),
    )


def trailing_months(today: date, window_months: int) -> List[date]:
    """First day of each of the last ``window_months`` months, oldest first."""
    months: List[date] = []
    for offset in range(window_months - 1, -1, -1):
        total_month = today.year * 12 + today.month - 1 - offset
        months.append(date(total_month // 12, total_month % 12 + 1, 1))
    return months


def _as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _amount(item) -> Decimal:
    return item.amount


def _balance(item) -> Decimal:
    return item.balance


def _currency(item) -> Optional[str]:
    return item.currency
