from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from zenfinance.aggregation import upcoming_expenses
from zenfinance.currency_partition import resolve_currency
from zenfinance.records import FinancialRecords, coerce_amount

RECENT_SPENDING_LIMIT = 50
SPENDING_PATTERN_DAYS = 30


def build_snapshot(
    records: FinancialRecords, now: datetime, default_currency: str
) -> Dict[str, Any]:
    """Shape a user's records into the JSON-ready object sent to the advisor."""

    def currency(value: Optional[str]) -> str:
        return resolve_currency(value, default_currency)

    return {
        "currencies": currencies_in_use(records, default_currency),
        "income": [
            {
                "source": item.source,
                "amount": _number(item.amount),
                "category": item.category,
                "frequency": item.frequency,
                "currency": currency(item.currency),
            }
            for item in records.income
        ],
        "expenses": [
            {
                "description": item.description,
                "amount": _number(item.amount),
                "category": item.category,
                "date": item.date,
                "frequency": item.frequency,
                "isRecurring": item.is_recurring,
                "dayOfMonth": item.day_of_month,
                "currency": currency(item.currency),
            }
            for item in records.outgoings
        ],
        "debts": [
            {
                "name": item.name,
                "balance": _number(item.balance),
                "apr": _number(item.interest_rate),
                "minPayment": _number(item.min_payment),
                "priority": item.priority,
                "deadline": item.deadline,
                "currency": currency(item.currency),
            }
            for item in records.debt
        ],
        "savings": [
            {
                "name": item.name,
                "balance": _number(item.balance),
                "target": _number(item.target) if item.target is not None else None,
                "category": item.category,
                "currency": currency(item.currency),
            }
            for item in records.savings
        ],
        "wishlist": [
            {
                "item": item.item,
                "cost": _number(item.cost),
                "saved": _number(item.saved),
                "priority": item.priority,
                "deadline": item.deadline,
                "currency": currency(item.currency),
            }
            for item in records.wishlist
        ],
        "recentSpending": [
            {
                "description": entry.description,
                "amount": _number(entry.amount),
                "category": entry.category,
                "date": entry.date.isoformat(),
                "currency": currency(entry.currency),
            }
            for entry in sorted(records.spending_log, key=lambda entry: entry.date, reverse=True)[
                :RECENT_SPENDING_LIMIT
            ]
        ],
        "spendingPatterns": spending_patterns(records, now, default_currency),
        "upcomingExpenses": [
            {
                "description": expense.description,
                "amount": _number(expense.amount),
                "category": expense.category,
                "dayOfMonth": expense.day_of_month,
                "daysUntil": expense.days_until,
                "currency": expense.currency,
            }
            for expense in upcoming_expenses(records, now, default_currency)
        ],
        "accountBalancesByCurrency": account_balances_by_currency(records, default_currency),
    }


def currencies_in_use(records: FinancialRecords, default_currency: str) -> List[str]:
    seen: List[str] = []
    collections = (
        records.income,
        records.outgoings,
        records.debt,
        records.savings,
        records.wishlist,
        records.accounts,
        records.spending_log,
    )
    for collection in collections:
        for item in collection:
            resolved = resolve_currency(item.currency, default_currency)
            if resolved not in seen:
                seen.append(resolved)
    return seen


def spending_patterns(
    records: FinancialRecords, now: datetime, default_currency: str
) -> List[Dict[str, Any]]:
    cutoff = now - timedelta(days=SPENDING_PATTERN_DAYS)
    patterns: Dict[tuple[str, str], Dict[str, Any]] = {}
    for entry in records.spending_log:
        if entry.date < cutoff or entry.date > now:
            continue
        resolved = resolve_currency(entry.currency, default_currency)
        pattern = patterns.setdefault(
            (entry.category, resolved),
            {"category": entry.category, "currency": resolved, "total": Decimal("0"), "count": 0},
        )
        pattern["total"] += coerce_amount(entry.amount)
        pattern["count"] += 1
    return [{**pattern, "total": _number(pattern["total"])} for pattern in patterns.values()]


def account_balances_by_currency(
    records: FinancialRecords, default_currency: str
) -> Dict[str, Dict[str, Any]]:
    grouped: Dict[str, Dict[str, Any]] = {}
    for account in records.accounts:
        resolved = resolve_currency(account.currency, default_currency)
        group = grouped.setdefault(resolved, {"accounts": [], "total": Decimal("0")})
        group["accounts"].append(
            {"name": account.name, "type": account.type, "balance": _number(account.balance)}
        )
        group["total"] += coerce_amount(account.balance)
    return {
        resolved: {"accounts": group["accounts"], "total": _number(group["total"])}
        for resolved, group in grouped.items()
    }


def _number(value: Decimal) -> float:
    return float(coerce_amount(value))
