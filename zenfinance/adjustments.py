from __future__ import annotations

from dataclasses import replace
from decimal import Decimal

from zenfinance.records import (
    ZERO,
    DebtRecord,
    SavingsRecord,
    WishlistRecord,
    coerce_amount,
)


def apply_debt_payment(debt: DebtRecord, amount: Decimal) -> DebtRecord:
    payment = _positive_amount(amount)
    new_balance = max(ZERO, coerce_amount(debt.balance) - payment)
    return replace(debt, balance=new_balance)


def apply_savings_deposit(savings: SavingsRecord, amount: Decimal) -> SavingsRecord:
    deposit = _positive_amount(amount)
    return replace(savings, balance=coerce_amount(savings.balance) + deposit)


def apply_wishlist_deposit(item: WishlistRecord, amount: Decimal) -> WishlistRecord:
    """Add to the saved amount, never past the item's cost."""
    deposit = _positive_amount(amount)
    new_saved = min(coerce_amount(item.cost), coerce_amount(item.saved) + deposit)
    return replace(item, saved=new_saved)


def _positive_amount(amount: Decimal) -> Decimal:
    coerced = coerce_amount(amount)
    if coerced <= ZERO:
        raise ValueError("Amount must be greater than zero.")
    return coerced
