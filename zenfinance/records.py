from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

ZERO = Decimal("0")
SYSTEM_DEFAULT_CURRENCY = "USD"

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
_LEADING_NUMBER = re.compile(r"^-?(\d+\.?\d*|\.\d+)")


class MalformedRecordError(ValueError):
    """Raised when a record reaching the core carries a value it cannot sum."""


class Frequency:
    values = {"Monthly", "Weekly", "Bi-Weekly", "Yearly", "One-time"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = _normalize_key(value)
        if normalized == "byweekly":
            normalized = "biweekly"
        for candidate in cls.values:
            if _normalize_key(candidate) == normalized:
                return candidate
        raise ValueError("Invalid frequency.")

    @classmethod
    def is_monthly(cls, value: str | None) -> bool:
        return bool(value) and _normalize_key(value) == "monthly"


class AccountType:
    values = {"Checking", "Savings", "Credit Card", "Investment", "Cash", "Other"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = _normalize_key(value)
        for candidate in cls.values:
            if _normalize_key(candidate) == normalized:
                return candidate
        raise ValueError("Invalid account type.")


class Priority:
    values = {"Low", "Medium", "High"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().capitalize()
        if normalized not in cls.values:
            raise ValueError("Invalid priority.")
        return normalized


@dataclass(frozen=True)
class IncomeRecord:
    id: int
    source: str
    amount: Decimal
    category: str
    frequency: str
    currency: Optional[str] = None
    day_of_month: Optional[int] = None


@dataclass(frozen=True)
class OutgoingRecord:
    id: int
    description: str
    amount: Decimal
    category: str
    date: str
    frequency: str
    currency: Optional[str] = None
    is_recurring: bool = False
    day_of_month: Optional[int] = None


@dataclass(frozen=True)
class DebtRecord:
    id: int
    name: str
    balance: Decimal
    interest_rate: Decimal
    min_payment: Decimal
    priority: str
    deadline: Optional[str] = None
    currency: Optional[str] = None


@dataclass(frozen=True)
class SavingsRecord:
    id: int
    name: str
    balance: Decimal
    category: str
    target: Optional[Decimal] = None
    currency: Optional[str] = None

    @property
    def progress(self) -> Optional[Decimal]:
        if self.target is None or self.target <= ZERO:
            return None
        return coerce_amount(self.balance) / coerce_amount(self.target)


@dataclass(frozen=True)
class WishlistRecord:
    id: int
    item: str
    cost: Decimal
    saved: Decimal
    priority: str
    deadline: Optional[str] = None
    currency: Optional[str] = None


@dataclass(frozen=True)
class AccountRecord:
    id: int
    name: str
    type: str
    balance: Decimal
    currency: Optional[str] = None


@dataclass(frozen=True)
class SpendingLogRecord:
    id: int
    description: str
    amount: Decimal
    category: str
    date: datetime
    currency: Optional[str] = None


@dataclass(frozen=True)
class NotificationRecord:
    id: int
    user_id: int
    type: str
    title: str
    message: str
    related_id: Optional[int]
    created_at: datetime
    read: bool = False


@dataclass(frozen=True)
class NotificationInput:
    user_id: int
    type: str
    title: str
    message: str
    related_id: Optional[int]
    created_at: datetime
    dedupe_key: Optional[str] = None


@dataclass(frozen=True)
class FinancialRecords:
    """Everything stored for one user, as handed to the pure engines."""

    income: tuple[IncomeRecord, ...] = field(default_factory=tuple)
    outgoings: tuple[OutgoingRecord, ...] = field(default_factory=tuple)
    savings: tuple[SavingsRecord, ...] = field(default_factory=tuple)
    debt: tuple[DebtRecord, ...] = field(default_factory=tuple)
    wishlist: tuple[WishlistRecord, ...] = field(default_factory=tuple)
    accounts: tuple[AccountRecord, ...] = field(default_factory=tuple)
    spending_log: tuple[SpendingLogRecord, ...] = field(default_factory=tuple)


def clean_number(value: Decimal | int | float | str | None, strict: bool = False) -> Decimal:
    """Parse free-text amount input such as "$1,200.50".

    Anything that is not a digit, "." or "-" is dropped and the longest
    leading number is kept, so "12-3" reads as 12. Unparsable input reads as
    zero unless ``strict`` is set, in which case ``ValueError`` is raised.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Amount must be a number.")
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if value is None:
        if strict:
            raise ValueError("Amount is required.")
        return ZERO

    match = _LEADING_NUMBER.match(_NON_NUMERIC.sub("", value))
    if not match:
        if strict:
            raise ValueError(f"Invalid amount: {value!r}")
        return ZERO
    return Decimal(match.group(0))


def coerce_amount(amount: Decimal | int | float | str) -> Decimal:
    if isinstance(amount, Decimal):
        if not amount.is_finite():
            raise MalformedRecordError(f"Amount is not finite: {amount}")
        return amount
    if isinstance(amount, bool) or amount is None:
        raise MalformedRecordError(f"Amount is not numeric: {amount!r}")
    try:
        coerced = Decimal(str(amount))
    except InvalidOperation as exc:
        raise MalformedRecordError(f"Amount is not numeric: {amount!r}") from exc
    if not coerced.is_finite():
        raise MalformedRecordError(f"Amount is not finite: {amount!r}")
    return coerced


def month_key(value: str | date | datetime | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m")
    return value[:7] if len(value) >= 7 else None


def _normalize_key(value: str) -> str:
    return "".join(ch for ch in value.strip().lower() if ch.isalnum())
