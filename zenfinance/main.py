import logging
import os
from dataclasses import asdict
from datetime import date, datetime
from decimal import Decimal

from fastapi import FastAPI, HTTPException, Header
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, field_validator
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from zenfinance.adjustments import (
    apply_debt_payment,
    apply_savings_deposit,
    apply_wishlist_deposit,
)
from zenfinance.advice import AdviceClient, AdviceUnavailable
from zenfinance.ai_snapshot import build_snapshot
from zenfinance.aggregation import build_dashboard
from zenfinance.currency_format import format_currency
from zenfinance.notification_engine import NotificationTriggerEngine
from zenfinance.record_store import NotFoundError, SqlRecordStore
from zenfinance.records import (
    ZERO,
    AccountType,
    Frequency,
    Priority,
    clean_number,
)

if not logging.getLogger().handlers:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())

logger = logging.getLogger(__name__)

app = FastAPI()

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def normalize_currency(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().upper()
    return normalized or None


SYSTEM_DEFAULT_CURRENCY = normalize_currency(os.getenv("DEFAULT_CURRENCY")) or "USD"
STRICT_AMOUNTS = os.getenv("STRICT_AMOUNTS", "false").strip().lower() in {"1", "true", "yes"}

database_url = os.getenv("DATABASE_URL", "sqlite:///./zenfinance.db")
connect_args = {}
engine_options = {}
if database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}
    if database_url in {"sqlite://", "sqlite:///:memory:"}:
        engine_options["poolclass"] = StaticPool

engine = create_engine(database_url, connect_args=connect_args, **engine_options)
store = SqlRecordStore(engine, system_default_currency=SYSTEM_DEFAULT_CURRENCY)
notification_engine = NotificationTriggerEngine(store)
advice_client = AdviceClient()


@app.on_event("startup")
def init_db() -> None:
    store.create_schema()


def lenient_amount(value):
    return clean_number(value, strict=STRICT_AMOUNTS)


def optional_amount(value):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return lenient_amount(value)


def optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def require_text(value: str, message: str) -> str:
    stripped = value.strip()
    if not stripped:
        raise ValueError(message)
    return stripped


def validate_day_of_month(value: int | None) -> int | None:
    if value is None:
        return None
    if not 1 <= value <= 31:
        raise ValueError("Day of month must be between 1 and 31.")
    return value


def validate_iso_date(value: str | None) -> str | None:
    value = optional_text(value)
    if value is None:
        return None
    try:
        return date.fromisoformat(value).isoformat()
    except ValueError as exc:
        raise ValueError("Date must be in YYYY-MM-DD format.") from exc


class UserPayload(BaseModel):
    currency: str | None = None
    email: str | None = None


class UserSettingsResponse(BaseModel):
    id: int
    currency: str


class IncomePayload(BaseModel):
    source: str
    amount: Decimal
    category: str
    frequency: str
    currency: str | None = None
    day_of_month: int | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def clean_amount(cls, value):
        return lenient_amount(value)

    @classmethod
    def validate_payload(cls, payload: "IncomePayload") -> "IncomePayload":
        payload.source = require_text(payload.source, "Income source required.")
        payload.category = require_text(payload.category, "Category required.")
        payload.frequency = Frequency.validate(payload.frequency)
        payload.currency = normalize_currency(payload.currency)
        if payload.amount < ZERO:
            raise ValueError("Amount must not be negative.")
        if Frequency.is_monthly(payload.frequency):
            payload.day_of_month = validate_day_of_month(payload.day_of_month)
        else:
            payload.day_of_month = None
        return payload


class IncomeResponse(BaseModel):
    id: int
    source: str
    amount: Decimal
    category: str
    frequency: str
    currency: str | None = None
    day_of_month: int | None = None


class OutgoingPayload(BaseModel):
    description: str
    amount: Decimal
    category: str
    date: str | None = None
    frequency: str
    currency: str | None = None
    is_recurring: bool = False
    day_of_month: int | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def clean_amount(cls, value):
        return lenient_amount(value)

    @classmethod
    def validate_payload(cls, payload: "OutgoingPayload") -> "OutgoingPayload":
        payload.description = require_text(payload.description, "Description required.")
        payload.category = require_text(payload.category, "Category required.")
        payload.frequency = Frequency.validate(payload.frequency)
        payload.currency = normalize_currency(payload.currency)
        payload.date = validate_iso_date(payload.date)
        if payload.amount < ZERO:
            raise ValueError("Amount must not be negative.")
        if payload.is_recurring:
            payload.day_of_month = validate_day_of_month(payload.day_of_month)
            if payload.date is None:
                payload.date = date.today().isoformat()
        else:
            payload.day_of_month = None
            if payload.date is None:
                raise ValueError("One-off expenses require a date.")
        return payload


class OutgoingResponse(BaseModel):
    id: int
    description: str
    amount: Decimal
    category: str
    date: str
    frequency: str
    currency: str | None = None
    is_recurring: bool = False
    day_of_month: int | None = None


class SavingsPayload(BaseModel):
    name: str
    balance: Decimal
    target: Decimal | None = None
    category: str
    currency: str | None = None

    @field_validator("balance", mode="before")
    @classmethod
    def clean_balance(cls, value):
        return lenient_amount(value)

    @field_validator("target", mode="before")
    @classmethod
    def clean_target(cls, value):
        return optional_amount(value)

    @classmethod
    def validate_payload(cls, payload: "SavingsPayload") -> "SavingsPayload":
        payload.name = require_text(payload.name, "Savings name required.")
        payload.category = require_text(payload.category, "Category required.")
        payload.currency = normalize_currency(payload.currency)
        if payload.balance < ZERO:
            raise ValueError("Balance must not be negative.")
        if payload.target is not None and payload.target <= ZERO:
            payload.target = None
        return payload


class SavingsResponse(BaseModel):
    id: int
    name: str
    balance: Decimal
    target: Decimal | None = None
    category: str
    currency: str | None = None


class DebtPayload(BaseModel):
    name: str
    balance: Decimal
    interest_rate: Decimal
    min_payment: Decimal
    priority: str = "Medium"
    deadline: str | None = None
    currency: str | None = None

    @field_validator("balance", "interest_rate", "min_payment", mode="before")
    @classmethod
    def clean_amounts(cls, value):
        return lenient_amount(value)

    @classmethod
    def validate_payload(cls, payload: "DebtPayload") -> "DebtPayload":
        payload.name = require_text(payload.name, "Debt name required.")
        payload.priority = Priority.validate(payload.priority)
        payload.deadline = validate_iso_date(payload.deadline)
        payload.currency = normalize_currency(payload.currency)
        if payload.balance < ZERO or payload.min_payment < ZERO:
            raise ValueError("Debt amounts must not be negative.")
        return payload


class DebtResponse(BaseModel):
    id: int
    name: str
    balance: Decimal
    interest_rate: Decimal
    min_payment: Decimal
    priority: str
    deadline: str | None = None
    currency: str | None = None


class WishlistPayload(BaseModel):
    item: str
    cost: Decimal
    saved: Decimal = ZERO
    priority: str = "Medium"
    deadline: str | None = None
    currency: str | None = None

    @field_validator("cost", "saved", mode="before")
    @classmethod
    def clean_amounts(cls, value):
        return lenient_amount(value)

    @classmethod
    def validate_payload(cls, payload: "WishlistPayload") -> "WishlistPayload":
        payload.item = require_text(payload.item, "Wishlist item required.")
        payload.priority = Priority.validate(payload.priority)
        payload.deadline = validate_iso_date(payload.deadline)
        payload.currency = normalize_currency(payload.currency)
        if payload.cost < ZERO or payload.saved < ZERO:
            raise ValueError("Wishlist amounts must not be negative.")
        payload.saved = min(payload.saved, payload.cost)
        return payload


class WishlistResponse(BaseModel):
    id: int
    item: str
    cost: Decimal
    saved: Decimal
    priority: str
    deadline: str | None = None
    currency: str | None = None


class AccountPayload(BaseModel):
    name: str
    type: str
    balance: Decimal
    currency: str | None = None

    @field_validator("balance", mode="before")
    @classmethod
    def clean_balance(cls, value):
        return lenient_amount(value)

    @classmethod
    def validate_payload(cls, payload: "AccountPayload") -> "AccountPayload":
        payload.name = require_text(payload.name, "Account name required.")
        payload.type = AccountType.validate(payload.type)
        payload.currency = normalize_currency(payload.currency)
        return payload


class AccountResponse(BaseModel):
    id: int
    name: str
    type: str
    balance: Decimal
    currency: str | None = None


class SpendingPayload(BaseModel):
    description: str
    amount: Decimal
    category: str
    currency: str | None = None
    date: datetime | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def clean_amount(cls, value):
        return lenient_amount(value)

    @classmethod
    def validate_payload(cls, payload: "SpendingPayload") -> "SpendingPayload":
        payload.description = require_text(payload.description, "Description required.")
        payload.category = require_text(payload.category, "Category required.")
        payload.currency = normalize_currency(payload.currency)
        if payload.amount <= ZERO:
            raise ValueError("Amount must be greater than zero.")
        if payload.date is None:
            payload.date = datetime.now()
        elif payload.date.tzinfo is not None:
            payload.date = payload.date.astimezone().replace(tzinfo=None)
        return payload


class SpendingResponse(BaseModel):
    id: int
    description: str
    amount: Decimal
    category: str
    currency: str | None = None
    date: datetime


class AmountPayload(BaseModel):
    amount: Decimal
    account_id: int | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def clean_amount(cls, value):
        return lenient_amount(value)


class FinanceResponse(BaseModel):
    currency: str
    income: list[IncomeResponse]
    outgoings: list[OutgoingResponse]
    savings: list[SavingsResponse]
    debt: list[DebtResponse]
    wishlist: list[WishlistResponse]
    accounts: list[AccountResponse]
    spending_log: list[SpendingResponse]


class CategoryTotalResponse(BaseModel):
    name: str
    value: Decimal


class UpcomingExpenseResponse(BaseModel):
    id: int
    description: str
    amount: Decimal
    currency: str
    category: str
    day_of_month: int
    days_until: int


class TrendBucketResponse(BaseModel):
    month: str
    label: str
    income: Decimal
    expenses: Decimal


class DashboardResponse(BaseModel):
    currency: str
    income_by_currency: dict[str, Decimal]
    outgoings_by_currency: dict[str, Decimal]
    savings_by_currency: dict[str, Decimal]
    debt_by_currency: dict[str, Decimal]
    available_by_currency: dict[str, Decimal]
    capital_by_currency: dict[str, Decimal]
    capital_display: dict[str, str]
    category_spending: dict[str, list[CategoryTotalResponse]]
    upcoming_expenses: list[UpcomingExpenseResponse]
    trend: dict[str, list[TrendBucketResponse]]
    recent_activity: list[OutgoingResponse]


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    read: bool
    related_id: int | None = None
    created_at: datetime


class AdvicePayload(BaseModel):
    question: str


class AdviceBody(BaseModel):
    summary: str
    steps: list[str]


class AdviceResponse(BaseModel):
    ok: bool
    advice: AdviceBody


def get_user_id(x_user_id: str | None) -> int:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user identity.")
    try:
        user_id = int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid user identity.") from exc
    if not store.user_exists(user_id):
        raise HTTPException(status_code=404, detail="User not found.")
    return user_id


def validated(payload_cls, payload):
    try:
        return payload_cls.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def update_or_404(kind: str, user_id: int, record_id: int, values: dict, label: str):
    try:
        return store.update_record(kind, user_id, record_id, values)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"{label} not found.") from exc


def delete_or_404(kind: str, user_id: int, record_id: int, label: str) -> dict:
    try:
        store.delete_record(kind, user_id, record_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"{label} not found.") from exc
    return {"status": "deleted"}


def get_or_404(kind: str, user_id: int, record_id: int, label: str):
    try:
        return store.get_record(kind, user_id, record_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"{label} not found.") from exc


def adjust_or_404(
    kind: str,
    user_id: int,
    record_id: int,
    values: dict,
    account_id: int | None,
    amount: Decimal,
    label: str,
):
    if account_id is None:
        return update_or_404(kind, user_id, record_id, values, label)
    try:
        return store.update_record_with_deduction(
            kind, user_id, record_id, values, account_id, amount
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=f"{label} or account not found.") from exc


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/users", response_model=UserSettingsResponse)
def create_user(payload: UserPayload) -> UserSettingsResponse:
    currency = normalize_currency(payload.currency)
    email = payload.email.strip().lower() if payload.email else None
    try:
        user_id = store.create_user(currency=currency, email=email)
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Email already exists.") from exc
    logger.info("Created user %s", user_id)
    return UserSettingsResponse(id=user_id, currency=store.get_default_currency(user_id))


@app.get("/users/me/settings", response_model=UserSettingsResponse)
def get_user_settings(
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> UserSettingsResponse:
    user_id = get_user_id(x_user_id)
    return UserSettingsResponse(id=user_id, currency=store.get_default_currency(user_id))


@app.put("/users/me/settings", response_model=UserSettingsResponse)
def update_user_settings(
    payload: UserPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> UserSettingsResponse:
    user_id = get_user_id(x_user_id)
    currency = normalize_currency(payload.currency)
    if currency is None:
        raise HTTPException(status_code=400, detail="Currency required.")
    try:
        store.set_default_currency(user_id, currency)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="User not found.") from exc
    return UserSettingsResponse(id=user_id, currency=currency)


@app.get("/finance", response_model=FinanceResponse)
def get_finance(x_user_id: str | None = Header(None, alias="x-user-id")) -> FinanceResponse:
    user_id = get_user_id(x_user_id)
    records = store.load_records(user_id)
    return FinanceResponse(
        currency=store.get_default_currency(user_id),
        income=[IncomeResponse(**asdict(item)) for item in records.income],
        outgoings=[OutgoingResponse(**asdict(item)) for item in records.outgoings],
        savings=[SavingsResponse(**asdict(item)) for item in records.savings],
        debt=[DebtResponse(**asdict(item)) for item in records.debt],
        wishlist=[WishlistResponse(**asdict(item)) for item in records.wishlist],
        accounts=[AccountResponse(**asdict(item)) for item in records.accounts],
        spending_log=[SpendingResponse(**asdict(item)) for item in records.spending_log],
    )


@app.post("/finance/income", response_model=IncomeResponse)
def create_income(
    payload: IncomePayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> IncomeResponse:
    user_id = get_user_id(x_user_id)
    payload = validated(IncomePayload, payload)
    record = store.create_record("income", user_id, payload.model_dump())
    return IncomeResponse(**asdict(record))


@app.put("/finance/income/{income_id}", response_model=IncomeResponse)
def update_income(
    income_id: int,
    payload: IncomePayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> IncomeResponse:
    user_id = get_user_id(x_user_id)
    payload = validated(IncomePayload, payload)
    record = update_or_404("income", user_id, income_id, payload.model_dump(), "Income")
    return IncomeResponse(**asdict(record))


@app.delete("/finance/income/{income_id}")
def delete_income(income_id: int, x_user_id: str | None = Header(None, alias="x-user-id")) -> dict:
    user_id = get_user_id(x_user_id)
    return delete_or_404("income", user_id, income_id, "Income")


@app.post("/finance/outgoings", response_model=OutgoingResponse)
def create_outgoing(
    payload: OutgoingPayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> OutgoingResponse:
    user_id = get_user_id(x_user_id)
    payload = validated(OutgoingPayload, payload)
    record = store.create_record("outgoings", user_id, payload.model_dump())
    return OutgoingResponse(**asdict(record))


@app.put("/finance/outgoings/{outgoing_id}", response_model=OutgoingResponse)
def update_outgoing(
    outgoing_id: int,
    payload: OutgoingPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> OutgoingResponse:
    user_id = get_user_id(x_user_id)
    payload = validated(OutgoingPayload, payload)
    record = update_or_404("outgoings", user_id, outgoing_id, payload.model_dump(), "Expense")
    return OutgoingResponse(**asdict(record))


@app.delete("/finance/outgoings/{outgoing_id}")
def delete_outgoing(
    outgoing_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
) -> dict:
    user_id = get_user_id(x_user_id)
    return delete_or_404("outgoings", user_id, outgoing_id, "Expense")


@app.post("/finance/savings", response_model=SavingsResponse)
def create_savings(
    payload: SavingsPayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> SavingsResponse:
    user_id = get_user_id(x_user_id)
    payload = validated(SavingsPayload, payload)
    record = store.create_record("savings", user_id, payload.model_dump())
    return SavingsResponse(**asdict(record))


@app.put("/finance/savings/{savings_id}", response_model=SavingsResponse)
def update_savings(
    savings_id: int,
    payload: SavingsPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> SavingsResponse:
    user_id = get_user_id(x_user_id)
    payload = validated(SavingsPayload, payload)
    record = update_or_404("savings", user_id, savings_id, payload.model_dump(), "Savings")
    return SavingsResponse(**asdict(record))


@app.delete("/finance/savings/{savings_id}")
def delete_savings(savings_id: int, x_user_id: str | None = Header(None, alias="x-user-id")) -> dict:
    user_id = get_user_id(x_user_id)
    return delete_or_404("savings", user_id, savings_id, "Savings")


@app.post("/finance/savings/{savings_id}/deposit", response_model=SavingsResponse)
def deposit_savings(
    savings_id: int,
    payload: AmountPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> SavingsResponse:
    user_id = get_user_id(x_user_id)
    current = get_or_404("savings", user_id, savings_id, "Savings")
    try:
        updated = apply_savings_deposit(current, payload.amount)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    record = adjust_or_404(
        "savings",
        user_id,
        savings_id,
        {"balance": updated.balance},
        payload.account_id,
        payload.amount,
        "Savings",
    )
    return SavingsResponse(**asdict(record))


@app.post("/finance/debt", response_model=DebtResponse)
def create_debt(
    payload: DebtPayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> DebtResponse:
    user_id = get_user_id(x_user_id)
    payload = validated(DebtPayload, payload)
    record = store.create_record("debt", user_id, payload.model_dump())
    return DebtResponse(**asdict(record))


@app.put("/finance/debt/{debt_id}", response_model=DebtResponse)
def update_debt(
    debt_id: int,
    payload: DebtPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> DebtResponse:
    user_id = get_user_id(x_user_id)
    payload = validated(DebtPayload, payload)
    record = update_or_404("debt", user_id, debt_id, payload.model_dump(), "Debt")
    return DebtResponse(**asdict(record))


@app.delete("/finance/debt/{debt_id}")
def delete_debt(debt_id: int, x_user_id: str | None = Header(None, alias="x-user-id")) -> dict:
    user_id = get_user_id(x_user_id)
    return delete_or_404("debt", user_id, debt_id, "Debt")


@app.post("/finance/debt/{debt_id}/payment", response_model=DebtResponse)
def pay_debt(
    debt_id: int,
    payload: AmountPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> DebtResponse:
    user_id = get_user_id(x_user_id)
    current = get_or_404("debt", user_id, debt_id, "Debt")
    try:
        updated = apply_debt_payment(current, payload.amount)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    record = adjust_or_404(
        "debt",
        user_id,
        debt_id,
        {"balance": updated.balance},
        payload.account_id,
        payload.amount,
        "Debt",
    )
    return DebtResponse(**asdict(record))


@app.post("/finance/wishlist", response_model=WishlistResponse)
def create_wishlist_item(
    payload: WishlistPayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> WishlistResponse:
    user_id = get_user_id(x_user_id)
    payload = validated(WishlistPayload, payload)
    record = store.create_record("wishlist", user_id, payload.model_dump())
    return WishlistResponse(**asdict(record))


@app.put("/finance/wishlist/{item_id}", response_model=WishlistResponse)
def update_wishlist_item(
    item_id: int,
    payload: WishlistPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> WishlistResponse:
    user_id = get_user_id(x_user_id)
    payload = validated(WishlistPayload, payload)
    record = update_or_404("wishlist", user_id, item_id, payload.model_dump(), "Wishlist item")
    return WishlistResponse(**asdict(record))


@app.delete("/finance/wishlist/{item_id}")
def delete_wishlist_item(
    item_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
) -> dict:
    user_id = get_user_id(x_user_id)
    return delete_or_404("wishlist", user_id, item_id, "Wishlist item")


@app.post("/finance/wishlist/{item_id}/deposit", response_model=WishlistResponse)
def deposit_wishlist_item(
    item_id: int,
    payload: AmountPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> WishlistResponse:
    user_id = get_user_id(x_user_id)
    current = get_or_404("wishlist", user_id, item_id, "Wishlist item")
    try:
        updated = apply_wishlist_deposit(current, payload.amount)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    record = update_or_404("wishlist", user_id, item_id, {"saved": updated.saved}, "Wishlist item")
    return WishlistResponse(**asdict(record))


@app.post("/finance/accounts", response_model=AccountResponse)
def create_account(
    payload: AccountPayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> AccountResponse:
    user_id = get_user_id(x_user_id)
    payload = validated(AccountPayload, payload)
    record = store.create_record("accounts", user_id, payload.model_dump())
    return AccountResponse(**asdict(record))


@app.put("/finance/accounts/{account_id}", response_model=AccountResponse)
def update_account(
    account_id: int,
    payload: AccountPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> AccountResponse:
    user_id = get_user_id(x_user_id)
    payload = validated(AccountPayload, payload)
    record = update_or_404("accounts", user_id, account_id, payload.model_dump(), "Account")
    return AccountResponse(**asdict(record))


@app.delete("/finance/accounts/{account_id}")
def delete_account(account_id: int, x_user_id: str | None = Header(None, alias="x-user-id")) -> dict:
    user_id = get_user_id(x_user_id)
    return delete_or_404("accounts", user_id, account_id, "Account")


@app.post("/finance/accounts/{account_id}/deduct", response_model=AccountResponse)
def deduct_account(
    account_id: int,
    payload: AmountPayload,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> AccountResponse:
    user_id = get_user_id(x_user_id)
    if payload.amount <= ZERO:
        raise HTTPException(status_code=400, detail="Amount must be greater than zero.")
    try:
        record = store.deduct_account_balance(user_id, account_id, payload.amount)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="Account not found.") from exc
    return AccountResponse(**asdict(record))


@app.post("/finance/spending-log", response_model=SpendingResponse)
def create_spending(
    payload: SpendingPayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> SpendingResponse:
    user_id = get_user_id(x_user_id)
    payload = validated(SpendingPayload, payload)
    record = store.create_record("spending_log", user_id, payload.model_dump())
    return SpendingResponse(**asdict(record))


@app.delete("/finance/spending-log/{entry_id}")
def delete_spending(entry_id: int, x_user_id: str | None = Header(None, alias="x-user-id")) -> dict:
    user_id = get_user_id(x_user_id)
    return delete_or_404("spending_log", user_id, entry_id, "Spending entry")


@app.get("/dashboard", response_model=DashboardResponse)
def dashboard(x_user_id: str | None = Header(None, alias="x-user-id")) -> DashboardResponse:
    user_id = get_user_id(x_user_id)
    default_currency = store.get_default_currency(user_id)
    summary = build_dashboard(store.load_records(user_id), datetime.now(), default_currency)
    return DashboardResponse(
        currency=default_currency,
        income_by_currency=summary.income_by_currency,
        outgoings_by_currency=summary.outgoings_by_currency,
        savings_by_currency=summary.savings_by_currency,
        debt_by_currency=summary.debt_by_currency,
        available_by_currency=summary.available_by_currency,
        capital_by_currency=summary.capital_by_currency,
        capital_display={
            currency: format_currency(amount, currency)
            for currency, amount in summary.capital_by_currency.items()
        },
        category_spending={
            currency: [CategoryTotalResponse(**asdict(total)) for total in totals]
            for currency, totals in summary.category_spending.items()
        },
        upcoming_expenses=[
            UpcomingExpenseResponse(**asdict(expense)) for expense in summary.upcoming_expenses
        ],
        trend={
            currency: [TrendBucketResponse(**asdict(bucket)) for bucket in buckets]
            for currency, buckets in summary.trend.items()
        },
        recent_activity=[OutgoingResponse(**asdict(item)) for item in summary.recent_activity],
    )


@app.get("/notifications", response_model=list[NotificationResponse])
def list_notifications(
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[NotificationResponse]:
    user_id = get_user_id(x_user_id)
    default_currency = store.get_default_currency(user_id)
    notifications = notification_engine.refresh(user_id, datetime.now(), default_currency)
    return [
        NotificationResponse(
            id=item.id,
            type=item.type,
            title=item.title,
            message=item.message,
            read=item.read,
            related_id=item.related_id,
            created_at=item.created_at,
        )
        for item in notifications
    ]


@app.put("/notifications/read-all")
def mark_all_notifications_read(
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> dict:
    user_id = get_user_id(x_user_id)
    notification_engine.mark_all_read(user_id)
    return {"status": "ok"}


@app.put("/notifications/{notification_id}/read")
def mark_notification_read(
    notification_id: int, x_user_id: str | None = Header(None, alias="x-user-id")
) -> dict:
    user_id = get_user_id(x_user_id)
    notification_engine.mark_read(user_id, notification_id)
    return {"status": "ok"}


@app.post("/ai/advice", response_model=AdviceResponse)
def ai_advice(
    payload: AdvicePayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> AdviceResponse:
    user_id = get_user_id(x_user_id)
    if not payload.question.strip():
        raise HTTPException(status_code=400, detail="A question is required.")
    default_currency = store.get_default_currency(user_id)
    snapshot = build_snapshot(store.load_records(user_id), datetime.now(), default_currency)
    try:
        advice = advice_client.get_advice(snapshot, payload.question)
    except AdviceUnavailable as exc:
        logger.warning("Advice unavailable for user %s: %s", user_id, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return AdviceResponse(ok=True, advice=AdviceBody(summary=advice.summary, steps=advice.steps))
