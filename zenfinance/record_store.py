from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    UniqueConstraint,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from zenfinance.records import (
    SYSTEM_DEFAULT_CURRENCY,
    AccountRecord,
    DebtRecord,
    FinancialRecords,
    IncomeRecord,
    NotificationInput,
    NotificationRecord,
    OutgoingRecord,
    SavingsRecord,
    SpendingLogRecord,
    WishlistRecord,
    coerce_amount,
)

logger = logging.getLogger(__name__)

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), unique=True),
    Column("currency", String(10)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

income = Table(
    "income",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("source", String(255), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("category", String(100), nullable=False),
    Column("frequency", String(20), nullable=False),
    Column("currency", String(10)),
    Column("day_of_month", Integer),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

outgoings = Table(
    "outgoings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("description", String(255), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("category", String(100), nullable=False),
    Column("date", String(10), nullable=False),
    Column("frequency", String(20), nullable=False),
    Column("currency", String(10)),
    Column("is_recurring", Boolean, nullable=False, server_default="0"),
    Column("day_of_month", Integer),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

savings = Table(
    "savings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("balance", Numeric(12, 2), nullable=False),
    Column("target", Numeric(12, 2)),
    Column("category", String(100), nullable=False),
    Column("currency", String(10)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

debt = Table(
    "debt",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("balance", Numeric(12, 2), nullable=False),
    Column("interest_rate", Numeric(5, 2), nullable=False),
    Column("min_payment", Numeric(12, 2), nullable=False),
    Column("priority", String(10), nullable=False),
    Column("deadline", String(10)),
    Column("currency", String(10)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

wishlist = Table(
    "wishlist",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("item", String(255), nullable=False),
    Column("cost", Numeric(12, 2), nullable=False),
    Column("saved", Numeric(12, 2), nullable=False, server_default="0"),
    Column("priority", String(10), nullable=False),
    Column("deadline", String(10)),
    Column("currency", String(10)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

accounts = Table(
    "accounts",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("type", String(50), nullable=False),
    Column("balance", Numeric(12, 2), nullable=False),
    Column("currency", String(10)),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

spending_log = Table(
    "spending_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("description", String(255), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("category", String(100), nullable=False),
    Column("currency", String(10)),
    Column("date", DateTime, nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

notifications = Table(
    "notifications",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("type", String(30), nullable=False),
    Column("title", String(255), nullable=False),
    Column("message", String(500), nullable=False),
    Column("read", Boolean, nullable=False, server_default="0"),
    Column("related_id", Integer),
    Column("dedupe_key", String(100)),
    Column("created_at", DateTime, nullable=False),
    UniqueConstraint("user_id", "dedupe_key", name="uq_notifications_user_dedupe"),
)


class NotFoundError(LookupError):
    """Raised when a record id does not exist in the caller's scope."""


def _income_from_row(row: Mapping[str, Any]) -> IncomeRecord:
    return IncomeRecord(
        id=row["id"],
        source=row["source"],
        amount=coerce_amount(row["amount"]),
        category=row["category"],
        frequency=row["frequency"],
        currency=row["currency"],
        day_of_month=row["day_of_month"],
    )


def _outgoing_from_row(row: Mapping[str, Any]) -> OutgoingRecord:
    return OutgoingRecord(
        id=row["id"],
        description=row["description"],
        amount=coerce_amount(row["amount"]),
        category=row["category"],
        date=row["date"],
        frequency=row["frequency"],
        currency=row["currency"],
        is_recurring=bool(row["is_recurring"]),
        day_of_month=row["day_of_month"],
    )


def _savings_from_row(row: Mapping[str, Any]) -> SavingsRecord:
    return SavingsRecord(
        id=row["id"],
        name=row["name"],
        balance=coerce_amount(row["balance"]),
        target=coerce_amount(row["target"]) if row["target"] is not None else None,
        category=row["category"],
        currency=row["currency"],
    )


def _debt_from_row(row: Mapping[str, Any]) -> DebtRecord:
    return DebtRecord(
        id=row["id"],
        name=row["name"],
        balance=coerce_amount(row["balance"]),
        interest_rate=coerce_amount(row["interest_rate"]),
        min_payment=coerce_amount(row["min_payment"]),
        priority=row["priority"],
        deadline=row["deadline"],
        currency=row["currency"],
    )


def _wishlist_from_row(row: Mapping[str, Any]) -> WishlistRecord:
    return WishlistRecord(
        id=row["id"],
        item=row["item"],
        cost=coerce_amount(row["cost"]),
        saved=coerce_amount(row["saved"]),
        priority=row["priority"],
        deadline=row["deadline"],
        currency=row["currency"],
    )


def _account_from_row(row: Mapping[str, Any]) -> AccountRecord:
    return AccountRecord(
        id=row["id"],
        name=row["name"],
        type=row["type"],
        balance=coerce_amount(row["balance"]),
        currency=row["currency"],
    )


def _spending_from_row(row: Mapping[str, Any]) -> SpendingLogRecord:
    return SpendingLogRecord(
        id=row["id"],
        description=row["description"],
        amount=coerce_amount(row["amount"]),
        category=row["category"],
        date=row["date"],
        currency=row["currency"],
    )


def _notification_from_row(row: Mapping[str, Any]) -> NotificationRecord:
    return NotificationRecord(
        id=row["id"],
        user_id=row["user_id"],
        type=row["type"],
        title=row["title"],
        message=row["message"],
        related_id=row["related_id"],
        created_at=row["created_at"],
        read=bool(row["read"]),
    )


RECORD_KINDS: dict[str, tuple[Table, Callable[[Mapping[str, Any]], Any]]] = {
    "income": (income, _income_from_row),
    "outgoings": (outgoings, _outgoing_from_row),
    "savings": (savings, _savings_from_row),
    "debt": (debt, _debt_from_row),
    "wishlist": (wishlist, _wishlist_from_row),
    "accounts": (accounts, _account_from_row),
    "spending_log": (spending_log, _spending_from_row),
}


class RecordStore(ABC):
    """Per-user access to the stored collections.

    Every method is scoped by ``user_id``; no call reads or writes another
    user's rows.
    """

    @abstractmethod
    def list_income(self, user_id: int) -> list[IncomeRecord]: ...

    @abstractmethod
    def list_outgoings(self, user_id: int) -> list[OutgoingRecord]: ...

    @abstractmethod
    def list_savings(self, user_id: int) -> list[SavingsRecord]: ...

    @abstractmethod
    def list_debt(self, user_id: int) -> list[DebtRecord]: ...

    @abstractmethod
    def list_wishlist(self, user_id: int) -> list[WishlistRecord]: ...

    @abstractmethod
    def list_accounts(self, user_id: int) -> list[AccountRecord]: ...

    @abstractmethod
    def list_spending_log(self, user_id: int) -> list[SpendingLogRecord]: ...

    @abstractmethod
    def list_notifications(self, user_id: int) -> list[NotificationRecord]:
        """Newest first."""

    @abstractmethod
    def insert_notification(
        self, notification: NotificationInput
    ) -> Optional[NotificationRecord]:
        """Insert, or return None when the notification's dedupe key already exists."""

    @abstractmethod
    def update_notification_read(self, user_id: int, notification_id: int) -> None: ...

    @abstractmethod
    def update_all_notifications_read(self, user_id: int) -> None: ...

    @abstractmethod
    def deduct_account_balance(
        self, user_id: int, account_id: int, amount: Decimal
    ) -> AccountRecord: ...

    def load_records(self, user_id: int) -> FinancialRecords:
        return FinancialRecords(
            income=tuple(self.list_income(user_id)),
            outgoings=tuple(self.list_outgoings(user_id)),
            savings=tuple(self.list_savings(user_id)),
            debt=tuple(self.list_debt(user_id)),
            wishlist=tuple(self.list_wishlist(user_id)),
            accounts=tuple(self.list_accounts(user_id)),
            spending_log=tuple(self.list_spending_log(user_id)),
        )


class SqlRecordStore(RecordStore):
    def __init__(self, engine: Engine, system_default_currency: str = SYSTEM_DEFAULT_CURRENCY):
        self.engine = engine
        self.system_default_currency = system_default_currency

    def create_schema(self) -> None:
        metadata.create_all(self.engine)

    # users

    def create_user(self, currency: str | None = None, email: str | None = None) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(
                insert(users).values(currency=currency, email=email).returning(users.c.id)
            )
            return result.scalar_one()

    def user_exists(self, user_id: int) -> bool:
        with self.engine.begin() as conn:
            return conn.execute(select(users.c.id).where(users.c.id == user_id)).first() is not None

    def get_default_currency(self, user_id: int) -> str:
        with self.engine.begin() as conn:
            currency = conn.execute(
                select(users.c.currency).where(users.c.id == user_id)
            ).scalar_one_or_none()
        return currency or self.system_default_currency

    def set_default_currency(self, user_id: int, currency: str) -> str:
        with self.engine.begin() as conn:
            result = conn.execute(
                update(users)
                .where(users.c.id == user_id)
                .values(currency=currency)
                .returning(users.c.currency)
            )
            row = result.first()
        if row is None:
            raise NotFoundError("User not found.")
        return row[0]

    # collections

    def list_income(self, user_id: int) -> list[IncomeRecord]:
        return self._list("income", user_id)

    def list_outgoings(self, user_id: int) -> list[OutgoingRecord]:
        return self._list("outgoings", user_id)

    def list_savings(self, user_id: int) -> list[SavingsRecord]:
        return self._list("savings", user_id)

    def list_debt(self, user_id: int) -> list[DebtRecord]:
        return self._list("debt", user_id)

    def list_wishlist(self, user_id: int) -> list[WishlistRecord]:
        return self._list("wishlist", user_id)

    def list_accounts(self, user_id: int) -> list[AccountRecord]:
        return self._list("accounts", user_id)

    def list_spending_log(self, user_id: int) -> list[SpendingLogRecord]:
        return self._list("spending_log", user_id)

    def load_records(self, user_id: int) -> FinancialRecords:
        with self.engine.begin() as conn:
            fetched = {kind: tuple(self._fetch(conn, kind, user_id)) for kind in RECORD_KINDS}
        return FinancialRecords(**fetched)

    def get_record(self, kind: str, user_id: int, record_id: int):
        table, from_row = _record_kind(kind)
        with self.engine.begin() as conn:
            row = conn.execute(
                select(table).where(table.c.id == record_id, table.c.user_id == user_id)
            ).mappings().first()
        if row is None:
            raise NotFoundError(f"{kind} record {record_id} not found.")
        return from_row(row)

    def create_record(self, kind: str, user_id: int, values: Mapping[str, Any]):
        table, from_row = _record_kind(kind)
        with self.engine.begin() as conn:
            row = conn.execute(
                insert(table).values(user_id=user_id, **values).returning(*table.c)
            ).mappings().first()
        return from_row(row)

    def update_record(self, kind: str, user_id: int, record_id: int, values: Mapping[str, Any]):
        with self.engine.begin() as conn:
            return self._update(conn, kind, user_id, record_id, values)

    def update_record_with_deduction(
        self,
        kind: str,
        user_id: int,
        record_id: int,
        values: Mapping[str, Any],
        account_id: int,
        amount: Decimal,
    ):
        """Debit an account and update a record together; neither is kept if either fails."""
        with self.engine.begin() as conn:
            self._deduct(conn, user_id, account_id, amount)
            return self._update(conn, kind, user_id, record_id, values)

    def delete_record(self, kind: str, user_id: int, record_id: int) -> None:
        table, _ = _record_kind(kind)
        with self.engine.begin() as conn:
            result = conn.execute(
                table.delete().where(table.c.id == record_id, table.c.user_id == user_id)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"{kind} record {record_id} not found.")

    def deduct_account_balance(
        self, user_id: int, account_id: int, amount: Decimal
    ) -> AccountRecord:
        with self.engine.begin() as conn:
            return self._deduct(conn, user_id, account_id, amount)

    # notifications

    def list_notifications(self, user_id: int) -> list[NotificationRecord]:
        with self.engine.begin() as conn:
            rows = conn.execute(
                select(notifications)
                .where(notifications.c.user_id == user_id)
                .order_by(notifications.c.created_at.desc(), notifications.c.id.desc())
            ).mappings().all()
        return [_notification_from_row(row) for row in rows]

    def insert_notification(
        self, notification: NotificationInput
    ) -> Optional[NotificationRecord]:
        stmt = (
            insert(notifications)
            .values(
                user_id=notification.user_id,
                type=notification.type,
                title=notification.title,
                message=notification.message,
                related_id=notification.related_id,
                dedupe_key=notification.dedupe_key,
                created_at=notification.created_at,
                read=False,
            )
            .returning(*notifications.c)
        )
        try:
            with self.engine.begin() as conn:
                row = conn.execute(stmt).mappings().first()
        except IntegrityError:
            if notification.dedupe_key is None:
                raise
            logger.debug(
                "Notification %s already issued for user %s",
                notification.dedupe_key,
                notification.user_id,
            )
            return None
        return _notification_from_row(row)

    def update_notification_read(self, user_id: int, notification_id: int) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                update(notifications)
                .where(notifications.c.id == notification_id, notifications.c.user_id == user_id)
                .values(read=True)
            )

    def update_all_notifications_read(self, user_id: int) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                update(notifications)
                .where(notifications.c.user_id == user_id, notifications.c.read.is_(False))
                .values(read=True)
            )

    def _list(self, kind: str, user_id: int) -> list:
        with self.engine.begin() as conn:
            return self._fetch(conn, kind, user_id)

    @staticmethod
    def _update(
        conn: Connection, kind: str, user_id: int, record_id: int, values: Mapping[str, Any]
    ):
        table, from_row = _record_kind(kind)
        row = conn.execute(
            update(table)
            .where(table.c.id == record_id, table.c.user_id == user_id)
            .values(**values)
            .returning(*table.c)
        ).mappings().first()
        if row is None:
            raise NotFoundError(f"{kind} record {record_id} not found.")
        return from_row(row)

    @staticmethod
    def _deduct(conn: Connection, user_id: int, account_id: int, amount: Decimal) -> AccountRecord:
        row = conn.execute(
            update(accounts)
            .where(accounts.c.id == account_id, accounts.c.user_id == user_id)
            .values(balance=accounts.c.balance - coerce_amount(amount))
            .returning(*accounts.c)
        ).mappings().first()
        if row is None:
            raise NotFoundError(f"Account {account_id} not found.")
        return _account_from_row(row)

    @staticmethod
    def _fetch(conn: Connection, kind: str, user_id: int) -> list:
        table, from_row = _record_kind(kind)
        rows = conn.execute(
            select(table).where(table.c.user_id == user_id).order_by(table.c.id.asc())
        ).mappings().all()
        return [from_row(row) for row in rows]


def _record_kind(kind: str) -> tuple[Table, Callable[[Mapping[str, Any]], Any]]:
    try:
        return RECORD_KINDS[kind]
    except KeyError as exc:
        raise ValueError(f"Unsupported record kind: {kind}") from exc
