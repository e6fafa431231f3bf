from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List

from zenfinance.aggregation import days_until_due
from zenfinance.currency_partition import resolve_currency
from zenfinance.record_store import RecordStore
from zenfinance.records import (
    ZERO,
    NotificationInput,
    NotificationRecord,
    OutgoingRecord,
    SavingsRecord,
    coerce_amount,
)

logger = logging.getLogger(__name__)

BILL_DUE = "bill_due"
BILL_DUE_WINDOW_DAYS = 3
BILL_DUE_COOLDOWN = timedelta(hours=24)
SAVINGS_THRESHOLDS = (25, 50, 75, 100)

LOCK_STRIPES = 64

# A user always maps to the same lock; unrelated users may share one.
_user_locks = tuple(threading.Lock() for _ in range(LOCK_STRIPES))


def savings_type(threshold: int) -> str:
    return f"savings_{threshold}"


def savings_dedupe_key(threshold: int, related_id: int) -> str:
    return f"{savings_type(threshold)}:{related_id}"


def _lock_for(user_id: int) -> threading.Lock:
    return _user_locks[user_id % LOCK_STRIPES]


class NotificationTriggerEngine:
    """Issues bill reminders and savings milestones as a side effect of reads.

    Milestones are issued once per (user, savings goal, threshold); the store
    enforces this with a unique dedupe key. Bill reminders re-arm after a
    rolling 24 hours, so each user's scan runs under the lock for that user.
    """

    def __init__(self, store: RecordStore):
        self.store = store

    def refresh(
        self, user_id: int, now: datetime, default_currency: str
    ) -> List[NotificationRecord]:
        with _lock_for(user_id):
            existing = self.store.list_notifications(user_id)
            created = self._issue_bill_reminders(user_id, now, default_currency, existing)
            created += self._issue_savings_milestones(user_id, now, existing)
        if created:
            logger.info("Issued %d notification(s) for user %s", created, user_id)
        return self.store.list_notifications(user_id)

    def mark_read(self, user_id: int, notification_id: int) -> None:
        self.store.update_notification_read(user_id, notification_id)

    def mark_all_read(self, user_id: int) -> None:
        self.store.update_all_notifications_read(user_id)

    def _issue_bill_reminders(
        self,
        user_id: int,
        now: datetime,
        default_currency: str,
        existing: List[NotificationRecord],
    ) -> int:
        latest: Dict[int, datetime] = {}
        for notification in existing:
            if notification.type != BILL_DUE or notification.related_id is None:
                continue
            seen = latest.get(notification.related_id)
            if seen is None or notification.created_at > seen:
                latest[notification.related_id] = notification.created_at

        created = 0
        for outgoing in self.store.list_outgoings(user_id):
            if not outgoing.is_recurring or outgoing.day_of_month is None:
                continue
            days_until = days_until_due(outgoing.day_of_month, now.date())
            if not 0 <= days_until <= BILL_DUE_WINDOW_DAYS:
                continue
            last_issued = latest.get(outgoing.id)
            if last_issued is not None and now - last_issued < BILL_DUE_COOLDOWN:
                continue
            notification = self.store.insert_notification(
                _bill_due_notification(user_id, outgoing, days_until, now, default_currency)
            )
            if notification is not None:
                created += 1
        return created

    def _issue_savings_milestones(
        self, user_id: int, now: datetime, existing: List[NotificationRecord]
    ) -> int:
        issued = {
            (notification.related_id, notification.type)
            for notification in existing
            if notification.type.startswith("savings_")
        }

        created = 0
        for goal in self.store.list_savings(user_id):
            if goal.target is None or coerce_amount(goal.target) <= ZERO:
                continue
            pct = coerce_amount(goal.balance) / coerce_amount(goal.target) * 100
            for threshold in SAVINGS_THRESHOLDS:
                if pct < threshold or (goal.id, savings_type(threshold)) in issued:
                    continue
                notification = self.store.insert_notification(
                    _milestone_notification(user_id, goal, threshold, now)
                )
                if notification is not None:
                    created += 1
        return created


def _bill_due_notification(
    user_id: int,
    outgoing: OutgoingRecord,
    days_until: int,
    now: datetime,
    default_currency: str,
) -> NotificationInput:
    currency = resolve_currency(outgoing.currency, default_currency)
    amount = _display_amount(outgoing.amount)
    if days_until == 0:
        when = "today"
    elif days_until == 1:
        when = "tomorrow"
    else:
        when = f"in {days_until} days"
    return NotificationInput(
        user_id=user_id,
        type=BILL_DUE,
        title=f"{outgoing.description} is due {when}",
        message=(
            f"{outgoing.description} ({amount} {currency}) is due on day "
            f"{outgoing.day_of_month} of the month."
        ),
        related_id=outgoing.id,
        created_at=now,
    )


def _milestone_notification(
    user_id: int, goal: SavingsRecord, threshold: int, now: datetime
) -> NotificationInput:
    if threshold >= 100:
        title = f"{goal.name} goal reached!"
        message = f"Congratulations! You have reached your {goal.name} savings target."
    else:
        title = f"{goal.name} is {threshold}% funded"
        message = f"Keep going! {goal.name} has passed {threshold}% of its target."
    return NotificationInput(
        user_id=user_id,
        type=savings_type(threshold),
        title=title,
        message=message,
        related_id=goal.id,
        created_at=now,
        dedupe_key=savings_dedupe_key(threshold, goal.id),
    )


def _display_amount(amount: Decimal) -> str:
    return f"{coerce_amount(amount):,.2f}"
