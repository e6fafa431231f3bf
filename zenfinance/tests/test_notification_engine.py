import os
import tempfile
import threading
import unittest
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from zenfinance.notification_engine import BILL_DUE, NotificationTriggerEngine
from zenfinance.record_store import SqlRecordStore

NOW = datetime(2024, 5, 29, 9, 0)


def make_store() -> SqlRecordStore:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    store = SqlRecordStore(engine)
    store.create_schema()
    return store


class NotificationTriggerEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = make_store()
        self.user_id = self.store.create_user(currency="GBP")
        self.engine = NotificationTriggerEngine(self.store)

    def add_recurring_bill(self, day_of_month: int, description: str = "Rent", currency: str | None = None):
        return self.store.create_record(
            "outgoings",
            self.user_id,
            {
                "description": description,
                "amount": Decimal("950"),
                "category": "Housing",
                "date": "2024-05-01",
                "frequency": "Monthly",
                "currency": currency,
                "is_recurring": True,
                "day_of_month": day_of_month,
            },
        )

    def add_goal(self, balance: str, target: str | None):
        return self.store.create_record(
            "savings",
            self.user_id,
            {
                "name": "Emergency Fund",
                "balance": Decimal(balance),
                "target": Decimal(target) if target is not None else None,
                "category": "Emergency Fund",
                "currency": "GBP",
            },
        )

    def types(self, notifications) -> list[str]:
        return sorted(item.type for item in notifications)

    def test_milestones_are_issued_once(self) -> None:
        goal = self.add_goal("600", "1000")

        first = self.engine.refresh(self.user_id, NOW, "GBP")
        second = self.engine.refresh(self.user_id, NOW + timedelta(seconds=5), "GBP")

        self.assertEqual(self.types(first), ["savings_25", "savings_50"])
        self.assertEqual(self.types(second), ["savings_25", "savings_50"])
        self.assertTrue(all(item.related_id == goal.id for item in second))

    def test_milestones_never_reissue_even_days_later(self) -> None:
        self.add_goal("1000", "1000")

        self.engine.refresh(self.user_id, NOW, "GBP")
        later = self.engine.refresh(self.user_id, NOW + timedelta(days=40), "GBP")

        self.assertEqual(self.types(later), ["savings_100", "savings_25", "savings_50", "savings_75"])
        completed = next(item for item in later if item.type == "savings_100")
        self.assertIn("Congratulations!", completed.message)
        halfway = next(item for item in later if item.type == "savings_50")
        self.assertIn("Keep going!", halfway.message)

    def test_new_threshold_is_issued_after_deposit(self) -> None:
        goal = self.add_goal("300", "1000")
        self.engine.refresh(self.user_id, NOW, "GBP")

        self.store.update_record("savings", self.user_id, goal.id, {"balance": Decimal("800")})
        notifications = self.engine.refresh(self.user_id, NOW + timedelta(hours=1), "GBP")

        self.assertEqual(self.types(notifications), ["savings_25", "savings_50", "savings_75"])

    def test_goals_without_target_are_ignored(self) -> None:
        self.add_goal("5000", None)
        self.add_goal("5000", "0")

        self.assertEqual(self.engine.refresh(self.user_id, NOW, "GBP"), [])

    def test_bill_due_respects_cooldown(self) -> None:
        bill = self.add_recurring_bill(day_of_month=31)

        first = self.engine.refresh(self.user_id, NOW, "GBP")
        second = self.engine.refresh(self.user_id, NOW + timedelta(seconds=30), "GBP")
        third = self.engine.refresh(self.user_id, NOW + timedelta(hours=25), "GBP")

        self.assertEqual(self.types(first), [BILL_DUE])
        self.assertEqual(self.types(second), [BILL_DUE])
        self.assertEqual(self.types(third), [BILL_DUE, BILL_DUE])
        self.assertTrue(all(item.related_id == bill.id for item in third))

    def test_bill_due_still_suppressed_within_rolling_day(self) -> None:
        self.add_recurring_bill(day_of_month=31)

        self.engine.refresh(self.user_id, NOW, "GBP")
        notifications = self.engine.refresh(self.user_id, NOW + timedelta(hours=23, minutes=59), "GBP")

        self.assertEqual(self.types(notifications), [BILL_DUE])

    def test_bill_due_message_mentions_bill(self) -> None:
        self.add_recurring_bill(day_of_month=31, description="Council Tax")

        [notification] = self.engine.refresh(self.user_id, NOW, "GBP")

        self.assertEqual(notification.title, "Council Tax is due in 2 days")
        self.assertIn("950.00 GBP", notification.message)
        self.assertIn("day 31", notification.message)
        self.assertFalse(notification.read)

    def test_bills_outside_window_or_not_recurring_are_skipped(self) -> None:
        self.add_recurring_bill(day_of_month=10)
        self.store.create_record(
            "outgoings",
            self.user_id,
            {
                "description": "Concert",
                "amount": Decimal("80"),
                "category": "Entertainment",
                "date": "2024-05-30",
                "frequency": "One-time",
                "is_recurring": False,
                "day_of_month": None,
            },
        )

        self.assertEqual(self.engine.refresh(self.user_id, NOW, "GBP"), [])

    def test_list_is_newest_first(self) -> None:
        self.add_recurring_bill(day_of_month=31)
        self.engine.refresh(self.user_id, NOW, "GBP")
        self.add_goal("250", "1000")

        notifications = self.engine.refresh(self.user_id, NOW + timedelta(hours=2), "GBP")

        self.assertEqual([item.type for item in notifications], ["savings_25", BILL_DUE])

    def test_other_users_are_not_touched(self) -> None:
        other_user = self.store.create_user(currency="USD")
        self.add_goal("900", "1000")

        self.engine.refresh(self.user_id, NOW, "GBP")

        self.assertEqual(self.engine.refresh(other_user, NOW, "USD"), [])

    def test_mark_read_and_mark_all_read(self) -> None:
        self.add_goal("800", "1000")
        notifications = self.engine.refresh(self.user_id, NOW, "GBP")

        self.engine.mark_read(self.user_id, notifications[0].id)
        after_one = {item.id: item.read for item in self.store.list_notifications(self.user_id)}
        self.assertEqual(sum(after_one.values()), 1)
        self.assertTrue(after_one[notifications[0].id])

        self.engine.mark_all_read(self.user_id)
        self.assertTrue(all(item.read for item in self.store.list_notifications(self.user_id)))

    def test_mark_read_is_a_no_op_for_unknown_or_foreign_ids(self) -> None:
        other_user = self.store.create_user()
        self.add_goal("300", "1000")
        [notification] = self.engine.refresh(self.user_id, NOW, "GBP")

        self.engine.mark_read(other_user, notification.id)
        self.engine.mark_read(self.user_id, 9999)
        self.engine.mark_all_read(other_user)

        self.assertFalse(self.store.list_notifications(self.user_id)[0].read)


class ConcurrentRefreshTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        engine = create_engine(
            f"sqlite:///{os.path.join(self.tmpdir.name, 'notifications.db')}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        self.addCleanup(self.tmpdir.cleanup)
        self.addCleanup(engine.dispose)
        self.store = SqlRecordStore(engine)
        self.store.create_schema()
        self.user_id = self.store.create_user(currency="GBP")
        self.engine = NotificationTriggerEngine(self.store)

    def test_parallel_refreshes_issue_each_notification_once(self) -> None:
        self.store.create_record(
            "outgoings",
            self.user_id,
            {
                "description": "Rent",
                "amount": Decimal("950"),
                "category": "Housing",
                "date": "2024-05-01",
                "frequency": "Monthly",
                "is_recurring": True,
                "day_of_month": 31,
            },
        )
        self.store.create_record(
            "savings",
            self.user_id,
            {"name": "Emergency Fund", "balance": Decimal("600"), "target": Decimal("1000"), "category": "Emergency Fund"},
        )
        barrier = threading.Barrier(8)
        errors = []

        def refresh() -> None:
            try:
                barrier.wait()
                self.engine.refresh(self.user_id, NOW, "GBP")
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=refresh) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(
            sorted(item.type for item in self.store.list_notifications(self.user_id)),
            [BILL_DUE, "savings_25", "savings_50"],
        )


if __name__ == "__main__":
    unittest.main()
