import unittest
from datetime import datetime
from decimal import Decimal

from zenfinance.aggregation import (
    CategoryTotal,
    available_by_currency,
    build_dashboard,
    capital_by_currency,
    category_spending_by_currency,
    days_until_due,
    income_expense_trend,
    recent_activity,
    totals_by_currency,
    upcoming_expenses,
)
from zenfinance.records import (
    AccountRecord,
    DebtRecord,
    FinancialRecords,
    IncomeRecord,
    MalformedRecordError,
    OutgoingRecord,
    SavingsRecord,
    SpendingLogRecord,
)

NOW = datetime(2024, 5, 29, 12, 0)


def income(record_id: int, amount: str, currency: str | None, frequency: str = "Monthly") -> IncomeRecord:
    return IncomeRecord(
        id=record_id,
        source=f"Source {record_id}",
        amount=Decimal(amount),
        category="Salary",
        frequency=frequency,
        currency=currency,
    )


def outgoing(
    record_id: int,
    amount: str,
    currency: str | None = "USD",
    category: str = "Food",
    date: str = "2024-05-10",
    frequency: str = "One-time",
    is_recurring: bool = False,
    day_of_month: int | None = None,
) -> OutgoingRecord:
    return OutgoingRecord(
        id=record_id,
        description=f"Expense {record_id}",
        amount=Decimal(amount),
        category=category,
        date=date,
        frequency=frequency,
        currency=currency,
        is_recurring=is_recurring,
        day_of_month=day_of_month,
    )


def spending(record_id: int, amount: str, when: datetime, currency: str | None = "USD", category: str = "Food") -> SpendingLogRecord:
    return SpendingLogRecord(
        id=record_id,
        description=f"Spend {record_id}",
        amount=Decimal(amount),
        category=category,
        date=when,
        currency=currency,
    )


def debt(record_id: int, min_payment: str, currency: str | None = "USD", balance: str = "1000") -> DebtRecord:
    return DebtRecord(
        id=record_id,
        name=f"Debt {record_id}",
        balance=Decimal(balance),
        interest_rate=Decimal("19.9"),
        min_payment=Decimal(min_payment),
        priority="High",
        currency=currency,
    )


class TotalsTests(unittest.TestCase):
    def test_outgoing_totals_include_current_month_spending_only(self) -> None:
        records = FinancialRecords(
            outgoings=(outgoing(1, "100"),),
            spending_log=(
                spending(1, "20", datetime(2024, 5, 2, 9, 30)),
                spending(2, "999", datetime(2024, 4, 30, 23, 0)),
                spending(3, "5", datetime(2024, 5, 28, 8, 0), currency="EUR"),
            ),
        )

        totals = totals_by_currency(records, "outgoings", NOW, "USD")

        self.assertEqual(totals, {"USD": Decimal("120"), "EUR": Decimal("5")})

    def test_savings_and_debt_use_their_own_amount_fields(self) -> None:
        records = FinancialRecords(
            savings=(
                SavingsRecord(id=1, name="Rainy day", balance=Decimal("300"), category="Cash", currency="GBP"),
            ),
            debt=(debt(1, "45", currency="GBP", balance="5000"),),
        )

        self.assertEqual(totals_by_currency(records, "savings", NOW, "USD"), {"GBP": Decimal("300")})
        self.assertEqual(totals_by_currency(records, "debt", NOW, "USD"), {"GBP": Decimal("45")})

    def test_unknown_kind_raises(self) -> None:
        with self.assertRaises(ValueError):
            totals_by_currency(FinancialRecords(), "wishlist", NOW, "USD")


class AvailableTests(unittest.TestCase):
    def test_mixed_currency_income_without_outgoings(self) -> None:
        records = FinancialRecords(
            income=(income(1, "3000", "USD"), income(2, "500000", "IDR")),
        )

        available = available_by_currency(records, NOW, "USD")

        self.assertEqual(available, {"USD": Decimal("3000"), "IDR": Decimal("500000")})
        self.assertEqual(list(available), ["USD", "IDR"])

    def test_subtracts_outgoings_and_debt_minimums(self) -> None:
        records = FinancialRecords(
            income=(income(1, "2500", "GBP"),),
            outgoings=(outgoing(1, "900", currency="GBP"), outgoing(2, "40", currency="EUR")),
            debt=(debt(1, "100", currency="GBP"),),
        )

        available = available_by_currency(records, NOW, "USD")

        self.assertEqual(available, {"GBP": Decimal("1500"), "EUR": Decimal("-40")})

    def test_currencies_without_entries_are_omitted(self) -> None:
        records = FinancialRecords(
            savings=(SavingsRecord(id=1, name="Pot", balance=Decimal("10"), category="Cash", currency="EUR"),),
        )

        self.assertEqual(available_by_currency(records, NOW, "USD"), {})

    def test_null_currency_falls_back_to_user_default(self) -> None:
        records = FinancialRecords(outgoings=(outgoing(1, "80", currency=None),))

        self.assertEqual(available_by_currency(records, NOW, "GBP"), {"GBP": Decimal("-80")})


class CategorySpendingTests(unittest.TestCase):
    def test_groups_by_currency_then_sorts_descending(self) -> None:
        records = FinancialRecords(
            outgoings=(
                outgoing(1, "50", category="Food", date="2023-01-01"),
                outgoing(2, "200", category="Housing"),
                outgoing(3, "30", currency="EUR", category="Transport"),
                outgoing(4, "25", category="Food"),
            ),
            spending_log=(
                spending(1, "40", datetime(2024, 5, 3), category="Fun"),
                spending(2, "500", datetime(2024, 3, 3), category="Fun"),
            ),
        )

        grouped = category_spending_by_currency(records, NOW, "USD")

        self.assertEqual(list(grouped), ["USD", "EUR"])
        self.assertEqual(
            grouped["USD"],
            [
                CategoryTotal(name="Housing", value=Decimal("200")),
                CategoryTotal(name="Food", value=Decimal("75")),
                CategoryTotal(name="Fun", value=Decimal("40")),
            ],
        )
        self.assertEqual(grouped["EUR"], [CategoryTotal(name="Transport", value=Decimal("30"))])

    def test_ties_keep_insertion_order(self) -> None:
        records = FinancialRecords(
            outgoings=(
                outgoing(1, "10", category="Utilities"),
                outgoing(2, "10", category="Health"),
                outgoing(3, "10", category="Shopping"),
            ),
        )

        grouped = category_spending_by_currency(records, NOW, "USD")

        self.assertEqual([total.name for total in grouped["USD"]], ["Utilities", "Health", "Shopping"])


class UpcomingExpenseTests(unittest.TestCase):
    def test_wraps_forward_by_thirty_days(self) -> None:
        self.assertEqual(days_until_due(3, NOW.date()), 4)
        self.assertEqual(days_until_due(29, NOW.date()), 0)
        self.assertEqual(days_until_due(31, NOW.date()), 2)

    def test_rejects_out_of_range_day(self) -> None:
        with self.assertRaises(MalformedRecordError):
            days_until_due(0, NOW.date())

    def test_filters_sorts_and_truncates(self) -> None:
        records = FinancialRecords(
            outgoings=(
                outgoing(1, "1200", category="Housing", is_recurring=True, day_of_month=1),
                outgoing(2, "15", is_recurring=True, day_of_month=30),
                outgoing(3, "60", is_recurring=False, day_of_month=29),
                outgoing(4, "45", is_recurring=True),
                outgoing(5, "9", currency=None, is_recurring=True, day_of_month=3),
                outgoing(6, "20", is_recurring=True, day_of_month=15),
            ),
        )

        upcoming = upcoming_expenses(records, NOW, "GBP", limit=3)

        self.assertEqual([(item.id, item.days_until) for item in upcoming], [(2, 1), (1, 2), (5, 4)])
        self.assertEqual(upcoming[2].currency, "GBP")

    def test_default_limit_is_six(self) -> None:
        records = FinancialRecords(
            outgoings=tuple(
                outgoing(index, "1", is_recurring=True, day_of_month=index) for index in range(1, 10)
            ),
        )

        self.assertEqual(len(upcoming_expenses(records, NOW, "USD")), 6)


class TrendTests(unittest.TestCase):
    def test_returns_window_buckets_oldest_first(self) -> None:
        records = FinancialRecords(income=(income(1, "3000", "USD"),))

        trend = income_expense_trend(records, NOW, "USD")

        self.assertEqual(
            [bucket.month for bucket in trend["USD"]],
            ["2023-12", "2024-01", "2024-02", "2024-03", "2024-04", "2024-05"],
        )
        self.assertEqual(trend["USD"][0].label, "Dec 2023")
        self.assertTrue(all(bucket.income == Decimal("3000") for bucket in trend["USD"]))
        self.assertTrue(all(bucket.expenses == Decimal("0") for bucket in trend["USD"]))

    def test_one_off_outgoings_land_in_their_month(self) -> None:
        records = FinancialRecords(
            income=(income(1, "800", "EUR", frequency="One-time"),),
            outgoings=(
                outgoing(1, "1000", currency="EUR", frequency="Monthly", date="2020-01-01"),
                outgoing(2, "300", currency="EUR", date="2024-03-14"),
                outgoing(3, "50", currency="EUR", date="2022-03-14"),
                outgoing(4, "25", currency="EUR", frequency="Weekly", is_recurring=True, day_of_month=5),
            ),
        )

        trend = income_expense_trend(records, NOW, "USD")

        expenses = {bucket.month: bucket.expenses for bucket in trend["EUR"]}
        self.assertEqual(expenses["2024-03"], Decimal("1325"))
        self.assertEqual(expenses["2024-05"], Decimal("1025"))
        self.assertTrue(all(bucket.income == Decimal("0") for bucket in trend["EUR"]))

    def test_every_currency_gets_the_full_window(self) -> None:
        records = FinancialRecords(
            income=(income(1, "100", "USD"),),
            outgoings=(outgoing(1, "5", currency="IDR", date="2019-01-01"),),
        )

        trend = income_expense_trend(records, NOW, "USD", window_months=3)

        self.assertEqual(list(trend), ["USD", "IDR"])
        self.assertEqual([len(buckets) for buckets in trend.values()], [3, 3])

    def test_window_crosses_year_boundary(self) -> None:
        trend = income_expense_trend(
            FinancialRecords(income=(income(1, "1", "USD"),)),
            datetime(2024, 2, 10),
            "USD",
            window_months=4,
        )

        self.assertEqual(
            [bucket.month for bucket in trend["USD"]],
            ["2023-11", "2023-12", "2024-01", "2024-02"],
        )

    def test_rejects_empty_window(self) -> None:
        with self.assertRaises(ValueError):
            income_expense_trend(FinancialRecords(), NOW, "USD", window_months=0)


class DashboardTests(unittest.TestCase):
    def test_capital_prefers_account_balances(self) -> None:
        records = FinancialRecords(
            income=(income(1, "3000", "USD"),),
            accounts=(
                AccountRecord(id=1, name="Current", type="Checking", balance=Decimal("1500"), currency="USD"),
                AccountRecord(id=2, name="Tabungan", type="Savings", balance=Decimal("2000000"), currency="IDR"),
                AccountRecord(id=3, name="Wallet", type="Cash", balance=Decimal("40"), currency=None),
            ),
        )

        capital = capital_by_currency(records, NOW, "USD")

        self.assertEqual(capital, {"USD": Decimal("1540"), "IDR": Decimal("2000000")})

    def test_capital_without_accounts_nets_income_savings_and_debt(self) -> None:
        records = FinancialRecords(
            income=(income(1, "3000", "USD"),),
            savings=(SavingsRecord(id=1, name="Pot", balance=Decimal("500"), category="Cash", currency="USD"),),
            debt=(debt(1, "100", currency="USD", balance="1200"),),
        )

        self.assertEqual(capital_by_currency(records, NOW, "USD"), {"USD": Decimal("2300")})

    def test_recent_activity_is_newest_first(self) -> None:
        records = FinancialRecords(outgoings=tuple(outgoing(index, "1") for index in range(1, 9)))

        self.assertEqual([item.id for item in recent_activity(records)], [8, 7, 6, 5, 4, 3])
        self.assertEqual(recent_activity(records, limit=0), [])

    def test_dashboard_is_deterministic(self) -> None:
        records = FinancialRecords(
            income=(income(1, "3000", "USD"), income(2, "500000", "IDR")),
            outgoings=(outgoing(1, "1200", category="Housing", is_recurring=True, day_of_month=1),),
            spending_log=(spending(1, "12.50", datetime(2024, 5, 20)),),
        )

        first = build_dashboard(records, NOW, "USD")
        second = build_dashboard(records, NOW, "USD")

        self.assertEqual(first, second)
        self.assertEqual(first.available_by_currency["USD"], Decimal("1787.50"))
        self.assertEqual(first.upcoming_expenses[0].days_until, 2)


if __name__ == "__main__":
    unittest.main()
