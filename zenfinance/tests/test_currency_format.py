import unittest
from decimal import Decimal

from zenfinance.currency_format import format_currency


class FormatCurrencyTests(unittest.TestCase):
    def test_known_currencies(self) -> None:
        self.assertEqual(format_currency(Decimal("1234.5"), "USD"), "$1,234.50")
        self.assertEqual(format_currency(Decimal("1234.5"), "GBP"), "£1,234.50")
        self.assertEqual(format_currency(Decimal("1234.5"), "EUR"), "1.234,50 €")
        self.assertEqual(format_currency(Decimal("2500000"), "IDR"), "Rp2.500.000")

    def test_rounding_and_negative_amounts(self) -> None:
        self.assertEqual(format_currency("0.005", "usd"), "$0.01")
        self.assertEqual(format_currency(-42, "GBP"), "-£42.00")
        self.assertEqual(format_currency(Decimal("1499.5"), "IDR"), "Rp1.500")

    def test_unknown_currency_uses_code_prefix(self) -> None:
        self.assertEqual(format_currency(Decimal("10"), "CHF"), "CHF 10.00")


if __name__ == "__main__":
    unittest.main()
