from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from zenfinance.records import coerce_amount


@dataclass(frozen=True)
class CurrencyDisplay:
    symbol: str
    decimals: int = 2
    thousands: str = ","
    decimal_point: str = "."
    symbol_after: bool = False


DISPLAY: dict[str, CurrencyDisplay] = {
    "USD": CurrencyDisplay(symbol="$"),
    "GBP": CurrencyDisplay(symbol="£"),
    "EUR": CurrencyDisplay(symbol=" €", thousands=".", decimal_point=",", symbol_after=True),
    "IDR": CurrencyDisplay(symbol="Rp", decimals=0, thousands="."),
}


def format_currency(amount: Decimal | int | float | str, currency_code: str) -> str:
    """Display an amount in its own currency. Never converts."""
    code = currency_code.strip().upper()
    display = DISPLAY.get(code, CurrencyDisplay(symbol=f"{code} "))
    value = coerce_amount(amount)
    quantum = Decimal(1).scaleb(-display.decimals)
    rounded = value.quantize(quantum, rounding=ROUND_HALF_UP)

    sign = "-" if rounded < 0 else ""
    whole, _, fraction = f"{abs(rounded):.{display.decimals}f}".partition(".")
    grouped = f"{int(whole):,}".replace(",", display.thousands)
    number = f"{grouped}{display.decimal_point}{fraction}" if fraction else grouped

    if display.symbol_after:
        return f"{sign}{number}{display.symbol}"
    return f"{sign}{display.symbol}{number}"
