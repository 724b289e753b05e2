from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional

# Ten billion dollars; keeps sums well inside a signed 64-bit column.
MAX_AMOUNT_CENTS = 1_000_000_000_000


def parse_decimal(value: Optional[str]) -> Decimal:
    clean = (value or "").strip().replace("$", "").replace(" ", "").replace(",", "")
    if not clean:
        raise ValueError("Value is required")
    try:
        number = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid number") from exc
    if not number.is_finite():
        raise ValueError("Invalid number")
    return number


def parse_amount(value: Optional[str]) -> int:
    """Parse a user-entered money amount into positive integer cents."""
    try:
        amount = parse_decimal(value)
    except ValueError as exc:
        raise ValueError("Amount must be a positive number") from exc
    if amount <= 0:
        raise ValueError("Amount must be a positive number")
    if amount > Decimal(MAX_AMOUNT_CENTS) / 100:
        raise ValueError(f"Amount must be at most {format_currency(MAX_AMOUNT_CENTS)}")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents <= 0:
        raise ValueError("Amount must be a positive number")
    return cents


def format_currency(cents: int, symbol: str = "$") -> str:
    sign = "-" if cents < 0 else ""
    return f"{sign}{symbol}{abs(cents) / 100:,.2f}"


def cents_to_input(cents: Optional[int]) -> str:
    if cents is None:
        return ""
    return f"{Decimal(cents) / 100:.2f}"
