from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional

from errors import ValidationFailed
from models import BudgetMode


class BudgetStatus(str, Enum):
    on_track = "on track"
    warning = "warning"
    over_budget = "over budget"


WARNING_THRESHOLD = 80.0


def savings_rate(income_cents: int, expense_cents: int) -> float:
    if not income_cents:
        return 0.0
    return (income_cents - expense_cents) / income_cents * 100


def percent_change(current: int, previous: int) -> float:
    if not previous:
        return 0.0
    return (current - previous) / previous * 100


def utilization_percent(spent_cents: int, ceiling_cents: int) -> float:
    if not ceiling_cents:
        return 0.0
    return spent_cents / ceiling_cents * 100


def budget_status(percent_used: float) -> BudgetStatus:
    if percent_used <= WARNING_THRESHOLD:
        return BudgetStatus.on_track
    if percent_used <= 100:
        return BudgetStatus.warning
    return BudgetStatus.over_budget


def average(total_cents: int, count: int) -> float:
    if not count:
        return 0.0
    return total_cents / count


def derive_budget_cents(
    mode: BudgetMode,
    *,
    amount_cents: Optional[int],
    percentage: Optional[Decimal],
    income_cents: int,
) -> int:
    """Resolve the absolute monthly ceiling for either budget mode.

    Percentage mode is applied to the month's income once; the result is what
    gets stored, later income changes do not move it.
    """
    if mode == BudgetMode.amount:
        if amount_cents is None or amount_cents <= 0:
            raise ValidationFailed.on("amount", "Amount must be a positive number")
        return amount_cents

    if percentage is None or percentage <= 0 or percentage > 100:
        raise ValidationFailed.on("percentage", "Percentage must be between 1 and 100")
    if income_cents <= 0:
        raise ValidationFailed.on(
            "percentage",
            "You need to add income before setting a percentage-based budget",
        )
    derived = (Decimal(income_cents) * percentage / Decimal(100)).quantize(
        Decimal("1"), rounding=ROUND_HALF_UP
    )
    if derived <= 0:
        raise ValidationFailed.on("percentage", "Derived budget must be positive")
    return int(derived)
