"""Money-weighted annualized return (XIRR) for irregular cash flows."""
import math
from typing import Iterable, List

from tradefolio.core.models import CashFlowPoint
from tradefolio.core.money import num

DAYS_PER_YEAR = 365.25
MAX_ITERATIONS = 50
INITIAL_GUESS = 0.1
TOLERANCE = 1e-6
MIN_DERIVATIVE = 1e-8
MIN_FLOW = 1e-4
MIN_FALLBACK_YEARS = 0.1


def _years_between(start, end) -> float:
    return (end - start).days / DAYS_PER_YEAR


def calculate_generic_xirr(flows: Iterable[CashFlowPoint]) -> float:
    """
    Solve sum(amount_i / (1 + r) ** years_i) == 0 with Newton-Raphson.

    Args:
        flows: Signed dated amounts, negative for money put in and positive
            for money taken out (including a terminal market value).

    Returns:
        Annualized rate in percent. 0 for degenerate input (fewer than two
        non-trivial flows, or all on one date). Falls back to a simple
        annualized ROI when the iteration does not converge.
    """
    valid = [CashFlowPoint(num(f.amount), f.date) for f in flows if abs(num(f.amount)) >= MIN_FLOW]
    valid.sort(key=lambda f: f.date)

    if len(valid) < 2:
        return 0.0
    if valid[0].date == valid[-1].date:
        return 0.0

    t0 = valid[0].date
    periods = [(f.amount, _years_between(t0, f.date)) for f in valid]

    rate = INITIAL_GUESS
    for _ in range(MAX_ITERATIONS):
        if 1 + rate <= 0:
            break

        f_value = 0.0
        f_derivative = 0.0
        try:
            for amount, years in periods:
                discount = (1 + rate) ** years
                f_value += amount / discount
                f_derivative -= years * amount / (discount * (1 + rate))
        except (OverflowError, ZeroDivisionError):
            break

        if abs(f_derivative) < MIN_DERIVATIVE:
            break

        new_rate = rate - f_value / f_derivative
        if not math.isfinite(new_rate):
            break
        if abs(new_rate - rate) < TOLERANCE:
            return new_rate * 100
        rate = new_rate

    return simple_annualized_roi(valid)


def simple_annualized_roi(flows: List[CashFlowPoint]) -> float:
    """Closed-form fallback: (returned / invested) ** (1 / years) - 1, in percent."""
    if not flows:
        return 0.0

    invested = sum(-f.amount for f in flows if f.amount < 0)
    returned = sum(f.amount for f in flows if f.amount > 0)
    if invested == 0:
        return 0.0

    dates = [f.date for f in flows]
    years = max(_years_between(min(dates), max(dates)), MIN_FALLBACK_YEARS)
    growth = returned / invested
    return (growth ** (1 / years) - 1) * 100
