"""Display formatting for CLI tables and exports.

- Currency: R$ 1.234,56 (Brazilian separators)
- Percentages: X.X%
- Integers: 1.234
- Not-applicable rewards: N/A (never rendered as zero)
"""

import math

from .models import PillarResult


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _swap_separators(text: str) -> str:
    """Turn 1,234.56 into 1.234,56."""
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def format_currency(value: float | int | None) -> str:
    """Format a reward amount as R$ with two decimals."""
    if _is_missing(value):
        return "N/A"
    sign = "-" if value < 0 else ""
    return f"{sign}R$ {_swap_separators(f'{abs(value):,.2f}')}"


def format_percentage(value: float | int | None, decimals: int = 1) -> str:
    """Format a 0-100 rate as X.X%."""
    if _is_missing(value):
        return "N/A"
    return f"{_swap_separators(f'{value:.{decimals}f}')}%"


def format_integer(value: float | int | None) -> str:
    """Format a whole number with dot thousands separators."""
    if _is_missing(value):
        return "N/A"
    return _swap_separators(f"{int(value):,}")


def format_reward(result: PillarResult) -> str:
    """Format a pillar reward, keeping not-applicable distinct from zero."""
    if not result.is_applicable:
        return "N/A"
    return format_currency(result.reward)


def format_tier(tier: int) -> str:
    """META1 / META2 / META3, or SEM META when no tier was reached."""
    return f"META{tier}" if tier else "SEM META"
