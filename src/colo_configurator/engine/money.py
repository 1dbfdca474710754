"""Rounding and display helpers for whole-dollar amounts."""
import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives (like Math.round)."""
    return int(math.floor(value + 0.5))


def format_currency(amount: float) -> str:
    """Format as whole US dollars, e.g. 1260 -> '$1,260'."""
    rounded = round_half_up(amount or 0)
    sign = "-" if rounded < 0 else ""
    return f"{sign}${abs(rounded):,}"
