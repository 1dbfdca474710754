"""
Configuration Progress Tracker.

A line item needs one configuration in total ("per-line-item") or one per
unit of quantity ("per-quantity"). Each submitted configuration advances the
completed count by one instance, capped at the required total.
"""
from dataclasses import replace
from typing import TYPE_CHECKING, Optional

from .money import round_half_up

if TYPE_CHECKING:
    from .models import LineItem


PER_LINE_ITEM = 'per-line-item'
PER_QUANTITY = 'per-quantity'

NOT_STARTED = 'not-started'
PARTIAL = 'partial'
COMPLETE = 'complete'


def total_required_for(scope: Optional[str], qty: int) -> int:
    """Number of configurations a line item needs."""
    if (scope or PER_LINE_ITEM) == PER_QUANTITY:
        return max(int(qty or 1), 1)
    return 1


def clamp_completed(completed: int, total_required: int) -> int:
    return min(max(int(completed or 0), 0), total_required)


def progress_status(completed: int, total_required: int) -> str:
    """Status tag for a completed/required pair."""
    if completed >= total_required:
        return COMPLETE
    if completed > 0:
        return PARTIAL
    return NOT_STARTED


def progress_percent(completed: int, total_required: int) -> int:
    return round_half_up(completed / total_required * 100)


def advance_configuration(item: 'LineItem', config_data: dict, configured_at: str) -> 'LineItem':
    """
    Record one configuration submission against a line item.

    Returns a new LineItem; the input is left untouched. Submitting against an
    already complete item keeps the count but still overwrites the stored
    configuration data and re-stamps configured_at.
    """
    total_required = item.total_required
    new_completed = min(item.completed_count + 1, total_required)

    values = {**item.configuration, **config_data}

    return replace(
        item,
        completed_count=new_completed,
        configured_at=configured_at,
        configuration=values,
        configuration_data=dict(config_data),
    )
