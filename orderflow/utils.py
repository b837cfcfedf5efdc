"""
Utility functions shared across the app:
- get_initial_order_status: the catalog entry new orders start in.
- round_percent: percentage rounding used by every progress field.
"""

from .models import OrderStatus


def get_initial_order_status():
    """Return the catalog status flagged is_initial (first by position), or None."""
    return (
        OrderStatus.query
        .filter_by(is_initial=True)
        .order_by(OrderStatus.position.asc())
        .first()
    )


def round_percent(part: int, whole: int) -> int:
    """
    round(100 * part / whole) with halves rounded up, 0 when whole is 0.

    Integer arithmetic: avoids float error and Python's banker's rounding
    (2 of 3 -> 67, 1 of 8 -> 13).
    """
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)
