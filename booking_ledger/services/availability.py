"""
Date overlap rule for reservations on the same unit.

Two stays conflict when ``a.check_in < b.check_out and a.check_out >= b.check_in``.
The second comparison is inclusive, so a guest leaving on the day another
arrives is treated as a conflict (no same-day turnover). Because the rule is
not symmetric at the boundary, ranges_conflict() applies it in both
directions: whichever reservation came first, the pair is rejected.
"""

from __future__ import annotations

from datetime import date


def dates_overlap(a_check_in: date, a_check_out: date, b_check_in: date, b_check_out: date) -> bool:
    """Apply the overlap rule with ``a`` as the left-hand reservation."""
    return a_check_in < b_check_out and a_check_out >= b_check_in


def ranges_conflict(
    existing_check_in: date,
    existing_check_out: date,
    new_check_in: date,
    new_check_out: date,
) -> bool:
    """
    Return True if the two stays may not both be active on one unit.

    Example:
        >>> stay = (date(2025, 7, 10), date(2025, 7, 15))
        >>> ranges_conflict(*stay, date(2025, 7, 14), date(2025, 7, 18))
        True
        >>> ranges_conflict(*stay, date(2025, 7, 15), date(2025, 7, 20))
        True
        >>> ranges_conflict(*stay, date(2025, 7, 16), date(2025, 7, 20))
        False
    """
    return dates_overlap(
        existing_check_in, existing_check_out, new_check_in, new_check_out
    ) or dates_overlap(new_check_in, new_check_out, existing_check_in, existing_check_out)
