from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal


def money(value: Decimal | float | int) -> str:
    return f"PHP {Decimal(value):,.2f}"


def add_working_days(start: date | datetime, days: int) -> date | datetime:
    # Saturdays and Sundays are skipped; holidays are not.
    current = start
    added = 0
    while added < days:
        current = current + timedelta(days=1)
        if current.weekday() < 5:
            added += 1
    return current
