"""Snooze wake-up time calculation."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Literal, get_args

SnoozeOption = Literal[
    "later_today",
    "tomorrow",
    "this_weekend",
    "next_week",
    "in_30_minutes",
    "in_1_hour",
    "in_3_hours",
    "custom",
]

SNOOZE_OPTIONS: tuple[str, ...] = get_args(SnoozeOption)


def calculate_snooze_until(
    option: str,
    custom_date: datetime | None = None,
    *,
    now: datetime | None = None,
) -> datetime:
    """When a thread snoozed with ``option`` should come back."""
    now = now or datetime.now().astimezone()

    if option == "later_today":
        return now + timedelta(hours=4)
    if option == "tomorrow":
        return (now + timedelta(days=1)).replace(hour=13, minute=0, second=0, microsecond=0)
    if option == "this_weekend":
        # Sunday 1 PM; a full week ahead when today is already Sunday.
        days_until_sunday = (6 - now.weekday()) % 7 or 7
        return (now + timedelta(days=days_until_sunday)).replace(
            hour=13, minute=0, second=0, microsecond=0
        )
    if option == "next_week":
        # Monday 9 AM
        days_until_monday = (7 - now.weekday()) % 7 or 7
        return (now + timedelta(days=days_until_monday)).replace(
            hour=9, minute=0, second=0, microsecond=0
        )
    if option == "in_30_minutes":
        return now + timedelta(minutes=30)
    if option == "in_1_hour":
        return now + timedelta(hours=1)
    if option == "in_3_hours":
        return now + timedelta(hours=3)
    if option == "custom":
        if custom_date is None:
            raise ValueError("Custom date is required for custom snooze option")
        return custom_date
    raise ValueError(f"Unknown snooze option: {option}")
