from __future__ import annotations

from typing import Any, Dict, Optional

import pandas as pd

from sheetdash.data import OPEN_STATUSES, STATUS_DONE, parse_date_series, resolve_now, status_mask
from sheetdash.store import DataSnapshot


def pending_meetings(meetings: pd.DataFrame) -> pd.DataFrame:
    return meetings[status_mask(meetings, OPEN_STATUSES)]


def completed_meetings(meetings: pd.DataFrame) -> pd.DataFrame:
    return meetings[status_mask(meetings, [STATUS_DONE])]


def monthly_meetings(meetings: pd.DataFrame, now: pd.Timestamp, tz: Optional[str] = None) -> pd.DataFrame:
    """Meetings assigned in the calendar month of ``now``; unknown dates never match."""
    if meetings.empty:
        return meetings
    assigned = parse_date_series(meetings["assign_date"], tz)
    mask = assigned.notna() & (assigned.dt.year == now.year) & (assigned.dt.month == now.month)
    return meetings[mask.fillna(False)]


def overdue_items(items: pd.DataFrame, now: pd.Timestamp, tz: Optional[str] = None) -> pd.DataFrame:
    """Open items whose due date is known and strictly before ``now``."""
    if items.empty:
        return items
    due = parse_date_series(items["due_date"], tz)
    mask = ~status_mask(items, [STATUS_DONE]) & due.notna() & (due < now)
    return items[mask.fillna(False)]


def monthly_display_count(monthly: int, total_meetings: int) -> int:
    """Display fallback: an empty month shows the total meeting count instead."""
    return monthly if monthly else total_meetings


def compute_stats(snapshot: DataSnapshot, now: Any = None, *, tz: Optional[str] = None) -> Dict[str, Any]:
    meetings = snapshot.meetings
    todos = snapshot.todos
    ref = resolve_now(now, tz)

    pending = int(len(pending_meetings(meetings)))
    monthly = int(len(monthly_meetings(meetings, ref, tz)))
    completed = int(len(completed_meetings(meetings)))
    overdue = int(len(overdue_items(todos, ref, tz)))

    return {
        "kpis": {
            "pending": pending,
            "monthly": monthly,
            "completed": completed,
            "overdue": overdue,
        },
        "monthly_display": monthly_display_count(monthly, int(len(meetings))),
        "monthly_fallback": monthly == 0 and len(meetings) > 0,
        "total_meetings": int(len(meetings)),
        "total_todos": int(len(todos)),
        "as_of": ref.isoformat(),
    }
