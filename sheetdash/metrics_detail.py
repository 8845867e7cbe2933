from __future__ import annotations

from typing import Any, Dict, List, Optional

import pandas as pd

from sheetdash.data import STATUS_DONE, STATUS_PENDING, parse_date, resolve_now
from sheetdash.metrics_stats import completed_meetings, monthly_meetings, overdue_items, pending_meetings
from sheetdash.store import DataSnapshot

DETAIL_TITLES = {
    "pending": "待處理會議",
    "monthly": "本月公文",
    "completed": "已完成決議",
    "overdue": "逾期待辦",
}

UNTITLED = "未命名"
UNASSIGNED = "未指派"


def _status_class(status: str, due_date: str, now: pd.Timestamp, tz: Optional[str]) -> str:
    if status == STATUS_DONE:
        return "completed"
    due = parse_date(due_date, tz)
    if not pd.isna(due) and due < now:
        return "overdue"
    return "pending"


def _detail_items(df: pd.DataFrame, title_col: str, now: pd.Timestamp, tz: Optional[str]) -> List[Dict[str, Any]]:
    items: List[Dict[str, Any]] = []
    for row in df.to_dict(orient="records"):
        status = str(row.get("status") or "") or STATUS_PENDING
        due_date = str(row.get("due_date") or "")
        items.append(
            {
                "id": row.get("id", ""),
                "title": str(row.get(title_col) or "") or UNTITLED,
                "assignee": str(row.get("assignee") or "") or UNASSIGNED,
                "due_date": due_date,
                "status": status,
                "category": str(row.get("category") or ""),
                "status_class": _status_class(status, due_date, now, tz),
            }
        )
    return items


def compute_detail(snapshot: DataSnapshot, kind: str, now: Any = None, *, tz: Optional[str] = None) -> Dict[str, Any]:
    """Drill-down list behind one stat card, filtered like ``compute_stats``."""
    if kind not in DETAIL_TITLES:
        raise ValueError(f"Unknown detail kind: {kind!r}")
    ref = resolve_now(now, tz)
    meetings = snapshot.meetings

    if kind == "pending":
        items = _detail_items(pending_meetings(meetings), "title", ref, tz)
    elif kind == "monthly":
        items = _detail_items(monthly_meetings(meetings, ref, tz), "title", ref, tz)
    elif kind == "completed":
        items = _detail_items(completed_meetings(meetings), "title", ref, tz)
    else:
        items = _detail_items(overdue_items(snapshot.todos, ref, tz), "task", ref, tz)

    return {
        "kind": kind,
        "title": DETAIL_TITLES[kind],
        "count": len(items),
        "items": items,
    }
