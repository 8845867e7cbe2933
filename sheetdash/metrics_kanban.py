from __future__ import annotations

from typing import Any, Dict

import pandas as pd

from sheetdash.data import (
    OPEN_STATUSES,
    PRIORITY_HIGH,
    STATUS_DONE,
    STATUS_REVIEW,
    format_short_date,
)
from sheetdash.store import DataSnapshot

CARD_LIMIT = 5

CARD_COLUMNS = ["id", "title", "description", "assignee", "due_date", "status", "priority"]

# Column key -> statuses routed into it. Anything else lands in no column.
KANBAN_COLUMNS: Dict[str, tuple] = {
    "pending": OPEN_STATUSES,
    "review": (STATUS_REVIEW,),
    "completed": (STATUS_DONE,),
}


def _card_tag(priority: str, status: str) -> str:
    if priority == PRIORITY_HIGH:
        return "urgent"
    if status == STATUS_DONE:
        return "completed"
    return "normal"


def build_task_cards(snapshot: DataSnapshot) -> pd.DataFrame:
    """Todos then meetings in one card shape; untitled items are dropped."""
    todos = snapshot.todos
    meetings = snapshot.meetings

    todo_cards = pd.DataFrame(
        {
            "id": todos["id"],
            "title": todos["task"],
            "description": todos["meeting_id"],
            "assignee": todos["assignee"],
            "due_date": todos["due_date"],
            "status": todos["status"],
            "priority": todos["priority"],
        },
        columns=CARD_COLUMNS,
    )
    meeting_cards = pd.DataFrame(
        {
            "id": meetings["id"],
            "title": meetings["title"],
            "description": meetings["category"],
            "assignee": meetings["assignee"],
            "due_date": meetings["due_date"],
            "status": meetings["status"],
            "priority": "",
        },
        columns=CARD_COLUMNS,
    )
    frames = [f for f in (todo_cards, meeting_cards) if not f.empty]
    if not frames:
        return pd.DataFrame(columns=CARD_COLUMNS + ["date_label", "tag"])

    cards = pd.concat(frames, ignore_index=True).fillna("")
    cards = cards[cards["title"].astype(str).str.strip() != ""].reset_index(drop=True)
    cards["status"] = cards["status"].astype(str).str.strip()
    cards["date_label"] = cards["due_date"].map(format_short_date)
    cards["tag"] = [_card_tag(p, s) for p, s in zip(cards["priority"], cards["status"])]
    return cards


def compute_kanban(snapshot: DataSnapshot, *, limit: int = CARD_LIMIT) -> Dict[str, Any]:
    cards = build_task_cards(snapshot)

    columns: Dict[str, Dict[str, Any]] = {}
    placed = 0
    for key, statuses in KANBAN_COLUMNS.items():
        bucket = cards[cards["status"].isin(set(statuses))]
        placed += int(len(bucket))
        columns[key] = {
            "count": int(len(bucket)),
            "cards": bucket.head(limit).to_dict(orient="records"),
        }

    return {
        "columns": columns,
        "total_cards": int(len(cards)),
        "unplaced": int(len(cards)) - placed,
    }
