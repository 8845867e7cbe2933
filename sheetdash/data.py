from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd


STATUS_PENDING = "待處理"
STATUS_IN_PROGRESS = "進行中"
STATUS_REVIEW = "待核定"
STATUS_DONE = "已完成"
OPEN_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS)

PRIORITY_HIGH = "高"
PRIORITY_MEDIUM = "中"
PRIORITY_LOW = "低"

ENABLED_YES = "是"

TABLES = ("meetings", "categories", "organizations", "staff", "todos")

# Sheet header label -> normalized field name, per table.
MEETING_COLUMNS = {
    "編號": "id",
    "主題": "title",
    "工作分類": "category",
    "相關單位": "organization",
    "負責人": "assignee",
    "指派日期": "assign_date",
    "截止日期": "due_date",
    "狀態": "status",
    "備註": "note",
}

TODO_COLUMNS = {
    "待辦編號": "id",
    "待辦事項": "task",
    "關聯會議編號": "meeting_id",
    "負責人": "assignee",
    "指派人": "assigner",
    "截止日期": "due_date",
    "優先級": "priority",
    "狀態": "status",
}

CATEGORY_COLUMNS = {
    "分類代碼": "code",
    "分類名稱": "name",
    "啟用": "enabled",
}

ORGANIZATION_COLUMNS = {
    "單位全銜": "name",
    "單位簡稱": "short_name",
    "啟用": "enabled",
}

STAFF_COLUMNS = {
    "姓名": "name",
    "職稱": "title",
    "單位": "unit",
    "啟用": "enabled",
}

TABLE_COLUMNS: Dict[str, Dict[str, str]] = {
    "meetings": MEETING_COLUMNS,
    "categories": CATEGORY_COLUMNS,
    "organizations": ORGANIZATION_COLUMNS,
    "staff": STAFF_COLUMNS,
    "todos": TODO_COLUMNS,
}

NA_TOKENS = {"nan", "none", "null", "<na>", "nat", "n/a"}

_CJK_DATE = re.compile(r"^\s*(\d{4})\s*年\s*(\d{1,2})\s*月\s*(\d{1,2})\s*日?\s*(.*)$")


def table_fields(name: str) -> List[str]:
    return list(dict.fromkeys(TABLE_COLUMNS[name].values()))


def empty_table(name: str) -> pd.DataFrame:
    return pd.DataFrame({col: pd.Series(dtype=object) for col in table_fields(name)})


def drop_duplicate_columns(df: pd.DataFrame) -> pd.DataFrame:
    return df.loc[:, ~df.columns.duplicated()]


def coerce_cell(value: object) -> str:
    """Render one sheet cell as the string the tables carry."""
    if value is None or value is pd.NaT:
        return ""
    if isinstance(value, str):
        s = value.strip()
        return "" if s.lower() in NA_TOKENS else s
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return ""
        return str(int(value)) if value.is_integer() else str(value)
    if isinstance(value, (datetime, pd.Timestamp)):
        if pd.isna(value):
            return ""
        if (value.hour, value.minute, value.second) == (0, 0, 0):
            return value.strftime("%Y-%m-%d")
        return value.strftime("%Y-%m-%d %H:%M:%S")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def normalize_table(name: str, rows: Sequence[Mapping[str, object]]) -> pd.DataFrame:
    """Turn label-keyed sheet rows into a frame with the table's field columns.

    Unknown labels are dropped, missing fields are added as empty strings and
    every cell is coerced to a string.
    """
    columns = TABLE_COLUMNS[name]
    fields = table_fields(name)
    if not rows:
        return empty_table(name)

    df = pd.DataFrame.from_records(list(rows))
    source_labels = set(df.columns)
    df = df.rename(columns=columns)
    df = drop_duplicate_columns(df)
    df = df[[c for c in fields if c in df.columns]].copy()
    for col in fields:
        if col in df.columns:
            df[col] = df[col].map(coerce_cell).astype(object)
        else:
            df[col] = ""

    # An absent flag column means every row is enabled.
    if "enabled" in fields and "啟用" not in source_labels:
        df["enabled"] = ENABLED_YES

    return df[fields].reset_index(drop=True)


def parse_date(value: object, tz: Optional[str] = None) -> pd.Timestamp:
    """Parse a sheet date into a naive Timestamp; anything unparseable is NaT.

    Timezone-aware values are converted to ``tz`` (UTC when not given) and
    made naive so every comparison happens on the same clock.
    """
    if value is None:
        return pd.NaT
    if isinstance(value, pd.Timestamp):
        ts = value
    elif isinstance(value, (datetime, date)):
        ts = pd.Timestamp(value)
    elif isinstance(value, str):
        s = value.strip()
        if not s or s.lower() in NA_TOKENS:
            return pd.NaT
        m = _CJK_DATE.match(s)
        if m:
            s = f"{m.group(1)}-{m.group(2)}-{m.group(3)} {m.group(4)}".strip()
        try:
            ts = pd.to_datetime(s, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return pd.NaT
    else:
        return pd.NaT

    if ts is pd.NaT or pd.isna(ts):
        return pd.NaT
    if ts.tzinfo is not None:
        ts = ts.tz_convert(tz or "UTC").tz_localize(None)
    return ts


def parse_date_series(series: pd.Series, tz: Optional[str] = None) -> pd.Series:
    if series.empty:
        return pd.Series(pd.NaT, index=series.index, dtype="datetime64[ns]")
    return pd.to_datetime(series.map(lambda v: parse_date(v, tz)))


def resolve_now(now: object = None, tz: Optional[str] = None) -> pd.Timestamp:
    if now is None:
        current = pd.Timestamp.now(tz=tz) if tz else pd.Timestamp.now()
        return current.tz_localize(None) if current.tzinfo is not None else current
    ts = parse_date(now, tz)
    if pd.isna(ts):
        raise ValueError(f"Unparseable reference time: {now!r}")
    return ts


def format_short_date(value: object) -> str:
    """``M/D`` for parseable dates, the raw text otherwise."""
    raw = coerce_cell(value)
    if not raw:
        return ""
    ts = parse_date(value)
    if pd.isna(ts):
        return raw
    return f"{ts.month}/{ts.day}"


def status_mask(df: pd.DataFrame, statuses: Iterable[str]) -> pd.Series:
    if df.empty or "status" not in df.columns:
        return pd.Series(False, index=df.index, dtype=bool)
    return df["status"].astype(str).str.strip().isin(set(statuses))
