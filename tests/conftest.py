"""
Shared fixtures: an in-memory stand-in for the spreadsheet (gviz reads and
Apps Script writes) served through ``httpx.MockTransport``, plus snapshot
builders for the view tests.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Optional

import httpx
import pandas as pd
import pytest

from sheetdash.config import SHEET_NAMES, SheetsConfig
from sheetdash.data import TABLES, empty_table, table_fields
from sheetdash.fetcher import TabularFetcher
from sheetdash.store import DataSnapshot, DataStore
from sheetdash.sync import SyncCoordinator
from sheetdash.writer import RemoteWriter

SCRIPT_URL = "https://script.example.test/exec"
SHEET_ID = "test-sheet"

HEADERS = {
    SHEET_NAMES["meetings"]: ["編號", "主題", "工作分類", "相關單位", "負責人", "指派日期", "截止日期", "狀態", "備註"],
    SHEET_NAMES["categories"]: ["分類代碼", "分類名稱", "啟用"],
    SHEET_NAMES["organizations"]: ["單位全銜", "單位簡稱", "啟用"],
    SHEET_NAMES["staff"]: ["姓名", "職稱", "單位", "啟用"],
    SHEET_NAMES["todos"]: ["待辦編號", "待辦事項", "關聯會議編號", "負責人", "指派人", "截止日期", "優先級", "狀態"],
}


def gviz_date(value: str) -> str:
    """'2025-01-15' -> 'Date(2025,0,15)' the way Sheets serializes date cells."""
    m = re.match(r"^(\d{4})-(\d{2})-(\d{2})$", value)
    if not m:
        return value
    return f"Date({int(m.group(1))},{int(m.group(2)) - 1},{int(m.group(3))})"


def gviz_text(labels: List[str], rows: List[List[Any]]) -> str:
    table = {
        "cols": [{"id": chr(65 + i), "label": label, "type": "string"} for i, label in enumerate(labels)],
        "rows": [{"c": [None if v is None else {"v": v} for v in row]} for row in rows],
    }
    body = {"version": "0.6", "reqId": "0", "status": "ok", "table": table}
    return "/*O_o*/\ngoogle.visualization.Query.setResponse(" + json.dumps(body, ensure_ascii=False) + ");"


class FakeSheets:
    """Mutable spreadsheet state behind a mock transport."""

    def __init__(self) -> None:
        self.rows: Dict[str, List[List[Any]]] = {name: [] for name in HEADERS}
        self.failing: set = set()
        self.write_error: Optional[str] = None
        self.requests: List[httpx.Request] = []

    def add_row(self, table: str, *values: Any) -> None:
        self.rows[SHEET_NAMES[table]].append(list(values))

    def _read(self, request: httpx.Request) -> httpx.Response:
        sheet = request.url.params.get("sheet", "")
        if sheet in self.failing or sheet not in HEADERS:
            return httpx.Response(500, text="backend error")
        return httpx.Response(200, text=gviz_text(HEADERS[sheet], self.rows[sheet]))

    def _write(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        if self.write_error:
            return httpx.Response(200, json={"success": False, "error": self.write_error})
        action = params.get("action")
        if action == "addMeeting":
            sheet = SHEET_NAMES["meetings"]
            new_id = f"M{len(self.rows[sheet]) + 1:03d}"
            self.rows[sheet].append([
                new_id,
                params.get("title", ""),
                params.get("category", ""),
                params.get("organization", ""),
                params.get("assignee", ""),
                gviz_date(params.get("assignDate", "")),
                gviz_date(params.get("dueDate", "")),
                params.get("status", ""),
                params.get("note", ""),
            ])
            return httpx.Response(200, json={"success": True, "meetingId": new_id})
        if action == "addTodo":
            sheet = SHEET_NAMES["todos"]
            new_id = f"T{len(self.rows[sheet]) + 1:03d}"
            self.rows[sheet].append([
                new_id,
                params.get("task", ""),
                params.get("meetingId", ""),
                params.get("assignee", ""),
                params.get("assigner", ""),
                gviz_date(params.get("dueDate", "")),
                params.get("priority", ""),
                params.get("status", ""),
            ])
            return httpx.Response(200, json={"success": True, "todoId": new_id})
        if action == "updateStatus":
            sheet = params.get("sheet", "")
            status_idx = HEADERS.get(sheet, []).index("狀態") if sheet in HEADERS else -1
            for row in self.rows.get(sheet, []):
                if row[0] == params.get("id"):
                    row[status_idx] = params.get("status", "")
                    return httpx.Response(200, json={"success": True})
            return httpx.Response(200, json={"success": False, "error": "找不到資料"})
        return httpx.Response(200, json={"success": False, "error": f"unknown action {action}"})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "docs.google.com":
            return self._read(request)
        if request.url.host == "script.example.test":
            return self._write(request)
        return httpx.Response(404)


@pytest.fixture
def config(tmp_path: Path) -> SheetsConfig:
    return SheetsConfig(
        spreadsheet_id=SHEET_ID,
        apps_script_url=SCRIPT_URL,
        http_timeout=5.0,
        timezone="Asia/Taipei",
        credential_path=tmp_path / "credentials.json",
    )


@pytest.fixture
def fake_sheets() -> FakeSheets:
    sheets = FakeSheets()
    sheets.add_row("categories", "PLAN", "計畫類", "是")
    sheets.add_row("categories", "BUDGET", "預算類", "否")
    sheets.add_row("organizations", "國家發展委員會", "國發會", "是")
    sheets.add_row("staff", "王小明", "科長", "綜規處", "是")
    sheets.add_row("meetings", "M001", "年度計畫審查", "計畫類", "國家發展委員會", "王小明", "Date(2025,0,6)", "Date(2025,0,20)", "待處理", "")
    sheets.add_row("todos", "T001", "彙整意見", "M001", "王小明", "李主任", "Date(2025,0,10)", "高", "進行中")
    return sheets


@pytest.fixture
def http_client(fake_sheets: FakeSheets) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_sheets.handler))


@pytest.fixture
def store(config: SheetsConfig, http_client: httpx.AsyncClient) -> DataStore:
    return DataStore(config, TabularFetcher(config, client=http_client))


@pytest.fixture
def coordinator(config: SheetsConfig, store: DataStore, http_client: httpx.AsyncClient) -> SyncCoordinator:
    return SyncCoordinator(
        config,
        store=store,
        writer=RemoteWriter(config, client=http_client),
        clock=lambda: pd.Timestamp("2025-01-15 09:00"),
    )


def make_snapshot(**tables: List[Dict[str, Any]]) -> DataSnapshot:
    """Snapshot from field-keyed rows; omitted fields default to empty strings."""
    frames = {}
    for name in TABLES:
        rows = tables.get(name) or []
        if not rows:
            frames[name] = empty_table(name)
            continue
        fields = table_fields(name)
        frames[name] = pd.DataFrame([{f: row.get(f, "") for f in fields} for row in rows], columns=fields)
    return DataSnapshot(tables=MappingProxyType(frames), generation=1)


@pytest.fixture
def build_snapshot():
    return make_snapshot
