from __future__ import annotations

import json
import logging
import re
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from sheetdash.config import SheetsConfig
from sheetdash.errors import FetchError

logger = logging.getLogger(__name__)

_GVIZ_DATE = re.compile(r"^Date\((\d+),(\d+),(\d+)(?:,(\d+))?(?:,(\d+))?(?:,(\d+))?\)$")


def extract_json_blob(text: str) -> str:
    """Cut the JSON object out of the ``google.visualization...setResponse(...)`` wrapper."""
    start = text.find("{")
    end = text.rfind("}")
    if start < 0 or end < start:
        raise ValueError("no JSON object in response")
    return text[start : end + 1]


def decode_cell(value: Any) -> Any:
    """gviz encodes dates as ``Date(y,m,d,...)`` with a zero-based month."""
    if isinstance(value, str):
        m = _GVIZ_DATE.match(value.strip())
        if m:
            parts = [int(p) if p is not None else 0 for p in m.groups()]
            year, month, day, hour, minute, second = parts
            try:
                return datetime(year, month + 1, day, hour, minute, second)
            except ValueError:
                return value
    return value


def parse_gviz_table(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    table = payload.get("table")
    if not isinstance(table, dict):
        raise ValueError("response has no table")

    labels = [str((col or {}).get("label") or "").strip() for col in table.get("cols") or []]
    rows: List[Dict[str, Any]] = []
    for row in table.get("rows") or []:
        cells = (row or {}).get("c") or []
        record: Dict[str, Any] = {}
        for idx, label in enumerate(labels):
            if not label:
                continue
            cell = cells[idx] if idx < len(cells) else None
            value = cell.get("v") if isinstance(cell, dict) else None
            record[label] = "" if value is None else decode_cell(value)
        rows.append(record)
    return rows


class TabularFetcher:
    """Reads one sheet tab through the gviz query endpoint."""

    def __init__(self, config: SheetsConfig, *, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self._client = client

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.config.http_timeout) as client:
            yield client

    async def fetch(self, table_name: str) -> List[Dict[str, Any]]:
        params = {"tqx": "out:json", "sheet": table_name}
        try:
            async with self._session() as client:
                response = await client.get(self.config.gviz_url, params=params, timeout=self.config.http_timeout)
                response.raise_for_status()
                text = response.text
        except httpx.TimeoutException as exc:
            raise FetchError(table_name, f"timed out after {self.config.http_timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise FetchError(table_name, f"HTTP {exc.response.status_code}") from exc
        except httpx.RequestError as exc:
            raise FetchError(table_name, f"network error: {exc}") from exc

        try:
            payload = json.loads(extract_json_blob(text))
        except ValueError as exc:
            raise FetchError(table_name, f"unparsable response: {exc}") from exc
        if not isinstance(payload, dict):
            raise FetchError(table_name, "unparsable response: not an object")
        if payload.get("status") == "error":
            errors = payload.get("errors") or []
            detail = "; ".join(
                str(e.get("detailed_message") or e.get("message") or e) if isinstance(e, dict) else str(e)
                for e in errors
                if e
            )
            raise FetchError(table_name, f"query error: {detail or 'unknown'}")

        try:
            rows = parse_gviz_table(payload)
        except ValueError as exc:
            raise FetchError(table_name, str(exc)) from exc
        logger.debug("Fetched %d rows from %s", len(rows), table_name)
        return rows
