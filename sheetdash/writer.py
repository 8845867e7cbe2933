from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Union

import httpx

from sheetdash.config import SheetsConfig
from sheetdash.data import PRIORITY_MEDIUM, STATUS_PENDING
from sheetdash.errors import WriteError

logger = logging.getLogger(__name__)

ACTION_ADD_MEETING = "addMeeting"
ACTION_ADD_TODO = "addTodo"
ACTION_UPDATE_STATUS = "updateStatus"
ACTIONS = (ACTION_ADD_MEETING, ACTION_ADD_TODO, ACTION_UPDATE_STATUS)

_ID_KEYS = ("meetingId", "todoId", "id")


@dataclass(frozen=True)
class WriteSuccess:
    action: str
    created_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class WriteFailure:
    action: str
    reason: str

    @property
    def ok(self) -> bool:
        return False


WriteResult = Union[WriteSuccess, WriteFailure]


def encode_payload(action: str, payload: Mapping[str, Any]) -> Dict[str, str]:
    params = {"action": action}
    for key, value in payload.items():
        if key == "action":
            raise WriteError(action, "payload must not carry an 'action' key")
        if isinstance(value, (dict, list, tuple, set)):
            raise WriteError(action, f"field {key!r} is not a scalar")
        params[str(key)] = "" if value is None else str(value)
    return params


def interpret_response(action: str, body: Any) -> WriteSuccess:
    if not isinstance(body, dict):
        raise WriteError(action, "response is not a JSON object")
    if not body.get("success"):
        raise WriteError(action, str(body.get("error") or "unknown error"))
    created_id = next((str(body[k]) for k in _ID_KEYS if body.get(k)), None)
    return WriteSuccess(action=action, created_id=created_id)


class RemoteWriter:
    """Client for the Apps Script write endpoint (``GET ?action=...``)."""

    def __init__(self, config: SheetsConfig, *, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self._client = client

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self.config.http_timeout, follow_redirects=True) as client:
            yield client

    async def _send(self, action: str, payload: Mapping[str, Any]) -> WriteSuccess:
        if action not in ACTIONS:
            raise WriteError(action, "unsupported action")
        params = encode_payload(action, payload)
        try:
            async with self._session() as client:
                response = await client.get(
                    self.config.apps_script_url,
                    params=params,
                    timeout=self.config.http_timeout,
                    follow_redirects=True,
                )
                response.raise_for_status()
                body = response.json()
        except httpx.TimeoutException as exc:
            raise WriteError(action, f"timed out after {self.config.http_timeout}s") from exc
        except httpx.HTTPStatusError as exc:
            raise WriteError(action, f"HTTP {exc.response.status_code}") from exc
        except httpx.RequestError as exc:
            raise WriteError(action, f"network error: {exc}") from exc
        except ValueError as exc:
            raise WriteError(action, f"undecodable response: {exc}") from exc
        return interpret_response(action, body)

    async def write(self, action: str, payload: Mapping[str, Any]) -> WriteResult:
        try:
            result = await self._send(action, payload)
        except WriteError as exc:
            logger.warning("Write %s failed: %s", action, exc.reason)
            return WriteFailure(action=action, reason=exc.reason)
        logger.info("Write %s succeeded (id=%s)", action, result.created_id or "-")
        return result


def meeting_payload(
    *,
    title: str,
    category: str = "",
    organization: str = "",
    assignee: str = "",
    assign_date: str = "",
    due_date: str = "",
    status: str = STATUS_PENDING,
    note: str = "",
) -> Dict[str, str]:
    return {
        "title": title,
        "category": category,
        "organization": organization,
        "assignee": assignee,
        "assignDate": assign_date,
        "dueDate": due_date,
        "status": status or STATUS_PENDING,
        "note": note or "",
    }


def todo_payload(
    *,
    task: str,
    meeting_id: str = "",
    assignee: str = "",
    assigner: str = "",
    due_date: str = "",
    priority: str = PRIORITY_MEDIUM,
    status: str = STATUS_PENDING,
) -> Dict[str, str]:
    return {
        "meetingId": meeting_id,
        "task": task,
        "assignee": assignee,
        "assigner": assigner,
        "dueDate": due_date,
        "priority": priority or PRIORITY_MEDIUM,
        "status": status or STATUS_PENDING,
    }


def status_payload(record_id: str, status: str, sheet: str) -> Dict[str, str]:
    return {"id": record_id, "status": status, "sheet": sheet}
