from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

import pandas as pd

from sheetdash.config import SheetsConfig
from sheetdash.metrics_detail import compute_detail
from sheetdash.metrics_kanban import compute_kanban
from sheetdash.metrics_options import compute_options
from sheetdash.metrics_stats import compute_stats
from sheetdash.store import DataSnapshot, DataStore
from sheetdash.writer import (
    ACTION_ADD_MEETING,
    ACTION_ADD_TODO,
    ACTION_UPDATE_STATUS,
    RemoteWriter,
    WriteFailure,
    WriteResult,
    meeting_payload,
    status_payload,
    todo_payload,
)

logger = logging.getLogger(__name__)


class SyncState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class DashboardView:
    snapshot: DataSnapshot
    stats: Dict[str, Any]
    kanban: Dict[str, Any]
    options: Dict[str, Any]
    computed_at: pd.Timestamp


Subscriber = Callable[[DashboardView], None]


def build_view(snapshot: DataSnapshot, now: Any = None, *, tz: Optional[str] = None) -> DashboardView:
    return DashboardView(
        snapshot=snapshot,
        stats=compute_stats(snapshot, now, tz=tz),
        kanban=compute_kanban(snapshot),
        options=compute_options(snapshot),
        computed_at=pd.Timestamp.now(),
    )


class SyncCoordinator:
    """Drives reloads and writes, and republishes derived views.

    A successful write is always followed by a full reload; the locally
    submitted payload is never merged into the snapshot.
    """

    def __init__(
        self,
        config: SheetsConfig,
        *,
        store: Optional[DataStore] = None,
        writer: Optional[RemoteWriter] = None,
        clock: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.config = config
        self.store = store or DataStore(config)
        self.writer = writer or RemoteWriter(config)
        self._clock = clock
        self._state = SyncState.IDLE
        self._in_flight = 0
        self._view: Optional[DashboardView] = None
        self._subscribers: List[Subscriber] = []
        self.last_error: Optional[str] = None
        self.last_write_failure: Optional[WriteFailure] = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def view(self) -> Optional[DashboardView]:
        return self._view

    @property
    def snapshot(self) -> DataSnapshot:
        return self.store.snapshot

    def now(self) -> Any:
        return self._clock() if self._clock else None

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _publish(self, view: DashboardView) -> None:
        for callback in list(self._subscribers):
            try:
                callback(view)
            except Exception:
                logger.exception("View subscriber %r failed", callback)

    async def trigger_reload(self) -> Optional[DashboardView]:
        self._state = SyncState.LOADING
        self._in_flight += 1
        outcome = SyncState.FAILED
        try:
            snapshot = await self.store.reload()
            # Another reload may have landed after this one; publish whatever the store holds.
            view = build_view(self.store.snapshot, self.now(), tz=self.config.timezone)
            self._view = view
            self.last_error = None
            outcome = SyncState.READY
        except Exception as exc:
            logger.exception("Reload failed; keeping the last good snapshot")
            self.last_error = f"{type(exc).__name__}: {exc}"
            return self._view
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self._state = outcome
        if snapshot.failed_tables:
            logger.warning("Reload completed without: %s", ", ".join(snapshot.failed_tables))
        self._publish(view)
        return view

    async def submit_write(self, action: str, payload: Mapping[str, Any]) -> WriteResult:
        result = await self.writer.write(action, payload)
        if isinstance(result, WriteFailure):
            self.last_write_failure = result
            logger.warning("Not reloading after failed %s: %s", action, result.reason)
            return result
        self.last_write_failure = None
        await self.trigger_reload()
        return result

    async def add_meeting(self, **fields: Any) -> WriteResult:
        return await self.submit_write(ACTION_ADD_MEETING, meeting_payload(**fields))

    async def add_todo(self, **fields: Any) -> WriteResult:
        return await self.submit_write(ACTION_ADD_TODO, todo_payload(**fields))

    async def update_status(self, record_id: str, status: str, sheet: str) -> WriteResult:
        return await self.submit_write(ACTION_UPDATE_STATUS, status_payload(record_id, status, sheet))

    def detail(self, kind: str, now: Any = None) -> Dict[str, Any]:
        ref = now if now is not None else self.now()
        return compute_detail(self.store.snapshot, kind, ref, tz=self.config.timezone)
