from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

import pandas as pd

from sheetdash.config import SheetsConfig
from sheetdash.data import TABLES, empty_table, normalize_table
from sheetdash.errors import FetchError
from sheetdash.fetcher import TabularFetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DataSnapshot:
    """All five tables as of one reload. Never mutated after construction."""

    tables: Mapping[str, pd.DataFrame] = field(default_factory=dict)
    loaded_at: Optional[pd.Timestamp] = None
    generation: int = 0
    failed_tables: tuple = ()

    def frame(self, name: str) -> pd.DataFrame:
        if name not in TABLES:
            raise KeyError(name)
        df = self.tables.get(name)
        if df is None:
            return empty_table(name)
        return df.copy()

    def records(self, name: str) -> List[Dict[str, Any]]:
        return self.frame(name).to_dict(orient="records")

    @property
    def meetings(self) -> pd.DataFrame:
        return self.frame("meetings")

    @property
    def categories(self) -> pd.DataFrame:
        return self.frame("categories")

    @property
    def organizations(self) -> pd.DataFrame:
        return self.frame("organizations")

    @property
    def staff(self) -> pd.DataFrame:
        return self.frame("staff")

    @property
    def todos(self) -> pd.DataFrame:
        return self.frame("todos")

    def row_counts(self) -> Dict[str, int]:
        return {name: int(len(self.tables.get(name, ()))) for name in TABLES}

    def same_content(self, other: "DataSnapshot") -> bool:
        return all(self.frame(name).equals(other.frame(name)) for name in TABLES)


def empty_snapshot() -> DataSnapshot:
    return DataSnapshot(tables=MappingProxyType({name: empty_table(name) for name in TABLES}))


class DataStore:
    """Single owner of the current snapshot.

    ``reload`` reads every table concurrently and swaps the snapshot reference
    in one assignment once all of them are in. Overlapping reloads are not
    serialized: whichever finishes assembling last is the one kept.
    """

    def __init__(self, config: SheetsConfig, fetcher: Optional[TabularFetcher] = None) -> None:
        self.config = config
        self.fetcher = fetcher or TabularFetcher(config)
        self._snapshot: DataSnapshot = empty_snapshot()
        self._generations = itertools.count(1)

    @property
    def snapshot(self) -> DataSnapshot:
        return self._snapshot

    async def _load_table(self, name: str) -> pd.DataFrame:
        sheet = self.config.sheet_names[name]
        try:
            rows = await self.fetcher.fetch(sheet)
        except FetchError as exc:
            logger.warning("Loading %s (%s) failed, using an empty table: %s", name, sheet, exc.reason)
            raise
        return normalize_table(name, rows)

    async def reload(self) -> DataSnapshot:
        results = await asyncio.gather(
            *(self._load_table(name) for name in TABLES),
            return_exceptions=True,
        )

        tables: Dict[str, pd.DataFrame] = {}
        failed: List[str] = []
        for name, result in zip(TABLES, results):
            if isinstance(result, FetchError):
                tables[name] = empty_table(name)
                failed.append(name)
            elif isinstance(result, BaseException):
                raise result
            else:
                tables[name] = result

        snapshot = DataSnapshot(
            tables=MappingProxyType(tables),
            loaded_at=pd.Timestamp.now(),
            generation=next(self._generations),
            failed_tables=tuple(failed),
        )
        self._snapshot = snapshot
        logger.info("Reloaded snapshot #%d: %s", snapshot.generation, snapshot.row_counts())
        return snapshot
