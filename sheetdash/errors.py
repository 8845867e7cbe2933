from __future__ import annotations


class SheetdashError(Exception):
    """Base class for every error raised by this package."""


class FetchError(SheetdashError):
    def __init__(self, table: str, reason: str) -> None:
        super().__init__(f"{table}: {reason}")
        self.table = table
        self.reason = reason


class WriteError(SheetdashError):
    def __init__(self, action: str, reason: str) -> None:
        super().__init__(f"{action}: {reason}")
        self.action = action
        self.reason = reason


class ExtractionUnavailable(SheetdashError):
    """No API credential is configured; prompt for one before extracting."""


class ExtractionFailure(SheetdashError):
    """The model gave no usable suggestion; fall back to manual entry."""
