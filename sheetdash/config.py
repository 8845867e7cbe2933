from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_SPREADSHEET_ID = "1GzW2xIWs9wUIS0mbB37LmXiTrfrJ6rtkGrOPmI-r2cU"
DEFAULT_APPS_SCRIPT_URL = (
    "https://script.google.com/macros/s/"
    "AKfycbz4OnG65YDYIPQBJyPk3S82T9cJhnsxKaQynmIT0Cq2H816rmfVI_wQ2d3F_rzA7pM8qA/exec"
)
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_TIMEZONE = "Asia/Taipei"
DEFAULT_HTTP_TIMEOUT = 15.0
DEFAULT_CREDENTIAL_PATH = Path.home() / ".sheetdash" / "credentials.json"

GVIZ_URL_TEMPLATE = "https://docs.google.com/spreadsheets/d/{spreadsheet_id}/gviz/tq"

# Logical table key -> sheet tab name.
SHEET_NAMES: Dict[str, str] = {
    "meetings": "01_會議工作清單",
    "categories": "02_分類設定",
    "organizations": "03_單位設定",
    "staff": "04_人員設定",
    "todos": "05_待辦追蹤",
}

API_KEY_SLOT = "gemini_api_key"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, raw)
        return default


@dataclass(frozen=True)
class SheetsConfig:
    spreadsheet_id: str = DEFAULT_SPREADSHEET_ID
    apps_script_url: str = DEFAULT_APPS_SCRIPT_URL
    sheet_names: Dict[str, str] = field(default_factory=lambda: dict(SHEET_NAMES))
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    timezone: str = DEFAULT_TIMEZONE
    gemini_model: str = DEFAULT_GEMINI_MODEL
    credential_path: Path = DEFAULT_CREDENTIAL_PATH
    log_level: str = "INFO"

    @property
    def gviz_url(self) -> str:
        return GVIZ_URL_TEMPLATE.format(spreadsheet_id=self.spreadsheet_id)


def load_config() -> SheetsConfig:
    credential_path = os.getenv("SHEETDASH_CREDENTIAL_PATH", "")
    return SheetsConfig(
        spreadsheet_id=os.getenv("SHEETDASH_SPREADSHEET_ID", "") or DEFAULT_SPREADSHEET_ID,
        apps_script_url=os.getenv("SHEETDASH_APPS_SCRIPT_URL", "") or DEFAULT_APPS_SCRIPT_URL,
        http_timeout=_env_float("SHEETDASH_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
        timezone=os.getenv("SHEETDASH_TIMEZONE", "") or DEFAULT_TIMEZONE,
        gemini_model=os.getenv("SHEETDASH_GEMINI_MODEL", "") or DEFAULT_GEMINI_MODEL,
        credential_path=Path(credential_path).expanduser() if credential_path else DEFAULT_CREDENTIAL_PATH,
        log_level=(os.getenv("SHEETDASH_LOG_LEVEL", "") or "INFO").upper(),
    )


class CredentialStore:
    """Single-slot JSON file holding the extraction API key.

    A missing file, a missing slot or an empty value all mean "not configured".
    """

    def __init__(self, path: Path, slot: str = API_KEY_SLOT) -> None:
        self.path = Path(path)
        self.slot = slot

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Credential file %s is not valid JSON; treating as empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")

    def get(self) -> Optional[str]:
        value = self._read().get(self.slot)
        if not isinstance(value, str) or not value.strip():
            return None
        return value.strip()

    def set(self, value: str) -> None:
        value = (value or "").strip()
        if not value:
            raise ValueError("API key must not be empty; use clear() to remove it")
        data = self._read()
        data[self.slot] = value
        self._write(data)

    def clear(self) -> None:
        data = self._read()
        if self.slot in data:
            del data[self.slot]
            self._write(data)

    @property
    def configured(self) -> bool:
        return self.get() is not None
