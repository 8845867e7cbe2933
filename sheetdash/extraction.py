"""AI-assisted field extraction for the new-meeting form.

The model is asked to read an uploaded document or screenshot and answer
with a small JSON object. Every field of the answer is optional; callers
treat a missing suggestion as "fill the form by hand".
"""

from __future__ import annotations

import base64
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from sheetdash.config import DEFAULT_GEMINI_MODEL
from sheetdash.errors import ExtractionFailure, ExtractionUnavailable

logger = logging.getLogger(__name__)

GEMINI_URL_TEMPLATE = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

DEFAULT_INSTRUCTION = """請分析這份文件/截圖，提取以下資訊並以 JSON 格式回傳：
{
    "title": "會議或工作主題",
    "date": "日期（格式：YYYY-MM-DD）",
    "time": "時間（格式：HH:MM，若無則留空）",
    "category": "分類（計畫類/預算類/租稅優惠/國際人才/AI產業人才認定指引/其他）",
    "organization": "相關單位全銜（如：國家發展委員會、勞動部勞動力發展署）",
    "assignee": "負責人或承辦人姓名",
    "dueDate": "截止日期（格式：YYYY-MM-DD，若無則留空）",
    "summary": "簡短摘要（50字內）"
}
請只回傳 JSON，不要有其他文字。若無法辨識某欄位請填空字串。"""

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True)
class ExtractionConfig:
    """``api_key=None`` means the feature is switched off."""

    api_key: Optional[str] = None
    model: str = DEFAULT_GEMINI_MODEL
    timeout: float = 60.0

    @property
    def enabled(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


class Suggestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    category: Optional[str] = None
    organization: Optional[str] = None
    assignee: Optional[str] = None
    due_date: Optional[str] = Field(default=None, alias="dueDate")
    summary: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, (dict, list)):
            return None
        s = str(value).strip()
        return s or None


def parse_suggestion(text: str) -> Suggestion:
    match = _JSON_OBJECT.search(text or "")
    if not match:
        raise ExtractionFailure("model answer contained no JSON object")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        raise ExtractionFailure(f"model answer is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ExtractionFailure("model answer is not a JSON object")
    try:
        return Suggestion.model_validate(data)
    except ValidationError as exc:
        raise ExtractionFailure(f"model answer has unexpected fields: {exc}") from exc


def _candidate_text(body: Any) -> str:
    try:
        return str(body["candidates"][0]["content"]["parts"][0]["text"])
    except (KeyError, IndexError, TypeError):
        return ""


async def analyze_file(
    data: bytes,
    mime_type: str,
    config: ExtractionConfig,
    *,
    instruction: str = DEFAULT_INSTRUCTION,
    client: Optional[httpx.AsyncClient] = None,
) -> Suggestion:
    """Ask the model for form fields found in ``data``.

    Raises ``ExtractionUnavailable`` before any request when no key is set and
    ``ExtractionFailure`` when the answer cannot be used.
    """
    if not config.enabled:
        raise ExtractionUnavailable("Gemini API key is not configured")

    body = {
        "contents": [
            {
                "parts": [
                    {"text": instruction},
                    {
                        "inline_data": {
                            "mime_type": mime_type or "image/png",
                            "data": base64.b64encode(data).decode("ascii"),
                        }
                    },
                ]
            }
        ]
    }
    url = GEMINI_URL_TEMPLATE.format(model=config.model)
    params = {"key": config.api_key}
    try:
        if client is not None:
            response = await client.post(url, params=params, json=body, timeout=config.timeout)
        else:
            async with httpx.AsyncClient(timeout=config.timeout) as session:
                response = await session.post(url, params=params, json=body)
        response.raise_for_status()
        payload = response.json()
    except httpx.HTTPStatusError as exc:
        raise ExtractionFailure(f"HTTP {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        raise ExtractionFailure(f"request failed: {exc}") from exc
    except ValueError as exc:
        raise ExtractionFailure(f"undecodable response: {exc}") from exc

    text = _candidate_text(payload)
    if not text:
        raise ExtractionFailure("model returned no candidates")
    suggestion = parse_suggestion(text)
    logger.info("Extraction produced fields: %s", sorted(suggestion.model_dump(exclude_none=True)))
    return suggestion


def resolve_option(value: Optional[str], options: Sequence[Mapping[str, str]]) -> Optional[str]:
    """Map a free-text suggestion onto one of the selectable option values.

    Tiers, first match wins and table order breaks ties inside a tier:
    exact value/label, then prefix in either direction, then substring in
    either direction.
    """
    needle = (value or "").strip()
    if not needle:
        return None

    def texts(opt: Mapping[str, str]) -> List[str]:
        return [t for t in (str(opt.get("value") or "").strip(), str(opt.get("label") or "").strip()) if t]

    tiers = (
        lambda t: t == needle,
        lambda t: t.startswith(needle) or needle.startswith(t),
        lambda t: needle in t or t in needle,
    )
    for matches in tiers:
        for opt in options:
            if any(matches(t) for t in texts(opt)):
                return str(opt.get("value") or "")
    return None


def suggestion_to_form(suggestion: Optional[Suggestion], options: Mapping[str, Sequence[Mapping[str, str]]]) -> Dict[str, Optional[str]]:
    """Form prefill values; a ``None`` entry means leave that field alone."""
    if suggestion is None:
        return {}
    return {
        "title": suggestion.title,
        "date": suggestion.date,
        "time": suggestion.time,
        "due_date": suggestion.due_date,
        "summary": suggestion.summary,
        "category": resolve_option(suggestion.category, options.get("categories", [])),
        "organization": resolve_option(suggestion.organization, options.get("organizations", [])),
        "assignee": resolve_option(suggestion.assignee, options.get("staff", [])),
    }
