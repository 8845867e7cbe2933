from __future__ import annotations

import logging
import math

import numpy as np
import pandas as pd
from fastapi import FastAPI, File, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.schemas import ApiKeyModel, MeetingModel, StatusUpdateModel, TodoModel
from sheetdash.config import CredentialStore, load_config
from sheetdash.errors import ExtractionFailure, ExtractionUnavailable
from sheetdash.extraction import ExtractionConfig, analyze_file, suggestion_to_form
from sheetdash.sync import DashboardView, SyncCoordinator, build_view
from sheetdash.writer import WriteFailure, WriteResult


config = load_config()
logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO))
logger = logging.getLogger(__name__)

coordinator = SyncCoordinator(config)
credentials = CredentialStore(config.credential_path)

app = FastAPI(title="Tracker Dashboard API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _json(data: object, status_code: int = 200) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except Exception:
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                type(pd.NaT): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        ),
    )


def _error(exc: Exception, status_code: int = 500) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


async def _current_view() -> DashboardView:
    if coordinator.view is None:
        await coordinator.trigger_reload()
    return coordinator.view or build_view(coordinator.snapshot, coordinator.now(), tz=config.timezone)


def _write_response(result: WriteResult) -> JSONResponse:
    if isinstance(result, WriteFailure):
        return _json({"success": False, "action": result.action, "error": result.reason}, status_code=502)
    view = coordinator.view
    return _json(
        {
            "success": True,
            "action": result.action,
            "created_id": result.created_id,
            "stats": view.stats if view else None,
            "kanban": view.kanban if view else None,
        }
    )


@app.get("/status")
def status():
    snapshot = coordinator.snapshot
    failure = coordinator.last_write_failure
    return _json(
        {
            "state": coordinator.state.value,
            "generation": snapshot.generation,
            "loaded_at": snapshot.loaded_at,
            "row_counts": snapshot.row_counts(),
            "failed_tables": list(snapshot.failed_tables),
            "last_error": coordinator.last_error,
            "last_write_failure": ({"action": failure.action, "reason": failure.reason} if failure else None),
        }
    )


@app.get("/meta/options")
async def meta_options():
    try:
        view = await _current_view()
        return _json(view.options)
    except Exception as exc:
        logger.exception("meta_options failed")
        return _error(exc)


@app.get("/stats")
async def stats():
    try:
        view = await _current_view()
        return _json(view.stats)
    except Exception as exc:
        logger.exception("stats failed")
        return _error(exc)


@app.get("/kanban")
async def kanban():
    try:
        view = await _current_view()
        return _json(view.kanban)
    except Exception as exc:
        logger.exception("kanban failed")
        return _error(exc)


@app.get("/detail/{kind}")
async def detail(kind: str):
    try:
        await _current_view()
        return _json(coordinator.detail(kind))
    except ValueError as exc:
        return _error(exc, status_code=400)
    except Exception as exc:
        logger.exception("detail failed")
        return _error(exc)


@app.post("/reload")
async def reload():
    try:
        view = await coordinator.trigger_reload()
        return _json(
            {
                "state": coordinator.state.value,
                "last_error": coordinator.last_error,
                "stats": view.stats if view else None,
                "kanban": view.kanban if view else None,
            }
        )
    except Exception as exc:
        logger.exception("reload failed")
        return _error(exc)


@app.post("/meetings")
async def add_meeting(meeting: MeetingModel):
    try:
        result = await coordinator.add_meeting(**meeting.model_dump())
        return _write_response(result)
    except Exception as exc:
        logger.exception("add_meeting failed")
        return _error(exc)


@app.post("/todos")
async def add_todo(todo: TodoModel):
    try:
        result = await coordinator.add_todo(**todo.model_dump())
        return _write_response(result)
    except Exception as exc:
        logger.exception("add_todo failed")
        return _error(exc)


@app.post("/status-updates")
async def update_status(update: StatusUpdateModel):
    try:
        result = await coordinator.update_status(update.id, update.status, update.sheet)
        return _write_response(result)
    except Exception as exc:
        logger.exception("update_status failed")
        return _error(exc)


@app.get("/settings/api-key")
def api_key_status():
    return _json({"configured": credentials.configured, "model": config.gemini_model})


@app.put("/settings/api-key")
def set_api_key(body: ApiKeyModel):
    try:
        credentials.set(body.api_key)
    except ValueError as exc:
        return _error(exc, status_code=400)
    return _json({"configured": True})


@app.delete("/settings/api-key")
def clear_api_key():
    credentials.clear()
    return _json({"configured": False})


@app.post("/extract")
async def extract(file: UploadFile = File(...)):
    extraction = ExtractionConfig(api_key=credentials.get(), model=config.gemini_model)
    try:
        data = await file.read()
        suggestion = await analyze_file(data, file.content_type or "image/png", extraction)
    except ExtractionUnavailable as exc:
        return _error(exc, status_code=409)
    except ExtractionFailure as exc:
        logger.warning("Extraction gave no suggestion: %s", exc)
        return _json({"suggestion": None, "form": {}, "reason": str(exc)})
    except Exception as exc:
        logger.exception("extract failed")
        return _error(exc)

    view = await _current_view()
    return _json(
        {
            "suggestion": suggestion.model_dump(by_alias=True),
            "form": suggestion_to_form(suggestion, view.options),
        }
    )
