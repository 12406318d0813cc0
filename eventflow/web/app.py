"""
FastAPI application — host API and live viewer feed.

Exposes:
  GET  /api/status                                   Health + viewer count
  *    /api/tournaments[...]                         Tournament CRUD, bracket, performance
  *    /api/matches/{id}/...                         Results and manual slot overrides
  *    /api/settings, /api/backgrounds, ...          Stored display settings
  WS   /ws/tournament/{id}                           Snapshot on connect, then every update

Every mutating endpoint returns the full snapshot it just broadcast.
"""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
import logging.handlers
import os
from datetime import date, datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from eventflow.config import Config, load_config
from eventflow.errors import (
    EventFlowError,
    InvalidGraphError,
    NotFoundError,
    PreconditionError,
    StoreError,
)
from eventflow.service import TournamentService
from eventflow.store.database import Database
from eventflow.tournaments.base import Tournament
from eventflow.tournaments.events import TournamentDeletedEvent
from eventflow.web.broadcaster import TournamentBroadcaster

try:
    config = load_config(os.environ.get("EVENTFLOW_CONFIG", "config.yaml"))
except FileNotFoundError:
    config = Config()

# --------------------------------------------------------------------------- #
# Logging                                                                      #
# --------------------------------------------------------------------------- #

_LOG_FILE = config.log_file_path
_LOG_FILE.parent.mkdir(parents=True, exist_ok=True)

logging.basicConfig(
    level=getattr(logging, config.logging.level, logging.INFO),
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    handlers=[
        logging.StreamHandler(),                                   # server console
        logging.handlers.RotatingFileHandler(
            _LOG_FILE, maxBytes=2 * 1024 * 1024, backupCount=3,  # 2 MB × 3 files
            encoding="utf-8",
        ),
    ],
)
logger = logging.getLogger("eventflow")


app = FastAPI(title="EventFlow")

_broadcaster = TournamentBroadcaster()
service: TournamentService | None = None


@app.on_event("startup")
async def _startup() -> None:
    """Open the store unless a service was injected (tests do this)."""
    global service
    if service is None:
        db = Database(config.database_path)
        service = TournamentService(db, _broadcaster, config.performance)
        logger.info("EventFlow store ready at %s", db.path)


def _service() -> TournamentService:
    if service is None:
        raise HTTPException(status_code=503, detail="Store not initialised")
    return service


# --------------------------------------------------------------------------- #
# Serialisation & errors                                                       #
# --------------------------------------------------------------------------- #

def _to_json_dict(obj: Any) -> Any:
    """Convert dataclasses to plain dicts, tagging every level with its "type"."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        result: dict[str, Any] = {"type": type(obj).__name__}
        for f in dataclasses.fields(obj):
            result[f.name] = _to_json_dict(getattr(obj, f.name))
        return result
    if isinstance(obj, (list, tuple)):
        return [_to_json_dict(item) for item in obj]
    if isinstance(obj, dict):
        return {key: _to_json_dict(value) for key, value in obj.items()}
    return obj


def _to_json(data: dict) -> str:
    """json.dumps with datetime → ISO-string support."""
    def _default(obj: object) -> str:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")
    return json.dumps(data, default=_default)


def _tournament_json(tournament: Tournament) -> dict[str, Any]:
    data = _to_json_dict(tournament)
    data["bracket"] = tournament.mode == "elimination" and tournament.has_bracket
    data["performance"] = tournament.mode == "sequential" and tournament.has_roster
    return data


_ERROR_STATUS: list[tuple[type[EventFlowError], int]] = [
    (NotFoundError, 404),
    (PreconditionError, 422),
    (StoreError, 503),
    (InvalidGraphError, 500),
]


@app.exception_handler(EventFlowError)
async def _engine_error(request: Request, exc: EventFlowError) -> JSONResponse:
    status = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 500)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def _require_int(payload: dict, key: str) -> int:
    value = payload.get(key)
    if value is None or isinstance(value, bool):
        raise HTTPException(status_code=400, detail=f"{key} is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"{key} must be an integer") from None


def _optional_int(payload: dict, key: str) -> int | None:
    if payload.get(key) is None:
        return None
    return _require_int(payload, key)


def _require_list(payload: dict, key: str) -> list:
    value = payload.get(key)
    if not isinstance(value, list):
        raise HTTPException(status_code=400, detail=f"{key} must be a list")
    return value


# --------------------------------------------------------------------------- #
# Status & tournaments                                                         #
# --------------------------------------------------------------------------- #

@app.get("/api/status")
async def get_status():
    svc = _service()
    tournaments = await svc.list_tournaments()
    return {
        "status": "EventFlow server running",
        "viewers": svc.broadcaster.viewer_count(),
        "tournaments": len(tournaments),
    }


@app.get("/api/tournaments")
async def list_tournaments():
    return [_tournament_json(t) for t in await _service().list_tournaments()]


@app.post("/api/tournaments", status_code=201)
async def create_tournament(payload: dict):
    name = str(payload.get("name", "")).strip()
    if not name:
        raise HTTPException(status_code=400, detail="name is required")
    tournament = await _service().create_tournament(
        name,
        background_path=payload.get("background_path"),
        mode=payload.get("mode"),
    )
    return _tournament_json(tournament)


@app.get("/api/tournaments/{tournament_id}")
async def get_tournament(tournament_id: int):
    return _tournament_json(await _service().get_tournament(tournament_id))


@app.delete("/api/tournaments/{tournament_id}")
async def delete_tournament(tournament_id: int):
    await _service().delete_tournament(tournament_id)
    return {"ok": True}


@app.get("/api/tournaments/{tournament_id}/snapshot")
async def get_snapshot(tournament_id: int):
    return _to_json_dict(await _service().snapshot(tournament_id))


# --------------------------------------------------------------------------- #
# Elimination bracket                                                          #
# --------------------------------------------------------------------------- #

@app.get("/api/tournaments/{tournament_id}/bracket")
async def get_bracket(tournament_id: int):
    return {"bracket": _to_json_dict(await _service().bracket_view(tournament_id))}


@app.post("/api/tournaments/{tournament_id}/bracket")
async def build_bracket(tournament_id: int, payload: dict):
    names = [str(n) for n in _require_list(payload, "names")]
    view = await _service().build_bracket(tournament_id, names)
    return {"bracket": _to_json_dict(view)}


@app.delete("/api/tournaments/{tournament_id}/bracket")
async def clear_bracket(tournament_id: int):
    await _service().clear_bracket(tournament_id)
    return {"ok": True}


@app.post("/api/matches/{match_id}/result")
async def record_result(match_id: int, payload: dict):
    view = await _service().record_result(
        match_id,
        _require_int(payload, "winner_id"),
        _optional_int(payload, "score1"),
        _optional_int(payload, "score2"),
    )
    return {"bracket": _to_json_dict(view)}


@app.put("/api/matches/{match_id}/slots/{slot}")
async def assign_slot(match_id: int, slot: int, payload: dict):
    view = await _service().assign_slot(match_id, slot, _optional_int(payload, "participant_id"))
    return {"bracket": _to_json_dict(view)}


@app.post("/api/participants", status_code=201)
async def add_participant(payload: dict):
    participant_id = await _service().add_participant(str(payload.get("name", "")))
    return {"id": participant_id}


@app.delete("/api/participants/{participant_id}")
async def remove_participant(participant_id: int):
    await _service().remove_participant(participant_id)
    return {"ok": True}


# --------------------------------------------------------------------------- #
# Sequential performance                                                       #
# --------------------------------------------------------------------------- #

@app.get("/api/tournaments/{tournament_id}/performance")
async def get_performance(tournament_id: int):
    return _to_json_dict(await _service().performance_snapshot(tournament_id))


@app.put("/api/tournaments/{tournament_id}/performance/roster")
async def replace_roster(tournament_id: int, payload: dict):
    names = [str(n) for n in _require_list(payload, "names")]
    return _to_json_dict(await _service().replace_roster(tournament_id, names))


@app.post("/api/tournaments/{tournament_id}/performance/performers")
async def append_performer(tournament_id: int, payload: dict):
    name = str(payload.get("name", ""))
    return _to_json_dict(await _service().append_performer(tournament_id, name))


@app.delete("/api/tournaments/{tournament_id}/performance/performers/{performer_id}")
async def remove_performer(tournament_id: int, performer_id: int):
    return _to_json_dict(await _service().remove_performer(tournament_id, performer_id))


@app.put("/api/tournaments/{tournament_id}/performance/performers/{performer_id}/score")
async def set_score(tournament_id: int, performer_id: int, payload: dict):
    score = payload.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        raise HTTPException(status_code=400, detail="score must be a number")
    return _to_json_dict(await _service().set_score(tournament_id, performer_id, float(score)))


@app.post("/api/tournaments/{tournament_id}/performance/reorder")
async def reorder_performers(tournament_id: int, payload: dict):
    snap = await _service().reorder_performers(
        tournament_id,
        _require_int(payload, "from_index"),
        _require_int(payload, "to_index"),
    )
    return _to_json_dict(snap)


@app.put("/api/tournaments/{tournament_id}/performance/cursor")
async def set_cursor(tournament_id: int, payload: dict):
    return _to_json_dict(
        await _service().set_cursor(tournament_id, _require_int(payload, "index"))
    )


@app.put("/api/tournaments/{tournament_id}/performance/winners")
async def select_winners(tournament_id: int, payload: dict):
    raw_ids = _require_list(payload, "performer_ids")
    try:
        ids = [int(i) for i in raw_ids]
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="performer_ids must be integers") from None
    return _to_json_dict(await _service().select_winners(tournament_id, ids))


@app.post("/api/tournaments/{tournament_id}/performance/finalize")
async def finalize(tournament_id: int, payload: dict):
    source = str(payload.get("source", "manual")).strip() or "manual"
    return _to_json_dict(await _service().finalize(tournament_id, source))


@app.put("/api/tournaments/{tournament_id}/performance/view")
async def set_view(tournament_id: int, payload: dict):
    view = str(payload.get("view", "")).strip()
    return _to_json_dict(await _service().set_view(tournament_id, view))


@app.put("/api/tournaments/{tournament_id}/performance/settings")
async def configure_performance(tournament_id: int, payload: dict):
    scoring = payload.get("scoring_enabled")
    snap = await _service().configure_performance(
        tournament_id,
        max_winners=_optional_int(payload, "max_winners"),
        scoring_enabled=None if scoring is None else bool(scoring),
    )
    return _to_json_dict(snap)


@app.delete("/api/tournaments/{tournament_id}/performance")
async def clear_performance(tournament_id: int):
    return _to_json_dict(await _service().clear_performance(tournament_id))


# --------------------------------------------------------------------------- #
# Settings & backgrounds                                                       #
# --------------------------------------------------------------------------- #

@app.get("/api/settings/{key}")
async def get_setting(key: str):
    return {"key": key, "value": await _service().get_setting(key)}


@app.put("/api/settings/{key}")
async def set_setting(key: str, payload: dict):
    value = payload.get("value")
    await _service().set_setting(key, None if value is None else str(value))
    return {"key": key, "value": value}


@app.get("/api/backgrounds")
async def list_backgrounds():
    return await _service().list_backgrounds()


@app.post("/api/backgrounds", status_code=201)
async def add_background(payload: dict):
    background_id = await _service().add_background(
        str(payload.get("url", "")).strip(),
        file_path=payload.get("path"),
        name=payload.get("name"),
    )
    return {"id": background_id}


@app.delete("/api/backgrounds/{background_id}")
async def delete_background(background_id: int):
    file_path = await _service().delete_background(background_id)
    return {"ok": True, "file_path": file_path}


@app.get("/api/page-backgrounds")
async def get_page_backgrounds():
    return await _service().page_backgrounds()


@app.put("/api/page-backgrounds/{page_name}")
async def set_page_background(page_name: str, payload: dict):
    await _service().assign_page_background(page_name, _optional_int(payload, "background_id"))
    return await _service().page_backgrounds()


# --------------------------------------------------------------------------- #
# WebSocket viewer feed                                                        #
# --------------------------------------------------------------------------- #

@app.websocket("/ws/tournament/{tournament_id}")
async def tournament_ws(ws: WebSocket, tournament_id: int) -> None:
    await ws.accept()
    svc = _service()
    queue = svc.broadcaster.subscribe(tournament_id)

    try:
        # No replayed event yet (e.g. fresh server): build the snapshot directly.
        if queue.empty():
            try:
                first = await svc.snapshot(tournament_id)
            except NotFoundError as exc:
                await ws.send_text(_to_json({"type": "error", "message": str(exc)}))
                await ws.close()
                return
            await ws.send_text(_to_json(_to_json_dict(first)))

        async def _send_loop() -> None:
            while True:
                event = await queue.get()
                await ws.send_text(_to_json(_to_json_dict(event)))
                if isinstance(event, TournamentDeletedEvent):
                    break

        async def _receive_loop() -> None:
            try:
                while True:
                    msg = await ws.receive_json()
                    if msg.get("type") == "show":
                        snap = await svc.snapshot(tournament_id)
                        await ws.send_text(_to_json(_to_json_dict(snap)))
            except (WebSocketDisconnect, RuntimeError):
                pass

        # Stream and listen concurrently; cancel whichever is still running
        # when the other finishes (e.g. tournament deleted, or client left).
        send_task = asyncio.create_task(_send_loop())
        recv_task = asyncio.create_task(_receive_loop())

        done, pending = await asyncio.wait(
            {send_task, recv_task}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
            try:
                await task
            except (asyncio.CancelledError, WebSocketDisconnect):
                pass

        for task in done:
            if task.exception():
                raise task.exception()  # type: ignore[misc]

        if send_task in done:
            await ws.close()

    except WebSocketDisconnect:
        pass
    except EventFlowError as exc:
        try:
            await ws.send_text(_to_json({"type": "error", "message": str(exc)}))
        except (WebSocketDisconnect, RuntimeError):
            pass
    finally:
        svc.broadcaster.unsubscribe(tournament_id, queue)
