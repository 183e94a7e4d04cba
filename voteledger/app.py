"""
Ledger Service — HTTP front of the voting ledger.

This service owns the ledger end-to-end:
    - Action dispatch on /api (GET query string or POST JSON body)
    - Admin maintenance: full dump, reset, import, spreadsheet sync
    - CSV / XLSX export of each snapshot collection
    - WebSocket event feed on /ws

Domain failures are answered with status 200 and
``{"success": false, "error": <code>, "message": ...}`` so that callers can
branch on ``error``; only malformed transport (unparseable JSON) and admin
authorisation use non-200 statuses.

Runs on port 3002 by default (see ``config``).
"""
import json
import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from . import __version__, config
from .broadcast import Broadcaster
from .errors import LedgerError
from .export import to_csv, to_xlsx
from .models import utcnow
from .persistence import load_into, open_store
from .schemas import HealthResponse, parse_request
from .security import hash_admin_key, verify_admin_key
from .service import LedgerService, Notification, failure
from .sheets_util import SHEET_NAMES, SheetsSync
from .store import COLLECTIONS, LedgerStore

logger = logging.getLogger("ledger-service")

# ── Process state (set up in lifespan) ───────────────────────────────────────
service: LedgerService | None = None
sheets: SheetsSync | None = None
broadcaster = Broadcaster()
admin_key_hash = ""


def open_sheets() -> SheetsSync:
    return SheetsSync.from_config()


# ── Lifespan ─────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(application: FastAPI):
    global service, sheets, admin_key_hash

    store = open_store()
    await store.open()
    ledger = LedgerStore(config.ADMIN_ADDRESSES)
    await load_into(store, ledger)
    service = LedgerService(ledger, store)
    sheets = open_sheets()
    admin_key_hash = config.ADMIN_KEY_HASH or hash_admin_key(config.ADMIN_KEY)
    logger.info(f"Ledger service ready ({store.name} store, sheets "
                f"{'enabled' if sheets.enabled else 'disabled'})")
    yield
    await service.persist()
    await store.close()
    logger.info("Ledger service stopped")


app = FastAPI(
    title="Ledger Service",
    description="Voter registry, elections, vote ledger and live results",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Helpers ──────────────────────────────────────────────────────────────────

def _unauthorized() -> JSONResponse:
    return JSONResponse(
        status_code=403,
        content={"success": False, "error": "Unauthorized", "message": "Invalid admin key"},
    )


def _is_admin(request: Request, body: dict[str, Any] | None = None) -> bool:
    """Admin key from the X-Admin-Key header, ``adminKey`` query or body field."""
    key = (
        request.headers.get("x-admin-key")
        or request.query_params.get("adminKey")
        or (body or {}).get("adminKey")
    )
    return verify_admin_key(key, admin_key_hash)


async def _json_body(request: Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


async def _notify(notification: Notification) -> None:
    await broadcaster.publish(notification.event, notification.record)
    await sheets.append_record(notification.collection, notification.record)


async def _dispatch(payload: dict[str, Any], background_tasks: BackgroundTasks) -> dict[str, Any]:
    action = payload.get("action")
    try:
        request = parse_request(payload)
        outcome = await service.execute(request)
    except LedgerError as exc:
        logger.warning(f"{action or '<none>'} rejected: {exc.code}: {exc}")
        return failure(exc)
    except Exception:
        logger.exception(f"Unhandled error while processing {action!r}")
        return {"success": False, "error": "InternalError", "message": "Internal server error"}

    for notification in outcome.notifications:
        background_tasks.add_task(_notify, notification)
    return outcome.body


# ── Routes ───────────────────────────────────────────────────────────────────

@app.get("/health", response_model=HealthResponse)
async def health():
    return {"status": "healthy", "service": config.SERVICE_NAME}


@app.get("/api")
async def api_query(request: Request, background_tasks: BackgroundTasks):
    """Dispatch from query parameters; without ``action`` report status."""
    params = dict(request.query_params)
    if "action" not in params:
        return {
            "success": True,
            "message": f"Ledger API v{__version__} online",
            "timestamp": utcnow().isoformat(),
        }
    return await _dispatch(params, background_tasks)


@app.post("/api")
async def api_body(request: Request, background_tasks: BackgroundTasks):
    body = await _json_body(request)
    if body is None:
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "InvalidParameters",
                     "message": "Request body must be a JSON object"},
        )
    return await _dispatch(body, background_tasks)


# ── Admin maintenance ────────────────────────────────────────────────────────

@app.get("/db/all")
async def dump_all(request: Request):
    if not _is_admin(request):
        return _unauthorized()
    return {"success": True, "data": service.ledger.snapshot()}


@app.post("/db/reset")
async def reset_ledger(request: Request):
    body = await _json_body(request)
    if not _is_admin(request, body):
        return _unauthorized()
    await service.reset()
    return {"success": True, "message": "Ledger reset"}


@app.post("/db/import")
async def import_ledger(request: Request):
    body = await _json_body(request) or {}
    if not _is_admin(request, body):
        return _unauthorized()
    snapshot = body.get("snapshot")
    if not isinstance(snapshot, dict):
        return {"success": False, "error": "MissingParameters", "message": "snapshot is required"}
    try:
        counts = await service.import_snapshot(snapshot)
    except LedgerError as exc:
        logger.warning(f"Snapshot import rejected: {exc}")
        return failure(exc)
    return {"success": True, "counts": counts}


@app.post("/db/sync-to-sheets")
async def sync_to_sheets(request: Request):
    body = await _json_body(request)
    if not _is_admin(request, body):
        return _unauthorized()
    return await sheets.sync_all(service.ledger.snapshot())


# ── Export ───────────────────────────────────────────────────────────────────

def _collection_rows(collection: str) -> list[dict[str, Any]]:
    if collection not in COLLECTIONS:
        raise HTTPException(status_code=404, detail=f"Unknown collection: {collection}")
    return service.ledger.snapshot()[collection]


@app.get("/export/csv/{collection}")
async def export_csv(request: Request, collection: str):
    if not _is_admin(request):
        return _unauthorized()
    rows = _collection_rows(collection)
    return Response(
        content=to_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{collection}.csv"'},
    )


@app.get("/export/xlsx/{collection}")
async def export_xlsx(request: Request, collection: str):
    if not _is_admin(request):
        return _unauthorized()
    rows = _collection_rows(collection)
    return Response(
        content=to_xlsx(SHEET_NAMES[collection], rows),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{collection}.xlsx"'},
    )


# ── Live events ──────────────────────────────────────────────────────────────

@app.websocket("/ws")
async def events(websocket: WebSocket):
    await broadcaster.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await broadcaster.disconnect(websocket)
