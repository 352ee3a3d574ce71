"""
WebSocket endpoint for live record pages.

Accepts connections at /ws/records/{kind}. Each connection owns one Page
Controller: the server pushes a fresh view on every change and the client
sends view changes and mutations.

Protocol:
  server → {"type": "records.view", "records": [...], "total_count", "page", "page_count", ...}
  server → {"type": "store.error", "message": "..."} / {"type": "store.ok"}
  server → {"type": "toast", "message": "...", "variant": "..."}
  server → {"type": "mutate.result", "request_id": ..., "ok": bool, ...}
  server → {"type": "error", "request_id": ..., "error": "..."}  (mutation could not complete)
  server → {"type": "analytics", "data": {...}}
  client → {"type": "view", "filters": {...}, "sort": {"column", "direction"}, "page": n, "reset": bool}
  client → {"type": "mutate", "op": "create|update|delete", "id": ..., "payload": {...}, "request_id": ...}
  client → {"type": "analytics", "filtered": bool}
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder

from backend.auth import session_from_token
from backend.models.gateway import GatewayProtocolError
from backend.models.session import SessionContext
from backend.services.action_gateway import ActionGateway
from backend.services.page_controller import PageController, SubmitResult
from backend.services.record_kinds import UnknownRecordKind, get_kind

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])

# Close codes in the application range
CLOSE_UNAUTHENTICATED = 4401
CLOSE_UNKNOWN_KIND = 4404


def _session_from_websocket(websocket: WebSocket) -> SessionContext | None:
    """Session from the cookie, or None when missing or invalid."""
    token = websocket.cookies.get("session")
    if not token:
        return None
    try:
        return session_from_token(token)
    except HTTPException:
        return None


class _QueueNotifier:
    """Notifier that turns toasts and banners into outgoing messages."""

    def __init__(self, outbox: asyncio.Queue):
        self.outbox = outbox

    def toast(self, message: str, *, variant: str = "default") -> None:
        self.outbox.put_nowait({"type": "toast", "message": message, "variant": variant})

    def banner(self, message: str | None) -> None:
        if message:
            self.outbox.put_nowait({"type": "store.error", "message": message})
        else:
            self.outbox.put_nowait({"type": "store.ok"})


def view_message(controller: PageController) -> dict[str, Any]:
    view = controller.view()
    state = controller.view_state
    return {
        "type": "records.view",
        **view.to_dict(),
        "filters": state.filters.values(),
        "sort": {"column": state.sort.column, "direction": state.sort.direction} if state.sort else None,
        "pending": sorted(controller.buffer.edits),
        "loaded": controller.loaded,
        "store_error": controller.store_error.kind if controller.store_error else None,
    }


def _result_message(request_id: Any, result: SubmitResult) -> dict[str, Any]:
    return {
        "type": "mutate.result",
        "request_id": request_id,
        "ok": result.ok,
        "record_id": result.record_id,
        "error_kind": result.error_kind,
        "field_errors": result.field_errors,
        "message": result.message,
    }


def _apply_view(controller: PageController, msg: dict[str, Any]) -> None:
    """
    Apply a view message to the controller's view state.

    Raises:
        KeyError: unknown filter name
        ValueError: malformed sort or page
    """
    state = controller.view_state
    if msg.get("reset"):
        state.reset_filters()
    for name, value in (msg.get("filters") or {}).items():
        state.set_filter(name, value)
    sort = msg.get("sort")
    if sort:
        direction = sort.get("direction")
        if direction not in (None, "asc", "desc"):
            raise ValueError(f"bad sort direction: {direction!r}")
        state.set_sort(sort["column"], direction)
    if "page" in msg:
        state.set_page(int(msg["page"]))
    controller.refresh()


async def _mutate(controller: PageController, msg: dict[str, Any]) -> SubmitResult:
    op = msg.get("op")
    payload = msg.get("payload") or {}
    if op == "create":
        return await controller.submit_create(payload)
    if op == "update":
        return await controller.submit_update(str(msg.get("id", "")), payload)
    if op == "delete":
        return await controller.submit_delete(str(msg.get("id", "")))
    raise ValueError(f"unknown mutate op: {op!r}")


@router.websocket("/ws/records/{kind}")
async def records_websocket(websocket: WebSocket, kind: str) -> None:
    """
    One live record page.

    The controller is mounted after accept and unmounted on disconnect;
    mutations run as tasks so a slow write does not block view changes.
    """
    session = _session_from_websocket(websocket)
    if session is None:
        await websocket.close(code=CLOSE_UNAUTHENTICATED)
        return
    try:
        record_kind = get_kind(kind)
    except UnknownRecordKind:
        await websocket.close(code=CLOSE_UNKNOWN_KIND)
        return

    await websocket.accept()
    logger.info("ws: %s connected to %s", session.user_id, record_kind.name)

    outbox: asyncio.Queue = asyncio.Queue()
    store = websocket.app.state.store
    controller = PageController(
        record_kind,
        store,
        ActionGateway(store),
        session,
        _QueueNotifier(outbox),
        on_change=lambda c: outbox.put_nowait(view_message(c)),
    )

    async def pump() -> None:
        while True:
            message = await outbox.get()
            await websocket.send_text(json.dumps(jsonable_encoder(message)))

    async def run_mutation(msg: dict[str, Any]) -> None:
        request_id = msg.get("request_id")
        try:
            result = await _mutate(controller, msg)
        except ValueError as e:
            outbox.put_nowait({"type": "error", "request_id": request_id, "error": str(e)})
            return
        except GatewayProtocolError as e:
            logger.error("ws: %s mutation returned a malformed result: %s", record_kind.name, e)
            outbox.put_nowait({"type": "error", "request_id": request_id, "error": "Malformed gateway result"})
            return
        except Exception:
            logger.exception("ws: %s mutation %s failed", record_kind.name, request_id)
            outbox.put_nowait({"type": "error", "request_id": request_id, "error": "Mutation failed"})
            return
        outbox.put_nowait(_result_message(request_id, result))

    pump_task = asyncio.create_task(pump())
    mutations: set[asyncio.Task] = set()
    controller.mount()

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                outbox.put_nowait({"type": "error", "error": "Invalid JSON"})
                continue
            if not isinstance(msg, dict):
                outbox.put_nowait({"type": "error", "error": "Expected a JSON object"})
                continue

            msg_type = msg.get("type")
            if msg_type == "view":
                try:
                    _apply_view(controller, msg)
                except (KeyError, ValueError, TypeError) as e:
                    outbox.put_nowait({"type": "error", "error": f"Invalid view change: {e}"})
            elif msg_type == "mutate":
                task = asyncio.create_task(run_mutation(msg))
                mutations.add(task)
                task.add_done_callback(mutations.discard)
            elif msg_type == "analytics":
                outbox.put_nowait({"type": "analytics", "data": controller.analytics(bool(msg.get("filtered")))})
            else:
                outbox.put_nowait({"type": "error", "error": f"Unknown message type: {msg_type}"})

    except WebSocketDisconnect:
        logger.info("ws: %s disconnected from %s", session.user_id, record_kind.name)
    finally:
        controller.unmount()
        for task in list(mutations):
            task.cancel()
        pump_task.cancel()
