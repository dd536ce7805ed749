from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import PlainTextResponse

from traffic_coordinator.api.schemas import (
    ChatActionRequest,
    ChatActionResponse,
    OutboxItem,
    OutboxResponse,
)
from traffic_coordinator.chat.interface import ChatInterface, UnknownActionError
from traffic_coordinator.chat.notifier import OutboxNotifier
from traffic_coordinator.coordinator.outcomes import Accepted, RejectedNoSession
from traffic_coordinator.coordinator.session_coordinator import SessionCoordinator
from traffic_coordinator.logging_setup import get_logger

HIT_ACCEPTED_TEXT = "request accepted"
HIT_NO_SESSION_TEXT = "no active session"
HIT_INVALID_PATH_TEXT = "invalid path"

logger = get_logger(__name__)


def _services(request: Request) -> dict[str, Any]:
    return request.app.state.services


def _raw_path(request: Request) -> str:
    # Undecoded request target, so percent-encoded variants never match the secret.
    raw = request.scope.get("raw_path") or request.url.path.encode("utf-8")
    return raw.decode("latin-1").split("?", 1)[0]


def create_status_router() -> APIRouter:
    router = APIRouter(tags=["session"])

    @router.get("/status")
    async def session_status(request: Request) -> dict[str, Any]:
        coordinator: SessionCoordinator = _services(request)["coordinator"]
        snapshot = coordinator.status()
        if snapshot is None:
            return {"status": "no active session"}
        return snapshot.as_status_payload()

    return router


def create_chat_router() -> APIRouter:
    router = APIRouter(prefix="/chat", tags=["chat"])

    @router.post("/actions/{action}", response_model=ChatActionResponse)
    async def chat_action(action: str, payload: ChatActionRequest, request: Request) -> ChatActionResponse:
        chat: ChatInterface = _services(request)["chat"]
        try:
            reply = chat.handle(action, user_id=payload.user_id, display_name=payload.name_or_id())
        except UnknownActionError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return ChatActionResponse(action=action, reply=reply)

    @router.get("/outbox/{recipient_id}", response_model=OutboxResponse)
    async def chat_outbox(recipient_id: int, request: Request) -> OutboxResponse:
        notifier: OutboxNotifier = _services(request)["notifier"]
        return OutboxResponse(
            recipient_id=recipient_id,
            messages=[
                OutboxItem(message_id=item.message_id, text=item.text)
                for item in notifier.messages(recipient_id)
            ],
        )

    return router


def create_hit_router() -> APIRouter:
    """Catch-all GET route; include it after every other router."""
    router = APIRouter(tags=["hits"])

    @router.get("/{requested_path:path}", response_class=PlainTextResponse)
    async def record_hit(requested_path: str, request: Request) -> PlainTextResponse:
        coordinator: SessionCoordinator = _services(request)["coordinator"]
        path = _raw_path(request)
        outcome = coordinator.record_hit(path)
        if isinstance(outcome, Accepted):
            return PlainTextResponse(HIT_ACCEPTED_TEXT, status_code=200)
        if isinstance(outcome, RejectedNoSession):
            logger.debug("Hit rejected (no session) path=%s", path)
            return PlainTextResponse(HIT_NO_SESSION_TEXT, status_code=403)
        logger.debug("Hit rejected (path mismatch) path=%s", path)
        return PlainTextResponse(HIT_INVALID_PATH_TEXT, status_code=403)

    return router
