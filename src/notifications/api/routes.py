"""FastAPI routes for the Notifications service.

Thin adapters that translate HTTP requests into orchestrator calls.
No business logic: just schema→orchestrator→response translation.

The orchestrator lives on ``app.state.orchestrator``; ``app.py`` builds it
at startup and tests attach their own.
"""

import asyncio
import json
from datetime import date

import structlog
from fastapi import APIRouter, Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from notifications.api.schemas import (
    BulkNotificationRequest,
    BulkNotificationResponse,
    CreateNotificationRequest,
    CreateTemplateRequest,
    DeliveryAttemptResponse,
    DeliveryStatsResponse,
    DeliveryStatusUpdateRequest,
    DeviceTokenRequest,
    FailedDeliveryListResponse,
    FailedDeliveryResponse,
    HealthResponse,
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    PreferencesResponse,
    ProcessScheduledRequest,
    ProcessScheduledResponse,
    StatusResponse,
    TemplateResponse,
    UnreadCountResponse,
    UpdateTemplateRequest,
)
from notifications.domain import notifications
from notifications.errors import InvalidTransition, RateLimitExceeded
from notifications.orchestrator import NotificationOrchestrator
from notifications.preference.patch import PreferencesPatch
from notifications.realtime.fanout import UNREAD_COUNT
from notifications.realtime.sessions import WebSocketSession
from protean.exceptions import ObjectNotFoundError, ValidationError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def get_orchestrator(request: Request) -> NotificationOrchestrator:
    return request.app.state.orchestrator


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------
@router.post("", status_code=201, response_model=NotificationResponse)
async def create_notification(
    body: CreateNotificationRequest,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> NotificationResponse:
    """Create a notification and deliver it unless it is scheduled."""
    notification = orchestrator.create_and_send(
        user_id=body.user_id,
        category=body.category,
        title=body.title,
        message=body.message,
        template_id=body.template_id,
        data=body.data,
        scheduled_for=body.scheduled_for,
        send_immediately=body.send_immediately,
    )
    return NotificationResponse.from_aggregate(notification)


@router.post("/bulk", status_code=201, response_model=BulkNotificationResponse)
async def create_bulk_notifications(
    body: BulkNotificationRequest,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> BulkNotificationResponse:
    """Send the same notification to many users. Rate-limited users are skipped."""
    created = orchestrator.send_bulk(
        body.user_ids,
        body.category,
        body.title,
        body.message,
        template_id=body.template_id,
        data=body.data,
        scheduled_for=body.scheduled_for,
    )
    return BulkNotificationResponse(created=len(created), notification_ids=[str(n.id) for n in created])


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}", response_model=NotificationListResponse)
async def list_notifications(
    user_id: str,
    category: str | None = None,
    status: str | None = None,
    unread_only: bool = False,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> NotificationListResponse:
    page = orchestrator.get_notifications(
        user_id, category=category, status=status, unread_only=unread_only, limit=limit, offset=offset
    )
    return NotificationListResponse(
        items=[NotificationResponse.from_aggregate(n) for n in page["items"]],
        total=page["total"],
        limit=page["limit"],
        offset=page["offset"],
    )


@router.get("/users/{user_id}/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    user_id: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> UnreadCountResponse:
    return UnreadCountResponse(user_id=user_id, unread_count=orchestrator.get_unread_count(user_id))


@router.post("/users/{user_id}/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    user_id: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> MarkAllReadResponse:
    return MarkAllReadResponse(marked=orchestrator.mark_all_as_read(user_id))


@router.post("/users/{user_id}/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    user_id: str,
    notification_id: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> NotificationResponse:
    return NotificationResponse.from_aggregate(orchestrator.mark_as_read(user_id, notification_id))


@router.delete("/users/{user_id}/{notification_id}", response_model=StatusResponse)
async def delete_notification(
    user_id: str,
    notification_id: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> StatusResponse:
    orchestrator.delete_notification(user_id, notification_id)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Deliveries
# ---------------------------------------------------------------------------
@router.get("/deliveries/failed", response_model=FailedDeliveryListResponse)
async def list_failed_deliveries(
    channel: str | None = None,
    permanent: bool | None = None,
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> FailedDeliveryListResponse:
    """Failed attempts awaiting a retry, or given up on when ``permanent`` is true."""
    page = orchestrator.get_failed_deliveries(channel=channel, permanent=permanent, limit=limit, offset=offset)
    return FailedDeliveryListResponse(
        items=[FailedDeliveryResponse.from_projection(f) for f in page["items"]],
        total=page["total"],
        limit=page["limit"],
        offset=page["offset"],
    )


@router.post("/deliveries/{delivery_id}/status", response_model=DeliveryAttemptResponse)
async def update_delivery_status(
    delivery_id: str,
    body: DeliveryStatusUpdateRequest,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> DeliveryAttemptResponse:
    """Provider callback: delivered, opened, clicked, bounced or failed."""
    attempt = orchestrator.update_delivery_status(
        delivery_id, body.status, body.model_dump(exclude={"status"}, exclude_none=True)
    )
    return DeliveryAttemptResponse.from_aggregate(attempt)


@router.post("/deliveries/{delivery_id}/retry", response_model=DeliveryAttemptResponse)
async def retry_delivery(
    delivery_id: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> DeliveryAttemptResponse:
    return DeliveryAttemptResponse.from_aggregate(orchestrator.retry_delivery(delivery_id))


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------
@router.get("/preferences/{user_id}", response_model=PreferencesResponse)
async def get_preferences(
    user_id: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> PreferencesResponse:
    """Get a user's preferences, creating defaults on first access."""
    return PreferencesResponse.from_aggregate(orchestrator.get_user_preferences(user_id))


@router.patch("/preferences/{user_id}", response_model=PreferencesResponse)
async def update_preferences(
    user_id: str,
    body: PreferencesPatch,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> PreferencesResponse:
    return PreferencesResponse.from_aggregate(orchestrator.update_user_preferences(user_id, body))


@router.post("/preferences/{user_id}/device-tokens", status_code=201, response_model=PreferencesResponse)
async def add_device_token(
    user_id: str,
    body: DeviceTokenRequest,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> PreferencesResponse:
    return PreferencesResponse.from_aggregate(orchestrator.add_device_token(user_id, body.token))


@router.delete("/preferences/{user_id}/device-tokens/{token}", response_model=PreferencesResponse)
async def remove_device_token(
    user_id: str,
    token: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> PreferencesResponse:
    return PreferencesResponse.from_aggregate(orchestrator.remove_device_token(user_id, token))


@router.post("/preferences/{user_id}/unsubscribe/{category}", response_model=PreferencesResponse)
async def unsubscribe_from_category(
    user_id: str,
    category: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> PreferencesResponse:
    return PreferencesResponse.from_aggregate(orchestrator.unsubscribe_from_category(user_id, category))


@router.post("/preferences/{user_id}/subscribe/{category}", response_model=PreferencesResponse)
async def subscribe_to_category(
    user_id: str,
    category: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> PreferencesResponse:
    return PreferencesResponse.from_aggregate(orchestrator.subscribe_to_category(user_id, category))


@router.post("/preferences/{user_id}/unsubscribe-all", response_model=PreferencesResponse)
async def unsubscribe_from_all(
    user_id: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> PreferencesResponse:
    return PreferencesResponse.from_aggregate(orchestrator.unsubscribe_from_all(user_id))


@router.post("/preferences/{user_id}/verify-email", response_model=PreferencesResponse)
async def verify_email(
    user_id: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> PreferencesResponse:
    return PreferencesResponse.from_aggregate(orchestrator.verify_email(user_id))


@router.post("/preferences/{user_id}/verify-phone", response_model=PreferencesResponse)
async def verify_phone(
    user_id: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> PreferencesResponse:
    return PreferencesResponse.from_aggregate(orchestrator.verify_phone(user_id))


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------
@router.post("/templates", status_code=201, response_model=TemplateResponse)
async def create_template(
    body: CreateTemplateRequest,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> TemplateResponse:
    template = orchestrator.create_template(
        code=body.code,
        name=body.name,
        category=body.category,
        content=body.content(),
        variables=body.variables,
        default_data=body.default_data,
        enabled=body.enabled,
    )
    return TemplateResponse.from_aggregate(template)


@router.get("/templates", response_model=list[TemplateResponse])
async def list_templates(
    category: str | None = None,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> list[TemplateResponse]:
    return [TemplateResponse.from_aggregate(t) for t in orchestrator.list_templates(category)]


@router.get("/templates/code/{code}", response_model=TemplateResponse)
async def get_template_by_code(
    code: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> TemplateResponse:
    return TemplateResponse.from_aggregate(orchestrator.get_template_by_code(code))


@router.get("/templates/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> TemplateResponse:
    return TemplateResponse.from_aggregate(orchestrator.get_template_by_id(template_id))


@router.patch("/templates/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: str,
    body: UpdateTemplateRequest,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> TemplateResponse:
    template = orchestrator.update_template(template_id, body.model_dump(exclude_none=True))
    return TemplateResponse.from_aggregate(template)


@router.delete("/templates/{template_id}", response_model=StatusResponse)
async def delete_template(
    template_id: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> StatusResponse:
    orchestrator.delete_template(template_id)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------
@router.get("/analytics/summary")
async def analytics_summary(
    date_from: date | None = None,
    date_to: date | None = None,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> dict:
    return orchestrator.get_analytics_summary(date_from, date_to)


@router.get("/analytics/categories")
async def analytics_by_category(
    date_from: date | None = None,
    date_to: date | None = None,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> dict:
    return orchestrator.get_category_breakdown(date_from, date_to)


@router.get("/analytics")
async def analytics_rows(
    date_from: date | None = None,
    date_to: date | None = None,
    category: str | None = None,
    channel: str | None = None,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> list[dict]:
    rows = orchestrator.get_analytics(date_from, date_to, category, channel)
    return [row.to_dict() for row in rows]


# ---------------------------------------------------------------------------
# Maintenance: periodic background job endpoints
# ---------------------------------------------------------------------------
@router.post("/maintenance/process-scheduled", response_model=ProcessScheduledResponse)
async def process_scheduled_notifications(
    body: ProcessScheduledRequest | None = None,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> ProcessScheduledResponse:
    """Release due scheduled/deferred notifications and retry due deliveries.

    Called periodically by ``server.py`` or an external scheduler.
    """
    result = orchestrator.process_scheduled(body.as_of if body else None)
    return ProcessScheduledResponse(**result)


@router.get("/health", response_model=HealthResponse)
async def health(orchestrator: NotificationOrchestrator = Depends(get_orchestrator)):
    checks = orchestrator.health_details()
    healthy = all(checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content=HealthResponse(status="ok" if healthy else "degraded", checks=checks).model_dump(),
    )


# ---------------------------------------------------------------------------
# Single notification
# ---------------------------------------------------------------------------
@router.post("/{notification_id}/send", response_model=NotificationResponse)
async def send_notification(
    notification_id: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> NotificationResponse:
    """Dispatch a notification created with ``send_immediately=false``."""
    return NotificationResponse.from_aggregate(orchestrator.send_now(notification_id))


@router.get("/{notification_id}/deliveries", response_model=list[DeliveryAttemptResponse])
async def list_deliveries(
    notification_id: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> list[DeliveryAttemptResponse]:
    return [DeliveryAttemptResponse.from_aggregate(a) for a in orchestrator.get_delivery_attempts(notification_id)]


@router.get("/{notification_id}/deliveries/stats", response_model=DeliveryStatsResponse)
async def delivery_stats(
    notification_id: str,
    orchestrator: NotificationOrchestrator = Depends(get_orchestrator),
) -> DeliveryStatsResponse:
    return DeliveryStatsResponse(**orchestrator.get_delivery_stats(notification_id))


# ---------------------------------------------------------------------------
# Real-time stream
# ---------------------------------------------------------------------------
SOCKET_REPLIES = {
    "subscribe": "subscribed",
    "mark_as_read": "notification_read",
    "mark_all_as_read": "all_notifications_read",
    "delete_notification": "notification_deleted",
    "get_unread_count": "unread_count",
}


async def _forward(websocket: WebSocket, session: WebSocketSession) -> None:
    while True:
        await websocket.send_json(await session.queue.get())


def _perform(orchestrator: NotificationOrchestrator, user_id: str, action: str, frame: dict) -> dict:
    """Run one client action for ``user_id`` and return the reply payload."""
    if action == "subscribe":
        if str(frame.get("user_id", user_id)) != user_id:
            raise ValidationError({"user_id": ["Cannot subscribe to another user's notifications"]})
        return {"user_id": user_id}
    if action == "mark_as_read":
        notification = orchestrator.mark_as_read(user_id, _required(frame, "notification_id"))
        return {"notification_id": str(notification.id), "success": True}
    if action == "mark_all_as_read":
        return {"marked": orchestrator.mark_all_as_read(user_id), "success": True}
    if action == "delete_notification":
        notification_id = _required(frame, "notification_id")
        orchestrator.delete_notification(user_id, notification_id)
        return {"notification_id": notification_id, "success": True}
    return {"unread_count": orchestrator.get_unread_count(user_id)}


def _required(frame: dict, field: str) -> str:
    value = frame.get(field)
    if not value:
        raise ValidationError({field: ["is required"]})
    return str(value)


def _error(message: str, action: str | None = None, errors: dict | None = None) -> dict:
    payload = {"message": message}
    if errors:
        payload["errors"] = errors
    return {"type": "error", "action": action, "payload": payload}


def _handle_frame(orchestrator: NotificationOrchestrator, user_id: str, text: str) -> dict:
    try:
        frame = json.loads(text)
    except ValueError:
        return _error("Frames must be JSON objects")
    if not isinstance(frame, dict):
        return _error("Frames must be JSON objects")

    action = frame.get("action")
    if not isinstance(action, str) or action not in SOCKET_REPLIES:
        return _error(f"Unknown action: {action}", action=action if isinstance(action, str) else None)

    try:
        with notifications.domain_context():
            payload = _perform(orchestrator, user_id, action, frame)
    except ObjectNotFoundError as exc:
        return _error("Notification not found", action=action, errors=exc.messages)
    except ValidationError as exc:
        return _error("Invalid request", action=action, errors=exc.messages)

    return {"type": SOCKET_REPLIES[action], "action": action, "user_id": user_id, "payload": payload}


@router.websocket("/ws/{user_id}")
async def notification_stream(websocket: WebSocket, user_id: str):
    """Push notification, read and unread-count events to a connected client.

    Clients may also send ``{"action": ..., ...}`` frames (see ``SOCKET_REPLIES``).
    Each one gets a reply frame carrying the same ``action``, or an ``error`` frame.
    """
    orchestrator: NotificationOrchestrator = websocket.app.state.orchestrator
    await websocket.accept()

    session = WebSocketSession(asyncio.get_running_loop())
    orchestrator.sessions.connect(user_id, session)
    writer = asyncio.create_task(_forward(websocket, session))
    try:
        with notifications.domain_context():
            count = orchestrator.get_unread_count(user_id)
        session.deliver({"type": UNREAD_COUNT, "user_id": user_id, "payload": {"unread_count": count}})
        while True:
            text = await websocket.receive_text()
            reply = _handle_frame(orchestrator, user_id, text)
            if reply["type"] == "error":
                logger.warning("Socket action rejected", user_id=user_id, action=reply["action"])
            session.deliver(reply)
    except WebSocketDisconnect:
        pass
    finally:
        writer.cancel()
        orchestrator.sessions.disconnect(user_id, session)


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------
def register_notification_error_handlers(app: FastAPI) -> None:
    """Map orchestration errors not covered by Protean's handlers."""

    @app.exception_handler(RateLimitExceeded)
    async def _rate_limited(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"error": str(exc)},
            headers={"Retry-After": str(exc.window_seconds)},
        )

    @app.exception_handler(InvalidTransition)
    async def _invalid_transition(request: Request, exc: InvalidTransition):
        return JSONResponse(status_code=409, content={"error": exc.messages})
