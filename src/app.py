"""Notifications FastAPI application.

Web server for the notification delivery orchestrator. Each request under
``/notifications`` is wrapped in the notifications domain context.

Usage:
    uvicorn app:app --app-dir src --host 0.0.0.0 --port 8000 --reload
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from notifications.config import get_settings
from notifications.domain import notifications
from notifications.utils.logging import configure_logging
from protean.integrations.fastapi import register_exception_handlers

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
configure_logging(instance_id=get_settings().instance_id)
notifications.init()

from notifications.api.routes import register_notification_error_handlers, router  # noqa: E402
from notifications.bootstrap import build_orchestrator  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    orchestrator = build_orchestrator()
    app.state.orchestrator = orchestrator
    try:
        yield
    finally:
        orchestrator.close()


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Notifications API",
    description="Multi-channel notification delivery: email, push, in-app and SMS",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the notifications domain context for API requests."""
    if request.url.path.startswith("/notifications"):
        with notifications.domain_context():
            response = await call_next(request)
        return response
    # No domain match: pass through (health check, docs, etc.)
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(router)
register_exception_handlers(app)
register_notification_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health(request: Request):
    orchestrator = request.app.state.orchestrator
    healthy = orchestrator.health_check()
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "ok" if healthy else "degraded",
            "domain": notifications.name,
            "instance_id": orchestrator.settings.instance_id,
            "connected_users": len(orchestrator.sessions.connected_users()),
        },
    )
