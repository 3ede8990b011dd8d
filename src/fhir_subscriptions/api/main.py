"""FastAPI application factory for the notification listener."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import ListenerConfig, get_config
from .routers import health_router, notifications_router

if TYPE_CHECKING:
    from ..orchestrator import SubscriptionRun


NOT_FOUND_MESSAGE = "404 - Not Found"


async def not_found_handler(request: Request, exc: StarletteHTTPException) -> PlainTextResponse:
    """Answer unregistered paths and methods with the fixed 404 body."""
    if exc.status_code in (404, 405):
        return PlainTextResponse(NOT_FOUND_MESSAGE, status_code=404)
    return PlainTextResponse(str(exc.detail), status_code=exc.status_code, headers=exc.headers)


def create_app(
    config: ListenerConfig | None = None,
    run: SubscriptionRun | None = None,
) -> FastAPI:
    """Create and configure the listener application.

    Args:
        config: Optional configuration. If None, loads from environment.
        run: Subscription run that receives notifications. Without one,
            notifications are acknowledged and dropped.

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = get_config()

    app = FastAPI(
        title="FHIR Subscriptions Listener",
        description="Receives rest-hook notifications for the subscriptions demo",
        version="0.1.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.run = run

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, not_found_handler)

    app.include_router(health_router)
    app.include_router(notifications_router)

    return app
