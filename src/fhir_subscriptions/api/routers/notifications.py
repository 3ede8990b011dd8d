"""Subscription notification endpoint.

The FHIR server is acknowledged before the body is looked at, so a slow or
failing interpretation never makes the server wait or retry.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Request, Response

router = APIRouter(tags=["notifications"])


@router.post("/notification")
async def receive_notification(request: Request, background_tasks: BackgroundTasks) -> Response:
    """Accept a notification (application/json or application/fhir+json)."""
    body = await request.body()

    run = getattr(request.app.state, "run", None)
    if run is not None:
        background_tasks.add_task(run.handle_notification, body)

    return Response(status_code=200)
