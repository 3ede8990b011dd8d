"""Liveness endpoint."""

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["health"])

ALIVE_MESSAGE = "Server is alive and listening..."


@router.get("/", response_class=PlainTextResponse)
async def alive() -> str:
    """Let people check the listener is up."""
    return ALIVE_MESSAGE
