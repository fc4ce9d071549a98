from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.core.config import Settings
from app.services.client_session import ClientSession, SessionRegistry
from .deps import find_client_session, get_app_settings, get_registry

router = APIRouter(prefix="/session", tags=["session"])

ActivityKind = Literal["pointer-move", "key-press", "scroll", "touch-start"]


class ActivityIn(BaseModel):
    kind: ActivityKind


class SessionStatus(BaseModel):
    signed_in: bool
    idle_timeout_seconds: float
    expires_in_seconds: Optional[float] = None


@router.post("/activity", response_model=SessionStatus, summary="Report a user interaction")
async def record_activity(
    payload: ActivityIn,
    session: Optional[ClientSession] = Depends(find_client_session),
    settings: Settings = Depends(get_app_settings),
):
    """Restart the inactivity countdown (page sends these, throttled, on input).

    An unknown or expired session reports `signed_in: false` and is not revived.
    """
    if session is None:
        return SessionStatus(
            signed_in=False, idle_timeout_seconds=settings.session_idle_timeout_seconds
        )
    session.record_activity(payload.kind)
    return SessionStatus(
        signed_in=session.user is not None,
        idle_timeout_seconds=settings.session_idle_timeout_seconds,
        expires_in_seconds=session.monitor.seconds_remaining(),
    )


@router.post("/teardown", status_code=204, summary="Page is closing")
async def teardown(
    session: Optional[ClientSession] = Depends(find_client_session),
    registry: SessionRegistry = Depends(get_registry),
):
    """Best-effort sign-out beacon sent on page unload.

    Unknown or missing sessions are ignored; the response is always 204.
    """
    if session is not None:
        session.teardown()
        registry.discard(session.id)
    return None
