"""Shared request dependencies: client session lookup and auth guard.

Dependencies are async so session start-up (timers, live queries) runs on the
application's event loop rather than in the threadpool.

Only `get_client_session` creates a client session (and its cookie); it backs
the sign-up / sign-in routes. Everything else looks the session up and treats
a missing one as signed out.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Request

from app.backend.base import AuthUser
from app.core.config import Settings
from app.core.errors import ApiError
from app.core.logging import bind_session_id
from app.services.client_session import ClientSession, SessionRegistry


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


async def find_client_session(
    request: Request, registry: SessionRegistry = Depends(get_registry)
) -> Optional[ClientSession]:
    settings: Settings = request.app.state.settings
    return registry.get(request.cookies.get(settings.session_cookie_name))


async def get_client_session(
    request: Request,
    registry: SessionRegistry = Depends(get_registry),
    existing: Optional[ClientSession] = Depends(find_client_session),
) -> ClientSession:
    """Return the caller's client session, creating one (and its cookie) if needed."""
    if existing is not None:
        return existing
    session = registry.create()
    request.state.issued_session_id = session.id
    bind_session_id(session.id)
    return session


async def require_session(
    session: Optional[ClientSession] = Depends(find_client_session),
) -> ClientSession:
    if session is None or session.user is None:
        raise ApiError(401, "not_authenticated", "Please sign in.")
    return session


async def require_user(session: ClientSession = Depends(require_session)) -> AuthUser:
    return session.user  # type: ignore[return-value]
