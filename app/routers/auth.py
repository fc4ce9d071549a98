from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.backend.base import AuthUser
from app.services.client_session import ClientSession
from .deps import find_client_session, get_client_session

router = APIRouter(prefix="/auth", tags=["auth"])


class Credentials(BaseModel):
    email: str
    password: str


class UserOut(BaseModel):
    uid: str
    email: str


class AuthStatus(BaseModel):
    signed_in: bool
    user: Optional[UserOut] = None


def _status(user: Optional[AuthUser]) -> AuthStatus:
    if user is None:
        return AuthStatus(signed_in=False)
    return AuthStatus(signed_in=True, user=UserOut(uid=user.uid, email=user.email))


@router.post("/sign-up", response_model=AuthStatus, status_code=201, summary="Create an account and sign in")
async def sign_up(payload: Credentials, session: ClientSession = Depends(get_client_session)):
    # BackendError (weak password, email in use, ...) is rendered by the app handler
    user = await session.sign_up(payload.email, payload.password)
    return _status(user)


@router.post("/sign-in", response_model=AuthStatus, summary="Sign in with email and password")
async def sign_in(payload: Credentials, session: ClientSession = Depends(get_client_session)):
    user = await session.sign_in(payload.email, payload.password)
    return _status(user)


@router.post("/sign-out", response_model=AuthStatus, summary="Sign out (idempotent)")
async def sign_out(session: Optional[ClientSession] = Depends(find_client_session)):
    if session is None:
        return _status(None)
    await session.sign_out()
    return _status(session.user)


@router.get("/me", response_model=AuthStatus, summary="Current identity")
async def me(session: Optional[ClientSession] = Depends(find_client_session)):
    return _status(session.user if session is not None else None)
