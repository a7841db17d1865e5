from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from pawtrack.auth import SESSION_USER_KEY, check_credentials, session_user
from pawtrack.config import Settings, get_settings
from pawtrack.schemas import LoginRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.post("/login")
async def login(payload: LoginRequest, request: Request, settings: Settings = Depends(get_settings)):
    if not payload.username or not payload.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username and password required")
    if not check_credentials(settings, payload.username, payload.password):
        logger.warning("Failed login for %s", payload.username)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    request.session[SESSION_USER_KEY] = payload.username
    return {"success": True, "username": payload.username}


@router.post("/logout")
async def logout(request: Request):
    request.session.clear()
    return {"success": True}


@router.get("/auth/check")
async def auth_check(request: Request):
    username = session_user(request)
    if username:
        return {"authenticated": True, "username": username}
    return {"authenticated": False}
