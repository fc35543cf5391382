"""Authentication routes and session management."""
from __future__ import annotations

import logging
import os

from fastapi import APIRouter, Depends, Form, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from skyyield.auth import User
from skyyield.database import DATABASE_URL, get_session
from skyyield.security import SESSION_MAX_AGE, create_session_token, session_user_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])

SESSION_COOKIE = "skyyield_session"


def _secure_cookies() -> bool:
    configured = os.getenv("SKYYIELD_SECURE_COOKIES")
    if configured is not None:
        return configured.strip().lower() in ("1", "true", "yes")
    # Postgres means a deployed (HTTPS) environment.
    return DATABASE_URL.startswith("postgresql")


@router.post("/login")
def login(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_session),
):
    """Check credentials and set the session cookie."""
    user = db.query(User).filter(User.username == username).first()
    if not user or not user.verify_password(password):
        client_ip = request.client.host if request.client else "unknown"
        logger.warning("Failed login for %r from %s", username, client_ip)
        raise HTTPException(status_code=401, detail="Invalid username or password")

    response = JSONResponse({"success": True, "user": {"id": user.id, "username": user.username, "role": user.role}})
    response.set_cookie(
        key=SESSION_COOKIE,
        value=create_session_token(user.id),
        httponly=True,
        path="/",
        secure=_secure_cookies(),
        samesite="lax",
        max_age=SESSION_MAX_AGE,
    )
    return response


@router.get("/logout")
def logout():
    """Clear the session cookie."""
    response = JSONResponse({"success": True})
    response.delete_cookie(SESSION_COOKIE)
    return response


def get_current_user(request: Request, db: Session = Depends(get_session)) -> User:
    """Dependency to get current authenticated user."""
    token = request.cookies.get(SESSION_COOKIE)

    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")

    user_id = session_user_id(token)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid session")

    user = db.query(User).filter(User.id == user_id).first()

    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    return user


def get_admin_user(user: User = Depends(get_current_user)) -> User:
    """Dependency to ensure user is admin."""
    if not user.is_admin():
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
