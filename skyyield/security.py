"""Signed session tokens for the admin cookie."""
from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt

SECRET_KEY = os.getenv("SKYYIELD_SECRET_KEY", "skyyield-dev-secret-change-me")
ALGORITHM = "HS256"
SESSION_MAX_AGE = 86400  # 24 hours


def create_session_token(user_id: int, max_age: int = SESSION_MAX_AGE) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(seconds=max_age),
        "type": "session",
    }
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def decode_session_token(token: str) -> Optional[dict[str, Any]]:
    """Return the token claims, or None when the signature or expiry check fails."""
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("type") != "session":
        return None
    return payload


def session_user_id(token: str | None) -> Optional[int]:
    if not token:
        return None
    payload = decode_session_token(token)
    if payload is None:
        return None
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        return None
