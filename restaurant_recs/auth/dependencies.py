from __future__ import annotations

from typing import Callable

from fastapi import HTTPException, Request

SESSION_KEY = "user"


def get_current_user(request: Request) -> dict | None:
    """Session user ``{id, email, name, role}``, or ``None`` when anonymous."""
    user = request.session.get(SESSION_KEY)
    if not isinstance(user, dict) or "id" not in user:
        return None
    return user


def require_user(request: Request) -> dict:
    user = get_current_user(request)
    if user is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user


def require_role(*roles: str) -> Callable[[Request], dict]:
    """Dependency factory: 401 when anonymous, 403 when the role is not allowed."""

    def dependency(request: Request) -> dict:
        user = require_user(request)
        if user.get("role") not in roles:
            raise HTTPException(status_code=403, detail=f"Requires role: {', '.join(roles)}")
        return user

    return dependency


require_admin = require_role("admin")
