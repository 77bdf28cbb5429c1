from __future__ import annotations

from typing import Any

import bcrypt

from ..recommendations.data_store import EntityStore


def hash_password(plain: str) -> str:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        # Stored value is not a bcrypt hash.
        return False


def authenticate(store: EntityStore, email: str, password: str) -> dict[str, Any] | None:
    """Verify credentials. Returns ``{id, email, name, role}`` or ``None``."""
    record = store.find_user_credentials(email)
    if record is None:
        return None
    user, password_hash = record
    if not verify_password(password, password_hash):
        return None
    store.touch_last_login(user.id)
    return {"id": user.id, "email": user.email, "name": user.name, "role": user.role}
