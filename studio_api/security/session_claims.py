from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Request


ADMIN_ROLE = "admin"
TRAINER_ROLE = "trainer"
CLIENT_ROLE = "client"

VALID_ROLES = {ADMIN_ROLE, TRAINER_ROLE, CLIENT_ROLE}
STAFF_ROLES = {ADMIN_ROLE, TRAINER_ROLE}


def normalize_role(role: Any) -> str:
    try:
        r = str(role or "").strip().lower()
    except Exception:
        return ""
    return r if r in VALID_ROLES else ""


def parse_int(value: Any) -> Optional[int]:
    try:
        if value is None:
            return None
        return int(value)
    except Exception:
        return None


def get_session_user_id(session: Dict[str, Any]) -> Optional[int]:
    uid = parse_int(session.get("user_id"))
    if uid and uid > 0:
        return uid
    return None


def get_claims(request: Request) -> Dict[str, Any]:
    s = request.session
    role = normalize_role(s.get("role"))
    user_id = get_session_user_id(s)
    tenant = str(s.get("tenant") or "").strip() or None

    return {
        "role": role,
        "user_id": user_id,
        "email": s.get("email"),
        "tenant": tenant,
        "is_authenticated": bool(user_id),
        "is_admin": role == ADMIN_ROLE,
        "is_trainer": role == TRAINER_ROLE,
        "is_client": role == CLIENT_ROLE,
        "is_staff": role in STAFF_ROLES,
    }


def set_session_claims(
    session: Dict[str, Any],
    *,
    tenant: Optional[str] = None,
    role: Optional[str] = None,
    user_id: Optional[int] = None,
    email: Optional[str] = None,
) -> None:
    if tenant is not None:
        session["tenant"] = tenant
    if role is not None:
        session["role"] = normalize_role(role)
    if user_id is not None:
        session["user_id"] = int(user_id)
    if email is not None:
        session["email"] = str(email)


def clear_session_claims(session: Dict[str, Any]) -> None:
    for key in ("user_id", "role", "email"):
        session.pop(key, None)
