"""
Static role-to-route table.

Every ``/api/`` request is checked against these tables before it reaches a
router; handlers then re-check the role against the database.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional

from studio_api.security.session_claims import (
    ADMIN_ROLE,
    CLIENT_ROLE,
    STAFF_ROLES,
    TRAINER_ROLE,
    normalize_role,
)


@dataclass(frozen=True)
class RouteAccess:
    allowed: bool
    requires_auth: bool
    redirect_to: Optional[str] = None
    reason: Optional[str] = None


PUBLIC_ROUTES = (
    "/login",
    "/register",
    "/register-trainer",
    "/auth/forgot-password",
    "/auth/reset-password",
    "/auth/confirm",
)

PUBLIC_API_ROUTES = (
    "/api/login",
    "/api/register",
    "/api/stripe/webhook",
    "/api/community-events/public",
    "/api/referrals/validate",
    "/api/auth/reset-password",
    "/api/trainer-applications/apply",
    "/api/service-packages",
)

# Open to every authenticated role; the handler decides what the caller sees
SHARED_ROUTES = (
    "/api/community-events/[id]/register",
    "/api/community-events/registrations",
    "/api/set-progress",
    "/api/training-instructions",
    "/api/training-instructions/[id]",
    "/api/stripe/create-invoice-payment",
    "/api/client/points",
)

ADMIN_ONLY_ROUTES = (
    "/dashboard/invoices",
    "/dashboard/subscriptions",
    "/dashboard/trainer-applications",
    "/api/stripe",
    "/api/trainer-applications",
)

STAFF_ROUTES = (
    "/dashboard",
    "/trainer",
    "/api/dashboard",
    "/api/classes",
    "/api/clients",
    "/api/attendance",
    "/api/trainers",
    "/api/trainer-availability",
    "/api/enrollments",
    "/api/invoices",
    "/api/trainer/add-client",
    "/api/send-client-reminder",
    "/api/send-expiry-alert",
    "/api/subscriptions",
    "/api/community-events",
    "/api/admin",
)

CLIENT_ROUTES = (
    "/account",
    "/client",
    "/api/account",
    "/api/client",
    "/api/weight-tracker",
)

AUTHENTICATED_ROUTES = (
    "/api/auth",
    "/api/auth/me",
    "/api/logout",
    "/api/referrals",
)

_DEFAULT_REDIRECTS = {
    CLIENT_ROLE: "/client",
    TRAINER_ROLE: "/trainer",
    ADMIN_ROLE: "/dashboard",
}


@lru_cache(maxsize=256)
def _pattern_regex(route: str) -> "re.Pattern[str]":
    escaped = re.escape(route)
    # re.escape turns "[id]" into "\[id\]"
    return re.compile("^" + re.sub(r"\\\[[^\]]+\\\]", "[^/]+", escaped) + "$")


def matches_route(pathname: str, route: str) -> bool:
    """Bracket segments match one path segment; plain routes match by prefix."""
    if "[" in route:
        return bool(_pattern_regex(route).match(pathname))
    return pathname == route or pathname.startswith(route.rstrip("/") + "/")


def _matches_any(pathname: str, routes: Iterable[str]) -> bool:
    return any(matches_route(pathname, r) for r in routes)


def get_default_redirect(role: Optional[str]) -> str:
    return _DEFAULT_REDIRECTS.get(normalize_role(role), "/login")


def is_public_route(pathname: str) -> bool:
    return _matches_any(pathname, PUBLIC_ROUTES) or _matches_any(pathname, PUBLIC_API_ROUTES)


def is_api_route(pathname: str) -> bool:
    return pathname == "/api" or pathname.startswith("/api/")


def check_route_access(pathname: str, role: Optional[str]) -> RouteAccess:
    """Decide whether a caller holding ``role`` may reach ``pathname``."""
    role = normalize_role(role)

    if is_public_route(pathname):
        return RouteAccess(allowed=True, requires_auth=False)

    if not role:
        return RouteAccess(
            allowed=False,
            requires_auth=True,
            redirect_to="/login",
            reason="Authentication required",
        )

    if _matches_any(pathname, SHARED_ROUTES):
        return RouteAccess(allowed=True, requires_auth=True)

    if _matches_any(pathname, ADMIN_ONLY_ROUTES):
        if role != ADMIN_ROLE:
            return RouteAccess(
                allowed=False,
                requires_auth=True,
                redirect_to=get_default_redirect(role),
                reason="Admin access required",
            )
        return RouteAccess(allowed=True, requires_auth=True)

    if _matches_any(pathname, STAFF_ROUTES):
        if role not in STAFF_ROLES:
            return RouteAccess(
                allowed=False,
                requires_auth=True,
                redirect_to="/client",
                reason="Staff access required",
            )
        return RouteAccess(allowed=True, requires_auth=True)

    if _matches_any(pathname, CLIENT_ROUTES):
        if role != CLIENT_ROLE:
            return RouteAccess(
                allowed=False,
                requires_auth=True,
                redirect_to=get_default_redirect(role),
                reason="Client access required",
            )
        return RouteAccess(allowed=True, requires_auth=True)

    if _matches_any(pathname, AUTHENTICATED_ROUTES):
        return RouteAccess(allowed=True, requires_auth=True)

    return RouteAccess(
        allowed=False,
        requires_auth=True,
        redirect_to=get_default_redirect(role),
        reason="Route not permitted for role",
    )
