import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from studio_api.database.tenant_connection import get_current_tenant
from studio_api.dependencies import (
    get_auth_service,
    get_email_service,
    get_password_reset_service,
    get_referral_service,
    require_user,
)
from studio_api.exceptions import StudioError
from studio_api.schemas import (
    LoginPayload,
    PasswordResetConfirm,
    PasswordResetRequest,
    ReferralTrackPayload,
    RegisterPayload,
    parse_payload,
)
from studio_api.security.route_access import get_default_redirect
from studio_api.security.session_claims import (
    ADMIN_ROLE,
    CLIENT_ROLE,
    clear_session_claims,
    get_session_user_id,
    set_session_claims,
)
from studio_api.services.auth_service import AuthService
from studio_api.services.email_service import EmailService
from studio_api.services.password_reset_service import PasswordResetService
from studio_api.services.referral_service import ReferralService
from studio_api.utils import read_json_body

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/api/login")
async def api_login(request: Request, auth: AuthService = Depends(get_auth_service)):
    payload = parse_payload(LoginPayload, await read_json_body(request))
    user = auth.authenticate(payload.email, payload.password)
    if user is None:
        logger.info(f"Failed login for {payload.email}")
        return JSONResponse({"error": "Invalid email or password"}, status_code=401)

    role = auth.get_user_role(user.id)
    if not role:
        return JSONResponse({"error": "User role not found"}, status_code=403)

    set_session_claims(
        request.session,
        tenant=get_current_tenant(),
        role=role,
        user_id=user.id,
        email=user.email,
    )
    return JSONResponse(
        {
            "ok": True,
            "user": auth.user_to_dict(user),
            "role": role,
            "redirect": get_default_redirect(role),
        }
    )


@router.post("/api/register")
async def api_register(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
    referrals: ReferralService = Depends(get_referral_service),
    email: EmailService = Depends(get_email_service),
):
    payload = parse_payload(RegisterPayload, await read_json_body(request))
    try:
        result = auth.register_client(
            email=payload.email,
            password=payload.password,
            first_name=payload.first_name,
            last_name=payload.last_name,
            phone=payload.phone,
            referral_code=payload.referral_code,
        )
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in /api/register")
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    user_id = result["user"]["id"]
    referral = None
    if payload.referral_code:
        try:
            referral = referrals.track(
                ReferralTrackPayload(referral_code=payload.referral_code, referred_user_id=user_id),
                user_id=user_id,
            )
        except StudioError as e:
            logger.warning(f"Referral code {payload.referral_code} not recorded for user {user_id}: {e.message}")

    email.send_welcome(payload.email, payload.first_name)

    set_session_claims(
        request.session,
        tenant=get_current_tenant(),
        role=CLIENT_ROLE,
        user_id=user_id,
        email=result["user"]["email"],
    )
    body: Dict[str, Any] = {
        "ok": True,
        "user": result["user"],
        "client_id": result["client_id"],
        "role": CLIENT_ROLE,
        "redirect": get_default_redirect(CLIENT_ROLE),
    }
    if referral is not None:
        body["referral"] = referral
    return JSONResponse(body, status_code=201)


@router.post("/api/logout")
async def api_logout(request: Request):
    clear_session_claims(request.session)
    return JSONResponse({"ok": True})


@router.get("/api/auth/me")
async def api_auth_me(
    current: Dict[str, Any] = Depends(require_user),
    auth: AuthService = Depends(get_auth_service),
):
    user = current["user"]
    return JSONResponse(
        {
            "user": auth.user_to_dict(user),
            "role": current["role"],
            "profile": auth.get_profile(user, current["role"]),
        }
    )


@router.post("/api/auth/reset-password")
async def api_reset_password_request(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
    resets: PasswordResetService = Depends(get_password_reset_service),
    email: EmailService = Depends(get_email_service),
):
    payload = parse_payload(PasswordResetRequest, await read_json_body(request))

    if payload.is_admin_reset:
        caller_id = get_session_user_id(request.session)
        if not caller_id or auth.get_user(caller_id) is None:
            return JSONResponse({"error": "Not authenticated"}, status_code=401)
        if auth.get_user_role(caller_id) != ADMIN_ROLE:
            return JSONResponse(
                {"error": "Admin privileges required for admin-initiated password reset"}, status_code=403
            )
        link = resets.admin_reset_link(email=payload.email, user_id=payload.user_id)
        logger.info(f"Admin {caller_id} generated a password reset link")
        return JSONResponse({"message": "Password reset link generated successfully", "resetLink": link})

    # Same answer whether or not the account exists
    message = {"message": "If an account exists for this email, a password reset link has been sent"}
    user = resets.resolve_user(email=payload.email, user_id=payload.user_id)
    if user is None:
        logger.info("Password reset requested for an unknown account")
        return JSONResponse(message)
    link = resets.reset_link(resets.issue_token(user))
    try:
        email.send_password_reset(user.email, user.first_name, link)
    except Exception as e:
        logger.error(f"Error sending password reset email to user {user.id}: {e}")
        return JSONResponse({"error": "Failed to send password reset email"}, status_code=500)
    return JSONResponse(message)


@router.put("/api/auth/reset-password")
async def api_reset_password_confirm(
    request: Request,
    resets: PasswordResetService = Depends(get_password_reset_service),
):
    payload = parse_payload(PasswordResetConfirm, await read_json_body(request))
    try:
        resets.reset_password(payload.token, payload.password)
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in PUT /api/auth/reset-password")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return JSONResponse({"message": "Password updated successfully"})
