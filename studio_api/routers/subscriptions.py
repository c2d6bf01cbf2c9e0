import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from studio_api.dependencies import (
    get_email_service,
    get_subscription_service,
    require_admin,
    require_client,
    require_staff,
)
from studio_api.exceptions import StudioError
from studio_api.pricing import SERVICE_TYPES, packages_by_type
from studio_api.schemas import (
    ExpiryAlertPayload,
    ExpirySweepPayload,
    SubscriptionCreate,
    SubscriptionUpdate,
    parse_payload,
)
from studio_api.security.session_claims import TRAINER_ROLE
from studio_api.services.email_service import EmailService
from studio_api.services.subscription_service import SubscriptionService
from studio_api.utils import read_json_body

router = APIRouter()
logger = logging.getLogger(__name__)


def _trainer_scope(current: Dict[str, Any]) -> Optional[int]:
    return current["id"] if current["role"] == TRAINER_ROLE else None


@router.get("/api/service-packages")
async def api_service_packages(service_type: Optional[str] = Query(None, alias="type")):
    if service_type and service_type not in SERVICE_TYPES:
        return JSONResponse({"error": f"Unknown service type: {service_type}"}, status_code=400)
    return JSONResponse(
        {"types": SERVICE_TYPES, "packages": [p.to_dict() for p in packages_by_type(service_type)]}
    )


@router.get("/api/subscriptions")
async def api_subscriptions_list(
    status: Optional[str] = Query(None),
    client_id: Optional[int] = Query(None),
    current: Dict[str, Any] = Depends(require_staff),
    svc: SubscriptionService = Depends(get_subscription_service),
):
    return JSONResponse(
        svc.list_subscriptions(status=status, client_id=client_id, trainer_user_id=_trainer_scope(current))
    )


@router.post("/api/subscriptions")
async def api_subscriptions_create(
    request: Request,
    _current: Dict[str, Any] = Depends(require_admin),
    svc: SubscriptionService = Depends(get_subscription_service),
):
    payload = parse_payload(SubscriptionCreate, await read_json_body(request))
    try:
        return JSONResponse(svc.create_subscription(payload), status_code=201)
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/subscriptions")
        return JSONResponse({"error": "Failed to create subscription"}, status_code=500)


@router.post("/api/subscriptions/expiry-alerts")
async def api_subscriptions_expiry_alerts(
    request: Request,
    _current: Dict[str, Any] = Depends(require_admin),
    svc: SubscriptionService = Depends(get_subscription_service),
):
    body = await request.body()
    payload = parse_payload(ExpirySweepPayload, await read_json_body(request) if body else {})
    return JSONResponse(svc.send_expiry_alerts(within_days=payload.within_days))


@router.get("/api/subscriptions/{subscription_id}")
async def api_subscription_get(
    subscription_id: int,
    current: Dict[str, Any] = Depends(require_staff),
    svc: SubscriptionService = Depends(get_subscription_service),
):
    return JSONResponse(svc.get_subscription(subscription_id, trainer_user_id=_trainer_scope(current)))


@router.put("/api/subscriptions/{subscription_id}")
async def api_subscription_update(
    subscription_id: int,
    request: Request,
    current: Dict[str, Any] = Depends(require_staff),
    svc: SubscriptionService = Depends(get_subscription_service),
):
    payload = parse_payload(SubscriptionUpdate, await read_json_body(request))
    try:
        return JSONResponse(
            svc.update_subscription(subscription_id, payload, trainer_user_id=_trainer_scope(current))
        )
    except StudioError:
        raise
    except Exception:
        logger.exception(f"Error in PUT /api/subscriptions/{subscription_id}")
        return JSONResponse({"error": "Failed to update subscription"}, status_code=500)


@router.delete("/api/subscriptions/{subscription_id}")
async def api_subscription_delete(
    subscription_id: int,
    current: Dict[str, Any] = Depends(require_staff),
    svc: SubscriptionService = Depends(get_subscription_service),
):
    svc.delete_subscription(subscription_id, trainer_user_id=_trainer_scope(current))
    return JSONResponse({"message": "Subscription deleted successfully"})


@router.post("/api/subscriptions/{subscription_id}/use-session")
async def api_subscription_use_session(
    subscription_id: int,
    current: Dict[str, Any] = Depends(require_staff),
    svc: SubscriptionService = Depends(get_subscription_service),
):
    return JSONResponse(svc.use_session(subscription_id, trainer_user_id=_trainer_scope(current)))


@router.get("/api/client/subscriptions")
async def api_client_subscriptions(
    current: Dict[str, Any] = Depends(require_client),
    svc: SubscriptionService = Depends(get_subscription_service),
):
    return JSONResponse(svc.client_subscriptions(current["id"]))


@router.post("/api/send-expiry-alert")
async def api_send_expiry_alert(
    request: Request,
    _current: Dict[str, Any] = Depends(require_staff),
    email: EmailService = Depends(get_email_service),
):
    payload = parse_payload(ExpiryAlertPayload, await read_json_body(request))
    details = payload.model_dump(exclude={"to", "first_name", "last_name", "alert_type"}, exclude_none=True)
    try:
        result = email.send_expiry_alert(
            payload.to, payload.first_name, payload.last_name, payload.alert_type, **details
        )
    except Exception as e:
        logger.error(f"Send expiry alert error: {e}")
        return JSONResponse({"error": "Failed to send expiry alert email"}, status_code=500)
    return JSONResponse(
        {"success": True, "messageId": result.get("id"), "message": "Expiry alert email sent successfully"}
    )
