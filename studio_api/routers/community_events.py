import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from studio_api.dependencies import get_community_event_service, require_staff, require_user
from studio_api.exceptions import StudioError
from studio_api.schemas import CommunityEventCreate, CommunityEventUpdate, parse_payload
from studio_api.services.community_event_service import CommunityEventService
from studio_api.utils import read_json_body

router = APIRouter(prefix="/api/community-events")
logger = logging.getLogger(__name__)


@router.get("/public")
async def api_events_public(svc: CommunityEventService = Depends(get_community_event_service)):
    return JSONResponse({"events": svc.list_public()})


@router.get("/registrations")
async def api_events_my_registrations(
    current: Dict[str, Any] = Depends(require_user),
    svc: CommunityEventService = Depends(get_community_event_service),
):
    return JSONResponse({"registrations": svc.user_registrations(current["id"])})


@router.get("")
async def api_events_list(
    status: Optional[str] = Query(None),
    _current: Dict[str, Any] = Depends(require_staff),
    svc: CommunityEventService = Depends(get_community_event_service),
):
    return JSONResponse({"events": svc.list_events(status=status)})


@router.post("")
async def api_events_create(
    request: Request,
    current: Dict[str, Any] = Depends(require_staff),
    svc: CommunityEventService = Depends(get_community_event_service),
):
    payload = parse_payload(CommunityEventCreate, await read_json_body(request))
    try:
        event = svc.create_event(payload, created_by=current["id"])
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/community-events")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return JSONResponse({"event": event}, status_code=201)


@router.get("/{event_id}")
async def api_event_get(
    event_id: int,
    _current: Dict[str, Any] = Depends(require_staff),
    svc: CommunityEventService = Depends(get_community_event_service),
):
    return JSONResponse({"event": svc.get_event(event_id)})


@router.put("/{event_id}")
async def api_event_update(
    event_id: int,
    request: Request,
    _current: Dict[str, Any] = Depends(require_staff),
    svc: CommunityEventService = Depends(get_community_event_service),
):
    payload = parse_payload(CommunityEventUpdate, await read_json_body(request))
    try:
        return JSONResponse({"event": svc.update_event(event_id, payload)})
    except StudioError:
        raise
    except Exception:
        logger.exception(f"Error in PUT /api/community-events/{event_id}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.delete("/{event_id}")
async def api_event_delete(
    event_id: int,
    _current: Dict[str, Any] = Depends(require_staff),
    svc: CommunityEventService = Depends(get_community_event_service),
):
    svc.delete_event(event_id)
    return JSONResponse({"message": "Event deleted successfully"})


# --- Registration ---


@router.post("/{event_id}/register")
async def api_event_register(
    event_id: int,
    current: Dict[str, Any] = Depends(require_user),
    svc: CommunityEventService = Depends(get_community_event_service),
):
    """Free events register at once (201); paid ones answer with a Stripe Checkout URL."""
    try:
        result = svc.register(event_id, current["id"])
    except StudioError:
        raise
    except Exception:
        logger.exception(f"Error in POST /api/community-events/{event_id}/register")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return JSONResponse(result["body"], status_code=result["status_code"])


@router.delete("/{event_id}/register")
async def api_event_unregister(
    event_id: int,
    current: Dict[str, Any] = Depends(require_user),
    svc: CommunityEventService = Depends(get_community_event_service),
):
    return JSONResponse(svc.cancel_registration(event_id, current["id"]))
