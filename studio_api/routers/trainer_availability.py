import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from studio_api.dependencies import get_availability_service, require_staff, require_trainer
from studio_api.exceptions import StudioError
from studio_api.schemas import AvailabilityPayload, parse_payload
from studio_api.security.session_claims import ADMIN_ROLE
from studio_api.services.availability_service import AvailabilityService, parse_hhmm
from studio_api.utils import read_json_body

router = APIRouter(prefix="/api/trainer-availability")
logger = logging.getLogger(__name__)


@router.get("")
async def api_availability_list(
    trainer_id: Optional[int] = Query(None),
    day_of_week: Optional[int] = Query(None),
    start_time: Optional[str] = Query(None),
    end_time: Optional[str] = Query(None),
    current: Dict[str, Any] = Depends(require_staff),
    svc: AvailabilityService = Depends(get_availability_service),
):
    """Admins see every trainer's slots; a trainer only their own."""
    is_admin = current["role"] == ADMIN_ROLE
    slots = svc.list_slots(
        trainer_id=trainer_id if is_admin else current["id"],
        day_of_week=day_of_week,
        start_time=parse_hhmm(start_time),
        end_time=parse_hhmm(end_time),
        with_trainer=is_admin,
    )
    return JSONResponse(slots)


@router.post("")
async def api_availability_save(
    request: Request,
    current: Dict[str, Any] = Depends(require_trainer),
    svc: AvailabilityService = Depends(get_availability_service),
):
    payload = parse_payload(AvailabilityPayload, await read_json_body(request))
    try:
        return JSONResponse(svc.save_slot(current["id"], payload))
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/trainer-availability")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.delete("/{slot_id}")
async def api_availability_delete(
    slot_id: int,
    current: Dict[str, Any] = Depends(require_staff),
    svc: AvailabilityService = Depends(get_availability_service),
):
    svc.delete_slot(slot_id, actor_id=current["id"], is_admin=current["role"] == ADMIN_ROLE)
    return JSONResponse({"message": "Availability slot deleted"})
