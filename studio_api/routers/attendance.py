import logging
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from studio_api.dependencies import get_attendance_service, require_staff
from studio_api.exceptions import StudioError
from studio_api.schemas import AttendanceCreate, parse_payload
from studio_api.security.session_claims import TRAINER_ROLE
from studio_api.services.attendance_service import AttendanceService
from studio_api.utils import read_json_body

router = APIRouter(prefix="/api/attendance")
logger = logging.getLogger(__name__)


@router.get("")
async def api_attendance_list(
    class_id: Optional[int] = Query(None),
    client_id: Optional[int] = Query(None),
    on_date: Optional[date] = Query(None, alias="date"),
    current: Dict[str, Any] = Depends(require_staff),
    svc: AttendanceService = Depends(get_attendance_service),
):
    trainer_user_id = current["id"] if current["role"] == TRAINER_ROLE else None
    rows = svc.list_attendance(
        class_id=class_id, client_id=client_id, on_date=on_date, trainer_user_id=trainer_user_id
    )
    return JSONResponse(rows)


@router.post("")
async def api_attendance_mark(
    request: Request,
    current: Dict[str, Any] = Depends(require_staff),
    svc: AttendanceService = Depends(get_attendance_service),
):
    payload = parse_payload(AttendanceCreate, await read_json_body(request))
    try:
        record = svc.mark(
            class_id=payload.class_id,
            client_id=payload.client_id,
            status=payload.status,
            on_date=payload.attendance_date,
            marked_by=current["id"],
            notes=payload.notes,
            check_in_time=payload.check_in_time,
        )
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/attendance")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return JSONResponse(record, status_code=201 if record.get("created") else 200)
