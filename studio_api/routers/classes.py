import logging
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from studio_api.dependencies import (
    get_attendance_service,
    get_class_service,
    get_email_service,
    get_enrollment_service,
    require_staff,
)
from studio_api.exceptions import StudioError
from studio_api.schemas import (
    ClassAttendanceMark,
    ClassCreate,
    ClassEnrollmentCreate,
    ClassUpdate,
    ReminderPayload,
    parse_payload,
)
from studio_api.security.session_claims import TRAINER_ROLE
from studio_api.services.attendance_service import AttendanceService
from studio_api.services.class_service import ClassService
from studio_api.services.email_service import EmailService
from studio_api.services.enrollment_service import EnrollmentService
from studio_api.utils import read_json_body

router = APIRouter(prefix="/api/classes")
logger = logging.getLogger(__name__)


@router.get("")
async def api_classes_list(
    trainer_id: Optional[int] = Query(None),
    instructor_id: Optional[int] = Query(None),
    status: Optional[str] = Query(None),
    date_range: Optional[str] = Query(None),
    order_by: str = Query("date"),
    _current: Dict[str, Any] = Depends(require_staff),
    svc: ClassService = Depends(get_class_service),
):
    classes = svc.list_classes(
        trainer_id=trainer_id or instructor_id,
        status=status,
        date_range=date_range,
        order_by=order_by,
    )
    return JSONResponse(classes)


@router.post("")
async def api_classes_create(
    request: Request,
    current: Dict[str, Any] = Depends(require_staff),
    svc: ClassService = Depends(get_class_service),
):
    payload = parse_payload(ClassCreate, await read_json_body(request))
    try:
        created_by = current["id"] if current["role"] == TRAINER_ROLE else None
        return JSONResponse(svc.create_class(payload, created_by=created_by))
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/classes")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.get("/calendar")
async def api_classes_calendar(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    trainer_id: Optional[int] = Query(None),
    current: Dict[str, Any] = Depends(require_staff),
    svc: ClassService = Depends(get_class_service),
):
    """Calendar feed; trainers only see the classes they teach."""
    if current["role"] == TRAINER_ROLE:
        trainer_id = current["id"]
    return JSONResponse(svc.calendar_events(start_date=start, end_date=end, trainer_id=trainer_id))


@router.get("/{class_id}")
async def api_class_get(
    class_id: int,
    _current: Dict[str, Any] = Depends(require_staff),
    svc: ClassService = Depends(get_class_service),
):
    return JSONResponse(svc.get_class(class_id))


@router.put("/{class_id}")
async def api_class_update(
    class_id: int,
    request: Request,
    _current: Dict[str, Any] = Depends(require_staff),
    svc: ClassService = Depends(get_class_service),
):
    payload = parse_payload(ClassUpdate, await read_json_body(request))
    try:
        return JSONResponse(svc.update_class(class_id, payload))
    except StudioError:
        raise
    except Exception:
        logger.exception(f"Error in PUT /api/classes/{class_id}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.delete("/{class_id}")
async def api_class_delete(
    class_id: int,
    _current: Dict[str, Any] = Depends(require_staff),
    svc: ClassService = Depends(get_class_service),
):
    svc.delete_class(class_id)
    return JSONResponse({"message": "Class deleted successfully"})


# --- Enrollments and attendance of one class ---


@router.get("/{class_id}/enrollments")
async def api_class_enrollments(
    class_id: int,
    _current: Dict[str, Any] = Depends(require_staff),
    classes: ClassService = Depends(get_class_service),
    svc: EnrollmentService = Depends(get_enrollment_service),
):
    classes.get_class_model(class_id)
    return JSONResponse(svc.list_enrollments(class_id=class_id))


@router.post("/{class_id}/enrollments")
async def api_class_enroll(
    class_id: int,
    request: Request,
    _current: Dict[str, Any] = Depends(require_staff),
    svc: EnrollmentService = Depends(get_enrollment_service),
):
    payload = parse_payload(ClassEnrollmentCreate, await read_json_body(request))
    try:
        return JSONResponse(svc.enroll(class_id, payload.client_id, payload.notes))
    except StudioError:
        raise
    except Exception:
        logger.exception(f"Error in POST /api/classes/{class_id}/enrollments")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.get("/{class_id}/attendance")
async def api_class_attendance(
    class_id: int,
    on_date: Optional[date] = Query(None, alias="date"),
    _current: Dict[str, Any] = Depends(require_staff),
    classes: ClassService = Depends(get_class_service),
    svc: AttendanceService = Depends(get_attendance_service),
):
    classes.get_class_model(class_id)
    return JSONResponse(svc.list_attendance(class_id=class_id, on_date=on_date))


@router.post("/{class_id}/attendance")
async def api_class_mark_attendance(
    class_id: int,
    request: Request,
    current: Dict[str, Any] = Depends(require_staff),
    svc: AttendanceService = Depends(get_attendance_service),
):
    payload = parse_payload(ClassAttendanceMark, await read_json_body(request))
    try:
        record = svc.mark(
            class_id=class_id,
            client_id=payload.client_id,
            status=payload.status,
            on_date=payload.attendance_date,
            marked_by=current["id"],
            notes=payload.notes,
        )
        return JSONResponse(record)
    except StudioError:
        raise
    except Exception:
        logger.exception(f"Error in POST /api/classes/{class_id}/attendance")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.post("/{class_id}/reminder")
async def api_class_reminder(
    class_id: int,
    request: Request,
    _current: Dict[str, Any] = Depends(require_staff),
    email: EmailService = Depends(get_email_service),
):
    body = await read_json_body(request) if await request.body() else {}
    payload = parse_payload(ReminderPayload, body)
    result = email.send_class_reminder(class_id, reminder_type=payload.reminder_type, message=payload.message)
    logger.info(f"Class {class_id} reminder sent: {result['sent']}")
    return JSONResponse(result)
