import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from studio_api.dependencies import get_training_service, require_trainer, require_user
from studio_api.exceptions import StudioError, ValidationFailed
from studio_api.schemas import InstructionCreate, SetProgressPayload, parse_payload
from studio_api.services.training_service import TrainingService
from studio_api.utils import read_json_body

router = APIRouter()
logger = logging.getLogger(__name__)


# --- Training instructions ---


@router.get("/api/training-instructions")
async def api_instructions_list(
    client_id: Optional[int] = Query(None),
    current: Dict[str, Any] = Depends(require_user),
    svc: TrainingService = Depends(get_training_service),
):
    rows = svc.list_instructions(client_id=client_id, user_id=current["id"], role=current["role"])
    return JSONResponse(rows)


@router.post("/api/training-instructions")
async def api_instructions_create(
    request: Request,
    current: Dict[str, Any] = Depends(require_trainer),
    svc: TrainingService = Depends(get_training_service),
):
    payload = parse_payload(InstructionCreate, await read_json_body(request))
    try:
        return JSONResponse(svc.create_instruction(current["id"], payload), status_code=201)
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/training-instructions")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.delete("/api/training-instructions/{instruction_id}")
async def api_instructions_delete(
    instruction_id: int,
    current: Dict[str, Any] = Depends(require_user),
    svc: TrainingService = Depends(get_training_service),
):
    svc.delete_instruction(instruction_id, user_id=current["id"], role=current["role"])
    return JSONResponse({"message": "Instruction deleted successfully"})


# --- Set progress ---


@router.get("/api/set-progress")
async def api_set_progress_get(
    exercise_id: Optional[str] = Query(None),
    training_day_id: Optional[str] = Query(None),
    client_id: Optional[int] = Query(None),
    current: Dict[str, Any] = Depends(require_user),
    svc: TrainingService = Depends(get_training_service),
):
    if not exercise_id or not training_day_id or not client_id:
        raise ValidationFailed("exercise_id, training_day_id and client_id are required")
    progress = svc.get_set_progress(
        exercise_id=exercise_id,
        training_day_id=training_day_id,
        client_id=client_id,
        user_id=current["id"],
        role=current["role"],
    )
    return JSONResponse({"set_progress": progress})


@router.post("/api/set-progress")
async def api_set_progress_save(
    request: Request,
    current: Dict[str, Any] = Depends(require_user),
    svc: TrainingService = Depends(get_training_service),
):
    payload = parse_payload(SetProgressPayload, await read_json_body(request))
    try:
        return JSONResponse(svc.save_set_progress(payload, user_id=current["id"], role=current["role"]))
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/set-progress")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
