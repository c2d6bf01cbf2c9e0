import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from studio_api.dependencies import get_trainer_service, require_admin, require_staff
from studio_api.exceptions import StudioError
from studio_api.schemas import TrainerCreate, TrainerUpdate, parse_payload
from studio_api.services.trainer_service import TrainerService
from studio_api.utils import read_json_body

router = APIRouter(prefix="/api/trainers")
logger = logging.getLogger(__name__)


@router.get("")
async def api_trainers_list(
    status: Optional[str] = Query(None),
    _current: Dict[str, Any] = Depends(require_staff),
    svc: TrainerService = Depends(get_trainer_service),
):
    return JSONResponse(svc.list_trainers(status=status))


@router.post("")
async def api_trainers_create(
    request: Request,
    _current: Dict[str, Any] = Depends(require_admin),
    svc: TrainerService = Depends(get_trainer_service),
):
    payload = parse_payload(TrainerCreate, await read_json_body(request))
    try:
        return JSONResponse(svc.create_trainer(payload), status_code=201)
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/trainers")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.get("/{trainer_id}")
async def api_trainer_get(
    trainer_id: int,
    _current: Dict[str, Any] = Depends(require_staff),
    svc: TrainerService = Depends(get_trainer_service),
):
    return JSONResponse(svc.get_trainer(trainer_id))


@router.put("/{trainer_id}")
async def api_trainer_update(
    trainer_id: int,
    request: Request,
    _current: Dict[str, Any] = Depends(require_admin),
    svc: TrainerService = Depends(get_trainer_service),
):
    payload = parse_payload(TrainerUpdate, await read_json_body(request))
    try:
        return JSONResponse(svc.update_trainer(trainer_id, payload))
    except StudioError:
        raise
    except Exception:
        logger.exception(f"Error in PUT /api/trainers/{trainer_id}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.delete("/{trainer_id}")
async def api_trainer_delete(
    trainer_id: int,
    _current: Dict[str, Any] = Depends(require_admin),
    svc: TrainerService = Depends(get_trainer_service),
):
    svc.delete_trainer(trainer_id)
    return JSONResponse({"message": "Trainer deleted successfully"})
