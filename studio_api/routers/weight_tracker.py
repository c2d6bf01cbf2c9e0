import logging
from datetime import date
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from studio_api.dependencies import get_weight_service, require_client
from studio_api.exceptions import StudioError
from studio_api.schemas import WeightEntryCreate, parse_payload
from studio_api.services.weight_service import WeightService
from studio_api.utils import read_json_body

router = APIRouter(prefix="/api/weight-tracker")
logger = logging.getLogger(__name__)


@router.post("/add-entry")
async def api_weight_add_entry(
    request: Request,
    current: Dict[str, Any] = Depends(require_client),
    svc: WeightService = Depends(get_weight_service),
):
    payload = parse_payload(WeightEntryCreate, await read_json_body(request))
    try:
        entry = svc.add_entry(current["id"], payload)
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/weight-tracker/add-entry")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return JSONResponse({"success": True, "entry": entry})


@router.get("/client-data")
async def api_weight_client_data(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    current: Dict[str, Any] = Depends(require_client),
    svc: WeightService = Depends(get_weight_service),
):
    return JSONResponse({"weightData": svc.client_entries(current["id"], start_date, end_date)})
