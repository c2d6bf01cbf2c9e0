from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from studio_api.dependencies import get_points_service, require_client
from studio_api.services.points_service import PointsService

router = APIRouter()


@router.get("/api/client/points")
async def api_client_points(
    current: Dict[str, Any] = Depends(require_client),
    svc: PointsService = Depends(get_points_service),
):
    """Balance, last ten transactions and the rewards still usable."""
    return JSONResponse(svc.get_summary(current["id"]))
