from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from studio_api.dependencies import get_dashboard_service, require_staff
from studio_api.security.session_claims import TRAINER_ROLE
from studio_api.services.dashboard_service import DashboardService

router = APIRouter()


@router.get("/api/dashboard/stats")
async def api_dashboard_stats(
    current: Dict[str, Any] = Depends(require_staff),
    svc: DashboardService = Depends(get_dashboard_service),
):
    trainer_user_id = current["id"] if current["role"] == TRAINER_ROLE else None
    return JSONResponse(svc.stats(trainer_user_id=trainer_user_id))
