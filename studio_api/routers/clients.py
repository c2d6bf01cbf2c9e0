import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from studio_api.dependencies import (
    get_client_service,
    get_email_service,
    require_admin,
    require_client,
    require_staff,
    require_trainer,
)
from studio_api.exceptions import PermissionDenied, StudioError
from studio_api.schemas import (
    AddClientPayload,
    ClientCreate,
    ClientReminderPayload,
    ClientUpdate,
    parse_payload,
)
from studio_api.security.session_claims import TRAINER_ROLE
from studio_api.services.client_service import ClientService
from studio_api.services.email_service import EmailService
from studio_api.utils import read_json_body

router = APIRouter()
logger = logging.getLogger(__name__)


def _trainer_scope(current: Dict[str, Any]) -> Optional[int]:
    return current["id"] if current["role"] == TRAINER_ROLE else None


@router.get("/api/clients")
async def api_clients_list(
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    current: Dict[str, Any] = Depends(require_staff),
    svc: ClientService = Depends(get_client_service),
):
    return JSONResponse(svc.list_clients(trainer_user_id=_trainer_scope(current), status=status, search=search))


@router.post("/api/clients")
async def api_clients_create(
    request: Request,
    _current: Dict[str, Any] = Depends(require_admin),
    svc: ClientService = Depends(get_client_service),
):
    payload = parse_payload(ClientCreate, await read_json_body(request))
    try:
        return JSONResponse(svc.create_client(payload), status_code=201)
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/clients")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.get("/api/clients/available")
async def api_clients_available(
    _current: Dict[str, Any] = Depends(require_staff),
    svc: ClientService = Depends(get_client_service),
):
    """Clients nobody trains yet."""
    return JSONResponse(svc.available_clients())


@router.get("/api/clients/{client_id}")
async def api_client_get(
    client_id: int,
    current: Dict[str, Any] = Depends(require_staff),
    svc: ClientService = Depends(get_client_service),
):
    return JSONResponse(svc.get_client(client_id, trainer_user_id=_trainer_scope(current)))


@router.put("/api/clients/{client_id}")
async def api_client_update(
    client_id: int,
    request: Request,
    current: Dict[str, Any] = Depends(require_staff),
    svc: ClientService = Depends(get_client_service),
):
    payload = parse_payload(ClientUpdate, await read_json_body(request))
    try:
        return JSONResponse(svc.update_client(client_id, payload, trainer_user_id=_trainer_scope(current)))
    except StudioError:
        raise
    except Exception:
        logger.exception(f"Error in PUT /api/clients/{client_id}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.delete("/api/clients/{client_id}")
async def api_client_delete(
    client_id: int,
    _current: Dict[str, Any] = Depends(require_admin),
    svc: ClientService = Depends(get_client_service),
):
    svc.delete_client(client_id)
    return JSONResponse({"message": "Client deleted successfully"})


@router.post("/api/trainer/add-client")
async def api_trainer_add_client(
    request: Request,
    current: Dict[str, Any] = Depends(require_trainer),
    svc: ClientService = Depends(get_client_service),
):
    payload = parse_payload(AddClientPayload, await read_json_body(request))
    try:
        client = svc.assign_to_trainer(payload.client_id, current["id"], payload.notes)
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in /api/trainer/add-client")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return JSONResponse({"success": True, "client": client})


@router.get("/api/client/profile")
async def api_client_profile(
    current: Dict[str, Any] = Depends(require_client),
    svc: ClientService = Depends(get_client_service),
):
    return JSONResponse(svc.client_profile(current["id"]))


@router.post("/api/send-client-reminder")
async def api_send_client_reminder(
    request: Request,
    current: Dict[str, Any] = Depends(require_staff),
    clients: ClientService = Depends(get_client_service),
    email: EmailService = Depends(get_email_service),
):
    payload = parse_payload(ClientReminderPayload, await read_json_body(request))
    clients.get_client_model(payload.client_id)
    trainer_id = _trainer_scope(current)
    if trainer_id and not clients.trainer_owns_client(trainer_id, payload.client_id):
        raise PermissionDenied("Access denied. Client is not assigned to you.")
    result = email.send_client_reminder(payload.client_id, subject=payload.subject, message=payload.message)
    if not result.get("success"):
        return JSONResponse({"error": "Failed to send reminder", "details": result}, status_code=500)
    return JSONResponse(result)
