import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from studio_api.dependencies import get_invoice_service, require_admin, require_client, require_staff
from studio_api.exceptions import StudioError
from studio_api.schemas import InvoiceCreate, InvoiceUpdate, parse_payload
from studio_api.security.session_claims import TRAINER_ROLE
from studio_api.services.invoice_service import InvoiceService
from studio_api.utils import read_json_body

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/api/invoices")
async def api_invoices_list(
    status: Optional[str] = Query(None),
    client_id: Optional[int] = Query(None),
    current: Dict[str, Any] = Depends(require_staff),
    svc: InvoiceService = Depends(get_invoice_service),
):
    trainer_user_id = current["id"] if current["role"] == TRAINER_ROLE else None
    return JSONResponse(svc.list_invoices(status=status, client_id=client_id, trainer_user_id=trainer_user_id))


@router.post("/api/invoices")
async def api_invoices_create(
    request: Request,
    current: Dict[str, Any] = Depends(require_staff),
    svc: InvoiceService = Depends(get_invoice_service),
):
    payload = parse_payload(InvoiceCreate, await read_json_body(request))
    trainer_user_id = current["id"] if current["role"] == TRAINER_ROLE else None
    try:
        invoice = svc.create_invoice(payload, trainer_user_id=trainer_user_id)
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in POST /api/invoices")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    return JSONResponse(invoice, status_code=201)


@router.put("/api/invoices/{invoice_id}")
async def api_invoice_update(
    invoice_id: int,
    request: Request,
    _current: Dict[str, Any] = Depends(require_admin),
    svc: InvoiceService = Depends(get_invoice_service),
):
    payload = parse_payload(InvoiceUpdate, await read_json_body(request))
    try:
        return JSONResponse(svc.update_invoice(invoice_id, payload))
    except StudioError:
        raise
    except Exception:
        logger.exception(f"Error in PUT /api/invoices/{invoice_id}")
        return JSONResponse({"error": "Internal server error"}, status_code=500)


@router.get("/api/client/invoices")
async def api_client_invoices(
    current: Dict[str, Any] = Depends(require_client),
    svc: InvoiceService = Depends(get_invoice_service),
):
    return JSONResponse(svc.client_invoices(current["id"]))
