import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from studio_api.dependencies import get_invoice_service, get_webhook_service, require_user
from studio_api.exceptions import StudioError
from studio_api.schemas import InvoicePaymentPayload, parse_payload
from studio_api.services.invoice_service import InvoiceService
from studio_api.services.webhook_service import WebhookService
from studio_api.utils import read_json_body

router = APIRouter(prefix="/api/stripe")
logger = logging.getLogger(__name__)


@router.post("/webhook")
async def api_stripe_webhook(request: Request, svc: WebhookService = Depends(get_webhook_service)):
    """Stripe event receiver. The raw body is needed for signature verification."""
    payload = await request.body()
    signature = request.headers.get("stripe-signature")
    return JSONResponse(svc.handle(payload, signature))


@router.post("/create-invoice-payment")
async def api_create_invoice_payment(
    request: Request,
    current: Dict[str, Any] = Depends(require_user),
    svc: InvoiceService = Depends(get_invoice_service),
):
    payload = parse_payload(InvoicePaymentPayload, await read_json_body(request))
    try:
        session = svc.create_payment_session(current["id"], payload.invoice_id)
    except StudioError:
        raise
    except Exception:
        logger.exception("Error in /api/stripe/create-invoice-payment")
        return JSONResponse({"error": "Internal server error"}, status_code=500)
    logger.info(f"Checkout session created for invoice {payload.invoice_id} by user {current['id']}")
    return JSONResponse(session)
