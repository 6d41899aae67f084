import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from ticketing.context import AppContext, get_context
from ticketing.utils.rate_limit import optional_rate_limit
from . import stripe_client
from . import service as payments_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])
registrations_router = APIRouter(prefix="/api/v1/registrations", tags=["Payments API"])


# module ticketing.payments.views
@router.post("/webhook", include_in_schema=False)
async def webhook_stripe(request: Request, ctx: AppContext = Depends(get_context)):
    """
    Webhook Stripe (PaymentIntent): complète ou marque en échec l'inscription.
    - Signature: validée via stripe_client.parse_event (Stripe-Signature + secret du contexte)
    - Complétion idempotente: un événement rejoué renvoie le même numéro de confirmation
    - Réponses: {"status": "ok", ...} ou {"status": "ignored"}
    - Erreurs: 400 VALIDATION_ERROR si signature/payload invalide
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature") or request.headers.get("Stripe-Signature")
    event = stripe_client.parse_event(payload, sig_header, ctx.settings.webhook_secret)
    result = await run_in_threadpool(payments_service.handle_event, ctx, event)
    logger.info("payments.webhook type=%s status=%s", event.get("type"), result.get("status"))
    return JSONResponse(result)


@registrations_router.post(
    "/{registration_id}/verify-payment",
    dependencies=[Depends(optional_rate_limit(times=20, seconds=60))],
)
async def verify_payment(registration_id: str, request: Request, ctx: AppContext = Depends(get_context)):
    """
    Alternative sans webhook: relit le PaymentIntent et finalise l'inscription.
    - Accepte paymentIntentId en query ou JSON body {"paymentIntentId": "..."} (facultatif)
    """
    payment_id = request.query_params.get("paymentIntentId")
    if not payment_id:
        try:
            body = await request.json()
            payment_id = body.get("paymentIntentId") if isinstance(body, dict) else None
        except ValueError:
            payment_id = None
    return await run_in_threadpool(payments_service.verify_payment, ctx, registration_id, payment_id)
