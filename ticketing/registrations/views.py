import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from pydantic import ValidationError as PydanticValidationError

from ticketing.context import AppContext, get_context
from ticketing.errors import ValidationError
from ticketing.utils.rate_limit import optional_rate_limit
from . import service as registrations_service
from .schemas import parse_registration

logger = logging.getLogger(__name__)
functions_router = APIRouter(prefix="/api/v1/functions", tags=["Registrations API"])
router = APIRouter(prefix="/api/v1/registrations", tags=["Registrations API"])


def _format_errors(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p not in ("individual", "lodge", "delegation"))
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "Requête invalide"


# module ticketing.registrations.views
@functions_router.post(
    "/{function_id}/registrations",
    dependencies=[Depends(optional_rate_limit(times=10, seconds=60))],
)
async def create_registration(function_id: str, request: Request, ctx: AppContext = Depends(get_context)):
    """
    Inscription à une fonction avec paiement immédiat.
    - Entrée JSON: union discriminée sur registrationType (individual | lodge | delegation)
    - Les prix client sont ignorés: le catalogue fait autorité
    - Réponses: {success, registrationId, confirmationNumber} ou
      {success: false, error, errorType} via les gestionnaires d'exceptions
    - 503 CONFIRMATION_PENDING (avec registrationId): paiement enregistré, rejouer via verify-payment
    """
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Corps JSON invalide", code="invalid_json")
    try:
        payload = parse_registration(body)
    except PydanticValidationError as e:
        raise ValidationError(_format_errors(e), code="invalid_payload")

    # Supabase, Stripe et le backoff sont bloquants: hors de la boucle d'événements
    result = await run_in_threadpool(registrations_service.register, ctx, function_id, payload)
    return JSONResponse(result.to_payload())


@router.get("/{registration_id}")
def get_registration(registration_id: str, ctx: AppContext = Depends(get_context)):
    """Statut d'une inscription et numéro de confirmation s'il a été attribué."""
    return registrations_service.registration_status(ctx, registration_id)
