"""
Cas d'usage 'payments' hors parcours synchrone: webhook et vérification de paiement.

Les deux chemins aboutissent à la même finalisation idempotente que l'orchestrateur:
un signal dupliqué (webhook + réponse synchrone) ne produit qu'une complétion.
"""
from typing import Any, Dict, Optional
import logging

from ticketing.context import AppContext
from ticketing.errors import PaymentProviderError, PaymentRefunded, ValidationError
from . import metadata as meta

logger = logging.getLogger(__name__)

SUCCEEDED_EVENTS = {"payment_intent.succeeded"}
FAILED_EVENTS = {"payment_intent.payment_failed", "payment_intent.canceled"}


def handle_event(ctx: AppContext, event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Traite un événement Stripe déjà vérifié.
    - payment_intent.succeeded: complétion idempotente (renvoie le numéro de confirmation)
      (ignoré si l'inscription a été remboursée par compensation)
    - payment_intent.payment_failed / canceled: inscription marquée en échec
    - autres types ou inscription absente des métadonnées: ignoré
    """
    event_type = (event or {}).get("type")
    registration_id, payment_id, amount = meta.extract_payment(event)
    if event_type not in SUCCEEDED_EVENTS | FAILED_EVENTS or not registration_id:
        logger.info("payments.webhook.ignored type=%s registration_id=%s", event_type, registration_id)
        return {"status": "ignored"}

    finalizer = ctx.finalizer()
    if event_type in SUCCEEDED_EVENTS:
        try:
            confirmation = finalizer.complete(registration_id, payment_id, amount_paid=amount)
        except PaymentRefunded:
            # Paiement remboursé par compensation: Stripe renvoie quand même succeeded
            logger.info("payments.webhook.refunded registration_id=%s payment_id=%s", registration_id, payment_id)
            return {"status": "ignored", "registrationId": registration_id, "reason": "refunded"}
        logger.info(
            "payments.webhook.completed registration_id=%s payment_id=%s confirmation=%s",
            registration_id, payment_id, confirmation,
        )
        return {"status": "ok", "registrationId": registration_id, "confirmationNumber": confirmation}

    finalizer.fail(registration_id, reason=meta.failure_reason(event))
    logger.info("payments.webhook.failed registration_id=%s payment_id=%s", registration_id, payment_id)
    return {"status": "ok", "registrationId": registration_id}


def verify_payment(ctx: AppContext, registration_id: str, payment_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Alternative sans webhook: relit le paiement chez Stripe et finalise s'il a abouti.
    - payment_id facultatif: à défaut, celui enregistré sur l'inscription
    - Erreurs: ValidationError si le paiement n'appartient pas à l'inscription,
      PaymentProviderError si le paiement n'a pas abouti,
      PaymentRefunded si le paiement a été remboursé
    """
    registration = ctx.finalizer().get(registration_id)
    payment_id = payment_id or registration.get("payment_id")
    if not payment_id:
        raise ValidationError("Aucun paiement associé à cette inscription", code="missing_payment")

    status = ctx.payments.get_payment(payment_id)
    if status.registration_id and status.registration_id != registration_id:
        raise ValidationError("Paiement associé à une autre inscription", code="payment_mismatch")
    if status.refunded:
        raise PaymentRefunded(f"Paiement {status.payment_id} remboursé")
    if not status.succeeded:
        raise PaymentProviderError(f"Paiement non confirmé (statut {status.status})")

    confirmation = ctx.finalizer().complete(registration_id, status.payment_id, amount_paid=status.amount)
    return {"success": True, "registrationId": registration_id, "confirmationNumber": confirmation}
