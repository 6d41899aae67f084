"""
Persistance de l'inscription et transition idempotente vers 'completed'.

complete() est appelée à la fois par l'orchestrateur (réponse synchrone) et
par le webhook Stripe: le second appel ne modifie rien et renvoie le même
numéro de confirmation.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence
from uuid import uuid4
import logging

from ticketing.config import Settings
from ticketing.errors import NotFoundError, PaymentRefunded, ValidationError
from ticketing.pricing.fees import FeeBreakdown
from ticketing.pricing.models import ResolvedLineItem
from .repository import RegistrationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrationDraft:
    registration_type: str
    function_id: str
    contact: Dict[str, Any]
    attendees: List[Dict[str, Any]]
    line_items: Sequence[ResolvedLineItem]
    fees: FeeBreakdown
    details: Dict[str, Any] = field(default_factory=dict)


def _amount_columns(amounts: Optional[FeeBreakdown], amount_paid: Optional[Decimal]) -> Dict[str, Any]:
    columns: Dict[str, Any] = {}
    if amounts is not None:
        columns.update({
            "total_amount_paid": amounts.total,
            "subtotal": amounts.subtotal,
            "platform_fee": amounts.platform_fee,
            "provider_fee": amounts.provider_fee,
        })
    if amount_paid is not None and amount_paid > 0:
        columns["total_amount_paid"] = amount_paid
    return columns


class RegistrationFinalizer:
    def __init__(self, store: RegistrationStore, settings: Settings):
        self.store = store
        self.settings = settings

    def create_draft(self, draft: RegistrationDraft) -> str:
        """
        Crée l'inscription (unpaid/pending), ses participants et ses billets réservés.
        Les identifiants sont générés côté serveur; ceux du client ne servent qu'au rattachement.
        """
        registration_id = str(uuid4())
        self.store.create_registration({
            "registration_id": registration_id,
            "function_id": draft.function_id,
            "registration_type": draft.registration_type,
            "status": "unpaid",
            "payment_status": "pending",
            "confirmation_number": None,
            "subtotal": str(draft.fees.subtotal),
            "platform_fee": str(draft.fees.platform_fee),
            "provider_fee": str(draft.fees.provider_fee),
            "total_amount_paid": "0",
            "contact_email": draft.contact.get("email"),
            "registration_data": {k: v for k, v in draft.details.items() if v is not None},
        })

        id_map = {a["attendee_id"]: str(uuid4()) for a in draft.attendees}
        attendee_rows = []
        for a in draft.attendees:
            row = {k: v for k, v in a.items() if k not in ("attendee_id", "partner_of")}
            row.update({
                "attendee_id": id_map[a["attendee_id"]],
                "registration_id": registration_id,
                "related_attendee_id": id_map.get(a.get("partner_of") or ""),
            })
            attendee_rows.append(row)
        self.store.create_attendees(attendee_rows)

        self.store.create_tickets([
            {
                "ticket_id": str(uuid4()),
                "registration_id": registration_id,
                "attendee_id": id_map.get(li.attendee_id),
                "event_ticket_id": li.catalog_item_id,
                "package_id": li.package_id,
                "price_paid": str(li.price),
                "status": "reserved",
            }
            for li in draft.line_items
        ])
        logger.info(
            "registrations.finalizer.draft registration_id=%s type=%s tickets=%s",
            registration_id, draft.registration_type, len(draft.line_items),
        )
        return registration_id

    def get(self, registration_id: str) -> Dict[str, Any]:
        registration = self.store.get_registration(registration_id)
        if registration is None:
            raise NotFoundError(f"Inscription introuvable: {registration_id}")
        return registration

    def record_payment(
        self,
        registration_id: str,
        payment_id: Optional[str],
        *,
        amounts: Optional[FeeBreakdown] = None,
        amount_paid: Optional[Decimal] = None,
    ) -> Dict[str, Any]:
        """
        Passe l'inscription à completed/completed une seule fois, billets réservés -> vendus.
        Une inscription remboursée par compensation ne peut plus être complétée (PaymentRefunded).
        """
        if not payment_id:
            raise ValidationError("Identifiant de paiement requis pour finaliser", code="missing_payment")
        registration = self.get(registration_id)
        if registration.get("payment_status") == "refunded":
            raise _refunded(registration_id, payment_id)

        if self.store.mark_completed(registration_id, payment_id, _amount_columns(amounts, amount_paid)):
            sold = self.store.mark_tickets_sold(registration_id)
            logger.info(
                "registrations.finalizer.completed registration_id=%s payment_id=%s tickets_sold=%s",
                registration_id, payment_id, sold,
            )
            return registration

        current = self.get(registration_id)
        if current.get("status") != "completed":
            # Remboursée entre la lecture et l'écriture
            raise _refunded(registration_id, payment_id)
        if current.get("payment_id") and current.get("payment_id") != payment_id:
            logger.warning(
                "registrations.finalizer.payment_mismatch registration_id=%s stored=%s received=%s",
                registration_id, current.get("payment_id"), payment_id,
            )
        else:
            logger.info("registrations.finalizer.already_completed registration_id=%s", registration_id)
        # Rejeu: complète les billets restés réservés si la première complétion s'est interrompue
        self.store.mark_tickets_sold(registration_id)
        return current

    def assign_confirmation(self, registration_id: str, registration_type: Optional[str] = None) -> str:
        """Numéro de confirmation d'une inscription complétée (généré au premier appel)."""
        kind = registration_type or self.get(registration_id).get("registration_type") or "individual"
        return self.store.assign_confirmation_number(registration_id, self.settings.prefix_for(kind))

    def complete(
        self,
        registration_id: str,
        payment_id: Optional[str],
        *,
        registration_type: Optional[str] = None,
        amounts: Optional[FeeBreakdown] = None,
        amount_paid: Optional[Decimal] = None,
    ) -> str:
        """Complétion idempotente puis numéro de confirmation; le second appel renvoie le même numéro."""
        registration = self.record_payment(registration_id, payment_id, amounts=amounts, amount_paid=amount_paid)
        return self.assign_confirmation(registration_id, registration_type or registration.get("registration_type"))

    def fail(self, registration_id: str, reason: str) -> bool:
        updated = self.store.mark_failed(registration_id, reason)
        logger.info("registrations.finalizer.failed registration_id=%s updated=%s", registration_id, updated)
        return updated

    def refunded(self, registration_id: str, refund_id: Optional[str], reason: str) -> bool:
        updated = self.store.mark_refunded(registration_id, refund_id, reason)
        logger.info(
            "registrations.finalizer.refunded registration_id=%s refund_id=%s updated=%s",
            registration_id, refund_id, updated,
        )
        return updated


def _refunded(registration_id: str, payment_id: str) -> PaymentRefunded:
    logger.warning(
        "registrations.finalizer.refunded_payment registration_id=%s payment_id=%s",
        registration_id, payment_id,
    )
    return PaymentRefunded(f"Paiement remboursé: l'inscription {registration_id} ne peut plus être finalisée")
