"""
Cas d'usage 'registrations': orchestre catalogue, pricing, commande et paiement.

Étapes:
  1) Sélections structurées + chargement du catalogue (filtré par fonction)
  2) Expansion des forfaits et résolution des prix (le catalogue fait autorité)
  3) Blocage des lignes non vérifiées puis validation des prix à zéro
  4) Frais, construction de la commande
  5) Brouillon d'inscription puis orchestration du paiement
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set
import logging

from ticketing.catalog.models import CatalogItem
from ticketing.context import AppContext
from ticketing.errors import MissingCatalogReference, ValidationError
from ticketing.orders.builder import build_order, group_by_attendee
from ticketing.pricing.expander import expand
from ticketing.pricing.fees import calculate_fees
from ticketing.pricing.models import CartSelection, ResolvedLineItem
from ticketing.pricing.validator import validate
from .finalizer import RegistrationDraft
from .schemas import LodgeRegistrationIn

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RegistrationResult:
    registration_id: str
    confirmation_number: Optional[str]
    total: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "success": True,
            "registrationId": self.registration_id,
            "confirmationNumber": self.confirmation_number,
            "totalAmount": self.total,
        }


def load_catalog(ctx: AppContext, selections: Sequence[CartSelection], function_id: str):
    """Charge forfaits puis billets (y compris ceux inclus dans les forfaits)."""
    package_ids = {s.catalog_item_id for s in selections if s.is_package}
    packages = ctx.catalog.get_packages(package_ids, function_id=function_id) if package_ids else {}
    ticket_ids: Set[str] = {s.catalog_item_id for s in selections if not s.is_package}
    for package in packages.values():
        ticket_ids.update(package.includes)
    tickets = ctx.catalog.get_catalog_items(ticket_ids, function_id=function_id) if ticket_ids else {}
    return tickets, packages


def price_selections(
    selections: Sequence[CartSelection],
    tickets: Mapping[str, CatalogItem],
    packages: Mapping[str, CatalogItem],
) -> List[ResolvedLineItem]:
    """
    Expansion + résolution puis contrôles bloquants:
    - ligne non vérifiée (aucun enregistrement catalogue): MISSING_CATALOG_REFERENCE
    - ligne à prix nul: VALIDATION_ERROR
    """
    items = expand(selections, tickets, packages)
    unverified = [li for li in items if li.flagged]
    if unverified:
        missing = sorted({li.catalog_item_id for li in unverified})
        raise MissingCatalogReference(
            f"Articles introuvables dans le catalogue: {', '.join(missing)}",
            item_id=missing[0],
        )
    report = validate(items)
    if not report.is_valid:
        names = ", ".join(li.name for li in report.zero_price_items)
        raise ValidationError(f"Billets à prix nul détectés: {names}", code="zero_price")
    return items


def _contact(payload) -> Dict[str, Any]:
    billing = payload.billing_details
    return {
        "first_name": billing.first_name,
        "last_name": billing.last_name,
        "email": str(billing.email),
        "phone": billing.phone,
    }


def _attendee_rows(payload) -> List[Dict[str, Any]]:
    if isinstance(payload, LodgeRegistrationIn):
        return []
    return [a.model_dump(mode="json", exclude_none=True) for a in payload.attendees]


def _details(payload) -> Dict[str, Any]:
    if isinstance(payload, LodgeRegistrationIn):
        lodge = payload.lodge_details
        return {
            "lodge_id": lodge.lodge_id,
            "lodge_name": lodge.lodge_name,
            "lodge_number": lodge.lodge_number,
            "grand_lodge": lodge.grand_lodge,
            "package_id": payload.package_id,
            "package_quantity": payload.quantity,
        }
    return {
        "delegation_name": getattr(payload, "delegation_name", None),
        "grand_lodge": getattr(payload, "grand_lodge", None),
    }


def register(ctx: AppContext, function_id: str, payload) -> RegistrationResult:
    """
    Inscription complète: prix -> commande -> brouillon -> paiement -> confirmation.
    Lève une TicketingError typée à la première étape en échec.
    """
    registration_type = payload.registration_type
    selections = payload.selections()

    tickets, packages = load_catalog(ctx, selections, function_id)
    items = price_selections(selections, tickets, packages)
    fees = calculate_fees(sum((li.price for li in items), Decimal("0")), ctx.settings)

    contact = _contact(payload)
    details = _details(payload)
    metadata = {
        "function_id": function_id,
        "registration_type": registration_type,
        "contact_email": contact["email"],
        "subtotal": fees.subtotal,
        "platform_fee": fees.platform_fee,
        "lodge_name": details.get("lodge_name"),
        "lodge_number": details.get("lodge_number"),
        "grand_lodge": details.get("grand_lodge"),
    }
    order = build_order(
        payload.attendee_keys(),
        group_by_attendee(items),
        contact,
        metadata,
        registration_type=registration_type,
        location_id=ctx.settings.location_id,
        service_charge=fees.processing_fee,
        total=fees.total,
    )

    finalizer = ctx.finalizer()
    registration_id = finalizer.create_draft(RegistrationDraft(
        registration_type=registration_type,
        function_id=function_id,
        contact=contact,
        attendees=_attendee_rows(payload),
        line_items=items,
        fees=fees,
        details=details,
    ))
    order = order.with_metadata(registration_id=registration_id)

    outcome = ctx.orchestrator().run(
        registration_id,
        order,
        payload.payment_method_id,
        registration_type=registration_type,
        amounts=fees,
    )
    logger.info(
        "registrations.service.registered registration_id=%s type=%s total=%s",
        registration_id, registration_type, fees.total,
    )
    return RegistrationResult(
        registration_id=registration_id,
        confirmation_number=outcome.confirmation_number,
        total=str(fees.total),
    )


def registration_status(ctx: AppContext, registration_id: str) -> Dict[str, Any]:
    registration = ctx.finalizer().get(registration_id)
    return {
        "success": True,
        "registrationId": registration_id,
        "status": registration.get("status"),
        "paymentStatus": registration.get("payment_status"),
        "confirmationNumber": registration.get("confirmation_number"),
        "totalAmountPaid": registration.get("total_amount_paid"),
    }
