"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.

La commande est portée par un PaymentIntent (montant total, client, métadonnées);
la capture confirme l'intent avec le moyen de paiement fourni par le front.
Les erreurs du SDK sont traduites dans la taxonomie ticketing.errors:
- CardError -> PaymentDeclined (terminal)
- APIConnectionError / RateLimitError -> ProviderUnavailable (rejouable)
- autres StripeError -> PaymentProviderError
"""
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional
import json
import logging

import stripe

from ticketing.config import STRIPE_SECRET_KEY, PROVIDER_TIMEOUT_SECONDS
from ticketing.errors import PaymentDeclined, PaymentProviderError, ProviderUnavailable, ValidationError
from ticketing.orders.builder import METADATA_VALUE_MAX, Order
from ticketing.pricing.fees import to_minor_units
from .provider import PaymentStatus

logger = logging.getLogger(__name__)


# module ticketing.payments.stripe_client
def require_stripe(api_key: Optional[str] = None, timeout: Optional[float] = None):
    """
    Prépare et retourne le module stripe prêt à l'emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY si disponible.
    - Timeout HTTP explicite; les rejeux sont gérés par l'orchestrateur (même clé d'idempotence).
    """
    key = api_key or STRIPE_SECRET_KEY
    if key:
        stripe.api_key = key
    stripe.max_network_retries = 0
    stripe.default_http_client = stripe.RequestsClient(timeout=timeout or PROVIDER_TIMEOUT_SECONDS)
    return stripe


def _as_dict(obj: Any) -> Dict[str, Any]:
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


def _translate(e: Exception, op: str) -> Exception:
    if isinstance(e, stripe.CardError):
        return PaymentDeclined(e.user_message or "Paiement refusé", decline_code=getattr(e, "code", None))
    if isinstance(e, (stripe.APIConnectionError, stripe.RateLimitError)):
        return ProviderUnavailable(f"Prestataire de paiement indisponible ({op})")
    return PaymentProviderError(getattr(e, "user_message", None) or f"Erreur du prestataire de paiement ({op})")


def _lines_summary(order: Order) -> str:
    lines = [
        {"id": line.catalog_item_id, "q": line.quantity, "p": str(line.unit_price), "n": line.note}
        for line in order.lines
    ]
    return json.dumps(lines, ensure_ascii=False)[:METADATA_VALUE_MAX]


class StripePaymentProvider:
    def __init__(self, currency: str = "aud", api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.currency = currency
        self.stripe = require_stripe(api_key, timeout)

    def create_customer(self, contact: Mapping[str, Any], *, idempotency_key: str) -> str:
        name = " ".join(p for p in (contact.get("first_name"), contact.get("last_name")) if p)
        try:
            customer = self.stripe.Customer.create(
                email=contact.get("email"),
                name=name or None,
                phone=contact.get("phone") or None,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.exception("payments.stripe.create_customer failed key=%s", idempotency_key)
            raise _translate(e, "create_customer") from e
        return customer.id

    def create_order(self, order: Order, *, idempotency_key: str) -> str:
        metadata = dict(order.metadata)
        metadata["lines"] = _lines_summary(order)
        try:
            intent = self.stripe.PaymentIntent.create(
                amount=to_minor_units(order.amount_due),
                currency=self.currency,
                customer=order.customer_id,
                metadata=metadata,
                description=f"Inscription {order.registration_id or ''}".strip(),
                payment_method_types=["card"],
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.exception("payments.stripe.create_order failed key=%s", idempotency_key)
            raise _translate(e, "create_order") from e
        return intent.id

    def capture_payment(self, order_id: str, payment_method_id: str, amount: Decimal, *, idempotency_key: str) -> str:
        try:
            intent = self.stripe.PaymentIntent.confirm(
                order_id,
                payment_method=payment_method_id,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.exception("payments.stripe.capture_payment failed order_id=%s", order_id)
            raise _translate(e, "capture_payment") from e
        if intent.status != "succeeded":
            raise PaymentDeclined(f"Paiement non abouti (statut {intent.status})")
        if int(intent.amount) != to_minor_units(amount):
            logger.error(
                "payments.stripe.amount_mismatch order_id=%s expected=%s got=%s",
                order_id, to_minor_units(amount), intent.amount,
            )
        return intent.id

    def refund(self, payment_id: str, amount: Decimal, *, idempotency_key: str) -> str:
        try:
            refund = self.stripe.Refund.create(
                payment_intent=payment_id,
                amount=to_minor_units(amount),
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.exception("payments.stripe.refund failed payment_id=%s", payment_id)
            raise _translate(e, "refund") from e
        return refund.id

    def attach_metadata(self, order_id: str, metadata: Mapping[str, str], *, idempotency_key: str) -> None:
        try:
            self.stripe.PaymentIntent.modify(
                order_id,
                metadata=dict(metadata),
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as e:
            logger.exception("payments.stripe.attach_metadata failed order_id=%s", order_id)
            raise _translate(e, "attach_metadata") from e

    def get_payment(self, payment_id: str) -> PaymentStatus:
        try:
            intent = _as_dict(self.stripe.PaymentIntent.retrieve(payment_id, expand=["latest_charge"]))
        except stripe.StripeError as e:
            logger.exception("payments.stripe.get_payment failed payment_id=%s", payment_id)
            raise _translate(e, "get_payment") from e
        return status_from_intent(intent)


def status_from_intent(intent: Mapping[str, Any]) -> PaymentStatus:
    """
    PaymentIntent -> PaymentStatus. Le remboursement est lu sur latest_charge
    (développé par get_payment): un intent remboursé reste "succeeded" côté Stripe.
    """
    charge = intent.get("latest_charge")
    refunded_cents = int(charge.get("amount_refunded") or 0) if isinstance(charge, Mapping) else 0
    return PaymentStatus(
        payment_id=str(intent.get("id") or ""),
        status=str(intent.get("status") or ""),
        amount=Decimal(int(intent.get("amount_received") or intent.get("amount") or 0)) / 100,
        metadata={str(k): str(v) for k, v in (intent.get("metadata") or {}).items()},
        amount_refunded=Decimal(refunded_cents) / 100,
    )


def parse_event(payload: bytes, sig_header: Optional[str], secret: str) -> Dict[str, Any]:
    """
    Valide et décode un événement Stripe signé (webhook).
    La vérification de signature est déléguée au SDK (Webhook.construct_event).
    Lève ValidationError si la signature ou le payload est invalide.
    """
    require_stripe()
    try:
        event = stripe.Webhook.construct_event(payload, sig_header or "", secret or "")
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.warning("payments.stripe.parse_event rejected: %s", e)
        raise ValidationError("Signature ou payload de webhook invalide", code="invalid_webhook") from e
    return _as_dict(event)
