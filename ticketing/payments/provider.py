"""
Contrat du prestataire de paiement vu par l'orchestrateur.

Chaque écriture reçoit une clé d'idempotence: rejouer un appel avec la même
clé ne produit l'effet qu'une seule fois côté prestataire.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Protocol

from ticketing.orders.builder import Order


@dataclass(frozen=True)
class PaymentStatus:
    payment_id: str
    status: str
    amount: Decimal
    metadata: Dict[str, str] = field(default_factory=dict)
    amount_refunded: Decimal = Decimal("0")

    @property
    def refunded(self) -> bool:
        return self.amount_refunded > 0

    @property
    def succeeded(self) -> bool:
        # Un PaymentIntent remboursé reste "succeeded" chez Stripe
        return self.status == "succeeded" and not self.refunded

    @property
    def registration_id(self) -> Optional[str]:
        return self.metadata.get("registration_id")


class PaymentProvider(Protocol):
    def create_customer(self, contact: Mapping[str, Any], *, idempotency_key: str) -> str: ...

    def create_order(self, order: Order, *, idempotency_key: str) -> str: ...

    def capture_payment(self, order_id: str, payment_method_id: str, amount: Decimal, *, idempotency_key: str) -> str: ...

    def refund(self, payment_id: str, amount: Decimal, *, idempotency_key: str) -> str: ...

    def attach_metadata(self, order_id: str, metadata: Mapping[str, str], *, idempotency_key: str) -> None: ...

    def get_payment(self, payment_id: str) -> PaymentStatus: ...
