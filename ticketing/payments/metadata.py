"""
Lecture des métadonnées Stripe d'un événement webhook (PaymentIntent).
"""
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

# module ticketing.payments.metadata
def extract_payment(event: Dict[str, Any]) -> Tuple[Optional[str], Optional[str], Decimal]:
    """
    Extrait (registration_id, payment_id, montant) depuis un event Stripe.
    - Attend event.data.object = PaymentIntent avec metadata.registration_id
    - Montant en unités majeures (amount_received à défaut amount, en centimes)
    - Tolérant: (None, None, 0) si la structure est inattendue
    """
    data_obj = (event or {}).get("data", {}).get("object", {}) if isinstance(event, dict) else {}
    if not isinstance(data_obj, dict):
        return None, None, Decimal("0")
    meta = data_obj.get("metadata") or {}
    registration_id = meta.get("registration_id") or None
    payment_id = data_obj.get("id") or None
    try:
        cents = int(data_obj.get("amount_received") or data_obj.get("amount") or 0)
    except (TypeError, ValueError):
        cents = 0
    return registration_id, payment_id, Decimal(cents) / 100


def failure_reason(event: Dict[str, Any]) -> str:
    data_obj = (event or {}).get("data", {}).get("object", {}) if isinstance(event, dict) else {}
    last_error = (data_obj or {}).get("last_payment_error") or {}
    return last_error.get("message") or "payment_failed"
