from dataclasses import dataclass
from decimal import Decimal
from typing import List, Sequence

from .models import ResolvedLineItem


@dataclass(frozen=True)
class PricingReport:
    is_valid: bool
    zero_price_items: List[ResolvedLineItem]
    total_value: Decimal


def validate(line_items: Sequence[ResolvedLineItem]) -> PricingReport:
    """
    Contrôle les anomalies de prix à zéro et calcule le total.
    Un billet gratuit n'est pas déduit du prix: toute ligne à 0 invalide le lot.
    """
    zero = [li for li in line_items if li.price == 0]
    total = sum((li.price for li in line_items), Decimal("0"))
    return PricingReport(is_valid=not zero, zero_price_items=zero, total_value=total)
