"""
Calcul des frais: frais de plateforme plafonnés, puis frais du prestataire
répercutés de sorte que le montant net reçu couvre sous-total + plateforme.
"""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from ticketing.config import Settings

CENT = Decimal("0.01")


def _round(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeBreakdown:
    subtotal: Decimal
    platform_fee: Decimal
    provider_fee: Decimal
    processing_fee: Decimal
    total: Decimal


def calculate_fees(subtotal: Decimal, settings: Settings) -> FeeBreakdown:
    """
    total = (sous-total + frais plateforme + fixe) / (1 - taux prestataire)
    frais prestataire = total * taux + fixe
    Tous les montants sont arrondis au centime; sous-total nul => aucun frais.
    """
    subtotal = _round(Decimal(subtotal))
    zero = Decimal("0.00")
    if subtotal <= 0:
        return FeeBreakdown(subtotal=zero, platform_fee=zero, provider_fee=zero, processing_fee=zero, total=zero)

    platform = subtotal * settings.platform_fee_percentage
    platform = max(settings.platform_fee_minimum, min(platform, settings.platform_fee_cap))
    platform = _round(platform)

    rate = settings.provider_fee_percentage
    fixed = settings.provider_fee_fixed
    total = _round((subtotal + platform + fixed) / (Decimal("1") - rate))
    provider = _round(total * rate + fixed)
    return FeeBreakdown(
        subtotal=subtotal,
        platform_fee=platform,
        provider_fee=provider,
        processing_fee=total - subtotal,
        total=total,
    )


def to_minor_units(amount: Decimal) -> int:
    """Montant en centimes (Stripe)."""
    return int(_round(Decimal(amount)) * 100)
