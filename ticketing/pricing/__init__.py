"""
Module 'pricing': résolution des prix, expansion des forfaits, validation et frais.
Logique pure (pas de Stripe, pas de DB).
"""

from .models import CartSelection, ResolvedLineItem, parse_selection_id
from .resolver import resolve_prices
from .expander import expand
from .validator import PricingReport, validate
from .fees import FeeBreakdown, calculate_fees, to_minor_units

__all__ = [
    "CartSelection",
    "ResolvedLineItem",
    "parse_selection_id",
    "resolve_prices",
    "expand",
    "PricingReport",
    "validate",
    "FeeBreakdown",
    "calculate_fees",
    "to_minor_units",
]
