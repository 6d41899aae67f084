"""
Expansion des forfaits en lignes de billets.
"""
from decimal import Decimal
from typing import List, Mapping, Sequence
import logging

from ticketing.catalog.models import CatalogItem
from ticketing.errors import PriceIntegrityWarning
from .models import CartSelection, ResolvedLineItem
from .resolver import fallback_item, resolve_one

logger = logging.getLogger(__name__)


def _expand_package(selection: CartSelection, package: CatalogItem, catalog_items: Mapping[str, CatalogItem]) -> List[ResolvedLineItem]:
    items: List[ResolvedLineItem] = []
    for included_id in package.includes:
        ticket = catalog_items.get(included_id)
        if ticket is None:
            # Un billet inclus absent n'est jamais ignoré: ligne signalée à 0 que le validateur bloque
            logger.warning(
                "pricing.expander.missing_included package_id=%s included_id=%s",
                package.id, included_id,
            )
            items.append(ResolvedLineItem(
                id=f"{selection.attendee_id}-{included_id}",
                name=f"{package.name} (billet inclus introuvable)",
                price=Decimal("0"),
                attendee_id=selection.attendee_id,
                catalog_item_id=included_id,
                selection_id=selection.selection_id,
                is_from_package=True,
                package_id=package.id,
                package_name=package.name,
                price_verified=False,
                warning=PriceIntegrityWarning(item_id=included_id, client_price=Decimal("0"), reason="included_item_not_found"),
            ))
            continue
        items.append(ResolvedLineItem(
            id=f"{selection.attendee_id}-{ticket.id}",
            name=ticket.name,
            price=ticket.price,
            attendee_id=selection.attendee_id,
            catalog_item_id=ticket.id,
            selection_id=selection.selection_id,
            is_from_package=True,
            package_id=package.id,
            package_name=package.name,
        ))
    return items


def expand(
    selections: Sequence[CartSelection],
    catalog_items: Mapping[str, CatalogItem],
    package_items: Mapping[str, CatalogItem],
) -> List[ResolvedLineItem]:
    """
    Transforme les sélections en lignes facturables, dans l'ordre d'entrée:
    - forfait avec billets inclus: une ligne par billet inclus, au prix du billet
    - forfait sans billet inclus: une seule ligne au prix du forfait
    - billet simple: résolu comme resolve_prices
    - cible inconnue: ligne de repli signalée
    """
    result: List[ResolvedLineItem] = []
    for selection in selections:
        if not selection.is_package:
            result.append(resolve_one(selection, catalog_items, package_items))
            continue
        package = package_items.get(selection.catalog_item_id)
        if package is None:
            result.append(fallback_item(selection))
        elif package.includes:
            result.extend(_expand_package(selection, package, catalog_items))
        else:
            result.append(resolve_one(selection, catalog_items, package_items))
    return result
