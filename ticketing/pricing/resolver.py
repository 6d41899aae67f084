"""
Résolution des prix: le catalogue fait autorité, le prix client est ignoré.

Le prix client n'est repris que lorsqu'aucun enregistrement ne correspond;
la ligne est alors signalée (PriceIntegrityWarning) et journalisée.
"""
from typing import List, Mapping, Sequence
import logging

from ticketing.catalog.models import CatalogItem
from ticketing.errors import PriceIntegrityWarning
from .models import CartSelection, ResolvedLineItem

logger = logging.getLogger(__name__)


def fallback_item(selection: CartSelection, *, name: str = "") -> ResolvedLineItem:
    """Ligne de repli construite depuis la sélection elle-même (prix non vérifié)."""
    logger.warning(
        "pricing.resolver.fallback selection_id=%s catalog_item_id=%s client_price=%s",
        selection.selection_id, selection.catalog_item_id, selection.price,
    )
    return ResolvedLineItem(
        id=selection.selection_id,
        name=name or selection.catalog_item_id,
        price=selection.price,
        attendee_id=selection.attendee_id,
        catalog_item_id=selection.catalog_item_id,
        selection_id=selection.selection_id,
        is_package=selection.is_package,
        price_verified=False,
        warning=PriceIntegrityWarning(item_id=selection.catalog_item_id, client_price=selection.price),
    )


def resolve_one(
    selection: CartSelection,
    catalog_items: Mapping[str, CatalogItem],
    package_items: Mapping[str, CatalogItem],
) -> ResolvedLineItem:
    source = package_items if selection.is_package else catalog_items
    record = source.get(selection.catalog_item_id)
    if record is None:
        return fallback_item(selection)
    if record.price != selection.price:
        logger.info(
            "pricing.resolver.override selection_id=%s client_price=%s catalog_price=%s",
            selection.selection_id, selection.price, record.price,
        )
    return ResolvedLineItem(
        id=selection.selection_id,
        name=record.name,
        price=record.price,
        attendee_id=selection.attendee_id,
        catalog_item_id=record.id,
        selection_id=selection.selection_id,
        is_package=selection.is_package,
        package_id=record.id if selection.is_package else None,
        package_name=record.name if selection.is_package else None,
    )


def resolve_prices(
    selections: Sequence[CartSelection],
    catalog_items: Mapping[str, CatalogItem],
    package_items: Mapping[str, CatalogItem],
) -> List[ResolvedLineItem]:
    """
    Une ligne par sélection, dans l'ordre d'entrée.
    Fonction pure: mêmes entrées, mêmes sorties.
    """
    return [resolve_one(s, catalog_items, package_items) for s in selections]
