"""
Contrôle et réservation des stocks avant soumission au prestataire.

Le contrôle est en lecture seule (aucun appel prestataire n'a lieu si le stock
manque). La réservation décrémente de façon conditionnelle (compare-and-set)
avec un nombre borné de relectures en cas de conflit. Elle n'est pas atomique
avec la création de commande: une survente résiduelle relève de la réconciliation.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
import logging

from ticketing.catalog.repository import CatalogSource
from ticketing.errors import InsufficientInventory, InventoryConflict, MissingCatalogReference, TicketingError
from .builder import Order

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InventoryCheck:
    catalog_item_id: str
    requested: int
    available: Optional[int]

    @property
    def tracked(self) -> bool:
        return self.available is not None


@dataclass(frozen=True)
class Reservation:
    catalog_item_id: str
    quantity: int


def _aggregate(order: Order) -> Dict[str, Dict[str, object]]:
    totals: Dict[str, Dict[str, object]] = {}
    for line in order.lines:
        if not line.catalog_item_id:
            raise MissingCatalogReference(f"Ligne sans référence catalogue: {line.name}")
        entry = totals.setdefault(line.catalog_item_id, {"quantity": 0, "name": line.name})
        entry["quantity"] = int(entry["quantity"]) + line.quantity
    return totals


class InventoryGuard:
    def __init__(self, catalog: CatalogSource, max_conflict_retries: int = 3):
        self.catalog = catalog
        self.max_conflict_retries = max(1, max_conflict_retries)

    def check_inventory(self, catalog_item_id: Optional[str], requested_quantity: int, item_name: Optional[str] = None) -> InventoryCheck:
        """
        Vérifie qu'une quantité est disponible.
        - id absent: MissingCatalogReference, sans lecture
        - stock non suivi (None): illimité
        - demandé > disponible: InsufficientInventory
        """
        if not catalog_item_id:
            raise MissingCatalogReference(f"Référence catalogue manquante pour {item_name or 'un article'}")
        available = self.catalog.get_available_quantity(catalog_item_id)
        if available is not None and requested_quantity > available:
            logger.info(
                "orders.inventory.insufficient catalog_item_id=%s requested=%s available=%s",
                catalog_item_id, requested_quantity, available,
            )
            raise InsufficientInventory(
                item_name or catalog_item_id,
                requested=requested_quantity,
                available=available,
                catalog_item_id=catalog_item_id,
            )
        return InventoryCheck(catalog_item_id=catalog_item_id, requested=requested_quantity, available=available)

    def check_order(self, order: Order) -> List[InventoryCheck]:
        """Contrôle agrégé par article; toutes les références sont validées avant la première lecture."""
        totals = _aggregate(order)
        return [
            self.check_inventory(item_id, int(entry["quantity"]), str(entry["name"]))
            for item_id, entry in totals.items()
        ]

    def _reserve_one(self, item_id: str, quantity: int, name: str) -> Optional[Reservation]:
        for attempt in range(1, self.max_conflict_retries + 1):
            available = self.catalog.get_available_quantity(item_id)
            if available is None:
                return None
            if quantity > available:
                raise InsufficientInventory(name, requested=quantity, available=available, catalog_item_id=item_id)
            if self.catalog.compare_and_set_available(item_id, available, available - quantity):
                return Reservation(catalog_item_id=item_id, quantity=quantity)
            logger.info("orders.inventory.conflict catalog_item_id=%s attempt=%s", item_id, attempt)
        raise InventoryConflict(f"Stock modifié en concurrence pour {name}, veuillez réessayer")

    def reserve_order(self, order: Order) -> List[Reservation]:
        """
        Réserve le stock de chaque article suivi.
        En cas d'échec, les réservations déjà faites sont relâchées avant de relancer l'erreur.
        """
        reservations: List[Reservation] = []
        try:
            for item_id, entry in _aggregate(order).items():
                reservation = self._reserve_one(item_id, int(entry["quantity"]), str(entry["name"]))
                if reservation:
                    reservations.append(reservation)
        except TicketingError:
            self.release(reservations)
            raise
        return reservations

    def release(self, reservations: Sequence[Reservation]) -> None:
        """Recrédite le stock (au mieux); un échec est journalisé pour réconciliation."""
        for reservation in reservations:
            try:
                for _ in range(self.max_conflict_retries):
                    available = self.catalog.get_available_quantity(reservation.catalog_item_id)
                    if available is None:
                        break
                    if self.catalog.compare_and_set_available(
                        reservation.catalog_item_id, available, available + reservation.quantity
                    ):
                        break
                else:
                    logger.error(
                        "orders.inventory.release_conflict catalog_item_id=%s quantity=%s",
                        reservation.catalog_item_id, reservation.quantity,
                    )
            except TicketingError:
                logger.exception(
                    "orders.inventory.release failed catalog_item_id=%s quantity=%s",
                    reservation.catalog_item_id, reservation.quantity,
                )
