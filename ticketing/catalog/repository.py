"""
Accès aux données du catalogue (tables 'event_tickets' et 'packages').

- « Introuvable » renvoie None / un dict sans la clé.
- « Lecture impossible » lève CatalogLookupError: l'appelant ne doit jamais
  retomber sur le prix client dans ce cas.
"""
from typing import Dict, Iterable, List, Optional, Protocol, Tuple
import logging

from supabase import Client

from ticketing.errors import CatalogLookupError, MissingCatalogReference
from .models import CatalogItem

logger = logging.getLogger(__name__)

TICKETS_TABLE = "event_tickets"
PACKAGES_TABLE = "packages"


class CatalogSource(Protocol):
    def get_catalog_items(self, ids: Iterable[str], function_id: Optional[str] = None) -> Dict[str, CatalogItem]: ...

    def get_packages(self, ids: Iterable[str], function_id: Optional[str] = None) -> Dict[str, CatalogItem]: ...

    def get_catalog_item(self, item_id: str) -> Optional[CatalogItem]: ...

    def get_package(self, package_id: str) -> Optional[CatalogItem]: ...

    def get_available_quantity(self, item_id: str) -> Optional[int]: ...

    def compare_and_set_available(self, item_id: str, expected: int, new: int) -> bool: ...


# module ticketing.catalog.repository
class SupabaseCatalogRepository:
    def __init__(self, client: Client):
        self.client = client

    def _select_in(self, table: str, ids: List[str]) -> List[dict]:
        try:
            res = (
                self.client
                .table(table)
                .select("*")
                .in_("id", ids)
                .execute()
            )
            return res.data or []
        except Exception as e:
            logger.exception("catalog.repository._select_in failed table=%s ids=%s", table, ids)
            raise CatalogLookupError("Catalogue momentanément indisponible") from e

    def _select_one(self, table: str, item_id: str) -> Optional[dict]:
        rows = self._select_in(table, [item_id])
        return rows[0] if rows else None

    def get_catalog_items(self, ids: Iterable[str], function_id: Optional[str] = None) -> Dict[str, CatalogItem]:
        """
        Retourne {id: CatalogItem} pour les billets demandés.
        Les billets d'une autre fonction sont traités comme introuvables.
        """
        id_list = sorted({str(i) for i in ids if i})
        if not id_list:
            return {}
        items = [CatalogItem.from_ticket_row(r) for r in self._select_in(TICKETS_TABLE, id_list)]
        return {it.id: it for it in items if _same_function(it, function_id)}

    def get_packages(self, ids: Iterable[str], function_id: Optional[str] = None) -> Dict[str, CatalogItem]:
        id_list = sorted({str(i) for i in ids if i})
        if not id_list:
            return {}
        items = [CatalogItem.from_package_row(r) for r in self._select_in(PACKAGES_TABLE, id_list)]
        return {it.id: it for it in items if _same_function(it, function_id)}

    def get_catalog_item(self, item_id: str) -> Optional[CatalogItem]:
        row = self._select_one(TICKETS_TABLE, item_id)
        return CatalogItem.from_ticket_row(row) if row else None

    def get_package(self, package_id: str) -> Optional[CatalogItem]:
        row = self._select_one(PACKAGES_TABLE, package_id)
        return CatalogItem.from_package_row(row) if row else None

    def _locate(self, item_id: str) -> Tuple[str, dict]:
        for table in (TICKETS_TABLE, PACKAGES_TABLE):
            row = self._select_one(table, item_id)
            if row:
                return table, row
        raise MissingCatalogReference(f"Article de catalogue introuvable: {item_id}", item_id=item_id)

    def get_available_quantity(self, item_id: str) -> Optional[int]:
        """
        Quantité disponible d'un billet ou forfait.
        None = stock non suivi (illimité).
        """
        _, row = self._locate(item_id)
        value = row.get("available_count")
        return None if value is None else int(value)

    def compare_and_set_available(self, item_id: str, expected: int, new: int) -> bool:
        """
        Décrément conditionnel: n'écrit que si available_count vaut encore `expected`.
        Retourne False si une autre requête a modifié le stock entre-temps.
        """
        table, _ = self._locate(item_id)
        try:
            res = (
                self.client
                .table(table)
                .update({"available_count": new})
                .eq("id", item_id)
                .eq("available_count", expected)
                .execute()
            )
            return bool(res.data)
        except Exception as e:
            logger.exception("catalog.repository.compare_and_set_available failed id=%s", item_id)
            raise CatalogLookupError("Mise à jour du stock impossible") from e


def _same_function(item: CatalogItem, function_id: Optional[str]) -> bool:
    return not function_id or not item.function_id or item.function_id == function_id
