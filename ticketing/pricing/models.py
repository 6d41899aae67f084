"""
Sélections du panier (non fiables) et lignes résolues (prix faisant autorité).
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from ticketing.errors import PriceIntegrityWarning


def parse_selection_id(raw_id: str, attendee_id: str) -> str:
    """
    Extrait l'id catalogue d'un identifiant de sélection hérité.
    - "<attendeeId>-<catalogItemId>": le préfixe n'est retiré que s'il
      correspond exactement à l'id du participant suivi de "-".
    - Sinon l'identifiant est pris tel quel (id catalogue nu).
    Les UUID contenant eux-mêmes des tirets ne sont donc jamais découpés.
    """
    raw_id = (raw_id or "").strip()
    prefix = f"{attendee_id}-" if attendee_id else ""
    if prefix and raw_id.startswith(prefix) and len(raw_id) > len(prefix):
        return raw_id[len(prefix):]
    return raw_id


@dataclass(frozen=True)
class CartSelection:
    attendee_id: str
    catalog_item_id: str
    is_package: bool = False
    price: Decimal = Decimal("0")
    selection_id: str = ""

    def __post_init__(self):
        if not self.selection_id:
            object.__setattr__(self, "selection_id", f"{self.attendee_id}-{self.catalog_item_id}")

    @classmethod
    def from_legacy(cls, raw_id: str, attendee_id: str, *, is_package: bool = False, price: Decimal = Decimal("0")) -> "CartSelection":
        return cls(
            attendee_id=attendee_id,
            catalog_item_id=parse_selection_id(raw_id, attendee_id),
            is_package=is_package,
            price=price,
            selection_id=raw_id,
        )


@dataclass(frozen=True)
class ResolvedLineItem:
    id: str
    name: str
    price: Decimal
    attendee_id: str
    catalog_item_id: str
    selection_id: str = ""
    is_package: bool = False
    is_from_package: bool = False
    package_id: Optional[str] = None
    package_name: Optional[str] = None
    price_verified: bool = True
    warning: Optional[PriceIntegrityWarning] = field(default=None, compare=False)

    @property
    def flagged(self) -> bool:
        return not self.price_verified
