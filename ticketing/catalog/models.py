"""
Enregistrements du catalogue (billets d'événement et forfaits), en lecture seule.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple


def to_decimal(value: Any) -> Decimal:
    """Convertit str|float|int|None en Decimal; 0 si non parsable."""
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


@dataclass(frozen=True)
class CatalogItem:
    id: str
    name: str
    price: Decimal
    description: str = ""
    includes: Tuple[str, ...] = ()
    function_id: Optional[str] = None
    available_count: Optional[int] = None
    is_package: bool = False

    def __post_init__(self):
        if self.price < 0:
            raise ValueError(f"prix négatif pour l'article {self.id}")

    @property
    def is_atomic(self) -> bool:
        return not self.includes

    @classmethod
    def from_ticket_row(cls, row: Dict[str, Any]) -> "CatalogItem":
        return cls(
            id=str(row.get("id") or ""),
            name=row.get("name") or "Billet",
            description=row.get("description") or "",
            price=to_decimal(row.get("price")),
            function_id=_opt_str(row.get("function_id")),
            available_count=_opt_int(row.get("available_count")),
        )

    @classmethod
    def from_package_row(cls, row: Dict[str, Any]) -> "CatalogItem":
        includes = row.get("includes") or []
        return cls(
            id=str(row.get("id") or ""),
            name=row.get("name") or "Forfait",
            description=row.get("description") or "",
            price=to_decimal(row.get("package_price", row.get("price"))),
            includes=tuple(str(i) for i in includes if i),
            function_id=_opt_str(row.get("function_id")),
            available_count=_opt_int(row.get("available_count")),
            is_package=True,
        )


def _opt_str(v: Any) -> Optional[str]:
    return str(v) if v else None


def _opt_int(v: Any) -> Optional[int]:
    if v is None or v == "":
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None
