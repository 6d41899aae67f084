"""
Construction de la commande normalisée envoyée au prestataire de paiement.

- Inscription de loge: lignes regroupées par (forfait, article, prix unitaire)
  avec une note « Nom (N forfaits × M articles) ».
- Inscription individuelle ou délégation: une ligne par couple participant-billet,
  jamais regroupée.
- Métadonnées filtrées sur une liste blanche, valeurs tronquées à 500 caractères.
"""
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from ticketing.pricing.models import ResolvedLineItem

METADATA_VALUE_MAX = 500

ALLOWED_METADATA_KEYS = frozenset({
    "registration_id",
    "function_id",
    "registration_type",
    "lodge_name",
    "lodge_number",
    "grand_lodge",
    "package_count",
    "items_per_package",
    "attendee_count",
    "subtotal",
    "platform_fee",
    "contact_email",
})


@dataclass(frozen=True)
class OrderLine:
    catalog_item_id: Optional[str]
    name: str
    quantity: int
    unit_price: Decimal
    note: str = ""
    package_id: Optional[str] = None

    @property
    def amount(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class Order:
    location_id: str
    lines: Tuple[OrderLine, ...]
    metadata: Dict[str, str]
    contact: Dict[str, Any] = field(default_factory=dict)
    customer_id: Optional[str] = None
    idempotency_key: str = field(default_factory=lambda: str(uuid4()))
    service_charge: Decimal = Decimal("0")
    total: Optional[Decimal] = None

    @property
    def subtotal(self) -> Decimal:
        return sum((line.amount for line in self.lines), Decimal("0"))

    @property
    def amount_due(self) -> Decimal:
        return self.total if self.total is not None else self.subtotal + self.service_charge

    @property
    def registration_id(self) -> Optional[str]:
        return self.metadata.get("registration_id")

    def with_customer(self, customer_id: str) -> "Order":
        return replace(self, customer_id=customer_id)

    def with_metadata(self, **extra: Any) -> "Order":
        merged = dict(self.metadata)
        merged.update(filter_metadata(extra))
        return replace(self, metadata=merged)


def filter_metadata(metadata: Mapping[str, Any]) -> Dict[str, str]:
    """Ne garde que les clés autorisées; valeurs converties en str et tronquées."""
    out: Dict[str, str] = {}
    for key, value in (metadata or {}).items():
        if key not in ALLOWED_METADATA_KEYS or value is None:
            continue
        out[key] = str(value)[:METADATA_VALUE_MAX]
    return out


def _attendee_key(attendee: Any) -> str:
    if isinstance(attendee, str):
        return attendee
    if isinstance(attendee, Mapping):
        return str(attendee.get("attendee_id") or attendee.get("id") or "")
    return str(getattr(attendee, "attendee_id", "") or getattr(attendee, "id", ""))


def group_by_attendee(line_items: Iterable[ResolvedLineItem]) -> Dict[str, List[ResolvedLineItem]]:
    grouped: Dict[str, List[ResolvedLineItem]] = {}
    for li in line_items:
        grouped.setdefault(li.attendee_id, []).append(li)
    return grouped


def _ordered_items(attendees: Sequence[Any], line_items_by_attendee: Mapping[str, Sequence[ResolvedLineItem]]) -> List[ResolvedLineItem]:
    items: List[ResolvedLineItem] = []
    for attendee in attendees:
        items.extend(line_items_by_attendee.get(_attendee_key(attendee), []))
    return items


def _individual_lines(items: Sequence[ResolvedLineItem]) -> List[OrderLine]:
    return [
        OrderLine(
            catalog_item_id=li.catalog_item_id or None,
            name=li.name,
            quantity=1,
            unit_price=li.price,
            note=f"{li.name} ({li.package_name})" if li.is_from_package and li.package_name else li.name,
            package_id=li.package_id,
        )
        for li in items
    ]


def _items_per_package(items: Sequence[ResolvedLineItem]) -> Dict[str, int]:
    """Nombre d'articles par forfait: lignes du forfait / nombre de forfaits sélectionnés."""
    lines: Dict[str, int] = {}
    selections: Dict[str, set] = {}
    for li in items:
        if not li.package_id:
            continue
        lines[li.package_id] = lines.get(li.package_id, 0) + 1
        selections.setdefault(li.package_id, set()).add(li.selection_id or li.id)
    return {pid: count // max(len(selections[pid]), 1) for pid, count in lines.items()}


def _lodge_lines(items: Sequence[ResolvedLineItem]) -> List[OrderLine]:
    groups: Dict[Tuple[Optional[str], str, Decimal], Dict[str, Any]] = {}
    for li in items:
        key = (li.package_id, li.catalog_item_id, li.price)
        group = groups.setdefault(key, {"item": li, "quantity": 0, "selections": set()})
        group["quantity"] += 1
        group["selections"].add(li.selection_id or li.id)

    per_package = _items_per_package(items)
    lines: List[OrderLine] = []
    for (package_id, catalog_item_id, price), group in groups.items():
        li: ResolvedLineItem = group["item"]
        quantity = group["quantity"]
        if package_id:
            packages = len(group["selections"])
            note = f"{li.package_name or li.name} ({packages} packages × {per_package[package_id]} items)"
        else:
            note = li.name
        lines.append(OrderLine(
            catalog_item_id=catalog_item_id or None,
            name=li.name,
            quantity=quantity,
            unit_price=price,
            note=note,
            package_id=package_id,
        ))
    return lines


def build_order(
    attendees: Sequence[Any],
    line_items_by_attendee: Mapping[str, Sequence[ResolvedLineItem]],
    contact: Mapping[str, Any],
    metadata: Mapping[str, Any],
    *,
    registration_type: str,
    location_id: str,
    service_charge: Decimal = Decimal("0"),
    total: Optional[Decimal] = None,
) -> Order:
    """
    Construit la commande: lignes, métadonnées filtrées et clé d'idempotence neuve.
    Invariant: somme(quantité * prix unitaire) == sous-total des lignes résolues.
    """
    items = _ordered_items(attendees, line_items_by_attendee)
    if registration_type == "lodge":
        lines = _lodge_lines(items)
    else:
        lines = _individual_lines(items)

    meta = dict(metadata or {})
    meta.setdefault("registration_type", registration_type)
    meta.setdefault("attendee_count", len(attendees))
    if registration_type == "lodge":
        package_lines = [line for line in lines if line.package_id]
        if package_lines:
            meta.setdefault("package_count", max(len({li.selection_id for li in items if li.package_id}), 1))
            meta.setdefault("items_per_package", max(_items_per_package(items).values(), default=1))

    return Order(
        location_id=location_id,
        lines=tuple(lines),
        metadata=filter_metadata(meta),
        contact=dict(contact or {}),
        service_charge=service_charge,
        total=total,
    )
