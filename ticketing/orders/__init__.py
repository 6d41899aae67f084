"""
Module 'orders': construction de la commande et garde de stock.
"""

from .builder import ALLOWED_METADATA_KEYS, Order, OrderLine, build_order, filter_metadata, group_by_attendee
from .inventory import InventoryCheck, InventoryGuard, Reservation

__all__ = [
    "ALLOWED_METADATA_KEYS",
    "Order",
    "OrderLine",
    "build_order",
    "filter_metadata",
    "group_by_attendee",
    "InventoryCheck",
    "InventoryGuard",
    "Reservation",
]
