"""
Module 'catalog': billets et forfaits faisant autorité sur les prix et les stocks.
"""

from .models import CatalogItem, to_decimal
from .repository import CatalogSource, SupabaseCatalogRepository

__all__ = [
    "CatalogItem",
    "to_decimal",
    "CatalogSource",
    "SupabaseCatalogRepository",
]
