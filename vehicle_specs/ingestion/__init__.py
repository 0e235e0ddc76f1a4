"""
Catalog Ingestion Module
"""
from .seed_catalog import CatalogSeeder, SeedResult, read_seed_csv

__all__ = [
    "CatalogSeeder",
    "SeedResult",
    "read_seed_csv",
]
