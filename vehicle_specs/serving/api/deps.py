"""
Service wiring for the HTTP adapter.

The services are built once per process (in the application lifespan) and
kept on app.state; route handlers receive them through FastAPI dependencies.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from vehicle_specs.catalog import AttributeCatalog
from vehicle_specs.comparison import ComparisonEngine
from vehicle_specs.editing import SpecWriter
from vehicle_specs.resolution import EffectiveValueResolver
from vehicle_specs.snapshots import CollectionService, SnapshotManager


@dataclass
class Services:
    """Process-wide engine components"""
    catalog: AttributeCatalog
    resolver: EffectiveValueResolver
    comparison: ComparisonEngine
    snapshots: SnapshotManager
    collections: CollectionService
    writer: SpecWriter


def build_services(catalog: Optional[AttributeCatalog] = None) -> Services:
    catalog = catalog or AttributeCatalog()
    resolver = EffectiveValueResolver(catalog)
    comparison = ComparisonEngine(catalog, resolver)
    snapshots = SnapshotManager(comparison)
    return Services(
        catalog=catalog,
        resolver=resolver,
        comparison=comparison,
        snapshots=snapshots,
        collections=CollectionService(snapshots),
        writer=SpecWriter(catalog),
    )


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services not initialized; the application lifespan has not run")
    return services
