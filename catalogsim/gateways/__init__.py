"""Catalog gateways and backend selection."""

from ..config import Settings
from ..errors import ConfigurationError
from .common import INSERT, UPDATE, BulkWriter, CatalogGateway, WriteOp, WriterStats


def make_gateway(settings: Settings, logger=None) -> CatalogGateway:
    """Build the gateway for the configured backend."""
    if settings.backend == "sql":
        from .sql import SqlCatalogGateway
        return SqlCatalogGateway(settings.db_path, logger=logger)
    if settings.backend == "elastic":
        from .elastic import ElasticCatalogGateway
        return ElasticCatalogGateway(settings.es_url, logger=logger)
    raise ConfigurationError(f"Unknown backend '{settings.backend}'")


__all__ = [
    "INSERT",
    "UPDATE",
    "BulkWriter",
    "CatalogGateway",
    "WriteOp",
    "WriterStats",
    "make_gateway",
]
