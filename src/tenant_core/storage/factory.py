"""Select the storage backend configured for this process."""

from __future__ import annotations

import structlog

from tenant_core.config import Settings, StorageBackendKind
from tenant_core.storage.base import StorageProvider
from tenant_core.storage.database import Database
from tenant_core.storage.memory import MemoryProvider
from tenant_core.storage.sql import SqlProvider

logger = structlog.get_logger()


def create_storage_provider(
    settings: Settings, database: Database | None = None
) -> StorageProvider:
    """Build the provider named by ``settings.storage_backend``.

    Args:
        settings: Application settings.
        database: Existing database handle; created and connected when
            omitted and the postgres backend is selected.

    Returns:
        A ready-to-use storage provider.
    """
    if settings.storage_backend == StorageBackendKind.MEMORY:
        logger.info("storage_backend_selected", backend="memory")
        return MemoryProvider()

    if database is None:
        database = Database(settings)
    database.connect()
    logger.info("storage_backend_selected", backend="postgres")
    return SqlProvider(database)
