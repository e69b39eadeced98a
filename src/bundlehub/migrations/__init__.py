"""
Persisted-state migrations.

``run_startup_migrations`` applies every known migration in order; each one
is guarded by ``MigrationRegistry`` so repeated startups are no-ops.
"""

from typing import List

from bundlehub.migrations.registry import MigrationRegistry
from bundlehub.migrations.source_id_normalization import (
    MIGRATION_NAME as SOURCE_ID_NORMALIZATION,
)
from bundlehub.migrations.source_id_normalization import (
    run_source_id_normalization_migration,
)
from bundlehub.storage import Storage

__all__ = [
    "MigrationRegistry",
    "SOURCE_ID_NORMALIZATION",
    "run_source_id_normalization_migration",
    "run_startup_migrations",
]


async def run_startup_migrations(
    storage: Storage, registry: MigrationRegistry
) -> List[str]:
    """
    Apply pending migrations.

    Returns:
        List[str]: Names of the migrations that ran during this call.
    """
    ran: List[str] = []
    if await run_source_id_normalization_migration(storage, registry):
        ran.append(SOURCE_ID_NORMALIZATION)
    return ran
