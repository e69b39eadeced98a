"""
sourceId-normalization-v2

Moves local data from source ids built with the old normalization (host
lowercased, path case kept) to ids built from the fully lowercased URL:
configuration entries, per-source cache files and install records.

Version-controlled lock files are left alone; they migrate on the next
install or update, and ``identity.matches_source_id`` covers the gap.
Delete this module together with the legacy helpers in ``identity``.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

from bundlehub.constants import SOURCE_ID_MIGRATION_NAME
from bundlehub.files import atomic_write_json, list_json_files, read_json
from bundlehub.identity import (
    current_source_id,
    is_hub_generated_id,
    legacy_source_id,
    sanitize_filename,
)
from bundlehub.log_utils import logger
from bundlehub.migrations.registry import MigrationRegistry
from bundlehub.storage import Storage

MIGRATION_NAME = SOURCE_ID_MIGRATION_NAME


def _migrate_config_sources(storage: Storage) -> Dict[str, str]:
    """
    Rewrite legacy source ids in the configuration.

    Only ids that look hub-generated and equal the legacy id for the same
    inputs are touched; any other mismatch is left as is.

    Returns:
        Dict[str, str]: ``old_id -> new_id`` for every rewritten source.
    """
    id_map: Dict[str, str] = {}
    config = storage.load_config()
    entries: List[Dict[str, Any]] = config.get("sources", [])
    sources = storage.get_sources()
    by_id = {s.id: s for s in sources}

    for entry in entries:
        source = by_id.get(entry.get("id"))
        if source is None or not is_hub_generated_id(source.id):
            continue
        new_id = current_source_id(source)
        if source.id == new_id:
            continue
        legacy_id = legacy_source_id(source)
        if legacy_id and source.id == legacy_id:
            logger.info(f"Migrating source '{source.name}': {source.id} -> {new_id}")
            id_map[source.id] = new_id
            entry["id"] = new_id

    if id_map:
        storage.save_config(config)
    return id_map


def _migrate_source_cache_files(cache_dir: Path, id_map: Dict[str, str]) -> int:
    renamed = 0
    for old_id, new_id in id_map.items():
        old_file = cache_dir / f"{sanitize_filename(old_id)}.json"
        new_file = cache_dir / f"{sanitize_filename(new_id)}.json"
        if not old_file.exists() or new_file.exists():
            continue
        try:
            old_file.rename(new_file)
        except OSError as e:
            logger.warning(f"Failed to rename cache file for {old_id}: {e}")
            continue
        renamed += 1
        logger.debug(f"Renamed cache file: {old_file.name} -> {new_file.name}")
    return renamed


def _migrate_installation_records(install_dir: Path, id_map: Dict[str, str]) -> int:
    updated = 0
    for path in list_json_files(install_dir).values():
        record = read_json(path)
        if not isinstance(record, dict):
            continue
        old_id = record.get("sourceId")
        if old_id not in id_map:
            continue
        record["sourceId"] = id_map[old_id]
        if atomic_write_json(path, record):
            updated += 1
            logger.debug(f"Updated sourceId in installation record: {path.name}")
        else:
            logger.warning(f"Failed to migrate installation record {path.name}")
    return updated


async def run_source_id_normalization_migration(
    storage: Storage, registry: MigrationRegistry
) -> bool:
    """
    Run the source id normalization once.

    Returns:
        bool: ``True`` if the migration ran now, ``False`` if it had already run.
    """

    async def _migrate() -> Optional[Dict[str, Any]]:
        id_map = _migrate_config_sources(storage)
        if not id_map:
            logger.info("No sources require ID migration")
            return None

        logger.info(
            f"Migrating {len(id_map)} source ID(s): "
            + ", ".join(f"{old} -> {new}" for old, new in id_map.items())
        )
        renamed = _migrate_source_cache_files(storage.paths.sources_cache, id_map)
        records = 0
        for directory in storage.paths.record_dirs():
            records += _migrate_installation_records(directory, id_map)
        return {
            "migratedSources": id_map,
            "renamedCacheFiles": renamed,
            "updatedRecords": records,
        }

    return await registry.run_migration(MIGRATION_NAME, _migrate)
