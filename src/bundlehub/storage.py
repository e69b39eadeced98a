"""
Persistent storage for bundlehub.

This module owns the on-disk layout: the configuration file holding the
``sources`` array, per-source bundle caches, install records for both scopes
and a small durable key-value store used by the migration runner.

All writes go through ``atomic_write_json`` so an interrupted process never
leaves a partially written file behind.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import platformdirs

from bundlehub.constants import (
    APP_NAME,
    CONFIG_FILE_NAME,
    CONFIG_SCHEMA_VERSION,
    HOME_ENV_VAR,
    INSTALLED_DIR,
    SOURCES_CACHE_DIR,
    STATE_FILE_NAME,
    USER_BUNDLES_DIR,
    USER_INSTALLED_DIR,
    WORKSPACE_DIR_NAME,
)
from bundlehub.exceptions import (
    ConfigFileError,
    InstallError,
    SourceNotFoundError,
)
from bundlehub.files import atomic_write_json, list_json_files, read_json
from bundlehub.identity import sanitize_filename
from bundlehub.log_utils import logger
from bundlehub.models import Bundle, InstalledBundle, InstallScope, Source


@dataclass(frozen=True)
class StoragePaths:
    """Resolved filesystem locations used by Storage."""

    root: Path
    workspace: Path

    @property
    def config_file(self) -> Path:
        return self.root / CONFIG_FILE_NAME

    @property
    def state_file(self) -> Path:
        return self.root / STATE_FILE_NAME

    @property
    def sources_cache(self) -> Path:
        return self.root / SOURCES_CACHE_DIR

    @property
    def installed(self) -> Path:
        """Workspace-scope install records."""
        return self.root / INSTALLED_DIR

    @property
    def user_installed(self) -> Path:
        """User-scope install records."""
        return self.root / USER_INSTALLED_DIR

    @property
    def user_bundles(self) -> Path:
        return self.root / USER_BUNDLES_DIR

    @property
    def workspace_bundles(self) -> Path:
        return self.workspace / WORKSPACE_DIR_NAME / USER_BUNDLES_DIR

    def records_dir(self, scope: InstallScope) -> Path:
        if InstallScope(scope) is InstallScope.USER:
            return self.user_installed
        return self.installed

    def bundles_dir(self, scope: InstallScope) -> Path:
        if InstallScope(scope) is InstallScope.USER:
            return self.user_bundles
        return self.workspace_bundles

    def record_dirs(self) -> List[Path]:
        return [self.installed, self.user_installed]


def default_data_dir() -> str:
    """
    Return the bundlehub data root.

    The ``BUNDLEHUB_HOME`` environment variable wins over the platform default.
    """
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return os.path.expanduser(override)
    return platformdirs.user_data_dir(APP_NAME)


class Storage:
    """
    File-backed persistence for sources, caches, install records and state.

    Single-process, single-writer access is assumed; no file locking is done.
    """

    def __init__(
        self,
        root: Optional[str] = None,
        workspace: Optional[str] = None,
    ) -> None:
        """
        Parameters:
            root (Optional[str]): Data root; defaults to ``default_data_dir()``.
            workspace (Optional[str]): Workspace directory for workspace-scope
                bundle files; defaults to the current working directory.
        """
        self.paths = StoragePaths(
            root=Path(root or default_data_dir()),
            workspace=Path(workspace or os.getcwd()),
        )
        self._ensure_dirs()

    def _ensure_dirs(self) -> None:
        for directory in (
            self.paths.root,
            self.paths.sources_cache,
            self.paths.installed,
            self.paths.user_installed,
        ):
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                logger.error(f"Could not create storage directory {directory}: {e}")
                raise ConfigFileError(
                    "Could not create storage directory", details=str(e)
                ) from e

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def load_config(self) -> Dict[str, Any]:
        """
        Load the configuration document, returning an empty one when absent.

        Raises:
            ConfigFileError: If the file exists but does not hold a JSON object.
        """
        path = self.paths.config_file
        if not path.exists():
            return {"version": CONFIG_SCHEMA_VERSION, "sources": [], "settings": {}}
        data = read_json(path)
        if not isinstance(data, dict):
            raise ConfigFileError(
                "Configuration file is not a JSON object", details=str(path)
            )
        data.setdefault("version", CONFIG_SCHEMA_VERSION)
        data.setdefault("sources", [])
        data.setdefault("settings", {})
        return data

    def save_config(self, config: Dict[str, Any]) -> None:
        if not atomic_write_json(self.paths.config_file, config):
            raise ConfigFileError(
                "Could not write configuration file",
                details=str(self.paths.config_file),
            )

    def get_sources(self) -> List[Source]:
        """Return every configured source; malformed entries are skipped with a warning."""
        sources: List[Source] = []
        for entry in self.load_config().get("sources", []):
            try:
                sources.append(Source.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed source entry {entry!r}: {e}")
        return sources

    def _write_sources(self, sources: List[Source]) -> None:
        config = self.load_config()
        config["sources"] = [s.to_dict() for s in sources]
        self.save_config(config)

    def add_source(self, source: Source) -> None:
        sources = [s for s in self.get_sources() if s.id != source.id]
        sources.append(source)
        self._write_sources(sources)

    def update_source(self, source_id: str, source: Source) -> None:
        """
        Replace the stored source ``source_id`` with ``source`` (which may carry a new id).

        Raises:
            SourceNotFoundError: If no source has id ``source_id``.
        """
        sources = self.get_sources()
        for index, existing in enumerate(sources):
            if existing.id == source_id:
                sources[index] = source
                self._write_sources(sources)
                return
        raise SourceNotFoundError(f"Source not found: {source_id}")

    def remove_source(self, source_id: str) -> None:
        sources = self.get_sources()
        remaining = [s for s in sources if s.id != source_id]
        if len(remaining) == len(sources):
            raise SourceNotFoundError(f"Source not found: {source_id}")
        self._write_sources(remaining)

    # ------------------------------------------------------------------
    # Per-source bundle cache
    # ------------------------------------------------------------------

    def source_cache_file(self, source_id: str) -> Path:
        return self.paths.sources_cache / f"{sanitize_filename(source_id)}.json"

    def cache_source_bundles(self, source_id: str, bundles: List[Bundle]) -> None:
        path = self.source_cache_file(source_id)
        payload = {
            "sourceId": source_id,
            "bundles": [b.to_dict() for b in bundles],
        }
        if not atomic_write_json(path, payload):
            logger.warning(f"Could not write bundle cache for source {source_id}")

    def get_cached_source_bundles(self, source_id: str) -> List[Bundle]:
        data = read_json(self.source_cache_file(source_id))
        if not isinstance(data, dict):
            return []
        bundles: List[Bundle] = []
        for entry in data.get("bundles", []):
            try:
                bundles.append(Bundle.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug(f"Skipping malformed cached bundle in {source_id}: {e}")
        return bundles

    def clear_source_cache(self, source_id: str) -> None:
        path = self.source_cache_file(source_id)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove bundle cache {path}: {e}")

    # ------------------------------------------------------------------
    # Install records
    # ------------------------------------------------------------------

    def installed_record_file(self, bundle_id: str, scope: InstallScope) -> Path:
        return self.paths.records_dir(scope) / f"{sanitize_filename(bundle_id)}.json"

    def save_installed(self, record: InstalledBundle) -> None:
        path = self.installed_record_file(record.bundle_id, record.scope)
        if not atomic_write_json(path, record.to_dict()):
            raise InstallError("Could not write install record", path=str(path))

    def get_installed(
        self, bundle_id: str, scope: InstallScope
    ) -> Optional[InstalledBundle]:
        data = read_json(self.installed_record_file(bundle_id, scope))
        if not isinstance(data, dict):
            return None
        try:
            return InstalledBundle.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed install record for {bundle_id}: {e}")
            return None

    def list_installed(
        self, scope: Optional[InstallScope] = None
    ) -> List[InstalledBundle]:
        scopes = [InstallScope(scope)] if scope else list(InstallScope)
        records: List[InstalledBundle] = []
        for current in scopes:
            for path in list_json_files(self.paths.records_dir(current)).values():
                data = read_json(path)
                if not isinstance(data, dict):
                    continue
                try:
                    records.append(InstalledBundle.from_dict(data))
                except (KeyError, TypeError, ValueError) as e:
                    logger.warning(f"Ignoring malformed install record {path}: {e}")
        return records

    def remove_installed(self, bundle_id: str, scope: InstallScope) -> bool:
        path = self.installed_record_file(bundle_id, scope)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise InstallError(
                "Could not remove install record", path=str(path), details=str(e)
            ) from e
        return True

    # ------------------------------------------------------------------
    # Durable key-value state
    # ------------------------------------------------------------------

    def _load_state(self) -> Dict[str, Any]:
        data = read_json(self.paths.state_file)
        return data if isinstance(data, dict) else {}

    def get_state(self, key: str, default: Any = None) -> Any:
        return self._load_state().get(key, default)

    def update_state(self, key: str, value: Any) -> None:
        state = self._load_state()
        state[key] = value
        if not atomic_write_json(self.paths.state_file, state):
            raise ConfigFileError(
                "Could not write state file", details=str(self.paths.state_file)
            )
