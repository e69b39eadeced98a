"""
Registry manager.

Coordinates sources, adapters, consolidation, installation and persistence.
Every install goes through one path, whatever the source type::

    buffer = await adapter.download_bundle(bundle)
    record = installer.install_from_buffer(bundle, buffer, options, source)

and the install record is written only after that succeeded.
"""

import asyncio
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from bundlehub.adapters import AdapterFactory, RepositoryAdapter
from bundlehub.constants import DEFAULT_SOURCE_PRIORITY
from bundlehub.consolidation import VersionConsolidator, extract_bundle_identity
from bundlehub.events import EventEmitter
from bundlehub.exceptions import (
    BundleHubError,
    BundleNotFoundError,
    BundleNotInstalledError,
    ConfigurationError,
    SourceNotFoundError,
)
from bundlehub.identity import generate_source_id, matches_source_id
from bundlehub.installer import BundleInstaller
from bundlehub.log_utils import logger
from bundlehub.models import (
    Bundle,
    InstalledBundle,
    InstallOptions,
    InstallScope,
    SearchQuery,
    Source,
    SourceConfig,
    ValidationResult,
)
from bundlehub.storage import Storage


@dataclass
class BundleUpdate:
    """An installed bundle with a newer version available at its source."""

    bundle_id: str
    scope: InstallScope
    source_id: str
    installed_version: str
    latest_version: str


def _matches_query(bundle: Bundle, query: SearchQuery) -> bool:
    if query.text:
        needle = query.text.casefold()
        haystack = [bundle.id, bundle.name, bundle.description, *bundle.tags]
        if not any(needle in value.casefold() for value in haystack if value):
            return False
    if query.tags:
        bundle_tags = {t.casefold() for t in bundle.tags}
        if not all(t.casefold() in bundle_tags for t in query.tags):
            return False
    if query.environment:
        environments = {e.casefold() for e in bundle.environments}
        if environments and not environments & {query.environment.casefold(), "any"}:
            return False
    return True


class RegistryManager:
    """
    Search, install, update and uninstall bundles across configured sources.

    Lifecycle events are published on ``on_bundle_installed``,
    ``on_bundle_updated`` (payload: ``InstalledBundle``),
    ``on_bundle_uninstalled`` (payload: bundle id) and ``on_source_synced``
    (payload: source id).
    """

    def __init__(
        self,
        storage: Storage,
        adapter_factory: Optional[AdapterFactory] = None,
        installer: Optional[BundleInstaller] = None,
        consolidator: Optional[VersionConsolidator] = None,
    ) -> None:
        self.storage = storage
        self.adapter_factory = adapter_factory or AdapterFactory()
        self.installer = installer or BundleInstaller(storage)
        self.consolidator = consolidator or VersionConsolidator()
        self._adapters: Dict[str, RepositoryAdapter] = {}

        self.on_bundle_installed: EventEmitter[InstalledBundle] = EventEmitter(
            "bundle_installed"
        )
        self.on_bundle_updated: EventEmitter[InstalledBundle] = EventEmitter(
            "bundle_updated"
        )
        self.on_bundle_uninstalled: EventEmitter[str] = EventEmitter(
            "bundle_uninstalled"
        )
        self.on_source_synced: EventEmitter[str] = EventEmitter("source_synced")

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def list_sources(self, enabled_only: bool = False) -> List[Source]:
        sources = self.storage.get_sources()
        if enabled_only:
            sources = [s for s in sources if s.enabled]
        return sorted(sources, key=lambda s: s.priority, reverse=True)

    def get_source(self, source_id: str) -> Source:
        """
        Resolve a source by id.

        Ids written before the source-id normalization migration are still
        accepted for hub-generated sources.

        Raises:
            SourceNotFoundError: If no configured source matches.
        """
        sources = self.storage.get_sources()
        for source in sources:
            if source.id == source_id:
                return source
        for source in sources:
            if matches_source_id(source, source_id):
                logger.debug(f"Resolved legacy source id {source_id} to {source.id}")
                return source
        raise SourceNotFoundError(f"Source not found: {source_id}")

    def add_source(
        self,
        source_type: str,
        url: str,
        name: Optional[str] = None,
        config: Optional[SourceConfig] = None,
        priority: Optional[int] = None,
        token: Optional[str] = None,
        private: bool = False,
    ) -> Source:
        """
        Configure a new source with a generated id.

        Raises:
            ConfigurationError: If a source with the same id already exists.
        """
        config = config or SourceConfig()
        source_id = generate_source_id(
            source_type, url, config.branch, config.collections_path
        )
        if any(s.id == source_id for s in self.storage.get_sources()):
            raise ConfigurationError(
                f"Source already configured: {source_id}", details=url
            )
        source = Source(
            id=source_id,
            name=name or url,
            type=source_type,
            url=url,
            private=private,
            token=token,
            config=config,
            priority=DEFAULT_SOURCE_PRIORITY if priority is None else priority,
        )
        self.storage.add_source(source)
        logger.info(f"Added source {source.name} ({source.id})")
        return source

    def update_source(self, source_id: str, **changes) -> Source:
        """
        Apply field changes (``name``, ``enabled``, ``priority``, ``token``, ...).

        Raises:
            SourceNotFoundError: If the source does not exist.
        """
        source = self.get_source(source_id)
        updated = replace(source, **changes)
        self.storage.update_source(source.id, updated)
        self._drop_adapter(source.id)
        return updated

    def set_source_enabled(self, source_id: str, enabled: bool) -> Source:
        return self.update_source(source_id, enabled=enabled)

    async def remove_source(
        self, source_id: str, uninstall_bundles: bool = False
    ) -> List[str]:
        """
        Remove a source and its bundle cache.

        Returns:
            List[str]: Ids of bundles uninstalled along with it.
        """
        source = self.get_source(source_id)
        removed: List[str] = []
        if uninstall_bundles:
            for record in self.storage.list_installed():
                if matches_source_id(source, record.source_id):
                    await self.uninstall_bundle(record.bundle_id, record.scope)
                    removed.append(record.bundle_id)
        self.storage.remove_source(source.id)
        self.storage.clear_source_cache(source.id)
        self.consolidator.clear(source.id)
        self._drop_adapter(source.id)
        logger.info(f"Removed source {source.name} ({source.id})")
        return removed

    def get_adapter(self, source: Source) -> RepositoryAdapter:
        adapter = self._adapters.get(source.id)
        if adapter is None or adapter.source != source:
            adapter = self.adapter_factory.create(source)
            self._adapters[source.id] = adapter
        return adapter

    def _drop_adapter(self, source_id: str) -> None:
        self._adapters.pop(source_id, None)

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def _source_bundles(self, source: Source) -> List[Bundle]:
        """Fetch one source's bundles and consolidate them, degrading on failure."""
        try:
            raw = await self.get_adapter(source).fetch_bundles()
        except BundleHubError as e:
            logger.warning(f"Could not read bundles from {source.name}: {e}")
            return []
        try:
            return self.consolidator.consolidate_bundles(
                raw, source.type, source_id=source.id
            )
        except BundleHubError as e:
            logger.warning(
                f"Version consolidation failed for {source.name}, "
                f"using unconsolidated list: {e}"
            )
            return raw

    async def search_bundles(self, query: Optional[SearchQuery] = None) -> List[Bundle]:
        """
        Search every enabled source concurrently.

        Results are consolidated per source before filtering and ordered by
        source priority, highest first.
        """
        query = query or SearchQuery()
        sources = self.list_sources(enabled_only=True)
        if query.source_id:
            sources = [
                s
                for s in sources
                if s.id == query.source_id or matches_source_id(s, query.source_id)
            ]
        per_source = await asyncio.gather(*(self._source_bundles(s) for s in sources))

        results = [
            bundle
            for bundles in per_source
            for bundle in bundles
            if _matches_query(bundle, query)
        ]
        if query.limit is not None:
            results = results[: query.limit]
        return results

    async def get_bundle_details(self, source_id: str, bundle_id: str) -> Bundle:
        """
        Return the consolidated bundle ``bundle_id`` from a source.

        A raw per-release id such as ``acme-prompts-v1.0.0`` resolves to its
        consolidated bundle.

        Raises:
            SourceNotFoundError, BundleNotFoundError
        """
        source = self.get_source(source_id)
        bundles = await self._source_bundles(source)
        identity = extract_bundle_identity(bundle_id, source.type)
        for candidate in (bundle_id, identity):
            for bundle in bundles:
                if bundle.id == candidate:
                    return bundle
        raise BundleNotFoundError(
            f"Bundle {bundle_id} not found in source {source.id}"
        )

    def _select_version(self, bundle: Bundle, version: Optional[str]) -> Bundle:
        if not version or version == bundle.version:
            return bundle
        entry = self.consolidator.get_bundle_version(
            bundle.source_id, bundle.id, version
        )
        if entry is None:
            logger.warning(
                f"Version {version} of {bundle.id} not found; "
                f"installing latest ({bundle.version})"
            )
            return bundle
        return replace(
            bundle,
            version=entry.version,
            download_url=entry.download_url,
            manifest_url=entry.manifest_url,
            last_updated=entry.published_at,
        )

    # ------------------------------------------------------------------
    # Install / update / uninstall
    # ------------------------------------------------------------------

    async def install_bundle(
        self,
        source_id: str,
        bundle_id: str,
        options: Optional[InstallOptions] = None,
    ) -> InstalledBundle:
        """
        Install (or replace) a bundle from a source.

        Fires ``on_bundle_installed`` for a first install and
        ``on_bundle_updated`` when a record for the same bundle and scope
        already existed. Re-installing the installed version without
        ``force`` returns the existing record and fires nothing.

        Raises:
            SourceNotFoundError, BundleNotFoundError: On unknown ids.
            DownloadError: If the archive cannot be downloaded.
            ArchiveError, ManifestError, InstallError: If installation fails.
        """
        options = options or InstallOptions()
        source = self.get_source(source_id)
        bundle = await self.get_bundle_details(source.id, bundle_id)
        bundle = self._select_version(bundle, options.version)

        existing = self.storage.get_installed(bundle.id, options.scope)
        if (
            existing is not None
            and existing.version == bundle.version
            and matches_source_id(source, existing.source_id)
            and not options.force
        ):
            logger.info(f"{bundle.id} {bundle.version} is already installed")
            return existing

        adapter = self.get_adapter(source)
        logger.info(f"Installing {bundle.id} {bundle.version} from {source.name}")
        buffer = await adapter.download_bundle(bundle)
        record = self.installer.install_from_buffer(bundle, buffer, options, source)
        self.storage.save_installed(record)

        if existing is None:
            await self.on_bundle_installed.fire(record)
        else:
            await self.on_bundle_updated.fire(record)
        return record

    def _find_installed(
        self, bundle_id: str, scope: Optional[InstallScope] = None
    ) -> InstalledBundle:
        scopes = [InstallScope(scope)] if scope else list(InstallScope)
        for current in scopes:
            record = self.storage.get_installed(bundle_id, current)
            if record is not None:
                return record
        raise BundleNotInstalledError(f"Bundle {bundle_id} is not installed")

    async def update_bundle(
        self,
        bundle_id: str,
        scope: Optional[InstallScope] = None,
        version: Optional[str] = None,
    ) -> InstalledBundle:
        """
        Reinstall an installed bundle at the latest (or the given) version.

        Raises:
            BundleNotInstalledError: If the bundle is not installed.
        """
        record = self._find_installed(bundle_id, scope)
        source = self.get_source(record.source_id)
        return await self.install_bundle(
            source.id,
            record.bundle_id,
            InstallOptions(scope=record.scope, version=version, force=True),
        )

    async def uninstall_bundle(
        self, bundle_id: str, scope: Optional[InstallScope] = None
    ) -> None:
        """
        Remove an installed bundle's files and record.

        Raises:
            BundleNotInstalledError: If the bundle is not installed.
            InstallError: If the files cannot be removed.
        """
        record = self._find_installed(bundle_id, scope)
        self.installer.uninstall(record)
        self.storage.remove_installed(record.bundle_id, record.scope)
        logger.info(f"Uninstalled {record.bundle_id} ({record.scope.value})")
        await self.on_bundle_uninstalled.fire(record.bundle_id)

    def list_installed(
        self, scope: Optional[InstallScope] = None
    ) -> List[InstalledBundle]:
        return self.storage.list_installed(scope)

    async def check_updates(
        self, source_id: Optional[str] = None
    ) -> List[BundleUpdate]:
        """List installed bundles whose source offers a newer version."""
        catalogs: Dict[str, List[Bundle]] = {}
        updates: List[BundleUpdate] = []
        for record in self.storage.list_installed():
            try:
                source = self.get_source(record.source_id)
            except SourceNotFoundError:
                logger.debug(f"Source of {record.bundle_id} is no longer configured")
                continue
            if source_id and source.id != source_id:
                continue
            if source.id not in catalogs:
                catalogs[source.id] = await self._source_bundles(source)
            latest = next(
                (b for b in catalogs[source.id] if b.id == record.bundle_id), None
            )
            if latest is not None and self.consolidator.versions.is_newer(
                latest.version, record.version
            ):
                updates.append(
                    BundleUpdate(
                        bundle_id=record.bundle_id,
                        scope=record.scope,
                        source_id=source.id,
                        installed_version=record.version,
                        latest_version=latest.version,
                    )
                )
        return updates

    # ------------------------------------------------------------------
    # Sync and validation
    # ------------------------------------------------------------------

    async def sync_source(self, source_id: str) -> List[Bundle]:
        """
        Refresh and cache a source's bundle list.

        Curated-index sources then auto-update every bundle installed from
        them that has a newer version; git-hosted and other sources only
        refresh the cache.

        Returns:
            List[Bundle]: The refreshed, consolidated bundle list.
        """
        source = self.get_source(source_id)
        adapter = self.get_adapter(source)
        adapter.clear_cache()
        bundles = await self._source_bundles(source)
        self.storage.cache_source_bundles(source.id, bundles)
        logger.info(f"Synced {len(bundles)} bundle(s) from {source.name}")

        if source.type.is_curated_index:
            for update in await self.check_updates(source.id):
                try:
                    await self.update_bundle(update.bundle_id, update.scope)
                except BundleHubError as e:
                    logger.warning(f"Auto-update of {update.bundle_id} failed: {e}")

        await self.on_source_synced.fire(source.id)
        return bundles

    async def sync_all_sources(self) -> Dict[str, int]:
        """Sync every enabled source; returns bundle counts by source id."""
        sources = self.list_sources(enabled_only=True)
        results = await asyncio.gather(
            *(self.sync_source(s.id) for s in sources), return_exceptions=True
        )
        counts: Dict[str, int] = {}
        for source, result in zip(sources, results):
            if isinstance(result, BaseException):
                if not isinstance(result, BundleHubError):
                    raise result
                logger.warning(f"Sync of {source.name} failed: {result}")
                continue
            counts[source.id] = len(result)
        return counts

    async def validate_source(self, source_id: str) -> ValidationResult:
        source = self.get_source(source_id)
        try:
            adapter = self.get_adapter(source)
        except ConfigurationError as e:
            return ValidationResult.from_messages([str(e)])
        return await adapter.validate()

    async def validate_all_sources(self) -> List[Tuple[Source, ValidationResult]]:
        sources = self.list_sources()
        results = await asyncio.gather(*(self.validate_source(s.id) for s in sources))
        return list(zip(sources, results))

    async def close(self) -> None:
        self._adapters.clear()
        await self.adapter_factory.close()
