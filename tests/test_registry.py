"""
Tests for the registry manager.

Covers:
- Source management: add, duplicate detection, legacy id lookup, removal
- Search across sources with consolidation, filters and priority order
- The single install path shared by every source type
- Version selection, idempotent reinstall and lifecycle events
- Update checks and per-source-type sync policy
"""

import pytest

from bundle_test_utils import FakeAdapter, make_bundle_zip, release_bundle
from bundlehub.adapters import AdapterFactory
from bundlehub.exceptions import (
    BundleNotFoundError,
    BundleNotInstalledError,
    ConfigurationError,
    CorruptedArchiveError,
    SourceNotFoundError,
)
from bundlehub.identity import generate_legacy_source_id
from bundlehub.models import (
    Bundle,
    InstallOptions,
    InstallScope,
    SearchQuery,
    SourceConfig,
    SourceType,
)
from bundlehub.registry import RegistryManager

pytestmark = [pytest.mark.unit, pytest.mark.core]

ACME_URL = "https://github.com/acme/prompts"


@pytest.fixture
def fake_adapter(monkeypatch):
    monkeypatch.setattr(FakeAdapter, "catalog", {})
    monkeypatch.setattr(FakeAdapter, "archives", {})
    monkeypatch.setattr(FakeAdapter, "downloads", [])
    return FakeAdapter


@pytest.fixture
def manager(storage, fake_adapter):
    factory = AdapterFactory()
    for source_type in SourceType:
        factory.register(source_type, FakeAdapter)
    return RegistryManager(storage, adapter_factory=factory)


def publish(source, bundle, label=None):
    """Add ``bundle`` to the fake catalog of ``source`` with a matching archive."""
    FakeAdapter.catalog.setdefault(source.id, []).append(bundle)
    FakeAdapter.archives[bundle.download_url] = make_bundle_zip(
        {"id": bundle.id, "version": bundle.version},
        {"README.md": label or f"{bundle.name} {bundle.version}"},
    )
    return bundle


def publish_release(source, identity, version):
    return publish(source, release_bundle(source.id, identity, version))


def plain_bundle(source, bundle_id, version, **kwargs):
    return Bundle(
        id=bundle_id,
        name=bundle_id,
        version=version,
        source_id=source.id,
        download_url=f"https://example.com/{bundle_id}/{version}.zip",
        **kwargs,
    )


def collect(emitter):
    received = []
    emitter.subscribe(received.append)
    return received


# =============================================================================
# Sources
# =============================================================================


class TestSources:
    """Tests for source management."""

    def test_add_source_generates_id(self, manager):
        source = manager.add_source("github", ACME_URL, name="Acme")
        assert source.id.startswith("github-")
        assert source.priority == 50
        assert manager.get_source(source.id) == source

    def test_duplicate_source_is_rejected(self, manager):
        manager.add_source("github", ACME_URL)
        with pytest.raises(ConfigurationError):
            manager.add_source("github", "https://GitHub.com/Acme/Prompts/")

    def test_same_url_different_branch_is_distinct(self, manager):
        first = manager.add_source("github", ACME_URL)
        second = manager.add_source(
            "github", ACME_URL, config=SourceConfig(branch="dev")
        )
        assert first.id != second.id

    def test_get_source_accepts_legacy_id(self, manager):
        url = "https://github.com/Acme/Prompts"
        source = manager.add_source("github", url)
        legacy = generate_legacy_source_id("github", url)

        assert legacy != source.id
        assert manager.get_source(legacy).id == source.id

    def test_unknown_source(self, manager):
        with pytest.raises(SourceNotFoundError):
            manager.get_source("github-000000000000")

    def test_list_sources_by_priority(self, manager):
        low = manager.add_source("http", "https://a.example.com", priority=10)
        high = manager.add_source("http", "https://b.example.com", priority=90)
        manager.set_source_enabled(high.id, False)

        assert [s.id for s in manager.list_sources()] == [high.id, low.id]
        assert [s.id for s in manager.list_sources(enabled_only=True)] == [low.id]

    @pytest.mark.asyncio
    async def test_remove_source_with_uninstall(self, manager, storage):
        source = manager.add_source("github", ACME_URL)
        publish_release(source, "acme-prompts", "1.0.0")
        record = await manager.install_bundle(source.id, "acme-prompts")
        uninstalled = collect(manager.on_bundle_uninstalled)

        removed = await manager.remove_source(source.id, uninstall_bundles=True)

        assert removed == ["acme-prompts"]
        assert uninstalled == ["acme-prompts"]
        assert manager.list_sources() == []
        assert manager.list_installed() == []
        assert not storage.source_cache_file(source.id).exists()
        assert not (storage.paths.user_bundles / record.bundle_id).exists()


# =============================================================================
# Search
# =============================================================================


class TestSearch:
    """Tests for search_bundles and get_bundle_details."""

    @pytest.fixture
    def two_sources(self, manager):
        github = manager.add_source("github", ACME_URL)
        http = manager.add_source("http", "https://example.com/team", priority=90)
        publish_release(github, "acme-prompts", "1.0.0")
        publish_release(github, "acme-prompts", "1.1.0")
        publish(
            http,
            plain_bundle(
                http,
                "team-snippets",
                "2.0.0",
                description="Shared snippets",
                tags=["snippets"],
            ),
        )
        return github, http

    @pytest.mark.asyncio
    async def test_releases_are_consolidated(self, manager, two_sources):
        github, _http = two_sources
        results = await manager.search_bundles(SearchQuery(source_id=github.id))

        [bundle] = results
        assert bundle.id == "acme-prompts"
        assert bundle.version == "1.1.0"
        assert [v.version for v in bundle.available_versions] == ["1.1.0", "1.0.0"]

    @pytest.mark.asyncio
    async def test_results_follow_source_priority(self, manager, two_sources):
        results = await manager.search_bundles()
        assert [b.id for b in results] == ["team-snippets", "acme-prompts"]

        limited = await manager.search_bundles(SearchQuery(limit=1))
        assert [b.id for b in limited] == ["team-snippets"]

    @pytest.mark.parametrize(
        "query,expected",
        [
            (SearchQuery(text="ACME"), ["acme-prompts"]),
            (SearchQuery(text="shared"), ["team-snippets"]),
            (SearchQuery(tags=["Prompts"]), ["acme-prompts"]),
            (SearchQuery(tags=["prompts", "missing"]), []),
            (SearchQuery(environment="vscode"), ["team-snippets", "acme-prompts"]),
            (SearchQuery(environment="jetbrains"), ["team-snippets"]),
        ],
    )
    @pytest.mark.asyncio
    async def test_filters(self, manager, two_sources, query, expected):
        assert [b.id for b in await manager.search_bundles(query)] == expected

    @pytest.mark.asyncio
    async def test_disabled_sources_are_skipped(self, manager, two_sources):
        _github, http = two_sources
        manager.set_source_enabled(http.id, False)
        assert [b.id for b in await manager.search_bundles()] == ["acme-prompts"]

    @pytest.mark.asyncio
    async def test_unparsable_release_keeps_source_unconsolidated(
        self, manager, two_sources
    ):
        github, http = two_sources
        publish_release(github, "acme-prompts", "nightly")

        results = await manager.search_bundles()

        assert [(b.source_id, b.id) for b in results] == [
            (http.id, "team-snippets"),
            (github.id, "acme-prompts-v1.0.0"),
            (github.id, "acme-prompts-v1.1.0"),
            (github.id, "acme-prompts-vnightly"),
        ]
        assert all(b.available_versions == [] for b in results)
        assert manager.consolidator.get_all_versions(github.id, "acme-prompts") == []

    @pytest.mark.asyncio
    async def test_details_accept_release_id(self, manager, two_sources):
        github, _http = two_sources
        bundle = await manager.get_bundle_details(github.id, "acme-prompts-v1.0.0")
        assert bundle.id == "acme-prompts"

        with pytest.raises(BundleNotFoundError):
            await manager.get_bundle_details(github.id, "other")


# =============================================================================
# Install
# =============================================================================


class TestInstall:
    """Tests for install_bundle, update_bundle and uninstall_bundle."""

    @pytest.mark.asyncio
    async def test_install_pinned_version(self, manager, storage):
        source = manager.add_source("github", ACME_URL)
        publish_release(source, "acme-prompts", "1.0.0")
        publish_release(source, "acme-prompts", "1.1.0")

        record = await manager.install_bundle(
            source.id, "acme-prompts", InstallOptions(version="1.0.0")
        )

        assert record.bundle_id == "acme-prompts"
        assert record.version == "1.0.0"
        assert FakeAdapter.downloads == ["https://example.com/acme-prompts/v1.0.0.zip"]
        stored = storage.get_installed("acme-prompts", InstallScope.USER)
        assert stored.version == "1.0.0"
        readme = storage.paths.user_bundles / "acme-prompts" / "README.md"
        assert readme.read_text() == "acme-prompts 1.0.0"

    @pytest.mark.asyncio
    async def test_install_latest_and_unknown_version(self, manager):
        source = manager.add_source("github", ACME_URL)
        publish_release(source, "acme-prompts", "1.0.0")
        publish_release(source, "acme-prompts", "1.1.0")

        record = await manager.install_bundle(
            source.id, "acme-prompts", InstallOptions(version="9.9.9")
        )
        assert record.version == "1.1.0"
        assert FakeAdapter.downloads == ["https://example.com/acme-prompts/v1.1.0.zip"]

    @pytest.mark.asyncio
    async def test_install_path_is_uniform_across_source_types(
        self, manager, storage
    ):
        github = manager.add_source("github", ACME_URL)
        local = manager.add_source("local", "/srv/bundles")
        publish_release(github, "acme-prompts", "1.0.0")
        publish(local, plain_bundle(local, "team-snippets", "2.0.0"))

        first = await manager.install_bundle(github.id, "acme-prompts")
        second = await manager.install_bundle(local.id, "team-snippets")

        assert first.install_path == str(storage.paths.user_bundles / "acme-prompts")
        assert second.install_path == str(
            storage.paths.user_bundles / "team-snippets"
        )
        assert second.source_type is SourceType.LOCAL

    @pytest.mark.asyncio
    async def test_workspace_scope_is_separate(self, manager, storage):
        source = manager.add_source("github", ACME_URL)
        publish_release(source, "acme-prompts", "1.0.0")

        await manager.install_bundle(source.id, "acme-prompts")
        await manager.install_bundle(
            source.id, "acme-prompts", InstallOptions(scope=InstallScope.WORKSPACE)
        )

        assert len(manager.list_installed()) == 2
        assert (storage.paths.workspace_bundles / "acme-prompts").is_dir()

    @pytest.mark.asyncio
    async def test_events(self, manager):
        source = manager.add_source("github", ACME_URL)
        publish_release(source, "acme-prompts", "1.0.0")
        installed = collect(manager.on_bundle_installed)
        updated = collect(manager.on_bundle_updated)
        uninstalled = collect(manager.on_bundle_uninstalled)

        await manager.install_bundle(source.id, "acme-prompts")
        await manager.install_bundle(
            source.id, "acme-prompts", InstallOptions(force=True)
        )
        await manager.uninstall_bundle("acme-prompts")

        assert [r.version for r in installed] == ["1.0.0"]
        assert [r.version for r in updated] == ["1.0.0"]
        assert uninstalled == ["acme-prompts"]
        assert manager.list_installed() == []

    @pytest.mark.asyncio
    async def test_reinstall_same_version_is_a_no_op(self, manager):
        source = manager.add_source("github", ACME_URL)
        publish_release(source, "acme-prompts", "1.0.0")
        first = await manager.install_bundle(source.id, "acme-prompts")
        installed = collect(manager.on_bundle_installed)
        updated = collect(manager.on_bundle_updated)

        again = await manager.install_bundle(source.id, "acme-prompts")

        assert again.installed_at == first.installed_at
        assert len(FakeAdapter.downloads) == 1
        assert installed == [] and updated == []

    @pytest.mark.asyncio
    async def test_failed_install_writes_no_record(self, manager, storage):
        source = manager.add_source("http", "https://example.com/c")
        bundle = publish(source, plain_bundle(source, "broken", "1.0.0"))
        FakeAdapter.archives[bundle.download_url] = b"<html>oops</html>"
        installed = collect(manager.on_bundle_installed)

        with pytest.raises(CorruptedArchiveError):
            await manager.install_bundle(source.id, "broken")

        assert storage.get_installed("broken", InstallScope.USER) is None
        assert installed == []

    @pytest.mark.asyncio
    async def test_unknown_ids(self, manager):
        source = manager.add_source("github", ACME_URL)
        with pytest.raises(BundleNotFoundError):
            await manager.install_bundle(source.id, "missing")
        with pytest.raises(SourceNotFoundError):
            await manager.install_bundle("github-000000000000", "missing")
        with pytest.raises(BundleNotInstalledError):
            await manager.uninstall_bundle("missing")

    @pytest.mark.asyncio
    async def test_check_updates_and_update(self, manager):
        source = manager.add_source("github", ACME_URL)
        publish_release(source, "acme-prompts", "1.0.0")
        publish_release(source, "acme-prompts", "1.1.0")
        await manager.install_bundle(
            source.id, "acme-prompts", InstallOptions(version="1.0.0")
        )

        [update] = await manager.check_updates()
        assert update.installed_version == "1.0.0"
        assert update.latest_version == "1.1.0"

        record = await manager.update_bundle("acme-prompts")
        assert record.version == "1.1.0"
        assert await manager.check_updates() == []


# =============================================================================
# Sync
# =============================================================================


class TestSync:
    """Tests for sync_source and sync_all_sources."""

    @pytest.mark.asyncio
    async def test_curated_source_auto_updates(self, manager, storage):
        source = manager.add_source(
            "awesome-copilot", "https://github.com/acme/awesome"
        )
        publish(source, plain_bundle(source, "azure-cloud", "1.0.0"))
        await manager.install_bundle(source.id, "azure-cloud")
        events = []
        manager.on_bundle_updated.subscribe(lambda r: events.append(("updated", r)))
        manager.on_source_synced.subscribe(lambda s: events.append(("synced", s)))

        FakeAdapter.catalog[source.id] = []
        publish(source, plain_bundle(source, "azure-cloud", "1.1.0"))
        bundles = await manager.sync_source(source.id)

        assert [b.version for b in bundles] == ["1.1.0"]
        record = storage.get_installed("azure-cloud", InstallScope.USER)
        assert record.version == "1.1.0"
        assert [kind for kind, _payload in events] == ["updated", "synced"]

    @pytest.mark.asyncio
    async def test_github_source_only_refreshes_cache(self, manager, storage):
        source = manager.add_source("github", ACME_URL)
        publish_release(source, "acme-prompts", "1.0.0")
        await manager.install_bundle(source.id, "acme-prompts")
        synced = collect(manager.on_source_synced)

        publish_release(source, "acme-prompts", "1.1.0")
        await manager.sync_source(source.id)

        assert storage.get_installed("acme-prompts", InstallScope.USER).version == (
            "1.0.0"
        )
        assert len(FakeAdapter.downloads) == 1
        [cached] = storage.get_cached_source_bundles(source.id)
        assert cached.version == "1.1.0"
        assert synced == [source.id]

    @pytest.mark.asyncio
    async def test_sync_all_counts_enabled_sources(self, manager):
        github = manager.add_source("github", ACME_URL)
        http = manager.add_source("http", "https://example.com/c")
        disabled = manager.add_source("http", "https://example.com/off")
        manager.set_source_enabled(disabled.id, False)
        publish_release(github, "acme-prompts", "1.0.0")
        publish_release(github, "acme-prompts", "1.1.0")
        publish(http, plain_bundle(http, "a", "1.0.0"))
        publish(http, plain_bundle(http, "b", "1.0.0"))

        counts = await manager.sync_all_sources()

        assert counts == {github.id: 1, http.id: 2}

    @pytest.mark.asyncio
    async def test_validate_all_sources(self, manager):
        source = manager.add_source("github", ACME_URL)
        [(validated, result)] = await manager.validate_all_sources()
        assert validated.id == source.id
        assert result.valid
