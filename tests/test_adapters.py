"""
Tests for source adapters.

Covers:
- RepositoryAdapter memoization and degradation
- Local directory and HTTP catalog adapters
- Curated collection indexes and the git-tree manifest index
- GitHub and GitLab release adapters
- AdapterFactory dispatch and registration
"""

import io
import zipfile
from unittest.mock import AsyncMock, Mock

import pytest
import yaml

from bundle_test_utils import FakeAdapter
from bundlehub.adapters import (
    AdapterFactory,
    CuratedIndexAdapter,
    GitHubAdapter,
    GitLabAdapter,
    GitTreeIndexAdapter,
    HttpAdapter,
    LocalAdapter,
    LocalCuratedIndexAdapter,
)
from bundlehub.adapters.git_hosted import parse_repository_url
from bundlehub.adapters.github import format_size
from bundlehub.exceptions import (
    BundleNotFoundError,
    InvalidUrlError,
    ManifestError,
    NetworkError,
    NotFoundError,
    ResourceNotFoundError,
    UnsupportedSchemeError,
    UnsupportedSourceTypeError,
)
from bundlehub.models import Bundle, Source, SourceConfig, SourceType

pytestmark = [pytest.mark.unit]


def _source(source_type, url, source_id=None, **kwargs):
    return Source(
        id=source_id or f"{source_type.value}-0123456789ab",
        name="Test source",
        type=source_type,
        url=url,
        **kwargs,
    )


def _zip_names(data):
    with zipfile.ZipFile(io.BytesIO(data)) as archive:
        return sorted(archive.namelist())


# =============================================================================
# RepositoryAdapter base behavior
# =============================================================================


class TestRepositoryAdapterBase:
    """Tests for memoization and degradation in RepositoryAdapter."""

    @pytest.mark.asyncio
    async def test_fetch_bundles_is_memoized(self):
        adapter = LocalAdapter(_source(SourceType.LOCAL, "/nowhere"))
        adapter._fetch_bundles = AsyncMock(
            return_value=[Bundle(id="a", name="A", version="1", source_id="s")]
        )

        await adapter.fetch_bundles()
        await adapter.fetch_bundles()
        assert adapter._fetch_bundles.await_count == 1

        adapter.clear_cache()
        await adapter.fetch_bundles()
        assert adapter._fetch_bundles.await_count == 2

    @pytest.mark.asyncio
    async def test_failure_degrades_and_is_not_memoized(self):
        adapter = LocalAdapter(_source(SourceType.LOCAL, "/nowhere"))
        adapter._fetch_bundles = AsyncMock(
            side_effect=[NetworkError("down"), []]
        )

        assert await adapter.fetch_bundles() == []
        assert await adapter.fetch_bundles() == []
        assert adapter._fetch_bundles.await_count == 2

    @pytest.mark.asyncio
    async def test_find_bundle_urls(self):
        adapter = LocalAdapter(_source(SourceType.LOCAL, "/nowhere"))
        adapter._fetch_bundles = AsyncMock(
            return_value=[
                Bundle(
                    id="a",
                    name="A",
                    version="1",
                    source_id="s",
                    download_url="file:///a",
                    manifest_url="file:///a/deployment-manifest.yml",
                )
            ]
        )
        assert await adapter.get_download_url("a") == "file:///a"
        assert (
            await adapter.get_manifest_url("a") == "file:///a/deployment-manifest.yml"
        )
        with pytest.raises(BundleNotFoundError):
            await adapter.get_download_url("b")

    @pytest.mark.asyncio
    async def test_fetch_metadata_counts_bundles(self):
        adapter = LocalAdapter(_source(SourceType.LOCAL, "/nowhere"))
        adapter._fetch_bundles = AsyncMock(return_value=[])
        metadata = await adapter.fetch_metadata()
        assert metadata.bundle_count == 0
        assert metadata.name == "Test source"

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://github.com/a/b", True),
            ("http://example.com", True),
            ("ftp://example.com", False),
            ("not a url", False),
        ],
    )
    def test_is_valid_url(self, url, expected):
        assert LocalAdapter.is_valid_url(url) is expected


# =============================================================================
# Local adapter
# =============================================================================


@pytest.fixture
def local_root(tmp_path):
    root = tmp_path / "bundles"
    good = root / "acme-prompts"
    (good / "prompts").mkdir(parents=True)
    (good / "deployment-manifest.yml").write_text(
        "id: acme-prompts\nname: Acme Prompts\nversion: 1.2.0\n"
        "tags: [review]\nenvironments: vscode\n"
    )
    (good / "prompts" / "review.prompt.md").write_text("# Review")
    broken = root / "broken"
    broken.mkdir()
    (broken / "deployment-manifest.yml").write_text("id: [unclosed")
    (root / "no-manifest").mkdir()
    return root


class TestLocalAdapter:
    """Tests for LocalAdapter."""

    @pytest.mark.asyncio
    async def test_lists_manifest_directories(self, local_root):
        adapter = LocalAdapter(_source(SourceType.LOCAL, str(local_root)))
        [bundle] = await adapter.fetch_bundles()

        assert bundle.id == "acme-prompts"
        assert bundle.version == "1.2.0"
        assert bundle.tags == ["review"]
        assert bundle.environments == ["vscode"]
        assert bundle.download_url == (local_root / "acme-prompts").resolve().as_uri()

    @pytest.mark.asyncio
    async def test_file_uri_source(self, local_root):
        adapter = LocalAdapter(_source(SourceType.LOCAL, local_root.as_uri()))
        assert len(await adapter.fetch_bundles()) == 1

    @pytest.mark.asyncio
    async def test_download_zips_directory(self, local_root):
        adapter = LocalAdapter(_source(SourceType.LOCAL, str(local_root)))
        [bundle] = await adapter.fetch_bundles()

        data = await adapter.download_bundle(bundle)
        assert _zip_names(data) == [
            "deployment-manifest.yml",
            "prompts/review.prompt.md",
        ]

    @pytest.mark.asyncio
    async def test_download_missing_directory(self, local_root):
        adapter = LocalAdapter(_source(SourceType.LOCAL, str(local_root)))
        bundle = Bundle(
            id="gone",
            name="Gone",
            version="1",
            source_id="s",
            download_url=(local_root / "gone").as_uri(),
        )
        with pytest.raises(NotFoundError):
            await adapter.download_bundle(bundle)

    @pytest.mark.asyncio
    async def test_validate(self, local_root, tmp_path):
        ok = await LocalAdapter(_source(SourceType.LOCAL, str(local_root))).validate()
        assert ok.valid and ok.warnings == []

        missing = await LocalAdapter(
            _source(SourceType.LOCAL, str(tmp_path / "missing"))
        ).validate()
        assert not missing.valid
        assert "does not exist" in missing.errors[0]

        empty_dir = tmp_path / "empty"
        empty_dir.mkdir()
        empty = await LocalAdapter(_source(SourceType.LOCAL, str(empty_dir))).validate()
        assert empty.valid
        assert empty.warnings


# =============================================================================
# HTTP adapter
# =============================================================================


class TestHttpAdapter:
    """Tests for HttpAdapter."""

    def test_index_url(self):
        assert (
            HttpAdapter(_source(SourceType.HTTP, "https://example.com/c")).index_url
            == "https://example.com/c/index.json"
        )
        assert (
            HttpAdapter(
                _source(SourceType.HTTP, "https://example.com/c/catalog.json")
            ).index_url
            == "https://example.com/c/catalog.json"
        )

    @pytest.mark.asyncio
    async def test_resolves_relative_urls_and_skips_bad_entries(self):
        http_client = Mock()
        http_client.get_json = AsyncMock(
            return_value={
                "bundles": [
                    {"id": "a", "name": "A", "version": "1.0.0"},
                    {
                        "id": "b",
                        "version": "2.0.0",
                        "downloadUrl": "archives/b.zip",
                        "manifestUrl": "https://cdn.example.com/b.yml",
                    },
                    {"name": "no id"},
                    "garbage",
                ]
            }
        )
        adapter = HttpAdapter(
            _source(SourceType.HTTP, "https://example.com/c/"), http_client=http_client
        )

        bundles = await adapter.fetch_bundles()

        assert [b.id for b in bundles] == ["a", "b"]
        assert bundles[0].download_url == "https://example.com/c/a.zip"
        assert bundles[0].manifest_url == "https://example.com/c/a.zip"
        assert bundles[1].download_url == "https://example.com/c/archives/b.zip"
        assert bundles[1].manifest_url == "https://cdn.example.com/b.yml"
        assert all(b.source_id == "http-0123456789ab" for b in bundles)

    @pytest.mark.asyncio
    async def test_list_catalog_and_download(self):
        http_client = Mock()
        http_client.get_json = AsyncMock(return_value=[{"id": "a"}])
        http_client.get_bytes = AsyncMock(return_value=b"PK")
        adapter = HttpAdapter(
            _source(SourceType.HTTP, "https://example.com/c"), http_client=http_client
        )
        [bundle] = await adapter.fetch_bundles()

        assert await adapter.download_bundle(bundle) == b"PK"
        http_client.get_bytes.assert_awaited_once_with("https://example.com/c/a.zip")

    @pytest.mark.asyncio
    async def test_validate(self):
        http_client = Mock()
        http_client.get_json = AsyncMock(
            side_effect=ResourceNotFoundError("Resource not found (HTTP 404)")
        )
        adapter = HttpAdapter(
            _source(SourceType.HTTP, "https://example.com/c"), http_client=http_client
        )
        result = await adapter.validate()
        assert not result.valid
        assert "404" in result.errors[0]

        invalid = await HttpAdapter(_source(SourceType.HTTP, "example")).validate()
        assert invalid.errors == ["Invalid URL: example"]


# =============================================================================
# Curated index adapters
# =============================================================================


AZURE_COLLECTION = """\
id: azure-cloud
name: Azure Cloud Development
description: Prompts for Azure work
tags: [azure]
items:
  - path: prompts/azure-health.prompt.md
    kind: prompt
  - path: instructions/bicep.instructions.md
    kind: instruction
"""


@pytest.fixture
def curated_root(tmp_path):
    root = tmp_path / "awesome"
    (root / "collections").mkdir(parents=True)
    (root / "prompts").mkdir()
    (root / "instructions").mkdir()
    (root / "collections" / "azure.collection.yml").write_text(AZURE_COLLECTION)
    (root / "collections" / "plain.collection.yml").write_text(
        "items:\n  - path: prompts/azure-health.prompt.md\n"
    )
    (root / "collections" / "broken.collection.yml").write_text("items: nope\n")
    (root / "collections" / "notes.md").write_text("ignored")
    (root / "prompts" / "azure-health.prompt.md").write_text("# Health")
    (root / "instructions" / "bicep.instructions.md").write_text("# Bicep")
    return root


class TestLocalCuratedIndexAdapter:
    """Tests for LocalCuratedIndexAdapter."""

    @pytest.mark.asyncio
    async def test_collections_become_bundles(self, curated_root):
        adapter = LocalCuratedIndexAdapter(
            _source(SourceType.LOCAL_AWESOME_COPILOT, str(curated_root))
        )

        bundles = {b.id: b for b in await adapter.fetch_bundles()}

        assert sorted(bundles) == ["azure-cloud", "plain"]
        azure = bundles["azure-cloud"]
        assert azure.version == "1.0.0"
        assert azure.size == "2 items"
        assert azure.tags == ["azure"]
        assert azure.author == "Test source"
        assert bundles["plain"].name == "plain"

    @pytest.mark.asyncio
    async def test_download_builds_archive_with_manifest(self, curated_root):
        adapter = LocalCuratedIndexAdapter(
            _source(SourceType.LOCAL_AWESOME_COPILOT, str(curated_root))
        )
        bundle = next(
            b for b in await adapter.fetch_bundles() if b.id == "azure-cloud"
        )

        data = await adapter.download_bundle(bundle)

        assert _zip_names(data) == [
            "deployment-manifest.yml",
            "instructions/bicep.instructions.md",
            "prompts/azure-health.prompt.md",
        ]
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            manifest = yaml.safe_load(archive.read("deployment-manifest.yml"))
            assert archive.read("prompts/azure-health.prompt.md") == b"# Health"
        assert manifest["id"] == "azure-cloud"
        assert manifest["prompts"][0] == {
            "id": "azure-health",
            "name": "azure-health.prompt.md",
            "file": "prompts/azure-health.prompt.md",
            "type": "prompt",
        }

    @pytest.mark.asyncio
    async def test_unsafe_item_path(self, curated_root):
        (curated_root / "collections" / "evil.collection.yml").write_text(
            "items:\n  - path: ../secret.md\n"
        )
        adapter = LocalCuratedIndexAdapter(
            _source(SourceType.LOCAL_AWESOME_COPILOT, str(curated_root))
        )
        bundle = next(b for b in await adapter.fetch_bundles() if b.id == "evil")

        with pytest.raises(ManifestError):
            await adapter.download_bundle(bundle)

    @pytest.mark.asyncio
    async def test_missing_item(self, curated_root):
        (curated_root / "prompts" / "azure-health.prompt.md").unlink()
        adapter = LocalCuratedIndexAdapter(
            _source(SourceType.LOCAL_AWESOME_COPILOT, str(curated_root))
        )
        bundle = next(b for b in await adapter.fetch_bundles() if b.id == "plain")

        with pytest.raises(NotFoundError):
            await adapter.download_bundle(bundle)

    @pytest.mark.asyncio
    async def test_validate_missing_collections_dir(self, tmp_path):
        adapter = LocalCuratedIndexAdapter(
            _source(SourceType.LOCAL_AWESOME_COPILOT, str(tmp_path))
        )
        result = await adapter.validate()
        assert not result.valid
        assert "Collections directory does not exist" in result.errors[0]


class TestCuratedIndexAdapter:
    """Tests for the GitHub-hosted curated index."""

    @pytest.mark.asyncio
    async def test_lists_collections_from_contents_api(self):
        raw = "https://raw.githubusercontent.com/acme/awesome/main"
        http_client = Mock()
        http_client.get_json = AsyncMock(
            return_value=[
                {
                    "type": "file",
                    "name": "azure.collection.yml",
                    "download_url": f"{raw}/collections/azure.collection.yml",
                },
                {"type": "dir", "name": "nested.collection.yml"},
                {"type": "file", "name": "README.md"},
            ]
        )
        http_client.get_text = AsyncMock(return_value=AZURE_COLLECTION)
        http_client.get_bytes = AsyncMock(return_value=b"# item")
        adapter = CuratedIndexAdapter(
            _source(
                SourceType.AWESOME_COPILOT,
                "https://github.com/acme/awesome",
                token="t",
            ),
            http_client=http_client,
        )

        [bundle] = await adapter.fetch_bundles()
        assert bundle.id == "azure-cloud"
        assert bundle.download_url == f"{raw}/collections/azure.collection.yml"
        assert http_client.get_json.call_args.args[0] == (
            "https://api.github.com/repos/acme/awesome/contents/collections?ref=main"
        )

        data = await adapter.download_bundle(bundle)
        assert "deployment-manifest.yml" in _zip_names(data)
        fetched = [c.args[0] for c in http_client.get_bytes.call_args_list]
        assert fetched == [
            f"{raw}/prompts/azure-health.prompt.md",
            f"{raw}/instructions/bicep.instructions.md",
        ]


# =============================================================================
# Git tree index adapter
# =============================================================================


OLAF_TREE = {
    "tree": [
        {"type": "tree", "path": "olaf-core/competencies/review"},
        {
            "type": "blob",
            "path": "olaf-core/competencies/review/competency-manifest.json",
        },
        {"type": "blob", "path": "olaf-core/competencies/review/prompts/a.md"},
        {
            "type": "blob",
            "path": "olaf-core/competencies/broken/competency-manifest.json",
        },
        {"type": "blob", "path": "docs/competency-manifest.json"},
    ]
}


def _olaf_client(tree_error=None, refs=None, review_manifest=None):
    async def get_json(url, headers=None):
        if "/git/refs/" in url and refs is not None:
            return refs
        if "/git/" in url:
            if tree_error is not None:
                raise tree_error
            return OLAF_TREE
        if "/review/" in url:
            return review_manifest or {
                "id": "code-review",
                "name": "Code Review",
                "version": "2.0.0",
            }
        return {"id": "broken"}

    http_client = Mock()
    http_client.get_json = AsyncMock(side_effect=get_json)
    http_client.get_bytes = AsyncMock(return_value=b"content")
    return http_client


def _olaf_adapter(http_client):
    return GitTreeIndexAdapter(
        _source(SourceType.OLAF, "https://github.com/acme/olaf", token="t"),
        http_client=http_client,
    )


class TestGitTreeIndexAdapter:
    """Tests for GitTreeIndexAdapter."""

    @pytest.mark.asyncio
    async def test_manifests_become_bundles(self):
        adapter = _olaf_adapter(_olaf_client())

        [bundle] = await adapter.fetch_bundles()

        assert bundle.id == "code-review"
        assert bundle.version == "2.0.0"
        assert bundle.environments == ["any"]
        assert bundle.manifest_url == (
            "https://raw.githubusercontent.com/acme/olaf/main/"
            "olaf-core/competencies/review/competency-manifest.json"
        )

    @pytest.mark.asyncio
    async def test_download_zips_directory_with_generated_manifest(self):
        http_client = _olaf_client()
        adapter = _olaf_adapter(http_client)
        [bundle] = await adapter.fetch_bundles()

        data = await adapter.download_bundle(bundle)

        assert _zip_names(data) == [
            "competency-manifest.json",
            "deployment-manifest.yml",
            "prompts/a.md",
        ]
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            manifest = yaml.safe_load(archive.read("deployment-manifest.yml"))
        assert manifest["id"] == "code-review"
        assert manifest["version"] == "2.0.0"

    @pytest.mark.asyncio
    async def test_unreadable_tree_yields_placeholder(self):
        adapter = _olaf_adapter(
            _olaf_client(tree_error=ResourceNotFoundError("Resource not found"))
        )

        [bundle] = await adapter.fetch_bundles()

        assert bundle.id == "olaf-0123456789ab-placeholder"
        assert bundle.version == "0.0.0"
        assert bundle.author == "System"
        assert bundle.tags == ["olaf"]

    @pytest.mark.asyncio
    async def test_loosely_typed_manifest_fields_are_coerced(self):
        adapter = _olaf_adapter(
            _olaf_client(
                review_manifest={
                    "id": "code-review",
                    "name": "Code Review",
                    "version": 2,
                    "tags": 5,
                    "author": {"login": "octocat"},
                }
            )
        )

        [bundle] = await adapter.fetch_bundles()

        assert bundle.id == "code-review"
        assert bundle.version == "2"
        assert bundle.tags == []
        assert isinstance(bundle.author, str)

    @pytest.mark.asyncio
    async def test_manifest_that_cannot_be_mapped_is_skipped(self, mocker):
        adapter = _olaf_adapter(_olaf_client())
        original = adapter._bundle_from_manifest

        def flaky(manifest, manifest_url):
            if manifest.get("id") == "code-review":
                raise TypeError("unexpected field type")
            return original(manifest, manifest_url)

        mocker.patch.object(adapter, "_bundle_from_manifest", side_effect=flaky)

        assert await adapter.fetch_bundles() == []

    @pytest.mark.asyncio
    async def test_ambiguous_branch_ref_yields_placeholder(self):
        adapter = _olaf_adapter(
            _olaf_client(
                tree_error=ResourceNotFoundError("Resource not found"),
                refs=[{"ref": "refs/heads/feat/x", "object": {"sha": "abc"}}],
            )
        )

        [bundle] = await adapter.fetch_bundles()
        assert bundle.id == "olaf-0123456789ab-placeholder"

        with pytest.raises(ResourceNotFoundError):
            await adapter.fetch_tree()
        result = await adapter.validate()
        assert result.valid
        assert result.warnings[0].startswith("Could not access repo/branch yet:")

    @pytest.mark.asyncio
    async def test_validate_reports_tree_failure_as_warning(self):
        adapter = _olaf_adapter(
            _olaf_client(tree_error=ResourceNotFoundError("Resource not found"))
        )
        result = await adapter.validate()
        assert result.valid
        assert result.warnings[0].startswith("Could not access repo/branch yet:")

    def test_collection_filter(self):
        source = _source(
            SourceType.OLAF,
            "https://github.com/acme/olaf",
            token="t",
            config=SourceConfig(collection_filter="review"),
        )
        adapter = GitTreeIndexAdapter(source, http_client=Mock())
        assert list(adapter.competency_dirs(OLAF_TREE["tree"])) == [
            "olaf-core/competencies/review"
        ]


# =============================================================================
# GitHub / GitLab release adapters
# =============================================================================


GITHUB_RELEASES = [
    {
        "tag_name": "v1.1.0",
        "name": "Acme Prompts 1.1.0",
        "body": "Second release\n\nDetails",
        "published_at": "2024-02-01T00:00:00Z",
        "html_url": "https://github.com/acme/prompts/releases/tag/v1.1.0",
        "author": {"login": "octocat"},
        "assets": [
            {
                "name": "acme-prompts.zip",
                "size": 2048,
                "browser_download_url": "https://github.com/acme/prompts/releases/download/v1.1.0/acme-prompts.zip",
            },
            {
                "name": "deployment-manifest.yml",
                "browser_download_url": "https://github.com/acme/prompts/releases/download/v1.1.0/deployment-manifest.yml",
            },
        ],
    },
    {
        "tag_name": "v1.0.0",
        "prerelease": True,
        "zipball_url": "https://api.github.com/repos/acme/prompts/zipball/v1.0.0",
        "assets": [],
    },
    {"tag_name": "v0.9.0", "draft": True},
    {"tag_name": "   "},
    "garbage",
]


class TestGitHubAdapter:
    """Tests for GitHubAdapter."""

    def test_parse_repository_url(self):
        assert parse_repository_url("https://GitHub.com/acme/prompts.git/") == (
            "github.com",
            "acme/prompts",
        )
        with pytest.raises(InvalidUrlError):
            parse_repository_url("https://github.com/acme")
        with pytest.raises(UnsupportedSchemeError):
            parse_repository_url("ssh://github.com/acme/prompts.git")

    def test_enterprise_urls(self):
        adapter = GitHubAdapter(
            _source(SourceType.GITHUB, "https://ghe.corp.example/acme/prompts")
        )
        assert adapter.api_base() == "https://ghe.corp.example/api/v3"
        assert (
            adapter.raw_url("main", "a.md")
            == "https://ghe.corp.example/acme/prompts/raw/main/a.md"
        )

    @pytest.mark.parametrize(
        "value,expected",
        [(None, "n/a"), (0, "n/a"), (512, "512 B"), (2048, "2.0 KB")],
    )
    def test_format_size(self, value, expected):
        assert format_size(value) == expected

    @pytest.mark.asyncio
    async def test_releases_become_bundles(self):
        http_client = Mock()
        http_client.get_json = AsyncMock(return_value=GITHUB_RELEASES)
        adapter = GitHubAdapter(
            _source(SourceType.GITHUB, "https://github.com/acme/prompts", token="t"),
            http_client=http_client,
        )

        bundles = await adapter.fetch_bundles()

        assert [b.id for b in bundles] == ["acme-prompts-v1.1.0", "acme-prompts-v1.0.0"]
        latest, older = bundles
        assert latest.version == "1.1.0"
        assert latest.description == "Second release"
        assert latest.author == "octocat"
        assert latest.size == "2.0 KB"
        assert latest.download_url.endswith("/acme-prompts.zip")
        assert latest.manifest_url.endswith("/deployment-manifest.yml")
        assert older.download_url.endswith("/zipball/v1.0.0")
        assert older.tags == ["prerelease"]
        assert http_client.get_json.call_args.args[0] == (
            "https://api.github.com/repos/acme/prompts/releases?per_page=100"
        )

    @pytest.mark.asyncio
    async def test_download_requests_octet_stream(self):
        http_client = Mock()
        http_client.get_bytes = AsyncMock(return_value=b"PK")
        adapter = GitHubAdapter(
            _source(SourceType.GITHUB, "https://github.com/acme/prompts", token="t"),
            http_client=http_client,
        )
        bundle = Bundle(
            id="acme-prompts",
            name="a",
            version="1.0.0",
            source_id="s",
            download_url="https://example.com/a.zip",
        )

        assert await adapter.download_bundle(bundle) == b"PK"
        headers = http_client.get_bytes.call_args.kwargs["headers"]
        assert headers["Accept"] == "application/octet-stream"
        assert headers["Authorization"] == "Bearer t"


GITLAB_ASSET = "https://gitlab.com/g/p/-/bundle.zip"


class TestGitLabAdapter:
    """Tests for GitLabAdapter."""

    @pytest.mark.asyncio
    async def test_releases_become_bundles(self):
        http_client = Mock()
        http_client.get_json = AsyncMock(
            return_value=[
                {
                    "tag_name": "v2.0.0",
                    "description": "Big release",
                    "released_at": "2024-03-01T00:00:00Z",
                    "author": {"username": "dev"},
                    "assets": {
                        "links": [
                            {
                                "name": "bundle.zip",
                                "direct_asset_url": GITLAB_ASSET,
                            }
                        ],
                        "sources": [],
                    },
                },
                {
                    "tag_name": "v1.0.0",
                    "assets": {
                        "sources": [
                            {"format": "tar.gz", "url": "https://gitlab.com/x.tar.gz"},
                            {"format": "zip", "url": "https://gitlab.com/x.zip"},
                        ]
                    },
                },
            ]
        )
        adapter = GitLabAdapter(
            _source(SourceType.GITLAB, "https://gitlab.com/group/project", token="t"),
            http_client=http_client,
        )

        bundles = await adapter.fetch_bundles()

        assert [b.id for b in bundles] == [
            "group-project-v2.0.0",
            "group-project-v1.0.0",
        ]
        assert bundles[0].download_url == GITLAB_ASSET
        assert bundles[0].author == "dev"
        assert bundles[1].download_url == "https://gitlab.com/x.zip"
        assert bundles[1].version == "1.0.0"


# =============================================================================
# AdapterFactory
# =============================================================================


class TestAdapterFactory:
    """Tests for AdapterFactory."""

    @pytest.mark.parametrize(
        "source_type,url,expected",
        [
            (SourceType.GITHUB, "https://github.com/a/b", GitHubAdapter),
            (SourceType.GITLAB, "https://gitlab.com/a/b", GitLabAdapter),
            (SourceType.HTTP, "https://example.com", HttpAdapter),
            (SourceType.LOCAL, "/tmp", LocalAdapter),
            (SourceType.AWESOME_COPILOT, "https://github.com/a/b", CuratedIndexAdapter),
            (SourceType.LOCAL_AWESOME_COPILOT, "/tmp", LocalCuratedIndexAdapter),
            (SourceType.OLAF, "https://github.com/a/b", GitTreeIndexAdapter),
        ],
    )
    def test_creates_adapter_for_each_type(self, source_type, url, expected):
        factory = AdapterFactory()
        adapter = factory.create(_source(source_type, url))
        assert isinstance(adapter, expected)
        assert adapter.http_client is factory.http_client

    def test_registration_is_per_instance(self):
        factory = AdapterFactory()
        factory.register(SourceType.HTTP, FakeAdapter)

        assert isinstance(
            factory.create(_source(SourceType.HTTP, "https://x")), FakeAdapter
        )
        assert isinstance(
            AdapterFactory().create(_source(SourceType.HTTP, "https://x")), HttpAdapter
        )

    def test_unsupported_type_lists_supported(self):
        factory = AdapterFactory()
        factory._registry.pop(SourceType.OLAF)

        with pytest.raises(UnsupportedSourceTypeError) as exc_info:
            factory.create(_source(SourceType.OLAF, "https://github.com/a/b"))
        assert "Supported types:" in str(exc_info.value)
        assert "olaf" not in exc_info.value.details
        assert factory.supported_types()[0] == "awesome-copilot"
