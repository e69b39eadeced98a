"""
Curated-index adapters.

A curated index is a repository (or directory) with ``*.collection.yml``
files under ``collectionsPath``. Each collection lists content items by path;
one collection becomes one bundle. Downloading assembles a ZIP archive from
the listed items plus a generated ``deployment-manifest.yml``.

Example collection::

    id: azure-cloud
    name: Azure Cloud Development
    description: Prompts for Azure work
    tags: [azure]
    items:
      - path: prompts/azure-health.prompt.md
        kind: prompt
"""

from abc import abstractmethod
from pathlib import Path, PurePosixPath
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import aiofiles  # type: ignore[import-untyped]
import yaml

from bundlehub.constants import (
    COLLECTION_FILE_SUFFIX,
    DEFAULT_COLLECTIONS_PATH,
    DEPLOYMENT_MANIFEST_FILE,
)
from bundlehub.exceptions import (
    BundleHubError,
    FileSystemError,
    ManifestError,
    NotFoundError,
)
from bundlehub.files import build_zip, is_safe_archive_member
from bundlehub.log_utils import logger
from bundlehub.models import Bundle, ValidationResult, utc_now_iso

from .auth import AuthChain
from .base import RepositoryAdapter
from .git_hosted import GitHostedAdapter
from .github import GitHubApiMixin
from .local import local_path_from_url

DEFAULT_COLLECTION_VERSION = "1.0.0"


def parse_collection(text: str, location: str) -> Dict[str, Any]:
    """
    Parse a collection document.

    Raises:
        ManifestError: On YAML errors, non-mapping documents or a missing item list.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ManifestError(
            "Invalid collection YAML", value=location, details=str(e)
        ) from e
    if not isinstance(data, dict):
        raise ManifestError("Collection is not a mapping", value=location)
    if not isinstance(data.get("items", []), list):
        raise ManifestError("Collection items must be a list", value=location)
    return data


def collection_items(collection: Dict[str, Any]) -> List[Dict[str, str]]:
    items = []
    for item in collection.get("items") or []:
        if isinstance(item, dict) and isinstance(item.get("path"), str):
            items.append({"path": item["path"], "kind": str(item.get("kind", "file"))})
    return items


class CuratedIndexBase(RepositoryAdapter):
    """Collection-to-bundle mapping shared by the remote and local variants."""

    @property
    def collections_path(self) -> str:
        return (self.source.config.collections_path or DEFAULT_COLLECTIONS_PATH).strip(
            "/"
        )

    @abstractmethod
    async def _list_collections(self) -> List[Tuple[str, str]]:
        """Return ``(file stem, location)`` for every collection file."""

    @abstractmethod
    async def _read_collection(self, location: str) -> str:
        """Return the raw text of the collection at ``location``."""

    @abstractmethod
    async def _read_item(self, path: str) -> bytes:
        """Return the bytes of a collection item, ``path`` relative to the index root."""

    def _collection_to_bundle(
        self, collection: Dict[str, Any], stem: str, location: str
    ) -> Bundle:
        bundle_id = str(collection.get("id") or stem)
        tags = collection.get("tags") or []
        return Bundle(
            id=bundle_id,
            name=str(collection.get("name") or bundle_id),
            version=str(collection.get("version") or DEFAULT_COLLECTION_VERSION),
            source_id=self.source_id,
            description=str(collection.get("description") or ""),
            author=str(collection.get("author") or self.source.name),
            environments=list(collection.get("environments") or []),
            tags=[str(t) for t in tags] if isinstance(tags, list) else [],
            last_updated=str(collection.get("updated") or utc_now_iso()),
            size=f"{len(collection_items(collection))} items",
            license=str(collection.get("license") or "Unknown"),
            manifest_url=location,
            download_url=location,
            repository=self.source.url,
        )

    async def _fetch_bundles(self) -> List[Bundle]:
        bundles: List[Bundle] = []
        for stem, location in await self._list_collections():
            try:
                collection = parse_collection(
                    await self._read_collection(location), location
                )
            except BundleHubError as e:
                logger.warning(f"Skipping collection {stem}: {e}")
                continue
            bundles.append(self._collection_to_bundle(collection, stem, location))
        return bundles

    async def download_bundle(self, bundle: Bundle) -> bytes:
        collection = parse_collection(
            await self._read_collection(bundle.download_url), bundle.download_url
        )
        return await build_collection_archive(bundle, collection, self._read_item)


async def build_collection_archive(
    bundle: Bundle,
    collection: Dict[str, Any],
    read_item: Callable[[str], Awaitable[bytes]],
) -> bytes:
    """
    Assemble the ZIP archive for a collection bundle.

    Raises:
        ManifestError: If an item path would escape the archive root.
        DownloadError: If an item cannot be fetched.
    """
    entries: List[Tuple[str, bytes]] = []
    prompts = []
    for item in collection_items(collection):
        path = item["path"].lstrip("/")
        if not is_safe_archive_member(path):
            raise ManifestError("Unsafe collection item path", field="path", value=path)
        entries.append((path, await read_item(path)))
        name = PurePosixPath(path).name
        prompts.append(
            {
                "id": name.split(".")[0],
                "name": name,
                "file": path,
                "type": item["kind"],
            }
        )

    manifest = {
        "id": bundle.id,
        "name": bundle.name,
        "version": bundle.version,
        "description": bundle.description,
        "author": bundle.author,
        "tags": list(bundle.tags),
        "environments": list(bundle.environments),
        "prompts": prompts,
    }
    entries.append(
        (DEPLOYMENT_MANIFEST_FILE, yaml.safe_dump(manifest, sort_keys=False).encode())
    )
    return build_zip(entries)


class CuratedIndexAdapter(GitHubApiMixin, CuratedIndexBase, GitHostedAdapter):
    """Adapter for ``awesome-copilot`` sources hosted on GitHub."""

    @classmethod
    def create_auth_chain(cls, explicit_token: Optional[str]) -> AuthChain:
        return AuthChain.for_github(explicit_token)

    async def _list_collections(self) -> List[Tuple[str, str]]:
        url = self.repo_api_url(f"/contents/{self.collections_path}?ref={self.branch}")
        listing = await self.api_json(url)
        if not isinstance(listing, list):
            raise ManifestError(
                "Collections path is not a directory", value=self.collections_path
            )
        found = []
        for entry in listing:
            if not isinstance(entry, dict) or entry.get("type") != "file":
                continue
            name = str(entry.get("name", ""))
            if name.endswith(COLLECTION_FILE_SUFFIX):
                location = entry.get("download_url") or self.raw_url(
                    self.branch, f"{self.collections_path}/{name}"
                )
                found.append((name[: -len(COLLECTION_FILE_SUFFIX)], location))
        return found

    async def _read_collection(self, location: str) -> str:
        return await self.api_text(location)

    async def _read_item(self, path: str) -> bytes:
        return await self.api_bytes(self.raw_url(self.branch, path))

    async def validate(self) -> ValidationResult:
        if not self.is_valid_url(self.source.url):
            return ValidationResult.from_messages(
                [f"Invalid repository URL: {self.source.url}"]
            )
        try:
            collections = await self._list_collections()
        except BundleHubError as e:
            return ValidationResult.from_messages([str(e)])
        warnings = (
            []
            if collections
            else [f"No {COLLECTION_FILE_SUFFIX} files in {self.collections_path}"]
        )
        return ValidationResult.from_messages([], warnings)


class LocalCuratedIndexAdapter(CuratedIndexBase):
    """Adapter for ``local-awesome-copilot`` sources read from a directory."""

    @property
    def root(self) -> Path:
        return local_path_from_url(self.source.url).resolve()

    async def _list_collections(self) -> List[Tuple[str, str]]:
        directory = self.root / self.collections_path
        if not directory.is_dir():
            raise FileSystemError(
                "Collections directory does not exist", path=str(directory)
            )
        return [
            (path.name[: -len(COLLECTION_FILE_SUFFIX)], path.as_uri())
            for path in sorted(directory.glob(f"*{COLLECTION_FILE_SUFFIX}"))
            if path.is_file()
        ]

    async def _read_collection(self, location: str) -> str:
        path = local_path_from_url(location)
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                return await f.read()
        except FileNotFoundError as e:
            raise NotFoundError("Collection file not found", url=location) from e
        except OSError as e:
            raise FileSystemError(
                "Could not read collection", path=str(path), details=str(e)
            ) from e

    async def _read_item(self, path: str) -> bytes:
        item = self.root / path
        try:
            async with aiofiles.open(item, "rb") as f:
                return await f.read()
        except FileNotFoundError as e:
            raise NotFoundError("Collection item not found", url=item.as_uri()) from e
        except OSError as e:
            raise FileSystemError(
                "Could not read collection item", path=str(item), details=str(e)
            ) from e

    async def validate(self) -> ValidationResult:
        try:
            collections = await self._list_collections()
        except BundleHubError as e:
            return ValidationResult.from_messages([str(e)])
        warnings = [] if collections else ["No collections found"]
        return ValidationResult.from_messages([], warnings)
