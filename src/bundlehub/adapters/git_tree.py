"""
Index-over-git-tree adapter (``olaf`` sources).

The recursive tree of the configured branch is listed once; every
``competency-manifest.json`` under ``basePath`` marks a bundle directory.
``collectionFilter`` narrows the scan to one top-level folder below the base
path. Manifests missing ``id``, ``name`` or ``version`` are skipped with a
warning, and a source whose tree cannot be read shows a single placeholder
bundle instead of an empty list.
"""

from posixpath import dirname
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import yaml

from bundlehub.constants import (
    DEPLOYMENT_MANIFEST_FILE,
    OLAF_DEFAULT_BASE_PATH,
    OLAF_MANIFEST_FILE,
)
from bundlehub.exceptions import APIError, BundleHubError, ManifestError, NotFoundError
from bundlehub.files import build_zip
from bundlehub.log_utils import logger
from bundlehub.models import Bundle, ValidationResult, utc_now_iso

from .auth import AuthChain
from .git_hosted import GitHostedAdapter
from .github import GitHubApiMixin
from .local import as_string_list


class GitTreeIndexAdapter(GitHubApiMixin, GitHostedAdapter):
    """Adapter for ``olaf`` sources."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        # bundle id -> (directory, blob paths inside it)
        self._bundle_dirs: Dict[str, Tuple[str, List[str]]] = {}

    @classmethod
    def create_auth_chain(cls, explicit_token: Optional[str]) -> AuthChain:
        return AuthChain.for_github(explicit_token)

    @property
    def base_path(self) -> str:
        return (self.source.config.base_path or OLAF_DEFAULT_BASE_PATH).strip("/")

    @property
    def collection_filter(self) -> str:
        return (self.source.config.collection_filter or "").strip()

    def _raw(self, path: str) -> str:
        return self.raw_url(quote(self.branch, safe=""), path)

    async def fetch_tree(self) -> List[Dict[str, Any]]:
        """
        Return the recursive tree entries of the configured branch.

        The tree is requested by branch name first; when that fails the
        branch head SHA is resolved and the tree is requested by SHA.
        """
        ref = quote(self.branch, safe="")
        try:
            data = await self.api_json(
                self.repo_api_url(f"/git/trees/{ref}?recursive=1")
            )
        except APIError as e:
            logger.debug(f"Tree lookup by ref {self.branch} failed: {e}")
            head = await self.api_json(self.repo_api_url(f"/git/refs/heads/{ref}"))
            # A prefix match returns a list of refs instead of the branch
            target = head.get("object") if isinstance(head, dict) else None
            sha = target.get("sha") if isinstance(target, dict) else None
            if not sha:
                raise
            data = await self.api_json(
                self.repo_api_url(f"/git/trees/{sha}?recursive=1")
            )
        if not isinstance(data, dict):
            return []
        if data.get("truncated"):
            logger.warning(f"Git tree for {self.source.url} was truncated by the API")
        return [n for n in data.get("tree") or [] if isinstance(n, dict)]

    def competency_dirs(self, tree: List[Dict[str, Any]]) -> Dict[str, List[str]]:
        """Map each manifest directory under the base path to its blob paths."""
        base = self.base_path
        blobs = [n["path"] for n in tree if n.get("type") == "blob" and n.get("path")]
        dirs = {
            dirname(path)
            for path in blobs
            if path.startswith(base + "/") and path.endswith("/" + OLAF_MANIFEST_FILE)
        }
        if self.collection_filter:
            dirs = {
                d
                for d in dirs
                if d[len(base) + 1 :].split("/")[0] == self.collection_filter
            }
        return {
            d: [path for path in blobs if path.startswith(d + "/")]
            for d in sorted(dirs)
        }

    async def _fetch_bundles(self) -> List[Bundle]:
        tree = await self.fetch_tree()
        bundles: List[Bundle] = []
        bundle_dirs: Dict[str, Tuple[str, List[str]]] = {}
        for directory, paths in self.competency_dirs(tree).items():
            manifest_url = self._raw(f"{directory}/{OLAF_MANIFEST_FILE}")
            try:
                manifest = await self.api_json(manifest_url)
                bundle = self._bundle_from_manifest(manifest, manifest_url)
            except (BundleHubError, TypeError, ValueError) as e:
                logger.warning(f"Skipping invalid competency at {directory}: {e}")
                continue
            bundle_dirs[bundle.id] = (directory, paths)
            bundles.append(bundle)
        self._bundle_dirs = bundle_dirs
        return bundles

    def _bundle_from_manifest(self, manifest: Any, manifest_url: str) -> Bundle:
        """
        Map a ``competency-manifest.json`` document onto a Bundle.

        Raises:
            ManifestError: If the document is not an object or lacks
                ``id``, ``name`` or ``version``.
        """
        if not isinstance(manifest, dict):
            raise ManifestError("Competency manifest is not an object")
        missing = [k for k in ("id", "name", "version") if not manifest.get(k)]
        if missing:
            raise ManifestError(
                f"Competency manifest is missing {', '.join(missing)}",
                field=missing[0],
            )
        return Bundle(
            id=str(manifest["id"]),
            name=str(manifest["name"]),
            version=str(manifest["version"]),
            source_id=self.source_id,
            description=str(manifest.get("description") or "OLAF competency"),
            author=str(manifest.get("author") or "Unknown"),
            environments=["any"],
            tags=as_string_list(manifest.get("tags")),
            last_updated=utc_now_iso(),
            homepage=self.source.url,
            repository=self.source.url,
            manifest_url=manifest_url,
            download_url=manifest_url,
        )

    def fallback_bundles(self) -> List[Bundle]:
        return [
            Bundle(
                id=f"{self.source_id}-placeholder",
                name="OLAF Competencies (placeholder)",
                version="0.0.0",
                source_id=self.source_id,
                description="Configure repo/branch/basePath to load real competencies",
                author="System",
                environments=["any"],
                tags=["olaf"],
                last_updated=utc_now_iso(),
                manifest_url=self.source.url,
                download_url=self.source.url,
            )
        ]

    async def download_bundle(self, bundle: Bundle) -> bytes:
        """
        Zip the competency directory from its raw file URLs.

        A ``deployment-manifest.yml`` generated from the bundle metadata is
        added at the archive root so the installer reads it like any other
        bundle.

        Raises:
            NotFoundError: If the bundle is not (or no longer) in the tree.
        """
        if bundle.id not in self._bundle_dirs:
            self.clear_cache()
            await self.fetch_bundles()
        if bundle.id not in self._bundle_dirs:
            raise NotFoundError(
                f"Bundle {bundle.id} not found in git tree", url=self.source.url
            )

        directory, paths = self._bundle_dirs[bundle.id]
        entries = []
        for path in paths:
            data = await self.api_bytes(self._raw(path))
            entries.append((path[len(directory) + 1 :], data))

        manifest = {
            "id": bundle.id,
            "name": bundle.name,
            "version": bundle.version,
            "description": bundle.description,
            "author": bundle.author,
            "tags": list(bundle.tags),
            "environments": list(bundle.environments),
        }
        manifest_text = yaml.safe_dump(manifest, sort_keys=False)
        entries.append((DEPLOYMENT_MANIFEST_FILE, manifest_text.encode()))
        return build_zip(entries)

    async def validate(self) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        if not self.is_valid_url(self.source.url):
            errors.append("Invalid repository URL")
        try:
            await self.fetch_tree()
        except BundleHubError as e:
            warnings.append(f"Could not access repo/branch yet: {e}")
        return ValidationResult.from_messages(errors, warnings)
