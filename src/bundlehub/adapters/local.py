"""
Local directory adapter.

Every immediate subdirectory holding a ``deployment-manifest.yml`` is one
bundle; downloading zips that directory in memory.
"""

from pathlib import Path
from typing import Any, Dict, List
from urllib.parse import unquote, urlparse

import yaml

from bundlehub.constants import DEPLOYMENT_MANIFEST_FILE
from bundlehub.exceptions import (
    FileSystemError,
    ManifestError,
    NotFoundError,
)
from bundlehub.files import zip_directory
from bundlehub.log_utils import logger
from bundlehub.models import Bundle, ValidationResult, utc_now_iso

from .base import RepositoryAdapter


def local_path_from_url(url: str) -> Path:
    """Accept ``file://`` URIs as well as plain (``~``-expanded) paths."""
    if url.startswith("file://"):
        return Path(unquote(urlparse(url).path))
    return Path(url).expanduser()


def load_yaml_mapping(path: Path) -> Dict[str, Any]:
    """
    Read a YAML document that must be a mapping.

    Raises:
        ManifestError: On unreadable files, YAML syntax errors or non-mapping documents.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ManifestError(
            f"Could not read {path.name}", value=str(path), details=str(e)
        ) from e
    if not isinstance(data, dict):
        raise ManifestError(f"{path.name} is not a mapping", value=str(path))
    return data


def as_string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(v) for v in value if v is not None]
    return []


def bundle_from_manifest(
    manifest: Dict[str, Any],
    fallback_id: str,
    source_id: str,
    manifest_url: str,
    download_url: str,
) -> Bundle:
    """Map a ``deployment-manifest.yml`` document onto a Bundle."""
    bundle_id = str(manifest.get("id") or fallback_id)
    return Bundle(
        id=bundle_id,
        name=str(manifest.get("name") or bundle_id),
        version=str(manifest.get("version") or "1.0.0"),
        source_id=source_id,
        description=str(manifest.get("description") or ""),
        author=str(manifest.get("author") or "Unknown"),
        environments=as_string_list(manifest.get("environments")),
        tags=as_string_list(manifest.get("tags")),
        last_updated=str(manifest.get("updated") or utc_now_iso()),
        dependencies=as_string_list(manifest.get("dependencies")),
        license=str(manifest.get("license") or "Unknown"),
        manifest_url=manifest_url,
        download_url=download_url,
        homepage=manifest.get("homepage"),
        repository=manifest.get("repository"),
    )


class LocalAdapter(RepositoryAdapter):
    """Adapter for ``local`` sources."""

    @property
    def root(self) -> Path:
        return local_path_from_url(self.source.url).resolve()

    async def _fetch_bundles(self) -> List[Bundle]:
        root = self.root
        if not root.is_dir():
            raise FileSystemError("Source directory does not exist", path=str(root))

        bundles: List[Bundle] = []
        for directory in sorted(p for p in root.iterdir() if p.is_dir()):
            manifest_path = directory / DEPLOYMENT_MANIFEST_FILE
            if not manifest_path.is_file():
                continue
            try:
                manifest = load_yaml_mapping(manifest_path)
            except ManifestError as e:
                logger.warning(f"Skipping bundle in {directory}: {e}")
                continue
            bundles.append(
                bundle_from_manifest(
                    manifest,
                    fallback_id=directory.name,
                    source_id=self.source_id,
                    manifest_url=manifest_path.as_uri(),
                    download_url=directory.as_uri(),
                )
            )
        return bundles

    async def download_bundle(self, bundle: Bundle) -> bytes:
        directory = local_path_from_url(bundle.download_url)
        if not (directory / DEPLOYMENT_MANIFEST_FILE).is_file():
            raise NotFoundError(
                f"Bundle {bundle.id} not found", url=bundle.download_url
            )
        try:
            return zip_directory(directory)
        except OSError as e:
            raise FileSystemError(
                f"Could not package bundle {bundle.id}",
                path=str(directory),
                details=str(e),
            ) from e

    async def validate(self) -> ValidationResult:
        root = self.root
        if not root.exists():
            return ValidationResult.from_messages(
                [f"Directory does not exist: {root}"]
            )
        if not root.is_dir():
            return ValidationResult.from_messages([f"Not a directory: {root}"])
        bundles = await self.fetch_bundles()
        warnings = [] if bundles else [f"No bundles found in {root}"]
        return ValidationResult.from_messages([], warnings)
