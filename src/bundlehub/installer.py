"""
Bundle installer.

Turns archive bytes produced by an adapter into files on disk. The archive is
extracted into a staging directory next to the target first and only swapped
into place once extraction and manifest parsing succeeded, so a failed
install leaves any previous version untouched.
"""

import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any, Dict

from bundlehub.adapters.local import load_yaml_mapping
from bundlehub.constants import DEPLOYMENT_MANIFEST_FILE
from bundlehub.exceptions import InstallError, ManifestError
from bundlehub.files import extract_zip_buffer, safe_rmtree
from bundlehub.identity import sanitize_filename
from bundlehub.log_utils import logger
from bundlehub.models import (
    Bundle,
    InstalledBundle,
    InstallOptions,
    InstallScope,
    Source,
    utc_now_iso,
)
from bundlehub.storage import Storage


def find_content_root(staging_dir: Path) -> Path:
    """
    Locate the directory holding ``deployment-manifest.yml``.

    Archives built from a repository snapshot wrap everything in a single
    top-level folder; the manifest may sit at the archive root or inside
    that folder.

    Raises:
        ManifestError: If neither location has a manifest.
    """
    if (staging_dir / DEPLOYMENT_MANIFEST_FILE).is_file():
        return staging_dir
    children = [p for p in staging_dir.iterdir()]
    if len(children) == 1 and children[0].is_dir():
        if (children[0] / DEPLOYMENT_MANIFEST_FILE).is_file():
            return children[0]
    raise ManifestError(
        f"Bundle archive has no {DEPLOYMENT_MANIFEST_FILE}",
        field="manifest",
    )


class BundleInstaller:
    """Extracts bundle archives into the scope's bundle directory."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    def install_path(self, bundle_id: str, scope: InstallScope) -> Path:
        return self.storage.paths.bundles_dir(scope) / sanitize_filename(bundle_id)

    def install_from_buffer(
        self,
        bundle: Bundle,
        buffer: bytes,
        options: InstallOptions,
        source: Source,
    ) -> InstalledBundle:
        """
        Install ``bundle`` from its archive bytes.

        Parameters:
            bundle (Bundle): Bundle being installed; its ``id`` and ``version``
                end up in the returned record.
            buffer (bytes): ZIP archive exactly as returned by the adapter.
            options (InstallOptions): Target scope.
            source (Source): Originating source.

        Returns:
            InstalledBundle: The record to persist. Persisting it is the
            caller's job.

        Raises:
            CorruptedArchiveError: If the buffer is not a valid ZIP archive.
            ExtractionError: On unsafe archive members or disk errors.
            ManifestError: If the archive has no readable manifest.
            InstallError: If the extracted tree cannot be moved into place.
        """
        target = self.install_path(bundle.id, options.scope)
        bundles_dir = target.parent
        try:
            bundles_dir.mkdir(parents=True, exist_ok=True)
            staging = Path(tempfile.mkdtemp(prefix=".staging-", dir=bundles_dir))
        except OSError as e:
            raise InstallError(
                "Could not prepare bundle directory",
                path=str(bundles_dir),
                details=str(e),
            ) from e

        try:
            extract_zip_buffer(buffer, str(staging))
            content_root = find_content_root(staging)
            manifest = load_yaml_mapping(content_root / DEPLOYMENT_MANIFEST_FILE)
            self._check_manifest(bundle, manifest)
            self._swap_into_place(content_root, target)
        finally:
            safe_rmtree(staging, bundles_dir)

        logger.info(
            f"Installed {bundle.id} {bundle.version} "
            f"({options.scope.value}) to {target}"
        )
        return InstalledBundle(
            bundle_id=bundle.id,
            version=bundle.version,
            install_path=str(target),
            installed_at=utc_now_iso(),
            scope=options.scope,
            source_id=source.id,
            source_type=source.type,
            manifest=manifest,
        )

    def _check_manifest(self, bundle: Bundle, manifest: Dict[str, Any]) -> None:
        declared = manifest.get("version")
        if declared is not None and str(declared) != bundle.version:
            logger.debug(
                f"Manifest of {bundle.id} declares version {declared}, "
                f"installing as {bundle.version}"
            )

    def _swap_into_place(self, content_root: Path, target: Path) -> None:
        backup = None
        if target.exists():
            backup = target.with_name(f".{target.name}.old-{int(time.time() * 1000)}")
            try:
                os.replace(target, backup)
            except OSError as e:
                raise InstallError(
                    "Could not move previous version aside",
                    path=str(target),
                    details=str(e),
                ) from e
        try:
            shutil.move(str(content_root), str(target))
        except OSError as e:
            if backup is not None:
                os.replace(backup, target)
            raise InstallError(
                "Could not move bundle into place", path=str(target), details=str(e)
            ) from e
        if backup is not None:
            safe_rmtree(backup, target.parent)

    def uninstall(self, record: InstalledBundle) -> bool:
        """
        Remove the files of an installed bundle.

        Returns:
            bool: True if the files are gone (or were already missing).

        Raises:
            InstallError: If the install path is outside the scope's bundle
                directory or cannot be removed.
        """
        base = self.storage.paths.bundles_dir(record.scope)
        path = Path(record.install_path)
        if not path.exists():
            logger.debug(f"Install path of {record.bundle_id} already gone: {path}")
            return True
        if not safe_rmtree(path, base):
            raise InstallError(
                f"Could not remove files of {record.bundle_id}", path=str(path)
            )
        logger.info(f"Removed {record.bundle_id} from {path}")
        return True
