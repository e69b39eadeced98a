"""
Generic HTTP catalog adapter.

The source URL points at a directory serving ``index.json`` (or directly at a
``.json`` catalog). The catalog is either a list of bundle objects or an
object with a ``bundles`` list; relative ``downloadUrl``/``manifestUrl``
values resolve against the catalog URL.
"""

from typing import Any, List
from urllib.parse import urljoin

from bundlehub.constants import HTTP_INDEX_FILE
from bundlehub.exceptions import BundleHubError, ManifestError
from bundlehub.log_utils import logger
from bundlehub.models import Bundle, ValidationResult

from .base import RepositoryAdapter


class HttpAdapter(RepositoryAdapter):
    """Adapter for ``http`` sources."""

    @property
    def index_url(self) -> str:
        url = self.source.url
        if url.lower().endswith(".json"):
            return url
        return urljoin(url.rstrip("/") + "/", HTTP_INDEX_FILE)

    def _entry_to_bundle(self, entry: Any) -> Bundle:
        if not isinstance(entry, dict) or not entry.get("id"):
            raise ManifestError("Catalog entry has no id", value=repr(entry)[:80])
        bundle = Bundle.from_dict(entry)
        bundle.source_id = self.source_id
        base = self.index_url
        if bundle.download_url:
            bundle.download_url = urljoin(base, bundle.download_url)
        else:
            bundle.download_url = urljoin(base, f"{bundle.id}.zip")
        bundle.manifest_url = (
            urljoin(base, bundle.manifest_url)
            if bundle.manifest_url
            else bundle.download_url
        )
        return bundle

    async def _fetch_bundles(self) -> List[Bundle]:
        data = await self.http_client.get_json(self.index_url)
        entries = data.get("bundles") if isinstance(data, dict) else data
        if not isinstance(entries, list):
            raise ManifestError(
                "Catalog has no bundle list", field="bundles", value=self.index_url
            )

        bundles: List[Bundle] = []
        for entry in entries:
            try:
                bundles.append(self._entry_to_bundle(entry))
            except (BundleHubError, KeyError, TypeError, ValueError) as e:
                logger.warning(
                    f"Skipping malformed catalog entry in {self.index_url}: {e}"
                )
        return bundles

    async def download_bundle(self, bundle: Bundle) -> bytes:
        logger.info(f"Downloading {bundle.id} from {bundle.download_url}")
        return await self.http_client.get_bytes(bundle.download_url)

    async def validate(self) -> ValidationResult:
        if not self.is_valid_url(self.source.url):
            return ValidationResult.from_messages([f"Invalid URL: {self.source.url}"])
        try:
            data = await self.http_client.get_json(self.index_url)
        except BundleHubError as e:
            return ValidationResult.from_messages([str(e)])
        entries = data.get("bundles") if isinstance(data, dict) else data
        if not isinstance(entries, list):
            return ValidationResult.from_messages(
                [f"{self.index_url} does not contain a bundle list"]
            )
        warnings = [] if entries else ["Catalog lists no bundles"]
        return ValidationResult.from_messages([], warnings)
