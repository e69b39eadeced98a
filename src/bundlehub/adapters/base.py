"""
Repository adapter interface.

An adapter turns one source's native catalog into ``Bundle`` records and
fetches bundle archives as raw bytes. Installing those bytes is the
installer's job, never the adapter's.
"""

import time
from abc import ABC, abstractmethod
from typing import List, Optional
from urllib.parse import urlparse

from bundlehub.constants import BUNDLE_CACHE_TTL_SECONDS
from bundlehub.exceptions import BundleHubError, BundleNotFoundError
from bundlehub.log_utils import logger
from bundlehub.models import (
    Bundle,
    Source,
    SourceMetadata,
    ValidationResult,
    utc_now_iso,
)

from .http_client import AsyncHttpClient


class RepositoryAdapter(ABC):
    """
    Abstract base class for source adapters.

    ``fetch_bundles`` memoizes the list returned by ``_fetch_bundles`` for
    ``cache_ttl`` seconds. A failed fetch is logged, replaced by
    ``fallback_bundles()`` and not memoized, so the next call tries again.
    """

    def __init__(
        self,
        source: Source,
        http_client: Optional[AsyncHttpClient] = None,
        cache_ttl: float = BUNDLE_CACHE_TTL_SECONDS,
    ) -> None:
        self.source = source
        self.http_client = http_client or AsyncHttpClient()
        self.cache_ttl = cache_ttl
        self._bundle_cache: Optional[List[Bundle]] = None
        self._bundle_cache_time: float = 0.0

    @property
    def source_id(self) -> str:
        return self.source.id

    @abstractmethod
    async def _fetch_bundles(self) -> List[Bundle]:
        """
        Read the source's catalog.

        Raises:
            BundleHubError: On any failure; ``fetch_bundles`` degrades it.
        """

    @abstractmethod
    async def download_bundle(self, bundle: Bundle) -> bytes:
        """
        Fetch the archive for ``bundle``.

        Returns:
            bytes: ZIP archive bytes, exactly what the installer will unpack.

        Raises:
            DownloadError: ``NotFoundError``, ``ForbiddenError`` or ``NetworkError``.
        """

    @abstractmethod
    async def validate(self) -> ValidationResult:
        """Check the source is usable. Never raises."""

    def fallback_bundles(self) -> List[Bundle]:
        """Bundles returned when the catalog cannot be read."""
        return []

    async def fetch_bundles(self) -> List[Bundle]:
        now = time.monotonic()
        if (
            self._bundle_cache is not None
            and now - self._bundle_cache_time < self.cache_ttl
        ):
            logger.debug(f"Using memoized bundle list for {self.source_id}")
            return list(self._bundle_cache)

        try:
            bundles = await self._fetch_bundles()
        except BundleHubError as e:
            logger.warning(f"Failed to fetch bundles from {self.source.name}: {e}")
            return self.fallback_bundles()

        self._bundle_cache = list(bundles)
        self._bundle_cache_time = now
        logger.debug(f"Fetched {len(bundles)} bundle(s) from {self.source_id}")
        return list(bundles)

    def clear_cache(self) -> None:
        self._bundle_cache = None
        self._bundle_cache_time = 0.0

    async def fetch_metadata(self) -> SourceMetadata:
        bundles = await self.fetch_bundles()
        return SourceMetadata(
            name=self.source.name,
            description=f"{self.source.type.value} source at {self.source.url}",
            bundle_count=len(bundles),
            last_updated=utc_now_iso(),
        )

    async def _find_bundle(self, bundle_id: str) -> Bundle:
        for bundle in await self.fetch_bundles():
            if bundle.id == bundle_id:
                return bundle
        raise BundleNotFoundError(
            f"Bundle {bundle_id} not found in source {self.source_id}"
        )

    async def get_manifest_url(self, bundle_id: str) -> str:
        return (await self._find_bundle(bundle_id)).manifest_url

    async def get_download_url(self, bundle_id: str) -> str:
        return (await self._find_bundle(bundle_id)).download_url

    async def close(self) -> None:
        await self.http_client.close()

    @staticmethod
    def is_valid_url(url: str) -> bool:
        try:
            parsed = urlparse(url)
        except ValueError:
            return False
        return parsed.scheme in ("http", "https") and bool(parsed.netloc)
