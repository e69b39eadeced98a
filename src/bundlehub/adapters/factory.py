"""
Adapter registry.
"""

from typing import Dict, List, Optional, Type

from bundlehub.exceptions import UnsupportedSourceTypeError
from bundlehub.models import Source, SourceType

from .base import RepositoryAdapter
from .curated import CuratedIndexAdapter, LocalCuratedIndexAdapter
from .git_tree import GitTreeIndexAdapter
from .github import GitHubAdapter
from .gitlab import GitLabAdapter
from .http import HttpAdapter
from .http_client import AsyncHttpClient
from .local import LocalAdapter

_DEFAULT_ADAPTERS: Dict[SourceType, Type[RepositoryAdapter]] = {
    SourceType.GITHUB: GitHubAdapter,
    SourceType.GITLAB: GitLabAdapter,
    SourceType.HTTP: HttpAdapter,
    SourceType.LOCAL: LocalAdapter,
    SourceType.AWESOME_COPILOT: CuratedIndexAdapter,
    SourceType.LOCAL_AWESOME_COPILOT: LocalCuratedIndexAdapter,
    SourceType.OLAF: GitTreeIndexAdapter,
}


class AdapterFactory:
    """
    Build adapters from sources by their type tag.

    Each factory owns its registry, so tests can register fakes without
    touching other instances. All adapters it creates share one HTTP client.
    """

    def __init__(self, http_client: Optional[AsyncHttpClient] = None) -> None:
        self.http_client = http_client or AsyncHttpClient()
        self._registry: Dict[SourceType, Type[RepositoryAdapter]] = dict(
            _DEFAULT_ADAPTERS
        )

    def register(
        self, source_type: SourceType, adapter_class: Type[RepositoryAdapter]
    ) -> None:
        self._registry[SourceType(source_type)] = adapter_class

    def supported_types(self) -> List[str]:
        return sorted(t.value for t in self._registry)

    def create(self, source: Source) -> RepositoryAdapter:
        """
        Return a new adapter for ``source``.

        Raises:
            UnsupportedSourceTypeError: If no adapter is registered for the type.
        """
        adapter_class = self._registry.get(source.type)
        if adapter_class is None:
            raise UnsupportedSourceTypeError(
                f"Unsupported source type: {source.type}",
                details=f"Supported types: {', '.join(self.supported_types())}",
            )
        return adapter_class(source, http_client=self.http_client)

    async def close(self) -> None:
        await self.http_client.close()
