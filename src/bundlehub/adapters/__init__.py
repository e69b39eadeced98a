"""
Source adapters.

Core Components:
- base: the RepositoryAdapter interface every source type implements
- http_client: aiohttp client with typed status and response-format errors
- auth: ordered credential resolution for git-hosting platforms
- github, gitlab: release-based adapters
- http, local: catalog and directory adapters
- curated, git_tree: curated collection indexes and manifest trees
- factory: type-tag dispatch from Source to adapter
"""

from .auth import AuthChain, AuthMethod
from .base import RepositoryAdapter
from .curated import CuratedIndexAdapter, LocalCuratedIndexAdapter
from .factory import AdapterFactory
from .git_hosted import GitHostedAdapter, parse_repository_url
from .git_tree import GitTreeIndexAdapter
from .github import GitHubAdapter
from .gitlab import GitLabAdapter
from .http import HttpAdapter
from .http_client import AsyncHttpClient, HttpResponse
from .local import LocalAdapter

__all__ = [
    # Interfaces
    "RepositoryAdapter",
    "GitHostedAdapter",
    # Adapters
    "GitHubAdapter",
    "GitLabAdapter",
    "HttpAdapter",
    "LocalAdapter",
    "CuratedIndexAdapter",
    "LocalCuratedIndexAdapter",
    "GitTreeIndexAdapter",
    # Plumbing
    "AdapterFactory",
    "AsyncHttpClient",
    "HttpResponse",
    "AuthChain",
    "AuthMethod",
    "parse_repository_url",
]
