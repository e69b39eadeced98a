"""
Shared plumbing for adapters backed by a git-hosting API.

Every authenticated request goes through ``_with_auth_retry``: on HTTP 401/403
the cached credential is invalidated and the request is retried once with
whatever the chain resolves next. A second rejection raises
``AuthenticationExhaustedError`` naming every method that was tried; downloads
report the same failure as ``DownloadAuthenticationError``.
"""

from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, TypeVar
from urllib.parse import urlparse

from bundlehub.constants import DEFAULT_BRANCH
from bundlehub.exceptions import (
    AuthenticationExhaustedError,
    BundleHubError,
    DownloadAuthenticationError,
    InvalidUrlError,
    UnsupportedSchemeError,
)
from bundlehub.log_utils import logger
from bundlehub.models import Source

from .auth import AuthChain
from .base import RepositoryAdapter
from .http_client import AsyncHttpClient, is_auth_failure

T = TypeVar("T")


def parse_repository_url(url: str) -> Tuple[str, str]:
    """
    Split a repository web URL into host and repository path.

    >>> parse_repository_url("https://github.com/acme/prompts.git")
    ('github.com', 'acme/prompts')

    Raises:
        UnsupportedSchemeError: If the URL is not http or https.
        InvalidUrlError: If the URL has no host or fewer than two path segments.
    """
    try:
        parsed = urlparse(url.strip())
        host = parsed.hostname
    except ValueError as e:
        raise InvalidUrlError(f"Invalid repository URL: {url}", url=url) from e
    if parsed.scheme and parsed.scheme.lower() not in ("http", "https"):
        raise UnsupportedSchemeError(
            f"Unsupported repository URL scheme: {parsed.scheme}", url=url
        )
    path = parsed.path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    if not host or len([p for p in path.split("/") if p]) < 2:
        raise InvalidUrlError(f"Invalid repository URL: {url}", url=url)
    return host.lower(), path


class GitHostedAdapter(RepositoryAdapter):
    """Base class for adapters that talk to a git-hosting API with the auth chain."""

    def __init__(
        self,
        source: Source,
        http_client: Optional[AsyncHttpClient] = None,
        auth_chain: Optional[AuthChain] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(source, http_client=http_client, **kwargs)
        self.auth = auth_chain or self.create_auth_chain(source.token)

    @classmethod
    def create_auth_chain(cls, explicit_token: Optional[str]) -> AuthChain:
        return AuthChain(explicit_token=explicit_token)

    @property
    def branch(self) -> str:
        return self.source.config.branch or DEFAULT_BRANCH

    def _auth_headers(self, token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    def _base_headers(self) -> Dict[str, str]:
        return {}

    async def get_authentication_token(self) -> Optional[str]:
        return await self.auth.get_authentication_token()

    def get_authentication_method(self) -> Optional[str]:
        return self.auth.get_authentication_method()

    def invalidate_auth_cache(self, reason: Optional[str] = None) -> None:
        self.auth.invalidate_auth_cache(reason)

    async def _request_headers(
        self, extra: Optional[Dict[str, str]] = None
    ) -> Dict[str, str]:
        headers = self._base_headers()
        token = await self.auth.get_authentication_token()
        if token:
            headers.update(self._auth_headers(token))
        if extra:
            headers.update(extra)
        return headers

    async def _with_auth_retry(
        self,
        endpoint: str,
        request: Callable[[Dict[str, str]], Awaitable[T]],
        extra_headers: Optional[Dict[str, str]] = None,
    ) -> T:
        """
        Run ``request(headers)`` with credentials, retrying once on 401/403.

        Raises:
            AuthenticationExhaustedError: When the retry is rejected as well.
            BundleHubError: Any non-auth failure from ``request``.
        """
        last_error: Optional[BundleHubError] = None
        for attempt in range(2):
            headers = await self._request_headers(extra_headers)
            try:
                return await request(headers)
            except BundleHubError as e:
                if not is_auth_failure(e):
                    raise
                last_error = e
                status = getattr(e, "status_code", None)
                self.auth.invalidate_auth_cache(
                    f"HTTP {status} from {endpoint} (attempt {attempt + 1})"
                )
        status_code = getattr(last_error, "status_code", None)
        logger.error(
            f"Authentication failed for {endpoint}; "
            f"attempted methods: {self.auth.describe_attempts()}"
        )
        raise self.auth.exhausted_error(
            endpoint=endpoint, status_code=status_code
        ) from last_error

    async def api_json(self, url: str) -> Any:
        return await self._with_auth_retry(
            url, lambda headers: self.http_client.get_json(url, headers=headers)
        )

    async def api_text(self, url: str) -> str:
        return await self._with_auth_retry(
            url, lambda headers: self.http_client.get_text(url, headers=headers)
        )

    async def api_bytes(
        self, url: str, extra_headers: Optional[Dict[str, str]] = None
    ) -> bytes:
        """
        Download ``url`` with credentials.

        Raises:
            DownloadAuthenticationError: When every credential was rejected.
            DownloadError: Any other download failure.
        """
        try:
            return await self._with_auth_retry(
                url,
                lambda headers: self.http_client.get_bytes(url, headers=headers),
                extra_headers=extra_headers,
            )
        except AuthenticationExhaustedError as e:
            raise DownloadAuthenticationError(
                e.message,
                attempted_methods=e.attempted_methods,
                url=url,
                status_code=e.status_code,
            ) from e
