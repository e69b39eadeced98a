"""
Async HTTP Client for bundlehub adapters

This module wraps aiohttp with session management, connection pooling,
explicit timeouts and response classification into the bundlehub exception
hierarchy.

``get_json`` never hands a body to the JSON decoder before inspecting the
Content-Type header: HTML pages (typically authentication gateways) become
``HtmlResponseError`` or ``AuthenticationError`` carrying a text snippet.
"""

import asyncio
import importlib.metadata
import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientSession, ClientTimeout, TCPConnector

from bundlehub.constants import (
    APP_NAME,
    DEFAULT_CONNECTOR_LIMIT,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_REQUEST_TIMEOUT,
    DOWNLOAD_TIMEOUT,
    HTML_SNIPPET_MAX_LENGTH,
    HTTP_STATUS_ERROR_THRESHOLD,
    HTTP_STATUS_RETRY_THRESHOLD,
)
from bundlehub.exceptions import (
    APIError,
    AuthenticationError,
    ForbiddenError,
    HtmlResponseError,
    HTTPError,
    JSONParseError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ResourceNotFoundError,
)
from bundlehub.log_utils import logger

_USER_AGENT_CACHE: Optional[str] = None

_SCRIPT_STYLE_RX = re.compile(
    r"<(script|style)\b.*?</\1\s*>", re.IGNORECASE | re.DOTALL
)
_TITLE_RX = re.compile(r"<title[^>]*>(.*?)</title\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RX = re.compile(r"<[^>]+>")
_WHITESPACE_RX = re.compile(r"\s+")
_HTML_PREFIX_RX = re.compile(r"^\s*<(!doctype\s+html|html\b)", re.IGNORECASE)


def get_user_agent() -> str:
    """
    Get the User-Agent string used for HTTP requests.

    Returns:
        The string `bundlehub/{version}`, where `{version}` is the installed package version or `unknown` if the version cannot be determined.
    """
    global _USER_AGENT_CACHE

    if _USER_AGENT_CACHE is None:
        try:
            app_version = importlib.metadata.version(APP_NAME)
        except importlib.metadata.PackageNotFoundError:
            app_version = "unknown"
        _USER_AGENT_CACHE = f"{APP_NAME}/{app_version}"

    return _USER_AGENT_CACHE


def extract_html_snippet(body: str, max_length: int = HTML_SNIPPET_MAX_LENGTH) -> str:
    """
    Produce a short, human-readable excerpt of an HTML page.

    Prefers the page title; otherwise strips scripts, styles and tags and
    collapses whitespace.
    """
    title = _TITLE_RX.search(body)
    if title:
        text = title.group(1)
    else:
        text = _TAG_RX.sub(" ", _SCRIPT_STYLE_RX.sub(" ", body))
    text = _WHITESPACE_RX.sub(" ", text).strip()
    if len(text) > max_length:
        text = text[: max_length - 3].rstrip() + "..."
    return text or "<empty HTML body>"


def _is_rate_limited(response: "HttpResponse") -> bool:
    if response.status != 403:
        return False
    return response.header("X-RateLimit-Remaining") == "0"


def _rate_limit_reset(response: "HttpResponse") -> Optional[int]:
    raw = response.header("X-RateLimit-Reset")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


@dataclass
class HttpResponse:
    """A fully-read HTTP response."""

    status: int
    url: str
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return default

    @property
    def content_type(self) -> str:
        return self.header("Content-Type", "") or ""

    @property
    def ok(self) -> bool:
        return self.status < HTTP_STATUS_ERROR_THRESHOLD

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


class AsyncHttpClient:
    """
    Asynchronous HTTP client using aiohttp.

    Example:
        async with AsyncHttpClient() as client:
            data = await client.get_json("https://example.com/index.json")
    """

    def __init__(
        self,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        connector_limit: int = DEFAULT_CONNECTOR_LIMIT,
        default_headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Initialize the async HTTP client.

        Parameters:
            timeout (float): Default total request timeout in seconds.
            max_concurrent (int): Maximum concurrent requests (semaphore limit).
            connector_limit (int): Maximum total connections in the pool.
            default_headers (Optional[Dict[str, str]]): Headers sent with every request.
        """
        self.timeout = ClientTimeout(total=timeout)
        self.max_concurrent = max(1, int(max_concurrent))
        self.connector_limit = max(1, int(connector_limit))
        self.default_headers = {"User-Agent": get_user_agent()}
        if default_headers:
            self.default_headers.update(default_headers)
        self._session: Optional[ClientSession] = None
        self._semaphore = asyncio.Semaphore(self.max_concurrent)

    async def __aenter__(self) -> "AsyncHttpClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def _ensure_session(self) -> ClientSession:
        """
        Ensure a session exists, creating one if needed.

        Returns:
            ClientSession: The active aiohttp session.
        """
        if self._session is None or self._session.closed:
            connector = TCPConnector(
                limit=self.connector_limit,
                limit_per_host=self.max_concurrent,
                enable_cleanup_closed=True,
            )
            self._session = ClientSession(
                connector=connector,
                timeout=self.timeout,
                headers=self.default_headers,
            )
        return self._session

    async def close(self) -> None:
        """Close the client session and release resources."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> HttpResponse:
        """
        Issue a GET request and read the whole body.

        Error statuses are returned, not raised; callers classify them.

        Raises:
            NetworkError: On timeouts, DNS failures and other transport errors.
        """
        session = await self._ensure_session()
        request_kwargs: Dict[str, Any] = {"headers": headers}
        if timeout:
            request_kwargs["timeout"] = ClientTimeout(total=timeout)
        async with self._semaphore:
            try:
                async with session.get(url, **request_kwargs) as response:
                    body = await response.read()
                    return HttpResponse(
                        status=response.status,
                        url=str(response.url),
                        body=body,
                        headers=dict(response.headers),
                    )
            except asyncio.TimeoutError as e:
                logger.error(f"Timeout fetching {url}")
                raise NetworkError("Request timed out", url=url) from e
            except aiohttp.ClientError as e:
                logger.error(f"Network error fetching {url}: {e}")
                raise NetworkError(f"Network error: {e}", url=url) from e

    def _raise_for_api_status(self, response: HttpResponse, url: str) -> None:
        status = response.status
        if status < HTTP_STATUS_ERROR_THRESHOLD:
            return
        if _is_rate_limited(response):
            raise RateLimitError(
                reset_time=_rate_limit_reset(response), url=url
            )
        if status in (401, 403):
            raise AuthenticationError(
                f"Authentication failed (HTTP {status})",
                endpoint=url,
                status_code=status,
                details="Check the configured token or sign in again",
            )
        if status == 404:
            raise ResourceNotFoundError(
                "Resource not found (HTTP 404)", endpoint=url, status_code=status
            )
        raise APIError(f"HTTP error {status}", endpoint=url, status_code=status)

    async def get_json(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Fetch and decode a JSON document.

        Raises:
            AuthenticationError: On HTTP 401/403 (HTML or not).
            HtmlResponseError: When an HTML page arrives instead of JSON.
            ResourceNotFoundError: On HTTP 404.
            APIError: On any other error status.
            JSONParseError: When the body cannot be decoded.
            NetworkError: On transport failures.
        """
        response = await self.fetch(url, headers=headers, timeout=timeout)
        content_type = response.content_type.lower()
        text = response.text()

        if "text/html" in content_type or _HTML_PREFIX_RX.match(text):
            snippet = extract_html_snippet(text)
            if response.status in (401, 403):
                raise AuthenticationError(
                    f"Authentication failed (HTTP {response.status})",
                    endpoint=url,
                    status_code=response.status,
                    details=snippet,
                )
            raise HtmlResponseError(
                f"Expected JSON but received HTML (HTTP {response.status})",
                endpoint=url,
                status_code=response.status,
                snippet=snippet,
            )

        self._raise_for_api_status(response, url)

        try:
            return json.loads(text)
        except ValueError as e:
            raise JSONParseError(
                f"Invalid JSON response (Content-Type: {content_type or 'unknown'})",
                endpoint=url,
                status_code=response.status,
                details=str(e),
            ) from e

    async def get_text(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        response = await self.fetch(url, headers=headers, timeout=timeout)
        self._raise_for_api_status(response, url)
        return response.text()

    async def get_bytes(
        self,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = DOWNLOAD_TIMEOUT,
    ) -> bytes:
        """
        Download raw bytes.

        Raises:
            NotFoundError: On HTTP 404.
            ForbiddenError: On HTTP 401/403.
            RateLimitError: When the host reports an exhausted rate limit.
            HTTPError: On any other error status.
            NetworkError: On transport failures.
        """
        response = await self.fetch(url, headers=headers, timeout=timeout)
        status = response.status
        if status < HTTP_STATUS_ERROR_THRESHOLD:
            logger.debug(f"Downloaded {url} ({len(response.body)} bytes)")
            return response.body
        if _is_rate_limited(response):
            raise RateLimitError(
                reset_time=_rate_limit_reset(response), url=url
            )
        if status == 404:
            raise NotFoundError(
                "Bundle artifact not found (HTTP 404)", url=url, status_code=status
            )
        if status in (401, 403):
            raise ForbiddenError(
                f"Access to bundle artifact denied (HTTP {status})",
                url=url,
                status_code=status,
                details="Configure a token with read access to the source",
            )
        raise HTTPError(
            f"HTTP error {status}",
            url=url,
            status_code=status,
            is_retryable=status >= HTTP_STATUS_RETRY_THRESHOLD,
        )


def is_auth_failure(error: Exception) -> bool:
    """True for errors that should trigger an auth-chain invalidate-and-retry."""
    if isinstance(error, RateLimitError):
        return False
    return isinstance(error, (AuthenticationError, ForbiddenError))
