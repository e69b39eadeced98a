"""
URL accessibility prober.

Checks whether URLs answer a HEAD request and classifies the outcome:

- success: 2xx
- warning: 401/403 (expected for private repositories)
- error: 404, any other status, DNS/connection failures, timeouts and
  malformed or non-HTTP URLs

Redirects (301/302/307/308) are followed manually so every hop is subject to
the same checks.
"""

import asyncio
import socket
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urljoin, urlparse

import aiohttp

from bundlehub.adapters.http_client import get_user_agent
from bundlehub.constants import (
    DEFAULT_PROBE_TIMEOUT,
    MAX_REDIRECTS,
    MSG_URL_ACCESSIBLE,
    MSG_URL_DNS,
    MSG_URL_INVALID,
    MSG_URL_NOT_FOUND,
    MSG_URL_PRIVATE,
    MSG_URL_REFUSED,
    MSG_URL_RESET,
    MSG_URL_SSL,
    MSG_URL_TIMEOUT,
    MSG_URL_TOO_MANY_REDIRECTS,
    REDIRECT_STATUS_CODES,
)
from bundlehub.log_utils import logger
from bundlehub.models import UrlCheckResult, UrlSeverity


def _error(
    url: str,
    message: str,
    error: Optional[str] = None,
    status_code: Optional[int] = None,
) -> UrlCheckResult:
    return UrlCheckResult(
        url=url,
        accessible=False,
        severity=UrlSeverity.ERROR,
        message=message,
        status_code=status_code,
        error=error or message,
    )


def classify_status(url: str, status: int) -> UrlCheckResult:
    if 200 <= status < 300:
        return UrlCheckResult(
            url=url,
            accessible=True,
            severity=UrlSeverity.SUCCESS,
            message=MSG_URL_ACCESSIBLE,
            status_code=status,
        )
    if status in (401, 403):
        return UrlCheckResult(
            url=url,
            accessible=False,
            severity=UrlSeverity.WARNING,
            message=MSG_URL_PRIVATE,
            status_code=status,
        )
    if status == 404:
        return _error(url, MSG_URL_NOT_FOUND, error="Not Found", status_code=status)
    return _error(
        url, f"HTTP Error {status}", error=f"HTTP {status}", status_code=status
    )


def categorize_error(error: BaseException) -> str:
    """Turn a transport exception into a short, human-readable category."""
    if isinstance(error, asyncio.TimeoutError):
        return MSG_URL_TIMEOUT
    if isinstance(error, (aiohttp.ClientSSLError, aiohttp.ServerFingerprintMismatch)):
        return MSG_URL_SSL
    if isinstance(error, aiohttp.ClientConnectorError):
        os_error = error.os_error
        if isinstance(os_error, socket.gaierror):
            return MSG_URL_DNS
        if isinstance(os_error, ConnectionRefusedError):
            return MSG_URL_REFUSED
        if isinstance(os_error, ConnectionResetError):
            return MSG_URL_RESET
        if isinstance(os_error, (TimeoutError, socket.timeout)):
            return MSG_URL_TIMEOUT
    if isinstance(error, (aiohttp.ServerDisconnectedError, ConnectionResetError)):
        return MSG_URL_RESET
    if isinstance(error, ConnectionRefusedError):
        return MSG_URL_REFUSED
    if isinstance(error, socket.gaierror):
        return MSG_URL_DNS
    return f"Network error: {error}"


def validate_url_syntax(url: str) -> Optional[UrlCheckResult]:
    """Return an error result for malformed or non-HTTP URLs, else None."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return _error(url, MSG_URL_INVALID)
    if not parsed.scheme or not parsed.netloc:
        return _error(url, MSG_URL_INVALID)
    if parsed.scheme not in ("http", "https"):
        return _error(
            url,
            f"Unsupported protocol: {parsed.scheme}:. Only HTTP/HTTPS supported",
            error="Unsupported protocol",
        )
    return None


class UrlProber:
    """Concurrent HEAD-based reachability checks."""

    def __init__(
        self,
        default_timeout: float = DEFAULT_PROBE_TIMEOUT,
        max_redirects: int = MAX_REDIRECTS,
    ) -> None:
        self.default_timeout = default_timeout
        self.max_redirects = max_redirects

    async def _request_status(
        self, url: str, timeout: float
    ) -> Tuple[int, Optional[str]]:
        """Issue one HEAD request; return the status and any ``Location`` header."""
        async with aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout),
            headers={"User-Agent": get_user_agent()},
        ) as session:
            async with session.head(url, allow_redirects=False) as response:
                return response.status, response.headers.get("Location")

    async def _probe(self, url: str, timeout: float) -> UrlCheckResult:
        current = url
        for _hop in range(self.max_redirects + 1):
            status, location = await self._request_status(current, timeout)
            if status in REDIRECT_STATUS_CODES and location:
                current = urljoin(current, location)
                logger.debug(f"{url} redirected to {current}")
                invalid = validate_url_syntax(current)
                if invalid is not None:
                    return _error(url, invalid.message, error=invalid.error)
                continue
            return classify_status(url, status)
        return _error(url, MSG_URL_TOO_MANY_REDIRECTS)

    async def check_url(
        self, url: str, timeout: Optional[float] = None
    ) -> UrlCheckResult:
        """
        Check a single URL. Never raises; every failure becomes an error result.

        Parameters:
            url (str): URL to probe.
            timeout (Optional[float]): Seconds allowed for the whole redirect
                chain; defaults to ``default_timeout``.
        """
        invalid = validate_url_syntax(url)
        if invalid is not None:
            return invalid

        timeout = self.default_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(self._probe(url, timeout), timeout)
        except asyncio.TimeoutError as e:
            return _error(
                url,
                MSG_URL_TIMEOUT,
                error=str(e) or f"Request timeout after {timeout}s",
            )
        except (aiohttp.ClientError, OSError, ValueError) as e:
            logger.debug(f"Probe of {url} failed: {e!r}")
            return _error(url, categorize_error(e), error=str(e) or repr(e))

    async def check_urls(
        self, urls: Sequence[str], timeout: Optional[float] = None
    ) -> List[UrlCheckResult]:
        """Check URLs concurrently; results keep the input order."""
        return list(
            await asyncio.gather(*(self.check_url(url, timeout) for url in urls))
        )
