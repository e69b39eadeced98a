"""
Authentication fallback chain for git-hosting adapters.

Credentials are resolved in priority order, each method consulted only when
the previous one yielded nothing:

1. ``explicit``: the token configured on the source (trimmed; blank counts as absent)
2. ``session``: an ambient signed-in identity, by default a platform token in
   the environment (``GITHUB_TOKEN``/``GH_TOKEN`` or ``GITLAB_TOKEN``)
3. ``cli``: the output of the platform CLI (``gh auth token`` / ``glab config get token``)
4. ``none``: anonymous access

The resolved token and method are cached until ``invalidate_auth_cache`` is
called. After an invalidation the chain restarts from the top, except that an
invalidated explicit token is never offered again; session and CLI methods
are consulted afresh.
"""

import asyncio
import inspect
import os
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

from bundlehub.constants import (
    CLI_TOKEN_TIMEOUT,
    GITHUB_CLI_TOKEN_COMMAND,
    GITHUB_SESSION_ENV_VARS,
    GITLAB_CLI_TOKEN_COMMAND,
    GITLAB_SESSION_ENV_VARS,
)
from bundlehub.exceptions import AuthenticationExhaustedError
from bundlehub.log_utils import logger, mask_token

TokenProvider = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]


class AuthMethod(str, Enum):
    EXPLICIT = "explicit"
    SESSION = "session"
    CLI = "cli"
    NONE = "none"


def _clean_token(token: Any) -> Optional[str]:
    if not isinstance(token, str):
        return None
    token = token.strip()
    return token or None


def environment_token_provider(env_vars: Sequence[str]) -> TokenProvider:
    """Build a session provider that returns the first non-blank variable in ``env_vars``."""

    def _provider() -> Optional[str]:
        for name in env_vars:
            token = _clean_token(os.environ.get(name))
            if token:
                return token
        return None

    return _provider


async def run_cli_token_command(
    command: Sequence[str], timeout: float = CLI_TOKEN_TIMEOUT
) -> Optional[str]:
    """
    Run a CLI that prints a token on stdout.

    Returns:
        Optional[str]: The trimmed token, or None when the tool is missing,
            fails, times out or prints nothing.
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (FileNotFoundError, PermissionError) as e:
        logger.debug(f"{command[0]} is not available: {e}")
        return None
    except OSError as e:
        logger.debug(f"Could not start {command[0]}: {e}")
        return None

    try:
        stdout, _stderr = await asyncio.wait_for(process.communicate(), timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        logger.debug(f"{' '.join(command)} timed out after {timeout}s")
        return None

    if process.returncode != 0:
        logger.debug(f"{' '.join(command)} exited with code {process.returncode}")
        return None
    return _clean_token(stdout.decode("utf-8", errors="replace"))


def cli_token_provider(command: Sequence[str]) -> TokenProvider:
    async def _provider() -> Optional[str]:
        return await run_cli_token_command(command)

    return _provider


class AuthChain:
    """
    Resolves and caches a bearer credential for one adapter instance.

    Parameters:
        explicit_token (Optional[str]): Token configured on the source.
        session_provider (Optional[TokenProvider]): Sync or async callable
            returning an ambient token, or None.
        cli_provider (Optional[TokenProvider]): Sync or async callable
            returning a CLI-derived token, or None.
        platform (str): Platform name used in log and error messages.
        remediation (str): Hint appended to the exhausted-chain error.
    """

    def __init__(
        self,
        explicit_token: Optional[str] = None,
        session_provider: Optional[TokenProvider] = None,
        cli_provider: Optional[TokenProvider] = None,
        platform: str = "git host",
        remediation: str = "Configure a token on the source",
    ) -> None:
        self._explicit_token = _clean_token(explicit_token)
        self.session_provider = session_provider
        self.cli_provider = cli_provider
        self.platform = platform
        self.remediation = remediation

        self._resolved = False
        self._cached_token: Optional[str] = None
        self._cached_method: Optional[AuthMethod] = None
        self._explicit_invalidated = False
        self.attempted_methods: List[str] = []

    @classmethod
    def for_github(
        cls,
        explicit_token: Optional[str] = None,
        session_provider: Optional[TokenProvider] = None,
        cli_provider: Optional[TokenProvider] = None,
    ) -> "AuthChain":
        return cls(
            explicit_token=explicit_token,
            session_provider=session_provider
            or environment_token_provider(GITHUB_SESSION_ENV_VARS),
            cli_provider=cli_provider or cli_token_provider(GITHUB_CLI_TOKEN_COMMAND),
            platform="GitHub",
            remediation=(
                "Set GITHUB_TOKEN, run 'gh auth login', or configure a token "
                "with repository read access on the source"
            ),
        )

    @classmethod
    def for_gitlab(
        cls,
        explicit_token: Optional[str] = None,
        session_provider: Optional[TokenProvider] = None,
        cli_provider: Optional[TokenProvider] = None,
    ) -> "AuthChain":
        return cls(
            explicit_token=explicit_token,
            session_provider=session_provider
            or environment_token_provider(GITLAB_SESSION_ENV_VARS),
            cli_provider=cli_provider or cli_token_provider(GITLAB_CLI_TOKEN_COMMAND),
            platform="GitLab",
            remediation=(
                "Set GITLAB_TOKEN, run 'glab auth login', or configure a token "
                "with read_api scope on the source"
            ),
        )

    def _record_attempt(self, method: AuthMethod) -> None:
        if method.value not in self.attempted_methods:
            self.attempted_methods.append(method.value)

    async def _call_provider(
        self, method: AuthMethod, provider: Optional[TokenProvider]
    ) -> Optional[str]:
        if provider is None:
            return None
        try:
            result = provider()
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.debug(f"{self.platform} {method.value} token lookup failed: {e}")
            return None
        return _clean_token(result)

    async def get_authentication_token(self) -> Optional[str]:
        """
        Return the cached token, resolving the chain on first use.

        Returns:
            Optional[str]: The bearer token, or None for anonymous access.
        """
        if self._resolved:
            return self._cached_token

        token: Optional[str] = None
        method = AuthMethod.NONE

        if self._explicit_token and not self._explicit_invalidated:
            token, method = self._explicit_token, AuthMethod.EXPLICIT
        else:
            if self._explicit_token:
                logger.debug(f"Skipping invalidated explicit {self.platform} token")
            for candidate, provider in (
                (AuthMethod.SESSION, self.session_provider),
                (AuthMethod.CLI, self.cli_provider),
            ):
                if provider is None:
                    continue
                self._record_attempt(candidate)
                token = await self._call_provider(candidate, provider)
                if token:
                    method = candidate
                    break

        self._record_attempt(method)
        self._cached_token = token
        self._cached_method = method
        self._resolved = True
        if token:
            logger.debug(
                f"Using {self.platform} token from {method.value}: {mask_token(token)}"
            )
        else:
            logger.debug(f"No {self.platform} token found, using anonymous access")
        return token

    def get_authentication_method(self) -> Optional[str]:
        """Name of the method behind the cached token, or None before resolution."""
        return self._cached_method.value if self._cached_method else None

    def invalidate_auth_cache(self, reason: Optional[str] = None) -> None:
        """
        Forget the cached credential after the remote rejected it.

        The failed method stays in ``attempted_methods``; an explicit token is
        never offered again by this chain.
        """
        method = self._cached_method
        if method is not None:
            self._record_attempt(method)
            if method is AuthMethod.EXPLICIT:
                self._explicit_invalidated = True
        logger.warning(
            f"Invalidating cached {self.platform} credentials "
            f"(method: {method.value if method else 'unresolved'}, "
            f"token: {mask_token(self._cached_token)}): {reason or 'no reason given'}"
        )
        self._cached_token = None
        self._cached_method = None
        self._resolved = False

    def describe_attempts(self) -> str:
        return ", ".join(self.attempted_methods) or "none"

    def exhausted_error(
        self, endpoint: Optional[str] = None, status_code: Optional[int] = None
    ) -> AuthenticationExhaustedError:
        """Build the error raised once every method has been rejected."""
        status = f" (HTTP {status_code})" if status_code else ""
        return AuthenticationExhaustedError(
            f"All {self.platform} authentication methods failed{status}. "
            f"{self.remediation}.",
            attempted_methods=self.attempted_methods,
            endpoint=endpoint,
            status_code=status_code,
        )
