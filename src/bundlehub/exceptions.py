"""
Custom exceptions for bundlehub.

This module defines domain-specific exceptions that provide better error
categorization and more informative error messages for users and developers.
"""

from typing import Iterable, List, Optional


class BundleHubError(Exception):
    """
    Base exception for all bundlehub errors.

    All custom exceptions in bundlehub inherit from this class so callers can
    catch every application-specific error in one place.
    """

    def __init__(self, message: str, details: Optional[str] = None) -> None:
        """
        Initialize the exception.

        Args:
            message: The primary error message.
            details: Optional additional context about the error.
        """
        self.message = message
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(BundleHubError):
    """
    Exception raised when configuration is invalid or missing.

    Configuration errors fail fast and are never retried.
    """

    pass


class ConfigFileError(ConfigurationError):
    """Exception raised when the configuration file cannot be read or written."""

    pass


class InvalidUrlError(ConfigurationError):
    """Exception raised when a URL cannot be parsed."""

    def __init__(self, message: str, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class UnsupportedSchemeError(InvalidUrlError):
    """Exception raised when a URL uses a scheme other than http/https."""

    pass


class UnsupportedSourceTypeError(ConfigurationError):
    """Exception raised when no adapter is registered for a source type."""

    pass


# =============================================================================
# Download Errors
# =============================================================================


class DownloadError(BundleHubError):
    """
    Base exception for download-related errors.

    Attributes:
        url: The URL that was being downloaded when the error occurred.
        status_code: HTTP status code, when the server answered.
        retry_count: Number of retry attempts made before failure.
        is_retryable: Whether the installer may retry the download.
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        retry_count: int = 0,
        is_retryable: bool = False,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details)
        self.url = url
        self.status_code = status_code
        self.retry_count = retry_count
        self.is_retryable = is_retryable


class NetworkError(DownloadError):
    """
    Exception raised for transport-level failures.

    This includes connection timeouts, DNS resolution failures, refused or reset
    connections and TLS errors. Always retryable.
    """

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, url=url, is_retryable=True, details=details)


class HTTPError(DownloadError):
    """Exception raised when the server answers with an error status."""

    pass


class NotFoundError(HTTPError):
    """Exception raised when the requested artifact does not exist (HTTP 404)."""

    pass


class ForbiddenError(HTTPError):
    """Exception raised when the server refuses access (HTTP 401/403)."""

    pass


class DownloadAuthenticationError(ForbiddenError):
    """
    Exception raised when every credential was rejected for a download.

    Attributes:
        attempted_methods: Names of the authentication methods that were tried.
    """

    def __init__(
        self,
        message: str,
        attempted_methods: Iterable[str] = (),
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.attempted_methods: List[str] = list(attempted_methods)
        tried = ", ".join(self.attempted_methods) or "none"
        super().__init__(
            message,
            url=url,
            status_code=status_code,
            details=f"Attempted authentication methods: {tried}",
        )


class RateLimitError(ForbiddenError):
    """
    Exception raised when the git host's API rate limit is exhausted.

    Attributes:
        reset_time: When the rate limit will reset (Unix timestamp).
    """

    def __init__(
        self,
        message: str = "API rate limit exceeded",
        reset_time: Optional[int] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            url=url,
            status_code=403,
            is_retryable=True,
            details=f"Resets at: {reset_time}",
        )
        self.reset_time = reset_time


# =============================================================================
# API Errors
# =============================================================================


class APIError(BundleHubError):
    """
    Exception raised for catalog API errors.

    Attributes:
        endpoint: The API endpoint that was accessed.
        status_code: The HTTP status code returned.
    """

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class AuthenticationError(APIError):
    """Exception raised when API authentication fails (HTTP 401/403)."""

    pass


class AuthenticationExhaustedError(AuthenticationError):
    """
    Exception raised once every credential source in the auth chain has failed.

    Attributes:
        attempted_methods: Names of the authentication methods that were tried.
    """

    def __init__(
        self,
        message: str,
        attempted_methods: Iterable[str] = (),
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        self.attempted_methods: List[str] = list(attempted_methods)
        tried = ", ".join(self.attempted_methods) or "none"
        super().__init__(
            message,
            endpoint=endpoint,
            status_code=status_code,
            details=f"Attempted authentication methods: {tried}",
        )


class ResourceNotFoundError(APIError):
    """Exception raised when an API resource is not found."""

    pass


class ResponseFormatError(APIError):
    """Exception raised when a response body is not in the expected format."""

    pass


class HtmlResponseError(ResponseFormatError):
    """
    Exception raised when an HTML page arrives where JSON was expected.

    Authentication gateways commonly answer with an HTML login or error page.

    Attributes:
        snippet: Best-effort text extracted from the HTML body.
    """

    def __init__(
        self,
        message: str,
        endpoint: Optional[str] = None,
        status_code: Optional[int] = None,
        snippet: Optional[str] = None,
    ) -> None:
        super().__init__(
            message, endpoint=endpoint, status_code=status_code, details=snippet
        )
        self.snippet = snippet


class JSONParseError(ResponseFormatError):
    """Exception raised when a response body cannot be decoded as JSON."""

    pass


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(BundleHubError):
    """
    Exception raised when data validation fails.

    Attributes:
        field: The name of the field that failed validation.
        value: The value that failed validation.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details)
        self.field = field
        self.value = value


class VersionError(ValidationError):
    """Exception raised when version parsing or comparison fails."""

    pass


class ManifestError(ValidationError):
    """Exception raised when a bundle or catalog manifest is malformed."""

    pass


# =============================================================================
# File System Errors
# =============================================================================


class FileSystemError(BundleHubError):
    """
    Exception raised for file system-related errors.

    Attributes:
        path: The file path that caused the error.
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message, details)
        self.path = path


class ArchiveError(FileSystemError):
    """Exception raised for bundle archive errors."""

    pass


class CorruptedArchiveError(ArchiveError):
    """Exception raised when a bundle archive is corrupted or not a ZIP file."""

    pass


class ExtractionError(ArchiveError):
    """Exception raised when bundle extraction fails."""

    pass


class InstallError(FileSystemError):
    """Exception raised when installed bundle files cannot be written or removed."""

    pass


# =============================================================================
# Registry Errors
# =============================================================================


class RegistryError(BundleHubError):
    """Exception raised for registry lookups that cannot be satisfied."""

    pass


class SourceNotFoundError(RegistryError):
    """Exception raised when a source id does not resolve to a configured source."""

    pass


class BundleNotFoundError(RegistryError):
    """Exception raised when a bundle id is not published by a source."""

    pass


class BundleNotInstalledError(RegistryError):
    """Exception raised when no install record exists for a bundle and scope."""

    pass


# =============================================================================
# Migration Errors
# =============================================================================


class MigrationError(BundleHubError):
    """Exception raised when a persisted-state migration fails."""

    pass
