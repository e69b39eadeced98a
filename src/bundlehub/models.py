"""
Core data structures for bundlehub.

Every persisted structure serializes to the camelCase JSON shape used on disk
through ``to_dict()`` and is rebuilt with ``from_dict()``, which tolerates
missing optional keys.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from bundlehub.constants import (
    DEFAULT_SOURCE_PRIORITY,
    MAX_SOURCE_PRIORITY,
    MIN_SOURCE_PRIORITY,
)


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat()


def _clamp_priority(value: Any) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return DEFAULT_SOURCE_PRIORITY
    return max(MIN_SOURCE_PRIORITY, min(MAX_SOURCE_PRIORITY, parsed))


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


class SourceType(str, Enum):
    """Catalog origin kinds, one adapter per value."""

    GITHUB = "github"
    GITLAB = "gitlab"
    HTTP = "http"
    LOCAL = "local"
    AWESOME_COPILOT = "awesome-copilot"
    LOCAL_AWESOME_COPILOT = "local-awesome-copilot"
    OLAF = "olaf"

    @property
    def is_git_hosted(self) -> bool:
        return self in (SourceType.GITHUB, SourceType.GITLAB)

    @property
    def is_curated_index(self) -> bool:
        return self in (SourceType.AWESOME_COPILOT, SourceType.LOCAL_AWESOME_COPILOT)


class InstallScope(str, Enum):
    USER = "user"
    WORKSPACE = "workspace"


class MigrationStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    SKIPPED = "skipped"


class UrlSeverity(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass
class SourceConfig:
    """Per-source adapter settings that also feed the source id hash."""

    branch: Optional[str] = None
    """Git branch for git-backed sources"""

    collections_path: Optional[str] = None
    """Directory holding curated collection files"""

    base_path: Optional[str] = None
    """Directory under which git-tree manifests are searched"""

    collection_filter: Optional[str] = None
    """Restrict git-tree manifests to one top-level directory under base_path"""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.branch is not None:
            data["branch"] = self.branch
        if self.collections_path is not None:
            data["collectionsPath"] = self.collections_path
        if self.base_path is not None:
            data["basePath"] = self.base_path
        if self.collection_filter is not None:
            data["collectionFilter"] = self.collection_filter
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SourceConfig":
        data = data or {}
        return cls(
            branch=data.get("branch"),
            collections_path=data.get("collectionsPath"),
            base_path=data.get("basePath"),
            collection_filter=data.get("collectionFilter"),
        )


@dataclass
class Source:
    """A configured catalog origin."""

    id: str
    name: str
    type: SourceType
    url: str
    enabled: bool = True
    priority: int = DEFAULT_SOURCE_PRIORITY
    private: bool = False
    token: Optional[str] = None
    config: SourceConfig = field(default_factory=SourceConfig)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.type = SourceType(self.type)
        self.priority = _clamp_priority(self.priority)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "url": self.url,
            "enabled": self.enabled,
            "priority": self.priority,
            "private": self.private,
            "config": self.config.to_dict(),
            "metadata": dict(self.metadata),
        }
        if self.token is not None:
            data["token"] = self.token
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Source":
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            type=SourceType(data["type"]),
            url=data.get("url", ""),
            enabled=bool(data.get("enabled", True)),
            priority=data.get("priority", DEFAULT_SOURCE_PRIORITY),
            private=bool(data.get("private", False)),
            token=data.get("token"),
            config=SourceConfig.from_dict(data.get("config")),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class BundleVersion:
    """One published version of a logical bundle."""

    version: str
    download_url: str
    manifest_url: str
    published_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "downloadUrl": self.download_url,
            "manifestUrl": self.manifest_url,
            "publishedAt": self.published_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BundleVersion":
        return cls(
            version=str(data["version"]),
            download_url=data.get("downloadUrl", ""),
            manifest_url=data.get("manifestUrl", ""),
            published_at=data.get("publishedAt", ""),
        )


@dataclass
class Bundle:
    """A versioned content package as published by one source."""

    id: str
    name: str
    version: str
    source_id: str
    description: str = ""
    author: str = "Unknown"
    environments: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    downloads: Optional[int] = None
    rating: Optional[float] = None
    last_updated: str = ""
    size: str = "n/a"
    dependencies: List[str] = field(default_factory=list)
    license: str = "Unknown"
    manifest_url: str = ""
    download_url: str = ""
    homepage: Optional[str] = None
    repository: Optional[str] = None
    available_versions: List[BundleVersion] = field(default_factory=list)
    """Populated on consolidated bundles only, newest first"""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "author": self.author,
            "sourceId": self.source_id,
            "environments": list(self.environments),
            "tags": list(self.tags),
            "lastUpdated": self.last_updated,
            "size": self.size,
            "dependencies": list(self.dependencies),
            "license": self.license,
            "manifestUrl": self.manifest_url,
            "downloadUrl": self.download_url,
        }
        for key, value in (
            ("downloads", self.downloads),
            ("rating", self.rating),
            ("homepage", self.homepage),
            ("repository", self.repository),
        ):
            if value is not None:
                data[key] = value
        if self.available_versions:
            data["availableVersions"] = [v.to_dict() for v in self.available_versions]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Bundle":
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            version=str(data.get("version", "0.0.0")),
            source_id=data.get("sourceId", ""),
            description=data.get("description", ""),
            author=data.get("author", "Unknown"),
            environments=_string_list(data.get("environments")),
            tags=_string_list(data.get("tags")),
            downloads=data.get("downloads"),
            rating=data.get("rating"),
            last_updated=data.get("lastUpdated", ""),
            size=str(data.get("size", "n/a")),
            dependencies=_string_list(data.get("dependencies")),
            license=data.get("license", "Unknown"),
            manifest_url=data.get("manifestUrl", ""),
            download_url=data.get("downloadUrl", ""),
            homepage=data.get("homepage"),
            repository=data.get("repository"),
            available_versions=[
                BundleVersion.from_dict(v)
                for v in data.get("availableVersions") or []
                if isinstance(v, dict)
            ],
        )


@dataclass
class InstalledBundle:
    """Persisted proof that a bundle version is installed at a scope."""

    bundle_id: str
    version: str
    install_path: str
    installed_at: str
    scope: InstallScope
    source_id: str
    source_type: SourceType
    manifest: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.scope = InstallScope(self.scope)
        self.source_type = SourceType(self.source_type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bundleId": self.bundle_id,
            "version": self.version,
            "installPath": self.install_path,
            "installedAt": self.installed_at,
            "scope": self.scope.value,
            "sourceId": self.source_id,
            "sourceType": self.source_type.value,
            "manifest": self.manifest,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstalledBundle":
        return cls(
            bundle_id=data["bundleId"],
            version=str(data["version"]),
            install_path=data.get("installPath", ""),
            installed_at=data.get("installedAt", ""),
            scope=InstallScope(data.get("scope", InstallScope.USER.value)),
            source_id=data.get("sourceId", ""),
            source_type=SourceType(data["sourceType"]),
            manifest=dict(data.get("manifest") or {}),
        )


@dataclass
class MigrationRecord:
    status: MigrationStatus
    completed_at: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"status": self.status.value}
        if self.completed_at is not None:
            data["completedAt"] = self.completed_at
        if self.details is not None:
            data["details"] = self.details
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationRecord":
        return cls(
            status=MigrationStatus(data.get("status", MigrationStatus.PENDING.value)),
            completed_at=data.get("completedAt"),
            details=data.get("details"),
        )


@dataclass
class SourceMetadata:
    name: str
    description: str
    bundle_count: int
    last_updated: str
    version: str = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "bundleCount": self.bundle_count,
            "lastUpdated": self.last_updated,
            "version": self.version,
        }


@dataclass
class ValidationResult:
    """Outcome of a non-throwing validation."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def from_messages(
        cls, errors: List[str], warnings: Optional[List[str]] = None
    ) -> "ValidationResult":
        return cls(valid=not errors, errors=list(errors), warnings=list(warnings or []))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass
class InstallOptions:
    scope: InstallScope = InstallScope.USER
    version: Optional[str] = None
    force: bool = False

    def __post_init__(self) -> None:
        self.scope = InstallScope(self.scope)


@dataclass
class SearchQuery:
    text: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    environment: Optional[str] = None
    source_id: Optional[str] = None
    limit: Optional[int] = None


@dataclass
class UrlCheckResult:
    """Reachability verdict for one URL."""

    url: str
    accessible: bool
    severity: UrlSeverity
    message: str
    status_code: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "url": self.url,
            "accessible": self.accessible,
            "severity": self.severity.value,
            "message": self.message,
        }
        if self.status_code is not None:
            data["statusCode"] = self.status_code
        if self.error is not None:
            data["error"] = self.error
        return data
