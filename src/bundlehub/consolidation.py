"""
Version consolidation.

Git-hosted sources publish one bundle record per release tag, e.g.
``acme-prompts-v1.0.0`` and ``acme-prompts-v1.1.0``. Consolidation folds
those into one logical bundle, ``acme-prompts``, carrying the latest version
and an index of every known version. Bundles from other source types pass
through unchanged.
"""

import re
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple, Union

from packaging.version import InvalidVersion, Version
from packaging.version import parse as parse_version

from bundlehub.exceptions import VersionError
from bundlehub.log_utils import logger
from bundlehub.models import Bundle, BundleVersion, SourceType

VERSION_SUFFIX_RX = re.compile(r"-v?\d+\.\d+\.\d+(?:-[0-9A-Za-z.]+)?$")


class VersionManager:
    """
    Version parsing and comparison with PEP 440 semantics.

    ``compare_versions`` never fails and falls back to a natural sort for
    strings ``packaging`` cannot read; ``parse_strict`` is for callers that
    must reject such strings instead.
    """

    PRERELEASE_VERSION_RX = re.compile(
        r"^(\d+(?:\.\d+)*)[.-](rc|dev|alpha|beta|b)\.?(\d*)$", re.IGNORECASE
    )
    HASH_SUFFIX_VERSION_RX = re.compile(
        r"^(\d+(?:\.\d+)*)\.([A-Za-z0-9][A-Za-z0-9.-]*)$"
    )

    def normalize_version(self, version: Optional[str]) -> Optional[Version]:
        """
        Normalize repository-style version strings into a PEP 440 Version.

        Strips a leading "v", converts "alpha"/"beta" style prerelease markers
        and turns trailing hash-like suffixes into local version labels.

        Returns:
            The parsed Version, or None for empty or unparsable input.
        """
        if version is None:
            return None

        trimmed = version.strip()
        if not trimmed:
            return None

        if trimmed.lower().startswith("v"):
            trimmed = trimmed[1:]

        try:
            return parse_version(trimmed)
        except InvalidVersion:
            m_pr = self.PRERELEASE_VERSION_RX.match(trimmed)
            if m_pr:
                pr_kind_lower = m_pr.group(2).lower()
                kind = {"alpha": "a", "beta": "b"}.get(pr_kind_lower, pr_kind_lower)
                num = m_pr.group(3) or "0"
                try:
                    return parse_version(f"{m_pr.group(1)}{kind}{num}")
                except InvalidVersion:
                    return None

            m_hash = self.HASH_SUFFIX_VERSION_RX.match(trimmed)
            if m_hash:
                try:
                    return parse_version(f"{m_hash.group(1)}+{m_hash.group(2)}")
                except InvalidVersion:
                    return None

        return None

    def parse_strict(self, version: Optional[str]) -> Version:
        """
        Parse a version or fail.

        Raises:
            VersionError: If ``version`` cannot be normalized.
        """
        parsed = self.normalize_version(version)
        if parsed is None:
            raise VersionError(
                f"Invalid version string: {version!r}", field="version", value=version
            )
        return parsed

    def compare_versions(self, version1: str, version2: str) -> int:
        """
        Compare two version strings.

        Returns:
            int: 1 if version1 > version2, 0 if equal, -1 if version1 < version2
        """
        v1 = self.normalize_version(version1)
        v2 = self.normalize_version(version2)
        if v1 is not None and v2 is not None:
            if v1 > v2:
                return 1
            elif v1 < v2:
                return -1
            else:
                return 0

        # Natural comparison fallback for truly non-standard versions
        def _nat_key(s: str) -> List[Tuple[int, Union[int, str]]]:
            parts = re.findall(r"\d+|[A-Za-z]+", s.lower())
            return [(1, int(p)) if p.isdigit() else (0, p) for p in parts]

        k1, k2 = _nat_key(version1), _nat_key(version2)

        if k1 > k2:
            return 1
        elif k1 < k2:
            return -1
        return 0

    def is_newer(self, candidate: str, current: str) -> bool:
        return self.compare_versions(candidate, current) > 0


def extract_bundle_identity(bundle_id: str, source_type: Any) -> str:
    """
    Return the version-independent identity of a bundle id.

    >>> extract_bundle_identity("acme-prompts-v1.1.0", "github")
    'acme-prompts'
    >>> extract_bundle_identity("acme-prompts-v1.1.0", "http")
    'acme-prompts-v1.1.0'
    """
    try:
        source_type = SourceType(source_type)
    except ValueError:
        return bundle_id
    if not source_type.is_git_hosted:
        return bundle_id
    return VERSION_SUFFIX_RX.sub("", bundle_id) or bundle_id


class VersionConsolidator:
    """
    Merge per-release bundle records into one bundle per logical identity.

    The version index is keyed by ``(source_id, identity)``. Consolidating a
    source again drops every entry it had before, so releases and identities
    that disappeared from the source are no longer offered.
    """

    def __init__(self, version_manager: Optional[VersionManager] = None) -> None:
        self.versions = version_manager or VersionManager()
        self._index: Dict[Tuple[str, str], List[BundleVersion]] = {}

    def consolidate_bundles(
        self,
        bundles: List[Bundle],
        source_type: Any,
        source_id: Optional[str] = None,
    ) -> List[Bundle]:
        """
        Group ``bundles`` (all from one source) by identity.

        Groups keep first-seen order. The representative of a group is a copy
        of its newest record renamed to the identity, with
        ``available_versions`` listing every version newest first. Index
        entries of ``source_id`` and of every source in ``bundles`` are
        cleared first.

        Raises:
            VersionError: If a record of a git-hosted source has an unparsable
                version; callers fall back to the unconsolidated list.
        """
        stale_sources = {b.source_id for b in bundles}
        if source_id is not None:
            stale_sources.add(source_id)
        for stale in stale_sources:
            self.clear(stale)
        if not SourceType(source_type).is_git_hosted:
            return list(bundles)

        groups: Dict[str, List[Bundle]] = {}
        for bundle in bundles:
            identity = extract_bundle_identity(bundle.id, source_type)
            groups.setdefault(identity, []).append(bundle)

        consolidated: List[Bundle] = []
        for identity, members in groups.items():
            ordered = sorted(
                members,
                key=lambda b: self.versions.parse_strict(b.version),
                reverse=True,
            )
            latest = ordered[0]
            index = [
                BundleVersion(
                    version=b.version,
                    download_url=b.download_url,
                    manifest_url=b.manifest_url,
                    published_at=b.last_updated,
                )
                for b in ordered
            ]
            self._index[(latest.source_id, identity)] = index
            consolidated.append(
                replace(
                    latest,
                    id=identity,
                    available_versions=list(index),
                )
            )
            if len(members) > 1:
                logger.debug(
                    f"Consolidated {len(members)} releases of {identity} "
                    f"(latest {latest.version})"
                )
        return consolidated

    def get_bundle_version(
        self, source_id: str, identity: str, version: str
    ) -> Optional[BundleVersion]:
        target = self.versions.normalize_version(version)
        for entry in self._index.get((source_id, identity), []):
            if entry.version == version:
                return entry
            if target is not None and self.versions.normalize_version(
                entry.version
            ) == target:
                return entry
        return None

    def get_all_versions(self, source_id: str, identity: str) -> List[BundleVersion]:
        return list(self._index.get((source_id, identity), []))

    def clear(self, source_id: Optional[str] = None) -> None:
        if source_id is None:
            self._index.clear()
            return
        for key in [k for k in self._index if k[0] == source_id]:
            del self._index[key]
