"""
Source identity helpers.

Source ids are derived, not chosen: ``{type}-{hash}`` where the hash is the
first twelve hex digits of SHA-256 over ``type:normalizedUrl:branch:collectionsPath``.
The same inputs always produce the same id on any machine.

The ``legacy`` helpers reproduce the previous normalization (host lowercased,
path case preserved). They exist only for the ``sourceId-normalization-v2``
migration and for dual-read of lock data that still carries old ids; remove
them together once that data has been rewritten.
"""

import hashlib
import re
from typing import List, Optional
from urllib.parse import urlparse

from bundlehub.constants import (
    DEFAULT_BRANCH,
    DEFAULT_COLLECTIONS_PATH,
    FILENAME_MAX_LENGTH,
    HUB_GENERATED_ID_PATTERN,
    LEGACY_DEFAULT_BRANCH,
    SOURCE_ID_HASH_LENGTH,
)
from bundlehub.models import Source

_HUB_ID_RX = re.compile(HUB_GENERATED_ID_PATTERN)
_SCHEME_RX = re.compile(r"^https?://", re.IGNORECASE)
_TRAILING_SLASH_RX = re.compile(r"/+$")
_UNSAFE_FILENAME_RX = re.compile(r"[^A-Za-z0-9._-]")


def _split_url(url: str):
    """Return (host, path) for an absolute URL, or None when it cannot be parsed."""
    try:
        parsed = urlparse(url)
        host = parsed.hostname
    except ValueError:
        return None
    if not parsed.scheme or not host:
        return None
    return host, parsed.path


def normalize_url(url: str) -> str:
    """
    Normalize a URL for hashing.

    Lowercases host and path, drops the scheme and trailing slashes.

    >>> normalize_url("HTTPS://GitHub.com/Owner/Repo/")
    'github.com/owner/repo'
    """
    parts = _split_url(url)
    if parts is None:
        return _TRAILING_SLASH_RX.sub("", _SCHEME_RX.sub("", url.lower()))
    host, path = parts
    return host.lower() + _TRAILING_SLASH_RX.sub("", path.lower())


def normalize_url_legacy(url: str) -> str:
    """Pre-v2 normalization: lowercase host only, keep path case."""
    parts = _split_url(url)
    if parts is None:
        stripped = _TRAILING_SLASH_RX.sub("", _SCHEME_RX.sub("", url))
        host, sep, rest = stripped.partition("/")
        return host.lower() + sep + rest
    host, path = parts
    return host.lower() + _TRAILING_SLASH_RX.sub("", path)


def normalize_branch(branch: Optional[str]) -> str:
    if not branch or branch == LEGACY_DEFAULT_BRANCH:
        return DEFAULT_BRANCH
    return branch


def _hash_prefix(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:SOURCE_ID_HASH_LENGTH]


def _source_id_from_normalized(
    source_type: str,
    normalized_url: str,
    branch: Optional[str],
    collections_path: Optional[str],
) -> str:
    payload = ":".join(
        (
            source_type,
            normalized_url,
            normalize_branch(branch),
            collections_path or DEFAULT_COLLECTIONS_PATH,
        )
    )
    return f"{source_type}-{_hash_prefix(payload)}"


def _type_value(source_type) -> str:
    return getattr(source_type, "value", source_type)


def generate_source_id(
    source_type,
    url: str,
    branch: Optional[str] = None,
    collections_path: Optional[str] = None,
) -> str:
    """
    Compute the deterministic id of a source.

    Parameters:
        source_type: Source type value (``SourceType`` or its string form).
        url (str): Source URL; case of scheme, host and path is ignored.
        branch (Optional[str]): Git branch, ``None`` and ``"master"`` count as ``"main"``.
        collections_path (Optional[str]): Defaults to ``"collections"``.

    Returns:
        str: ``"{type}-{12 hex chars}"``.
    """
    return _source_id_from_normalized(
        _type_value(source_type), normalize_url(url), branch, collections_path
    )


def generate_legacy_source_id(
    source_type,
    url: str,
    branch: Optional[str] = None,
    collections_path: Optional[str] = None,
) -> Optional[str]:
    """
    Compute the id a source had under the pre-v2 normalization.

    Returns:
        Optional[str]: The legacy id, or ``None`` when both normalizations agree
            and the source therefore never had a distinct legacy id.
    """
    legacy = normalize_url_legacy(url)
    if legacy == normalize_url(url):
        return None
    return _source_id_from_normalized(
        _type_value(source_type), legacy, branch, collections_path
    )


def generate_hub_key(url: str, branch: Optional[str] = None) -> str:
    """
    Compute the portable lock-file key of a hub.

    Main and master branches share the bare hash; any other branch is appended.
    """
    key = _hash_prefix(normalize_url(url))
    if branch and branch not in (DEFAULT_BRANCH, LEGACY_DEFAULT_BRANCH):
        return f"{key}-{branch}"
    return key


def generate_legacy_hub_key(url: str, branch: Optional[str] = None) -> Optional[str]:
    legacy = normalize_url_legacy(url)
    if legacy == normalize_url(url):
        return None
    key = _hash_prefix(legacy)
    if branch and branch not in (DEFAULT_BRANCH, LEGACY_DEFAULT_BRANCH):
        return f"{key}-{branch}"
    return key


def is_hub_generated_id(source_id: str) -> bool:
    return bool(_HUB_ID_RX.match(source_id))


def is_legacy_hub_source_id(source_id: str) -> bool:
    """True for the old ``hub-{hubId}-{sourceId}`` form (at least three segments)."""
    return source_id.startswith("hub-") and len(source_id.split("-")) >= 3


def sanitize_filename(source_id: str) -> str:
    """Map an id onto a safe file stem."""
    return _UNSAFE_FILENAME_RX.sub("_", source_id)[:FILENAME_MAX_LENGTH]


def current_source_id(source: Source) -> str:
    return generate_source_id(
        source.type, source.url, source.config.branch, source.config.collections_path
    )


def legacy_source_id(source: Source) -> Optional[str]:
    return generate_legacy_source_id(
        source.type, source.url, source.config.branch, source.config.collections_path
    )


def source_id_candidates(source: Source) -> List[str]:
    """Ids under which persisted data may still refer to ``source``."""
    candidates = [source.id]
    if is_hub_generated_id(source.id):
        for candidate in (current_source_id(source), legacy_source_id(source)):
            if candidate and candidate not in candidates:
                candidates.append(candidate)
    return candidates


def matches_source_id(source: Source, candidate_id: str) -> bool:
    """
    Dual-read lookup for lock data written before ``sourceId-normalization-v2``.

    Accepts either the source's stored id or, for hub-generated ids, the legacy
    id computed from the same inputs. Drop once lock files have been rewritten
    on install/update.
    """
    return candidate_id in source_id_candidates(source)
