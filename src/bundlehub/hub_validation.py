"""
Hub configuration validation.

A hub file is YAML with ``sources`` and ``profiles``; profiles list bundles
by ``id`` and ``source``. Validation checks the document shape, that every
profile bundle names a declared source, and that the source URLs are
reachable. Unreachable or broken URLs are errors; 401/403 answers are
warnings since private repositories are expected to refuse anonymous probes.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from bundlehub.exceptions import ConfigFileError
from bundlehub.log_utils import logger
from bundlehub.models import SourceType, UrlSeverity, ValidationResult
from bundlehub.url_prober import UrlProber

_LOCAL_SOURCE_TYPES = {SourceType.LOCAL.value, SourceType.LOCAL_AWESOME_COPILOT.value}


def load_hub_config(path: Path) -> Dict[str, Any]:
    """
    Read a hub configuration file.

    Raises:
        ConfigFileError: If the file cannot be read, is not YAML or is not a mapping.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigFileError(f"Could not read {path}", details=str(e)) from e
    except yaml.YAMLError as e:
        raise ConfigFileError("Failed to parse YAML", details=str(e)) from e
    if not isinstance(data, dict):
        raise ConfigFileError("Empty or invalid YAML file", details=str(path))
    return data


def _source_url(source: Dict[str, Any]) -> Optional[str]:
    if source.get("url"):
        return str(source["url"])
    repository = source.get("repository")
    if repository and source.get("type") == SourceType.GITHUB.value:
        return f"https://github.com/{repository}"
    if repository and source.get("type") == SourceType.GITLAB.value:
        return f"https://gitlab.com/{repository}"
    return None


class HubValidator:
    """Runs the structure, reference and reachability checks on a hub document."""

    def __init__(self, prober: Optional[UrlProber] = None) -> None:
        self.prober = prober or UrlProber()

    def validate_structure(
        self, config: Dict[str, Any]
    ) -> Tuple[List[str], List[str]]:
        errors: List[str] = []
        warnings: List[str] = []
        sources = config.get("sources")
        if sources is None:
            warnings.append("Hub declares no sources")
        elif not isinstance(sources, list):
            errors.append("'sources' must be a list")
        else:
            seen = set()
            for index, source in enumerate(sources):
                if not isinstance(source, dict) or not source.get("id"):
                    errors.append(f"Source #{index + 1} has no id")
                    continue
                if source["id"] in seen:
                    errors.append(f"Duplicate source id \"{source['id']}\"")
                seen.add(source["id"])
                source_type = source.get("type")
                if source_type not in {t.value for t in SourceType}:
                    errors.append(
                        f"Source \"{source['id']}\": unsupported type {source_type!r}"
                    )
        profiles = config.get("profiles")
        if profiles is not None and not isinstance(profiles, list):
            errors.append("'profiles' must be a list")
        return errors, warnings

    def validate_profile_source_references(
        self, config: Dict[str, Any]
    ) -> List[str]:
        """Return one error per profile bundle with a missing or unknown source."""
        errors: List[str] = []
        source_ids = {
            s.get("id") for s in config.get("sources") or [] if isinstance(s, dict)
        }
        profiles = config.get("profiles")
        if not isinstance(profiles, list):
            return errors
        for profile in profiles:
            if not isinstance(profile, dict):
                continue
            bundles = profile.get("bundles")
            if not isinstance(bundles, list):
                continue
            label = f"Profile \"{profile.get('name')}\" ({profile.get('id')})"
            for bundle in bundles:
                if not isinstance(bundle, dict):
                    continue
                source_id = bundle.get("source")
                prefix = f"{label}: Bundle \"{bundle.get('id')}\""
                if not source_id:
                    errors.append(f"{prefix} is missing source reference")
                elif source_id not in source_ids:
                    errors.append(
                        f"{prefix} references non-existent source \"{source_id}\""
                    )
        return errors

    async def validate_urls(
        self, config: Dict[str, Any], timeout: Optional[float] = None
    ) -> Tuple[List[str], List[str]]:
        errors: List[str] = []
        warnings: List[str] = []
        checks: List[Tuple[str, str]] = []
        sources = config.get("sources")
        for source in sources if isinstance(sources, list) else []:
            if not isinstance(source, dict):
                continue
            if source.get("type") in _LOCAL_SOURCE_TYPES:
                continue
            url = _source_url(source)
            if url:
                checks.append((str(source.get("id")), url))
        if not checks:
            logger.info("No URLs to validate")
            return errors, warnings

        logger.info(f"Checking {len(checks)} URL(s)...")
        results = await self.prober.check_urls([url for _id, url in checks], timeout)
        for (source_id, _url), result in zip(checks, results):
            if result.severity is UrlSeverity.ERROR:
                errors.append(f'Source "{source_id}": {result.message}')
            elif result.severity is UrlSeverity.WARNING:
                warnings.append(f'Source "{source_id}": {result.message}')
        return errors, warnings

    async def validate(
        self,
        config: Dict[str, Any],
        check_urls: bool = True,
        timeout: Optional[float] = None,
    ) -> ValidationResult:
        errors, warnings = self.validate_structure(config)
        errors.extend(self.validate_profile_source_references(config))
        if check_urls:
            url_errors, url_warnings = await self.validate_urls(config, timeout)
            errors.extend(url_errors)
            warnings.extend(url_warnings)
        return ValidationResult.from_messages(errors, warnings)

    async def validate_file(
        self, path: Path, check_urls: bool = True
    ) -> ValidationResult:
        try:
            config = load_hub_config(path)
        except ConfigFileError as e:
            return ValidationResult.from_messages([str(e)])
        return await self.validate(config, check_urls=check_urls)
