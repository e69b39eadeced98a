"""
GitHub releases adapter.

Each release of the configured repository becomes one bundle with id
``{owner}-{repo}-{tag}``; consolidation later folds the per-tag records into
one logical bundle. The archive is the first ``.zip`` asset of the release,
falling back to the source zipball.
"""

from typing import Any, Dict, List, Optional, Tuple

from bundlehub.constants import (
    BUNDLE_ARCHIVE_SUFFIX,
    DEPLOYMENT_MANIFEST_FILE,
    GITHUB_API_BASE,
    GITHUB_API_VERSION,
    GITHUB_RAW_BASE,
)
from bundlehub.exceptions import BundleHubError
from bundlehub.log_utils import logger
from bundlehub.models import Bundle, ValidationResult

from .auth import AuthChain
from .git_hosted import GitHostedAdapter, parse_repository_url

RELEASES_PER_PAGE = 100


def format_size(num_bytes: Any) -> str:
    try:
        size = int(num_bytes)
    except (TypeError, ValueError):
        return "n/a"
    if size <= 0:
        return "n/a"
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


class GitHubApiMixin:
    """URL helpers for github.com and GitHub Enterprise hosts."""

    source: Any

    def _repo(self) -> Tuple[str, str, str]:
        host, path = parse_repository_url(self.source.url)
        owner, repo = path.split("/")[:2]
        return host, owner, repo

    def api_base(self) -> str:
        host, _owner, _repo = self._repo()
        if host in ("github.com", "www.github.com"):
            return GITHUB_API_BASE
        return f"https://{host}/api/v3"

    def raw_url(self, branch: str, path: str) -> str:
        host, owner, repo = self._repo()
        if host in ("github.com", "www.github.com"):
            return f"{GITHUB_RAW_BASE}/{owner}/{repo}/{branch}/{path}"
        return f"https://{host}/{owner}/{repo}/raw/{branch}/{path}"

    def repo_api_url(self, suffix: str = "") -> str:
        _host, owner, repo = self._repo()
        return f"{self.api_base()}/repos/{owner}/{repo}{suffix}"

    def _base_headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }


class GitHubAdapter(GitHubApiMixin, GitHostedAdapter):
    """Adapter for ``github`` sources (release-based bundles)."""

    @classmethod
    def create_auth_chain(cls, explicit_token: Optional[str]) -> AuthChain:
        return AuthChain.for_github(explicit_token)

    async def _fetch_bundles(self) -> List[Bundle]:
        url = self.repo_api_url(f"/releases?per_page={RELEASES_PER_PAGE}")
        data = await self.api_json(url)
        if not isinstance(data, list):
            logger.warning(
                "Unexpected releases payload type from %s: expected list, got %s",
                url,
                type(data).__name__,
            )
            return []

        bundles: List[Bundle] = []
        for item in data:
            bundle = self._release_to_bundle(item)
            if bundle is not None:
                bundles.append(bundle)
        return bundles

    def _release_to_bundle(self, item: Any) -> Optional[Bundle]:
        if not isinstance(item, dict):
            logger.warning(
                "Skipping malformed release entry: expected dict, got %s",
                type(item).__name__,
            )
            return None
        if item.get("draft"):
            return None
        tag = item.get("tag_name")
        if not isinstance(tag, str) or not tag.strip():
            logger.warning("Skipping release entry with invalid or empty tag_name")
            return None
        tag = tag.strip()

        _host, owner, repo = self._repo()
        assets = [a for a in item.get("assets") or [] if isinstance(a, dict)]
        archive = next(
            (
                a
                for a in assets
                if str(a.get("name", "")).lower().endswith(BUNDLE_ARCHIVE_SUFFIX)
            ),
            None,
        )
        manifest = next(
            (a for a in assets if a.get("name") == DEPLOYMENT_MANIFEST_FILE), None
        )
        download_url = (
            archive.get("browser_download_url")
            if archive
            else item.get("zipball_url") or ""
        )
        manifest_url = (
            manifest.get("browser_download_url") if manifest else download_url
        )
        body = item.get("body") or ""
        author = item.get("author") or {}

        return Bundle(
            id=f"{owner}-{repo}-{tag}",
            name=item.get("name") or f"{repo} {tag}",
            version=tag[1:] if tag[:1] in ("v", "V") else tag,
            source_id=self.source_id,
            description=body.strip().splitlines()[0] if body.strip() else "",
            author=author.get("login") or owner,
            last_updated=item.get("published_at") or item.get("created_at") or "",
            size=format_size(archive.get("size") if archive else None),
            manifest_url=manifest_url or "",
            download_url=download_url or "",
            homepage=item.get("html_url"),
            repository=self.source.url,
            tags=["prerelease"] if item.get("prerelease") else [],
        )

    async def download_bundle(self, bundle: Bundle) -> bytes:
        logger.info(f"Downloading {bundle.id} from {bundle.download_url}")
        return await self.api_bytes(
            bundle.download_url, extra_headers={"Accept": "application/octet-stream"}
        )

    async def validate(self) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        if not self.is_valid_url(self.source.url):
            return ValidationResult.from_messages(
                [f"Invalid repository URL: {self.source.url}"]
            )
        try:
            await self.api_json(self.repo_api_url())
            releases = await self.api_json(self.repo_api_url("/releases?per_page=1"))
            if isinstance(releases, list) and not releases:
                warnings.append("Repository has no releases")
        except BundleHubError as e:
            errors.append(str(e))
        return ValidationResult.from_messages(errors, warnings)
