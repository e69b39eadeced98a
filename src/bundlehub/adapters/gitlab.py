"""GitLab releases adapter (API v4)."""

from typing import Any, Dict, List, Optional
from urllib.parse import quote

from bundlehub.constants import (
    BUNDLE_ARCHIVE_SUFFIX,
    DEPLOYMENT_MANIFEST_FILE,
    GITLAB_API_PATH,
)
from bundlehub.exceptions import BundleHubError
from bundlehub.log_utils import logger
from bundlehub.models import Bundle, ValidationResult

from .auth import AuthChain
from .git_hosted import GitHostedAdapter, parse_repository_url


class GitLabAdapter(GitHostedAdapter):
    """
    Adapter for ``gitlab`` sources.

    Bundles come from project releases; the archive is the first ``.zip``
    release link, falling back to the generated ``zip`` source archive.
    """

    @classmethod
    def create_auth_chain(cls, explicit_token: Optional[str]) -> AuthChain:
        return AuthChain.for_gitlab(explicit_token)

    def _auth_headers(self, token: str) -> Dict[str, str]:
        return {"PRIVATE-TOKEN": token}

    def _base_headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    def project_api_url(self, suffix: str = "") -> str:
        host, path = parse_repository_url(self.source.url)
        project = quote(path, safe="")
        return f"https://{host}{GITLAB_API_PATH}/projects/{project}{suffix}"

    def _bundle_prefix(self) -> str:
        _host, path = parse_repository_url(self.source.url)
        return path.replace("/", "-")

    async def _fetch_bundles(self) -> List[Bundle]:
        url = self.project_api_url("/releases")
        data = await self.api_json(url)
        if not isinstance(data, list):
            logger.warning(
                "Unexpected releases payload type from %s: expected list, got %s",
                url,
                type(data).__name__,
            )
            return []
        bundles = []
        for item in data:
            bundle = self._release_to_bundle(item)
            if bundle is not None:
                bundles.append(bundle)
        return bundles

    def _release_to_bundle(self, item: Any) -> Optional[Bundle]:
        if not isinstance(item, dict):
            return None
        tag = item.get("tag_name")
        if not isinstance(tag, str) or not tag.strip():
            logger.warning("Skipping GitLab release with invalid or empty tag_name")
            return None
        tag = tag.strip()

        assets = item.get("assets") or {}
        links = [a for a in assets.get("links") or [] if isinstance(a, dict)]
        sources = [s for s in assets.get("sources") or [] if isinstance(s, dict)]
        archive = next(
            (
                link
                for link in links
                if str(link.get("name", "")).lower().endswith(BUNDLE_ARCHIVE_SUFFIX)
            ),
            None,
        )
        manifest = next(
            (a for a in links if a.get("name") == DEPLOYMENT_MANIFEST_FILE), None
        )
        if archive:
            download_url = archive.get("direct_asset_url") or archive.get("url") or ""
        else:
            download_url = next(
                (s.get("url", "") for s in sources if s.get("format") == "zip"), ""
            )
        description = (item.get("description") or "").strip()
        author = item.get("author") or {}

        return Bundle(
            id=f"{self._bundle_prefix()}-{tag}",
            name=item.get("name") or tag,
            version=tag[1:] if tag[:1] in ("v", "V") else tag,
            source_id=self.source_id,
            description=description.splitlines()[0] if description else "",
            author=author.get("username") or author.get("name") or "Unknown",
            last_updated=item.get("released_at") or item.get("created_at") or "",
            manifest_url=(manifest.get("url") if manifest else None) or download_url,
            download_url=download_url,
            homepage=(item.get("_links") or {}).get("self"),
            repository=self.source.url,
            tags=["upcoming"] if item.get("upcoming_release") else [],
        )

    async def download_bundle(self, bundle: Bundle) -> bytes:
        logger.info(f"Downloading {bundle.id} from {bundle.download_url}")
        return await self.api_bytes(bundle.download_url)

    async def validate(self) -> ValidationResult:
        if not self.is_valid_url(self.source.url):
            return ValidationResult.from_messages(
                [f"Invalid repository URL: {self.source.url}"]
            )
        errors: List[str] = []
        warnings: List[str] = []
        try:
            await self.api_json(self.project_api_url())
            releases = await self.api_json(self.project_api_url("/releases"))
            if isinstance(releases, list) and not releases:
                warnings.append("Project has no releases")
        except BundleHubError as e:
            errors.append(str(e))
        return ValidationResult.from_messages(errors, warnings)
