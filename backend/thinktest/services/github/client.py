"""
Async GitHub REST API client.

All calls go through one shared httpx.AsyncClient with the service token, an
explicit timeout and redirects disabled (a redirect is reported, not followed).
Failures are classified by thinktest.services.github.errors.

Usage:
    client = GitHubClient(settings)
    info = await client.get_repository_info("octocat", "Hello-World")
    tree = await client.get_repository_tree("octocat", "Hello-World", "master")
    await client.aclose()
"""

import base64
import binascii
import logging
import time
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from thinktest.core.config import Settings
from thinktest.exceptions import AppException, MalformedResponseError, ValidationError
from thinktest.schemas.github import (
    BranchDescriptor,
    ContentItem,
    FileContent,
    RepositoryInfo,
    TreeEntry,
)
from thinktest.services.github.errors import handle_github_error, parse_json
from thinktest.services.github.tree import build_tree

logger = logging.getLogger(__name__)

USER_AGENT = "ThinkTest-AI/1.0"
API_VERSION = "2022-11-28"
BRANCHES_PER_PAGE = 100
MAX_BRANCH_PAGES = 10


class GitHubClient:
    """GitHub REST API client using the service credential."""

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings

        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": USER_AGENT,
        }
        if settings.github_api_token:
            headers["Authorization"] = f"Bearer {settings.github_api_token}"

        self._http = httpx.AsyncClient(
            base_url=settings.github_api_url,
            headers=headers,
            timeout=httpx.Timeout(float(settings.github_timeout)),
            follow_redirects=False,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    # =========================================================================
    # Request plumbing
    # =========================================================================

    async def _request(
        self,
        path: str,
        operation: str,
        context: Dict[str, Any],
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """GET ``path`` and raise a classified AppException unless it is 2xx."""
        try:
            response = await self._http.get(path, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise handle_github_error(e, operation, context) from e

        if not response.is_success:
            raise handle_github_error(response, operation, context)
        return response

    async def _get_json(
        self,
        path: str,
        operation: str,
        context: Dict[str, Any],
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        response = await self._request(path, operation, context, params=params)
        return parse_json(response, operation)

    @staticmethod
    def _repo_path(owner: str, repo: str) -> str:
        return f"/repos/{quote(owner, safe='')}/{quote(repo, safe='')}"

    # =========================================================================
    # Repository
    # =========================================================================

    async def is_repository_accessible(self, owner: str, repo: str) -> bool:
        """True only when GitHub answers 200; never raises."""
        try:
            response = await self._http.get(self._repo_path(owner, repo))
        except httpx.HTTPError as e:
            logger.warning(f"Accessibility check for {owner}/{repo} failed: {type(e).__name__}: {e}")
            return False
        return response.status_code == 200

    async def get_repository_info(self, owner: str, repo: str) -> RepositoryInfo:
        data = await self._get_json(
            self._repo_path(owner, repo),
            "fetch repository info",
            {"owner": owner, "repo": repo},
        )
        if not isinstance(data, dict):
            raise MalformedResponseError()

        return RepositoryInfo(
            id=data["id"],
            name=data.get("name") or repo,
            full_name=data.get("full_name") or f"{owner}/{repo}",
            description=data.get("description") or "",
            private=bool(data.get("private", False)),
            default_branch=data.get("default_branch") or "main",
            size=int(data.get("size") or 0) * 1024,  # GitHub reports KB
            language=data.get("language"),
            clone_url=data.get("clone_url"),
            html_url=data.get("html_url"),
            updated_at=data.get("updated_at"),
        )

    async def get_repository_languages(self, owner: str, repo: str) -> Dict[str, int]:
        """Byte count per language; empty on any failure."""
        try:
            data = await self._get_json(
                f"{self._repo_path(owner, repo)}/languages",
                "fetch repository languages",
                {"owner": owner, "repo": repo},
            )
        except AppException as e:
            logger.warning(f"Failed to fetch languages for {owner}/{repo}: {e.message}")
            return {}
        return data if isinstance(data, dict) else {}

    # =========================================================================
    # Branches
    # =========================================================================

    async def get_repository_branches(self, owner: str, repo: str) -> List[BranchDescriptor]:
        """All branches, following pagination."""
        branches: List[BranchDescriptor] = []
        context = {"owner": owner, "repo": repo}

        for page in range(1, MAX_BRANCH_PAGES + 1):
            data = await self._get_json(
                f"{self._repo_path(owner, repo)}/branches",
                "fetch repository branches",
                context,
                params={"per_page": BRANCHES_PER_PAGE, "page": page},
            )
            # A single branch object is wrapped into a list
            batch = [data] if isinstance(data, dict) else list(data or [])

            for item in batch:
                commit = item.get("commit") or {}
                branches.append(BranchDescriptor(
                    name=item["name"],
                    commit_sha=commit.get("sha"),
                    commit_url=commit.get("url"),
                    protected=bool(item.get("protected", False)),
                ))

            if len(batch) < BRANCHES_PER_PAGE:
                break

        logger.info(f"Fetched {len(branches)} branches for {owner}/{repo}")
        return branches

    # =========================================================================
    # Tree and contents
    # =========================================================================

    async def get_repository_tree(
        self, owner: str, repo: str, branch: str, recursive: bool = True
    ) -> List[TreeEntry]:
        """Filtered file tree of a branch, directories synthesized, sorted by path."""
        params = {"recursive": 1} if recursive else None
        data = await self._get_json(
            f"{self._repo_path(owner, repo)}/git/trees/{quote(branch, safe='')}",
            "fetch repository tree",
            {"owner": owner, "repo": repo, "branch": branch, "recursive": recursive},
            params=params,
        )
        if not isinstance(data, dict):
            raise MalformedResponseError()

        if data.get("truncated"):
            logger.warning(f"GitHub truncated the tree of {owner}/{repo}@{branch}")

        return build_tree(
            data.get("tree") or [],
            owner,
            repo,
            branch,
            self.settings.supported_file_extensions,
            self.settings.ignored_directories,
        )

    async def get_file_content(
        self, owner: str, repo: str, path: str, branch: Optional[str] = None
    ) -> FileContent:
        """
        Fetch and decode one file.

        Raises:
            ValidationError: NOT_A_FILE when ``path`` names a directory
        """
        context = {"owner": owner, "repo": repo, "path": path, "branch": branch}
        params = {"ref": branch} if branch else None
        contents_path = f"{self._repo_path(owner, repo)}/contents/{quote(path)}"

        data = await self._get_json(contents_path, "fetch file content", context, params=params)

        if not isinstance(data, dict) or data.get("type") != "file":
            raise ValidationError(f"Path '{path}' is not a file", error_code="NOT_A_FILE")

        encoding = data.get("encoding")
        content = data.get("content") or ""
        if encoding == "base64":
            content = self._decode_base64(content, path)
        elif encoding == "none":
            # Files over 1 MB come without inline content
            raw = await self._request(
                contents_path,
                "fetch raw file content",
                context,
                params=params,
                headers={"Accept": "application/vnd.github.raw+json"},
            )
            content = raw.text

        return FileContent(
            name=data.get("name") or path.rsplit("/", 1)[-1],
            path=data.get("path") or path,
            content=content,
            size=data.get("size") or 0,
            sha=data.get("sha"),
            encoding=encoding,
            url=data.get("url"),
            html_url=data.get("html_url"),
            download_url=data.get("download_url"),
        )

    @staticmethod
    def _decode_base64(content: str, path: str) -> str:
        try:
            raw = base64.b64decode(content)
        except (binascii.Error, ValueError) as e:
            logger.error(f"Invalid base64 content for {path}: {e}")
            raise MalformedResponseError(f"GitHub returned undecodable content for {path}") from e
        return raw.decode("utf-8", errors="replace")

    async def get_repository_contents(
        self, owner: str, repo: str, path: str = "", branch: Optional[str] = None
    ) -> List[ContentItem]:
        """Single-directory listing used for browsing."""
        params = {"ref": branch} if branch else None
        suffix = f"/{quote(path)}" if path else ""
        data = await self._get_json(
            f"{self._repo_path(owner, repo)}/contents{suffix}",
            "fetch repository contents",
            {"owner": owner, "repo": repo, "path": path, "branch": branch},
            params=params,
        )

        items = [data] if isinstance(data, dict) else list(data or [])
        return [
            ContentItem(
                name=item["name"],
                path=item["path"],
                type=item.get("type", "file"),
                size=item.get("size") or 0,
                sha=item.get("sha"),
                url=item.get("url"),
                html_url=item.get("html_url"),
                download_url=item.get("download_url"),
            )
            for item in items
        ]

    # =========================================================================
    # Diagnostics (service credential only)
    # =========================================================================

    async def verify_api_token(self) -> Dict[str, Any]:
        """Check the configured token against GET /user; never raises."""
        if not self.settings.github_api_token:
            return {"valid": False, "error": "No API token configured"}

        try:
            response = await self._http.get("/user")
        except httpx.HTTPError as e:
            logger.error(f"GitHub token verification failed: {type(e).__name__}: {e}")
            return {"valid": False, "error": f"{type(e).__name__}: {e}"}

        if response.status_code != 200:
            logger.error(f"GitHub token verification failed: HTTP {response.status_code}")
            return {"valid": False, "error": f"HTTP {response.status_code}: {response.text[:200]}"}

        try:
            login = parse_json(response, "verify API token").get("login", "unknown")
        except (AppException, AttributeError):
            return {"valid": False, "error": "GitHub returned an unexpected response for /user"}

        remaining = response.headers.get("X-RateLimit-Remaining")
        return {
            "valid": True,
            "user": login,
            "scopes": response.headers.get("X-OAuth-Scopes"),
            "rate_limit_remaining": int(remaining) if remaining and remaining.isdigit() else None,
        }

    async def get_rate_limit_info(self) -> Dict[str, int]:
        """Core API quota; unauthenticated defaults when GitHub can't be asked."""
        try:
            data = await self._get_json("/rate_limit", "fetch rate limit", {})
            rate = data["rate"]
            return {
                "limit": int(rate["limit"]),
                "remaining": int(rate["remaining"]),
                "reset": int(rate["reset"]),
            }
        except (AppException, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Failed to fetch rate limit info: {e}")
            return {"limit": 60, "remaining": 60, "reset": int(time.time()) + 3600}
