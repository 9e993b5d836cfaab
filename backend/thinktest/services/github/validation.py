"""
Input validation for GitHub repository ingestion.

Every user-supplied URL, owner/repo pair, branch name and file path passes
through GitHubValidationService before any network or storage effect. This is
also where size, file-count and rate-limit policy is enforced.

Usage:
    service = GitHubValidationService(settings, rate_limiter, ip_address="1.2.3.4")
    ref = service.validate_repository_url("https://github.com/octocat/Hello-World")
    service.validate_branch_name("main")
"""

import ipaddress
import json
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from thinktest.core.config import Settings
from thinktest.core.logging_config import SECURITY_LOGGER
from thinktest.exceptions import ResourceLimitError, ValidationError
from thinktest.schemas.github import RepositoryReference
from thinktest.services.github.rate_limiter import GitHubRateLimiter

logger = logging.getLogger(__name__)
security_logger = logging.getLogger(SECURITY_LOGGER)

MAX_URL_LENGTH = 500
MAX_NAME_LENGTH = 100
MAX_BRANCH_LENGTH = 250
MAX_PATH_LENGTH = 1000

RESERVED_NAMES = frozenset({"api", "www", "github", "admin", "root", "support"})

SUSPICIOUS_PATTERNS = [
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"file:", re.IGNORECASE),
    re.compile(r"ftp:", re.IGNORECASE),
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"\.\."),  # path traversal
]

# Alphanumeric at both ends, [-._] allowed in between
NAME_PATTERN = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9\-._]{0,98}[a-zA-Z0-9])?$")
DOUBLED_SEPARATOR = re.compile(r"[\-._]{2}")

SSH_PATTERN = re.compile(r"^git@([^:]+):([^/]+)/([^/]+?)(?:\.git)?$")
BARE_PATTERN = re.compile(r"^([a-zA-Z0-9\-_]+)/([a-zA-Z0-9\-_.]+)$")

BRANCH_FORBIDDEN = [
    (re.compile(r"^\."), "cannot start with '.'"),
    (re.compile(r"/$"), "cannot end with '/'"),
    (re.compile(r"\.\."), "cannot contain '..'"),
    (re.compile(r"//"), "cannot contain '//'"),
    (re.compile(r"[\x00-\x1f\x7f]"), "cannot contain control characters"),
    (re.compile(r"[~^:?*\[\]\\ ]"), "contains an invalid character"),
    (re.compile(r"@\{"), "cannot contain '@{'"),
    (re.compile(r"\.lock$"), "cannot end with '.lock'"),
]

# Control bytes other than tab, newline and carriage return
NON_TEXT_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def is_private_host(hostname: str) -> bool:
    """Check if hostname is localhost or a loopback/private/reserved IP literal."""
    host = hostname.strip("[]").lower()
    if host == "localhost" or host.endswith(".localhost"):
        return True
    try:
        ip_obj = ipaddress.ip_address(host)
    except ValueError:
        return False
    return ip_obj.is_private or ip_obj.is_loopback or ip_obj.is_reserved or ip_obj.is_link_local


class GitHubValidationService:
    """Validates repository input and enforces resource policy for one request."""

    def __init__(
        self,
        settings: Settings,
        rate_limiter: Optional[GitHubRateLimiter] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ):
        self.settings = settings
        self.rate_limiter = rate_limiter
        self.ip_address = ip_address
        self.user_agent = user_agent

    # =========================================================================
    # Repository URL and names
    # =========================================================================

    def validate_repository_url(self, url: str, user_id: Optional[str] = None) -> RepositoryReference:
        """
        Parse and validate a user-supplied repository locator.

        Accepts https://github.com/owner/repo[.git][/][?query],
        git@github.com:owner/repo.git and bare owner/repo.

        ``user_id`` is recorded on security events only; the request budget
        is consumed once per request by the rate-limit dependency.

        Raises:
            ValidationError: for every malformed or unsafe input
        """
        if url is None or not url.strip():
            raise ValidationError("Repository URL cannot be empty", errors={"repository_url": ["Repository URL cannot be empty"]})

        if len(url) > MAX_URL_LENGTH:
            raise ValidationError("Repository URL is too long", errors={"repository_url": ["Repository URL is too long"]})

        url = url.strip()

        for pattern in SUSPICIOUS_PATTERNS:
            if pattern.search(url):
                self.log_security_event("suspicious_url", {
                    "raw_input": url,
                    "pattern": pattern.pattern,
                    "user_id": user_id,
                })
                raise ValidationError("URL contains suspicious patterns", error_code="SUSPICIOUS_URL")

        owner, repo = self._extract_components(url, user_id)
        ref = RepositoryReference.of(owner, repo)
        self.validate_repository_components(ref, user_id=user_id, raw_input=url)
        return ref

    def _extract_components(self, url: str, user_id: Optional[str]) -> tuple:
        if "://" in url:
            parsed = urlparse(url)
            host = (parsed.hostname or "").lower()
            self._check_host(host, url, user_id)
            if parsed.scheme.lower() != "https":
                raise ValidationError("Only https GitHub URLs are supported", error_code="INVALID_URL")
            segments = [s for s in parsed.path.split("/") if s]
            if len(segments) != 2:
                raise ValidationError("Invalid GitHub repository URL format", error_code="INVALID_URL")
            owner, repo = segments
            if repo.endswith(".git"):
                repo = repo[:-4]
            return owner, repo

        ssh = SSH_PATTERN.match(url)
        if ssh:
            host, owner, repo = ssh.groups()
            self._check_host(host.lower(), url, user_id)
            return owner, repo

        bare = url[:-4] if url.endswith(".git") else url
        match = BARE_PATTERN.match(bare)
        if match:
            return match.group(1), match.group(2)

        raise ValidationError("Invalid GitHub repository URL format", error_code="INVALID_URL")

    def _check_host(self, host: str, raw_input: str, user_id: Optional[str]) -> None:
        if not host:
            raise ValidationError("Invalid GitHub repository URL format", error_code="INVALID_URL")

        if is_private_host(host):
            self.log_security_event("private_host", {
                "raw_input": raw_input,
                "host": host,
                "user_id": user_id,
            })
            raise ValidationError("URL contains suspicious patterns", error_code="SUSPICIOUS_URL")

        allowed = self.settings.allowed_domains
        if host not in allowed:
            raise ValidationError(
                f"Domain '{host}' is not allowed. Only {', '.join(allowed)} are permitted",
                error_code="DOMAIN_NOT_ALLOWED",
            )

    def validate_repository_components(
        self,
        ref: RepositoryReference,
        user_id: Optional[str] = None,
        raw_input: Optional[str] = None,
    ) -> RepositoryReference:
        """Enforce character-class, length, separator and reserved-name rules."""
        context = {
            "owner": ref.owner,
            "repo": ref.repo,
            "raw_input": raw_input if raw_input is not None else ref.full_name,
            "user_id": user_id,
        }

        if not self._is_valid_name(ref.owner):
            self.log_security_event("invalid_owner_name", context)
            raise ValidationError(f"Invalid repository owner name: {ref.owner}", error_code="INVALID_OWNER")

        if not self._is_valid_name(ref.repo):
            self.log_security_event("invalid_repository_name", context)
            raise ValidationError(f"Invalid repository name: {ref.repo}", error_code="INVALID_REPOSITORY")

        if ref.owner.lower() in RESERVED_NAMES or ref.repo.lower() in RESERVED_NAMES:
            self.log_security_event("reserved_name", context)
            raise ValidationError("Repository uses reserved names", error_code="RESERVED_NAME")

        return ref

    @staticmethod
    def _is_valid_name(name: str) -> bool:
        if not name or len(name) > MAX_NAME_LENGTH:
            return False
        if not NAME_PATTERN.match(name):
            return False
        return not DOUBLED_SEPARATOR.search(name)

    def validate_owner_repo(self, owner: str, repo: str, user_id: Optional[str] = None) -> RepositoryReference:
        """Validate an owner/repo pair that arrived as separate request fields."""
        ref = RepositoryReference.of(owner, repo)
        return self.validate_repository_components(ref, user_id=user_id, raw_input=f"{owner}/{repo}")

    # =========================================================================
    # Branches and paths
    # =========================================================================

    def validate_branch_name(self, name: str) -> str:
        if name is None or not name.strip():
            raise ValidationError("Branch name cannot be empty", error_code="INVALID_BRANCH")

        if len(name) > MAX_BRANCH_LENGTH:
            raise ValidationError("Branch name is too long", error_code="INVALID_BRANCH")

        for pattern, reason in BRANCH_FORBIDDEN:
            if pattern.search(name):
                raise ValidationError(
                    f"Invalid branch name: {name}",
                    error_code="INVALID_BRANCH",
                    errors={"branch": [f"Branch name {reason}"]},
                )
        return name

    def validate_file_path(self, path: str, user_id: Optional[str] = None) -> str:
        if path is None or not path.strip():
            raise ValidationError("File path cannot be empty", error_code="INVALID_PATH")

        if len(path) > MAX_PATH_LENGTH:
            raise ValidationError("File path is too long", error_code="INVALID_PATH")

        if path.startswith("/") or ".." in path.split("/"):
            self.log_security_event("path_traversal", {"path": path, "user_id": user_id})
            raise ValidationError(f"Invalid file path: {path}", error_code="INVALID_PATH")

        if re.search(r"[\x00-\x1f\x7f]", path):
            self.log_security_event("control_characters_in_path", {"path": path, "user_id": user_id})
            raise ValidationError("File path contains control characters", error_code="INVALID_PATH")

        return path

    # =========================================================================
    # Resource policy
    # =========================================================================

    def validate_repository_size(self, size_bytes: int) -> None:
        max_size = self.settings.max_repository_size
        if size_bytes > max_size:
            max_mb = round(max_size / 1024 / 1024, 1)
            current_mb = round(size_bytes / 1024 / 1024, 1)
            raise ResourceLimitError(
                f"Repository size ({current_mb}MB) exceeds maximum allowed size ({max_mb}MB)",
                error_code="REPOSITORY_TOO_LARGE",
                hint="reduce_scope",
            )

    def validate_file_count(self, file_count: int) -> None:
        max_files = self.settings.max_files_per_repo
        if file_count > max_files:
            raise ResourceLimitError(
                f"Repository contains too many files ({file_count}). Maximum allowed: {max_files}",
                error_code="TOO_MANY_FILES",
                hint="reduce_scope",
            )

    def validate_rate_limit(self, user_id: str) -> None:
        """
        Consume one request from the user's budget.

        Raises:
            ResourceLimitError: RATE_LIMIT_EXCEEDED with retry_after seconds
        """
        if self.rate_limiter is None:
            return

        result = self.rate_limiter.hit(user_id)
        if result.allowed:
            return

        if result.window == "hour":
            minutes = max(1, math.ceil(result.retry_after / 60))
            message = f"Hourly rate limit exceeded. Try again in {minutes} minutes."
        else:
            message = f"Too many requests. Try again in {result.retry_after} seconds."

        logger.warning(
            f"Rate limit exceeded ({result.window} window, limit {result.limit})",
            extra={"user_id": user_id},
        )
        raise ResourceLimitError(
            message,
            error_code="RATE_LIMIT_EXCEEDED",
            retry_after=result.retry_after,
            hint="wait",
        )

    # =========================================================================
    # Content and audit
    # =========================================================================

    def sanitize_file_content(self, content: str) -> str:
        """Strip NUL and other non-text control bytes; enforce the size ceiling."""
        content = NON_TEXT_CONTROL.sub("", content)

        if len(content.encode("utf-8")) > self.settings.max_repository_size:
            raise ResourceLimitError(
                "Content size exceeds maximum allowed size",
                error_code="CONTENT_TOO_LARGE",
                hint="reduce_scope",
            )
        return content

    def log_security_event(self, event: str, context: Optional[Dict[str, Any]] = None) -> None:
        payload = dict(context or {})
        payload.update({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        })
        security_logger.warning(
            f"GitHub Security Event: {event} {json.dumps(payload, default=str, sort_keys=True)}",
            extra={"user_id": payload.get("user_id") or ""},
        )
