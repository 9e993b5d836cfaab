"""
Pydantic schemas for GitHub repository ingestion.
"""

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# =============================================================================
# Domain models
# =============================================================================

class RepositoryReference(BaseModel):
    """A validated owner/repo pair. Only the validation service builds these."""
    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str
    full_name: str
    url: str

    @classmethod
    def of(cls, owner: str, repo: str) -> "RepositoryReference":
        return cls(
            owner=owner,
            repo=repo,
            full_name=f"{owner}/{repo}",
            url=f"https://github.com/{owner}/{repo}",
        )


class RepositoryInfo(BaseModel):
    """Repository metadata. ``size`` is in bytes."""
    id: int
    name: str
    full_name: str
    description: str | None = None
    private: bool = False
    default_branch: str = "main"
    size: int = 0
    language: str | None = None
    clone_url: str | None = None
    html_url: str | None = None
    updated_at: str | None = None


class BranchDescriptor(BaseModel):
    name: str
    commit_sha: str | None = None
    commit_url: str | None = None
    protected: bool = False


class TreeEntry(BaseModel):
    """A file or directory in a flattened repository tree."""
    name: str
    path: str
    type: Literal["file", "dir"]
    sha: str | None = None
    size: int = 0
    url: str | None = None
    html_url: str | None = None
    download_url: str | None = None


class FileContent(BaseModel):
    """A decoded file. Never persisted."""
    name: str
    path: str
    content: str
    size: int = 0
    sha: str | None = None
    encoding: str | None = None
    url: str | None = None
    html_url: str | None = None
    download_url: str | None = None


class ContentItem(BaseModel):
    """One entry of a single-directory listing."""
    name: str
    path: str
    type: str
    size: int = 0
    sha: str | None = None
    url: str | None = None
    html_url: str | None = None
    download_url: str | None = None


class RateLimitResult(BaseModel):
    """Outcome of one rate limiter hit. An exhausted budget is not an error."""
    allowed: bool
    window: Literal["minute", "hour"] | None = None
    limit: int
    remaining: int
    retry_after: int = 0


class CachedResult(BaseModel):
    """A value read through the result cache, with its freshness."""
    data: Any
    cached: bool = False
    stale: bool = False
    age_seconds: int | None = None
    warning: str | None = None


class ProcessedRepository(BaseModel):
    """Aggregated plugin payload produced by the repository processor."""
    filename: str
    content: str
    file_hash: str
    size: int
    file_count: int
    processed_files: list[str]
    skipped_files: list[dict]
    plugin_structure: dict
    repository: RepositoryReference
    branch: str
    record: dict


# =============================================================================
# Request models
# =============================================================================

class ValidateRepositoryRequest(BaseModel):
    repository_url: str = Field(..., max_length=2000)


class RepositoryRequest(BaseModel):
    owner: str = Field(..., max_length=100)
    repo: str = Field(..., max_length=100)


class TreeRequest(RepositoryRequest):
    branch: str = Field(..., max_length=250)
    recursive: bool = True


class FileRequest(RepositoryRequest):
    path: str = Field(..., max_length=1000)
    branch: str | None = Field(None, max_length=250)


class BrowseRequest(RepositoryRequest):
    path: str = Field("", max_length=1000)
    branch: str | None = Field(None, max_length=250)


class ProcessRepositoryRequest(RepositoryRequest):
    branch: str = Field(..., max_length=250)
    provider: str = Field("mock", pattern=r"^[a-z0-9_-]{1,32}$")
    framework: Literal["phpunit", "pest"] = "phpunit"


class SingleFileTestRequest(RepositoryRequest):
    """One repository file to generate tests for; ``branch`` defaults to the repository's default branch."""
    path: str = Field(..., max_length=1000, validation_alias=AliasChoices("path", "file_path"))
    branch: str | None = Field(None, max_length=250)
    provider: str = Field("mock", pattern=r"^[a-z0-9_-]{1,32}$")
    framework: Literal["phpunit", "pest"] = "phpunit"
