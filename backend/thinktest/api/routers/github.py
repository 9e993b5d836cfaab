"""
GitHub repository ingestion endpoints.

Ingestion and generation routes require an authenticated user and consume one
request from the user's GitHub rate-limit budget; the diagnostic route is for
administrators and is not rate limited. Errors are raised as AppException
subclasses and rendered by the global handlers.
"""

import asyncio
import hashlib
import logging

from fastapi import APIRouter, Depends
from supabase import Client

from thinktest.core.config import Settings, get_settings
from thinktest.dependencies import (
    enforce_rate_limit,
    get_current_user_id,
    get_github_client,
    get_plugin_analyzer,
    get_repository_cache,
    get_repository_processor,
    get_test_generation_service,
    get_user_supabase,
    get_validation_service,
    require_admin,
)
from thinktest.exceptions import AppException, ProcessingError
from thinktest.schemas.github import (
    BrowseRequest,
    CachedResult,
    FileRequest,
    ProcessRepositoryRequest,
    RepositoryRequest,
    SingleFileTestRequest,
    TreeRequest,
    ValidateRepositoryRequest,
)
from thinktest.services.analysis import PluginAnalyzer
from thinktest.services.db import (
    AnalysisResultService,
    ConversationService,
    FileTestGenerationService,
    GitHubRepositoryService,
)
from thinktest.services.github.cache import RepositoryCache
from thinktest.services.github.client import GitHubClient
from thinktest.services.github.processor import RepositoryProcessor
from thinktest.services.github.validation import GitHubValidationService
from thinktest.services.test_generation import TestGenerationService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/github",
    tags=["github"],
    dependencies=[Depends(enforce_rate_limit)],
)


def _cached_response(key: str, result: CachedResult) -> dict:
    return {
        "success": True,
        key: result.data,
        "cached": result.cached,
        "stale": result.stale,
        "cache_age_seconds": result.age_seconds,
        "warning": result.warning,
    }


@router.post("/validate")
async def validate_repository(
    body: ValidateRepositoryRequest,
    user_id: str = Depends(get_current_user_id),
    validation: GitHubValidationService = Depends(get_validation_service),
    client: GitHubClient = Depends(get_github_client),
):
    """
    Validate a repository URL and return its metadata.

    Accepts https://github.com/owner/repo, git@github.com:owner/repo.git or owner/repo.
    An inaccessible or missing repository is a 404.
    """
    ref = validation.validate_repository_url(body.repository_url, user_id=user_id)
    info = await client.get_repository_info(ref.owner, ref.repo)

    logger.info(f"Validated repository {ref.full_name}", extra={"user_id": user_id})
    return {
        "success": True,
        "repository": {**info.model_dump(), **ref.model_dump()},
    }


@router.post("/branches")
async def get_branches(
    body: RepositoryRequest,
    user_id: str = Depends(get_current_user_id),
    validation: GitHubValidationService = Depends(get_validation_service),
    client: GitHubClient = Depends(get_github_client),
    cache: RepositoryCache = Depends(get_repository_cache),
):
    """List branches, served from cache when fresh or when GitHub is unavailable."""
    ref = validation.validate_owner_repo(body.owner, body.repo, user_id=user_id)
    result = await cache.get_branches(
        ref.owner, ref.repo,
        lambda: client.get_repository_branches(ref.owner, ref.repo),
    )
    return _cached_response("branches", result)


@router.post("/tree")
async def get_tree(
    body: TreeRequest,
    user_id: str = Depends(get_current_user_id),
    validation: GitHubValidationService = Depends(get_validation_service),
    client: GitHubClient = Depends(get_github_client),
    cache: RepositoryCache = Depends(get_repository_cache),
):
    """
    Filtered file tree of a branch.

    Recursive trees go through the cache; a top-level listing is always fetched.
    """
    ref = validation.validate_owner_repo(body.owner, body.repo, user_id=user_id)
    branch = validation.validate_branch_name(body.branch)

    def fetch():
        return client.get_repository_tree(ref.owner, ref.repo, branch, recursive=body.recursive)

    if body.recursive:
        result = await cache.get_tree(ref.owner, ref.repo, branch, fetch)
    else:
        tree = await fetch()
        result = CachedResult(data=[entry.model_dump() for entry in tree], age_seconds=0)

    return _cached_response("tree", result)


@router.post("/file")
async def get_file(
    body: FileRequest,
    user_id: str = Depends(get_current_user_id),
    validation: GitHubValidationService = Depends(get_validation_service),
    client: GitHubClient = Depends(get_github_client),
):
    """Decoded content of one file."""
    ref = validation.validate_owner_repo(body.owner, body.repo, user_id=user_id)
    path = validation.validate_file_path(body.path, user_id=user_id)
    branch = validation.validate_branch_name(body.branch) if body.branch else None

    file = await client.get_file_content(ref.owner, ref.repo, path, branch)
    file.content = validation.sanitize_file_content(file.content)
    return {"success": True, "file": file.model_dump()}


@router.post("/browse")
async def browse_contents(
    body: BrowseRequest,
    user_id: str = Depends(get_current_user_id),
    validation: GitHubValidationService = Depends(get_validation_service),
    client: GitHubClient = Depends(get_github_client),
):
    """Single-directory listing (repository root when ``path`` is empty)."""
    ref = validation.validate_owner_repo(body.owner, body.repo, user_id=user_id)
    path = validation.validate_file_path(body.path, user_id=user_id) if body.path else ""
    branch = validation.validate_branch_name(body.branch) if body.branch else None

    contents = await client.get_repository_contents(ref.owner, ref.repo, path, branch)
    return {"success": True, "contents": [item.model_dump() for item in contents]}


@router.post("/process")
async def process_repository(
    body: ProcessRepositoryRequest,
    user_id: str = Depends(get_current_user_id),
    processor: RepositoryProcessor = Depends(get_repository_processor),
    analyzer: PluginAnalyzer = Depends(get_plugin_analyzer),
    generator: TestGenerationService = Depends(get_test_generation_service),
    supabase: Client = Depends(get_user_supabase),
):
    """
    Ingest a repository branch, analyze it and generate tests.

    Re-processing the same (repository, branch) reuses one record; every call
    starts a new conversation with the requested provider.
    """
    processed = await processor.process(user_id, body.owner, body.repo, body.branch)

    analysis = analyzer.analyze(processed.content, processed.filename)
    analysis_record = AnalysisResultService(supabase, user_id).save(
        processed.filename, processed.file_hash, analysis
    )

    generation = await generator.generate(
        processed.content,
        {"provider": body.provider, "framework": body.framework},
        analysis=analysis,
    )

    conversation = ConversationService(supabase, user_id).create(
        provider=generation["provider"],
        framework=body.framework,
        github_repository_id=processed.record.get("id"),
        analysis_result_id=analysis_record.get("id"),
        generated_tests=generation["tests"],
        model=generation["model"],
    )

    return {
        "success": True,
        "conversation_id": conversation["conversation_id"],
        "analysis": analysis,
        "repository": {
            **processed.repository.model_dump(),
            "branch": processed.branch,
            "filename": processed.filename,
            "file_hash": processed.file_hash,
            "size": processed.size,
            "file_count": processed.file_count,
            "processed_files": processed.processed_files,
            "skipped_files": processed.skipped_files,
            "plugin_structure": processed.plugin_structure,
            "record_id": processed.record.get("id"),
            "processing_status": processed.record.get("processing_status"),
        },
        "provider": generation["provider"],
        "framework": body.framework,
        "model": generation["model"],
        "tests": generation["tests"],
    }


# =============================================================================
# Single-file test generation
# =============================================================================

generation_router = APIRouter(
    tags=["github"],
    dependencies=[Depends(enforce_rate_limit)],
)


@generation_router.post("/generate-single-file")
async def generate_single_file_tests(
    body: SingleFileTestRequest,
    user_id: str = Depends(get_current_user_id),
    validation: GitHubValidationService = Depends(get_validation_service),
    client: GitHubClient = Depends(get_github_client),
    analyzer: PluginAnalyzer = Depends(get_plugin_analyzer),
    generator: TestGenerationService = Depends(get_test_generation_service),
    supabase: Client = Depends(get_user_supabase),
):
    """
    Generate tests for one file of a repository.

    The repository record for the branch is created when missing. One
    generation row is kept per (record, path, branch, content hash); generating
    again for unchanged content updates it with the latest provider and framework.
    """
    ref = validation.validate_owner_repo(body.owner, body.repo, user_id=user_id)
    path = validation.validate_file_path(body.path, user_id=user_id)
    branch = validation.validate_branch_name(body.branch) if body.branch else None

    records = GitHubRepositoryService(supabase, user_id)
    info = None
    if branch is None:
        info = await client.get_repository_info(ref.owner, ref.repo)
        branch = info.default_branch
    record = records.get_record(ref.full_name, branch)
    if record is None:
        info = info or await client.get_repository_info(ref.owner, ref.repo)
        record = records.upsert_pending(ref, branch, info)

    file = await client.get_file_content(ref.owner, ref.repo, path, branch)
    content = validation.sanitize_file_content(file.content)
    content_hash = hashlib.sha256(content.encode("utf-8")).hexdigest()

    generations = FileTestGenerationService(supabase, user_id)
    generation_row = generations.start(record["id"], file, branch, body.provider, body.framework, content_hash)
    generation_id = generation_row["id"]

    file_context = {
        "filename": file.name,
        "file_path": file.path,
        "repository": {"full_name": ref.full_name, "branch": branch},
    }
    try:
        generation = await generator.generate_for_single_file(
            content,
            {"provider": body.provider, "framework": body.framework},
            analyzer,
            file_context,
        )
    except asyncio.CancelledError:
        generations.mark_failed(generation_id, "Generation cancelled")
        raise
    except AppException as e:
        generations.mark_failed(generation_id, e.message)
        raise
    except Exception as e:
        logger.exception(f"Test generation for {ref.full_name}:{file.path} failed", extra={"user_id": user_id})
        generations.mark_failed(generation_id, str(e) or type(e).__name__)
        raise ProcessingError(f"Test generation failed: {e}", error_code="GENERATION_FAILED") from e

    conversation = ConversationService(supabase, user_id).create(
        provider=generation["provider"],
        framework=body.framework,
        github_repository_id=record["id"],
        analysis_result_id=None,
        generated_tests=generation["tests"],
        model=generation["model"],
    )
    generations.mark_completed(
        generation_id,
        generation["tests"],
        generation["analysis"],
        generation["model"],
        conversation["conversation_id"],
    )

    logger.info(f"Generated tests for {ref.full_name}:{file.path}@{branch}", extra={"user_id": user_id})
    return {
        "success": True,
        "conversation_id": conversation["conversation_id"],
        "generation_id": generation_id,
        "analysis": generation["analysis"],
        "file": {
            "name": file.name,
            "path": file.path,
            "sha": file.sha,
            "size": file.size,
            "branch": branch,
            "content_hash": content_hash,
        },
        "repository": {**ref.model_dump(), "branch": branch, "record_id": record["id"]},
        "file_context": generation["file_context"],
        "provider": generation["provider"],
        "framework": body.framework,
        "model": generation["model"],
        "tests": generation["tests"],
    }


# =============================================================================
# Admin diagnostics (outside the per-user rate limit)
# =============================================================================

admin_router = APIRouter(
    prefix="/github",
    tags=["github"],
    dependencies=[Depends(require_admin)],
)


@admin_router.get("/debug")
async def debug_github(
    client: GitHubClient = Depends(get_github_client),
    settings: Settings = Depends(get_settings),
):
    """Service credential health: token validity, GitHub quota and non-secret settings."""
    return {
        "success": True,
        "token": await client.verify_api_token(),
        "rate_limit": await client.get_rate_limit_info(),
        "configuration": settings.public_summary(),
    }
