"""
Repository processing pipeline.

Turns a validated owner/repo/branch into one flattened plugin payload:
record lookup -> size check -> filtered tree -> file-count and total-size
checks -> bounded concurrent file fetch -> aggregation -> structure detection.
The github_repositories record tracks the run and ends completed or failed.
"""

import asyncio
import hashlib
import logging
from typing import List, Optional, Tuple

from supabase import Client

from thinktest.exceptions import (
    AppException,
    NotFoundError,
    ProcessingError,
    TransportError,
    ValidationError,
)
from thinktest.schemas.github import ProcessedRepository, TreeEntry
from thinktest.services.db.github_repositories import GitHubRepositoryService
from thinktest.services.github.client import GitHubClient
from thinktest.services.github.structure import detect_plugin_structure
from thinktest.services.github.tree import file_entries
from thinktest.services.github.validation import GitHubValidationService

logger = logging.getLogger(__name__)

FILE_HEADER = "\n\n// File: {path}\n"

# Per-file failures that only skip the file; anything else aborts the run
SKIPPABLE_ERRORS = (NotFoundError, ValidationError, TransportError)


class RepositoryProcessor:
    """Fetches and flattens a plugin repository for one user."""

    def __init__(
        self,
        client: GitHubClient,
        validation: GitHubValidationService,
        supabase: Client,
        concurrency: int = 8,
    ):
        self.client = client
        self.validation = validation
        self.supabase = supabase
        self.concurrency = max(1, concurrency)

    async def process(self, user_id: str, owner: str, repo: str, branch: str) -> ProcessedRepository:
        ref = self.validation.validate_owner_repo(owner, repo, user_id=user_id)
        self.validation.validate_branch_name(branch)
        records = GitHubRepositoryService(self.supabase, user_id)

        record = records.get_record(ref.full_name, branch)
        if record is None:
            info = await self.client.get_repository_info(ref.owner, ref.repo)
            record = records.upsert_pending(ref, branch, info)
        record_id = record["id"]
        records.mark_processing(record_id)

        logger.info(f"Processing {ref.full_name}@{branch}", extra={"user_id": user_id})

        try:
            self.validation.validate_repository_size(int(record.get("size_bytes") or 0))

            tree = await self.client.get_repository_tree(ref.owner, ref.repo, branch, recursive=True)
            files = file_entries(tree)
            self.validation.validate_file_count(len(files))
            self.validation.validate_repository_size(sum(entry.size for entry in files))

            fetched, skipped = await self._fetch_files(ref.owner, ref.repo, branch, files)
            if not fetched:
                raise ProcessingError(
                    "No supported files found in repository",
                    error_code="NO_SUPPORTED_FILES",
                    status_code=422,
                )

            content = "".join(FILE_HEADER.format(path=path) + text for path, text in fetched)
            content = self.validation.sanitize_file_content(content)
            file_hash = hashlib.sha256(content.encode("utf-8")).hexdigest()

            structure = detect_plugin_structure(fetched)
            records.mark_completed(record_id, len(fetched), structure)

        except asyncio.CancelledError:
            logger.warning(f"Processing {ref.full_name}@{branch} cancelled", extra={"user_id": user_id})
            records.mark_failed(record_id, "Processing cancelled")
            raise
        except AppException as e:
            records.mark_failed(record_id, e.message)
            raise
        except Exception as e:
            logger.exception(f"Processing {ref.full_name}@{branch} failed", extra={"user_id": user_id})
            records.mark_failed(record_id, str(e) or type(e).__name__)
            raise ProcessingError(f"Repository processing failed: {e}") from e

        logger.info(
            f"Processed {ref.full_name}@{branch}: {len(fetched)} files, {len(skipped)} skipped",
            extra={"user_id": user_id},
        )

        return ProcessedRepository(
            filename=f"{ref.full_name}@{branch}",
            content=content,
            file_hash=file_hash,
            size=len(content.encode("utf-8")),
            file_count=len(fetched),
            processed_files=[path for path, _ in fetched],
            skipped_files=skipped,
            plugin_structure=structure,
            repository=ref,
            branch=branch,
            record=records.get_by_id(record_id) or record,
        )

    async def _fetch_files(
        self, owner: str, repo: str, branch: str, files: List[TreeEntry]
    ) -> Tuple[List[Tuple[str, str]], List[dict]]:
        """Fetch file contents with bounded concurrency, keeping tree order."""
        semaphore = asyncio.Semaphore(self.concurrency)
        skipped: List[dict] = []

        async def fetch_one(entry: TreeEntry) -> Optional[Tuple[str, str]]:
            async with semaphore:
                try:
                    file = await self.client.get_file_content(owner, repo, entry.path, branch)
                except SKIPPABLE_ERRORS as e:
                    logger.warning(f"Skipping {entry.path}: {e.error_code}")
                    skipped.append({"path": entry.path, "error_code": e.error_code, "reason": e.message})
                    return None
                return entry.path, file.content

        tasks = [asyncio.create_task(fetch_one(entry)) for entry in files]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        fetched = [result for result in results if result is not None]
        skipped.sort(key=lambda item: item["path"])
        return fetched, skipped
