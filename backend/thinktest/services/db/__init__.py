"""Database service modules."""

from .analysis_results import AnalysisResultService
from .conversations import ConversationService
from .file_test_generations import FileTestGenerationService
from .github_repositories import GitHubRepositoryService

__all__ = [
    "AnalysisResultService",
    "ConversationService",
    "FileTestGenerationService",
    "GitHubRepositoryService",
]
