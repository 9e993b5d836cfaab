"""End-to-end tests of the /thinktest endpoints with faked GitHub, Redis and Supabase."""

from types import SimpleNamespace

import httpx
import pytest
from fastapi.testclient import TestClient

from thinktest.core.config import Settings, get_settings
from thinktest.dependencies import (
    get_current_user_id,
    get_github_client,
    get_rate_limiter,
    get_repository_cache,
    get_test_generation_service,
    get_user_supabase,
    verify_auth,
)
from thinktest.main import app
from thinktest.services.github.cache import RepositoryCache
from thinktest.services.github.client import GitHubClient
from thinktest.services.github.rate_limiter import GitHubRateLimiter
from thinktest.services.test_generation import TestGenerationService

RATE_LIMIT_PER_MINUTE = 5


class FakeChat:
    model = "gpt-4o-mini"

    async def complete(self, messages):
        return "<?php // provider tests"


@pytest.fixture
def api_settings() -> Settings:
    return Settings(
        github_api_token="test-token",
        rate_limit_requests_per_minute=RATE_LIMIT_PER_MINUTE,
        rate_limit_requests_per_hour=100,
    )


@pytest.fixture
def api(api_settings, github, redis_client, supabase):
    gh_client = GitHubClient(api_settings, transport=httpx.MockTransport(github))
    limiter = GitHubRateLimiter(redis_client, per_minute=RATE_LIMIT_PER_MINUTE, per_hour=100)
    cache = RepositoryCache(redis_client, api_settings)

    app.dependency_overrides[get_settings] = lambda: api_settings
    app.dependency_overrides[get_current_user_id] = lambda: "user-1"
    app.dependency_overrides[get_user_supabase] = lambda: supabase
    app.dependency_overrides[get_github_client] = lambda: gh_client
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    app.dependency_overrides[get_repository_cache] = lambda: cache
    app.dependency_overrides[get_test_generation_service] = lambda: TestGenerationService(lambda provider: FakeChat())

    yield TestClient(app)
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Health, auth, rate limiting
# ---------------------------------------------------------------------------

def test_health():
    response = TestClient(app).get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_requires_authentication(redis_client):
    app.dependency_overrides[get_rate_limiter] = lambda: GitHubRateLimiter(redis_client)
    try:
        response = TestClient(app).post("/thinktest/github/validate", json={"repository_url": "octocat/Hello-World"})
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "NOT_AUTHENTICATED"


def test_rate_limit_exceeded(api, github):
    github.add_repository("octocat", "Hello-World")
    for _ in range(RATE_LIMIT_PER_MINUTE):
        assert api.post("/thinktest/github/validate", json={"repository_url": "octocat/Hello-World"}).status_code == 200

    response = api.post("/thinktest/github/validate", json={"repository_url": "octocat/Hello-World"})
    assert response.status_code == 429
    body = response.json()
    assert body["error_code"] == "RATE_LIMIT_EXCEEDED"
    assert body["retry_possible"] is True
    assert body["hint"] == "wait"
    assert 1 <= body["retry_after"] <= 60
    assert response.headers["Retry-After"] == str(body["retry_after"])
    # A rejected request never reaches GitHub
    assert len(github.requests) == RATE_LIMIT_PER_MINUTE


def test_malformed_body(api):
    response = api.post("/thinktest/github/branches", json={"owner": "octocat"})
    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "VALIDATION_ERROR"
    assert "repo" in body["errors"]


# ---------------------------------------------------------------------------
# Validate
# ---------------------------------------------------------------------------

def test_validate_repository(api, github):
    github.add_repository("octocat", "Hello-World", size_kb=108, default_branch="master")

    response = api.post("/thinktest/github/validate", json={"repository_url": "https://github.com/octocat/Hello-World"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    repository = body["repository"]
    assert repository["owner"] == "octocat"
    assert repository["repo"] == "Hello-World"
    assert repository["full_name"] == "octocat/Hello-World"
    assert repository["url"] == "https://github.com/octocat/Hello-World"
    assert repository["default_branch"] == "master"
    assert repository["size"] == 108 * 1024


def test_validate_missing_repository(api):
    response = api.post("/thinktest/github/validate", json={"repository_url": "octocat/does-not-exist"})
    assert response.status_code == 404
    assert response.json()["error_code"] == "GITHUB_NOT_FOUND"


def test_validate_rejects_private_host(api, github):
    response = api.post("/thinktest/github/validate", json={"repository_url": "https://127.0.0.1/octocat/repo"})
    assert response.status_code == 422
    assert response.json()["error_code"] == "SUSPICIOUS_URL"
    assert github.requests == []


def test_provider_errors_carry_diagnostic(api, github):
    github.add("/repos/octocat/Hello-World", lambda r: httpx.Response(200, text="<html><title>Sign in</title>"))
    response = api.post("/thinktest/github/validate", json={"repository_url": "octocat/Hello-World"})
    assert response.status_code == 500
    body = response.json()
    assert body["error_code"] == "GITHUB_MALFORMED_RESPONSE"
    assert body["diagnostic"]


# ---------------------------------------------------------------------------
# Branches and tree
# ---------------------------------------------------------------------------

def test_branches_cached(api, github):
    github.add("/repos/octocat/Hello-World/branches", [{"name": "master", "commit": {"sha": "7fd1a60"}}])

    first = api.post("/thinktest/github/branches", json={"owner": "octocat", "repo": "Hello-World"}).json()
    second = api.post("/thinktest/github/branches", json={"owner": "octocat", "repo": "Hello-World"}).json()

    assert first["branches"] == [{"name": "master", "commit_sha": "7fd1a60", "commit_url": None, "protected": False}]
    assert first["cached"] is False
    assert second["cached"] is True
    assert second["stale"] is False
    assert second["branches"] == first["branches"]
    assert len(github.requests) == 1


def test_tree(api, hello_dolly):
    response = api.post("/thinktest/github/tree", json={"owner": "WordPress", "repo": "hello-dolly", "branch": "trunk"})

    assert response.status_code == 200
    body = response.json()
    assert [e["path"] for e in body["tree"]] == ["composer.json", "hello.php", "readme.txt"]
    assert body["cached"] is False


def test_tree_not_recursive_bypasses_cache(api, hello_dolly):
    payload = {"owner": "WordPress", "repo": "hello-dolly", "branch": "trunk", "recursive": False}
    api.post("/thinktest/github/tree", json=payload)
    body = api.post("/thinktest/github/tree", json=payload).json()

    assert body["cached"] is False
    assert "recursive" not in hello_dolly.requests[-1].url.params


def test_tree_invalid_branch(api):
    response = api.post("/thinktest/github/tree", json={"owner": "o", "repo": "r", "branch": "a..b"})
    assert response.status_code == 422
    assert response.json()["error_code"] == "INVALID_BRANCH"


# ---------------------------------------------------------------------------
# File and browse
# ---------------------------------------------------------------------------

def test_file(api, hello_dolly):
    response = api.post(
        "/thinktest/github/file",
        json={"owner": "WordPress", "repo": "hello-dolly", "path": "hello.php", "branch": "trunk"},
    )
    assert response.status_code == 200
    file = response.json()["file"]
    assert file["path"] == "hello.php"
    assert "Plugin Name: Hello Dolly" in file["content"]


def test_file_path_traversal(api, github):
    response = api.post("/thinktest/github/file", json={"owner": "o", "repo": "r", "path": "../wp-config.php"})
    assert response.status_code == 422
    assert response.json()["error_code"] == "INVALID_PATH"
    assert github.requests == []


def test_browse_root(api, github):
    github.add("/repos/o/r/contents", [{"name": "plugin.php", "path": "plugin.php", "type": "file"}])
    body = api.post("/thinktest/github/browse", json={"owner": "o", "repo": "r"}).json()
    assert body["success"] is True
    assert [c["name"] for c in body["contents"]] == ["plugin.php"]


# ---------------------------------------------------------------------------
# Process
# ---------------------------------------------------------------------------

def test_process(api, hello_dolly, supabase):
    response = api.post(
        "/thinktest/github/process",
        json={"owner": "WordPress", "repo": "hello-dolly", "branch": "trunk"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["provider"] == "mock"
    assert body["framework"] == "phpunit"
    assert body["model"] == "mock-model"
    assert "test_registers_admin_notices_action" in body["tests"]
    assert body["repository"]["file_count"] == 3
    assert body["repository"]["plugin_structure"]["has_manifest"] is True
    assert body["repository"]["processing_status"] == "completed"
    assert [h["name"] for h in body["analysis"]["hooks"]] == ["admin_notices", "admin_head"]

    assert len(supabase.rows("plugin_analysis_results")) == 1
    conversations = supabase.rows("ai_conversation_states")
    assert [c["conversation_id"] for c in conversations] == [body["conversation_id"]]
    assert conversations[0]["github_repository_id"] == body["repository"]["record_id"]


def test_reprocess_with_other_provider(api, hello_dolly, supabase):
    payload = {"owner": "WordPress", "repo": "hello-dolly", "branch": "trunk"}
    first = api.post("/thinktest/github/process", json={**payload, "provider": "mock"}).json()
    second = api.post("/thinktest/github/process", json={**payload, "provider": "openai", "framework": "pest"}).json()

    assert second["provider"] == "openai"
    assert second["model"] == "gpt-4o-mini"
    assert second["tests"] == "<?php // provider tests"
    assert first["repository"]["record_id"] == second["repository"]["record_id"]
    assert first["conversation_id"] != second["conversation_id"]

    assert len(supabase.rows("github_repositories")) == 1
    assert len(supabase.rows("plugin_analysis_results")) == 1
    assert [c["provider"] for c in supabase.rows("ai_conversation_states")] == ["mock", "openai"]


def test_process_invalid_provider(api):
    response = api.post(
        "/thinktest/github/process",
        json={"owner": "o", "repo": "r", "branch": "main", "provider": "Bad Provider!"},
    )
    assert response.status_code == 422
    assert "provider" in response.json()["errors"]


def test_process_failure_marks_record(api, github, supabase):
    github.add_repository("acme", "empty")
    github.add("/repos/acme/empty/git/trees/main", lambda r: httpx.Response(409, json={"message": "Git Repository is empty."}))

    response = api.post("/thinktest/github/process", json={"owner": "acme", "repo": "empty", "branch": "main"})

    assert response.status_code == 404
    assert response.json()["error_code"] == "GITHUB_EMPTY_REPOSITORY"
    assert supabase.rows("github_repositories")[0]["processing_status"] == "failed"
    assert supabase.rows("ai_conversation_states") == []


# ---------------------------------------------------------------------------
# Single-file test generation
# ---------------------------------------------------------------------------

SINGLE_FILE = {"owner": "WordPress", "repo": "hello-dolly", "path": "hello.php", "branch": "trunk"}


def test_generate_single_file(api, hello_dolly, supabase):
    response = api.post("/thinktest/generate-single-file", json=SINGLE_FILE)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["provider"] == "mock"
    assert body["framework"] == "phpunit"
    assert "test_registers_admin_notices_action" in body["tests"]
    assert body["analysis"]["is_single_file"] is True
    assert body["analysis"]["file_path"] == "hello.php"
    assert body["file"]["path"] == "hello.php"
    assert body["file"]["branch"] == "trunk"
    assert body["file_context"]["repository"]["full_name"] == "WordPress/hello-dolly"

    records = supabase.rows("github_repositories")
    assert [(r["full_name"], r["branch"]) for r in records] == [("WordPress/hello-dolly", "trunk")]
    assert body["repository"]["record_id"] == records[0]["id"]

    generations = supabase.rows("github_file_test_generations")
    assert len(generations) == 1
    generation = generations[0]
    assert generation["id"] == body["generation_id"]
    assert generation["file_name"] == "hello.php"
    assert generation["generation_status"] == "completed"
    assert generation["generated_tests"] == body["tests"]
    assert generation["ai_conversation_id"] == body["conversation_id"]
    assert generation["file_content_hash"] == body["file"]["content_hash"]
    assert [c["conversation_id"] for c in supabase.rows("ai_conversation_states")] == [body["conversation_id"]]


def test_single_file_defaults_to_repository_branch(api, hello_dolly):
    response = api.post(
        "/thinktest/generate-single-file",
        json={"owner": "WordPress", "repo": "hello-dolly", "file_path": "hello.php"},
    )
    assert response.status_code == 200
    assert response.json()["file"]["branch"] == "trunk"
    assert hello_dolly.requests[-1].url.params["ref"] == "trunk"


def test_single_file_regeneration_updates_row(api, hello_dolly, supabase):
    first = api.post("/thinktest/generate-single-file", json=SINGLE_FILE).json()
    second = api.post(
        "/thinktest/generate-single-file",
        json={**SINGLE_FILE, "provider": "openai", "framework": "pest"},
    ).json()

    assert first["generation_id"] == second["generation_id"]
    generations = supabase.rows("github_file_test_generations")
    assert len(generations) == 1
    assert generations[0]["provider"] == "openai"
    assert generations[0]["framework"] == "pest"
    assert generations[0]["generated_tests"] == "<?php // provider tests"
    assert len(supabase.rows("github_repositories")) == 1
    assert len(supabase.rows("ai_conversation_states")) == 2


def test_single_file_generation_failure_marks_row(api, hello_dolly, supabase):
    def broken_factory(provider):
        raise RuntimeError("provider exploded")

    app.dependency_overrides[get_test_generation_service] = lambda: TestGenerationService(broken_factory)
    response = api.post("/thinktest/generate-single-file", json={**SINGLE_FILE, "provider": "openai"})

    assert response.status_code == 500
    assert response.json()["error_code"] == "GENERATION_FAILED"
    generation = supabase.rows("github_file_test_generations")[0]
    assert generation["generation_status"] == "failed"
    assert generation["generation_error"] == "provider exploded"
    assert supabase.rows("ai_conversation_states") == []


def test_single_file_path_traversal(api, github, supabase):
    response = api.post(
        "/thinktest/generate-single-file",
        json={"owner": "o", "repo": "r", "path": "../../wp-config.php"},
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "INVALID_PATH"
    assert github.requests == []
    assert supabase.rows("github_file_test_generations") == []


def test_single_file_is_rate_limited(api, hello_dolly):
    for _ in range(RATE_LIMIT_PER_MINUTE):
        assert api.post("/thinktest/generate-single-file", json=SINGLE_FILE).status_code == 200
    response = api.post("/thinktest/generate-single-file", json=SINGLE_FILE)
    assert response.status_code == 429


# ---------------------------------------------------------------------------
# Debug
# ---------------------------------------------------------------------------

def _session(role=None):
    app_metadata = {"role": role} if role else {}
    return SimpleNamespace(user=SimpleNamespace(id="user-1", app_metadata=app_metadata))


def test_debug(api, github):
    app.dependency_overrides[verify_auth] = lambda: _session("admin")
    github.add("/user", {"login": "thinktest-bot"})
    github.add("/rate_limit", {"rate": {"limit": 5000, "remaining": 4999, "reset": 1700000000}})

    body = api.get("/thinktest/github/debug").json()

    assert body["success"] is True
    assert body["token"]["valid"] is True
    assert body["token"]["user"] == "thinktest-bot"
    assert body["rate_limit"] == {"limit": 5000, "remaining": 4999, "reset": 1700000000}
    assert body["configuration"]["token_configured"] is True
    assert "github_api_token" not in body["configuration"]
    assert "test-token" not in str(body)


def test_debug_requires_admin(api, github):
    app.dependency_overrides[verify_auth] = lambda: _session()

    response = api.get("/thinktest/github/debug")

    assert response.status_code == 403
    assert response.json()["error_code"] == "PERMISSION_DENIED"
    assert github.requests == []


def test_debug_not_rate_limited(api, github):
    app.dependency_overrides[verify_auth] = lambda: _session("admin")
    github.add("/rate_limit", {"rate": {"limit": 5000, "remaining": 4999, "reset": 1700000000}})

    for _ in range(RATE_LIMIT_PER_MINUTE + 2):
        assert api.get("/thinktest/github/debug").status_code == 200

    # The user's budget is untouched
    github.add_repository("octocat", "Hello-World")
    assert api.post("/thinktest/github/validate", json={"repository_url": "octocat/Hello-World"}).status_code == 200
