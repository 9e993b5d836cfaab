"""Shared fixtures: settings, fake Redis, an in-memory Supabase and a scripted GitHub API."""

import base64
import os
import tempfile
import uuid
from copy import deepcopy
from typing import Any, Callable, Dict, List, Optional

# Logs go to a throwaway directory; must be set before thinktest is imported
os.environ.setdefault("THINKTEST_LOG_DIR", tempfile.mkdtemp(prefix="thinktest-logs-"))

import fakeredis
import httpx
import pytest

from thinktest.core.config import Settings
from thinktest.services.github.client import GitHubClient
from thinktest.services.github.validation import GitHubValidationService


# ---------------------------------------------------------------------------
# Settings and Redis
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> Settings:
    return Settings(
        github_api_token="test-token",
        github_api_url="https://api.github.com",
        github_timeout=5,
        rate_limit_requests_per_minute=30,
        rate_limit_requests_per_hour=100,
    )


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def validation(settings) -> GitHubValidationService:
    return GitHubValidationService(settings, ip_address="203.0.113.7", user_agent="pytest")


# ---------------------------------------------------------------------------
# In-memory Supabase
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, data: List[dict]):
        self.data = data


class FakeQuery:
    """The subset of the PostgREST query builder the services use."""

    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.operation = "select"
        self.payload: Any = None
        self.on_conflict: Optional[str] = None
        self.filters: List[tuple] = []
        self.order_by: Optional[tuple] = None
        self.row_limit: Optional[int] = None

    def select(self, columns: str = "*"):
        self.operation = "select"
        return self

    def insert(self, row: dict):
        self.operation, self.payload = "insert", row
        return self

    def upsert(self, row: dict, on_conflict: Optional[str] = None):
        self.operation, self.payload, self.on_conflict = "upsert", row, on_conflict
        return self

    def update(self, values: dict):
        self.operation, self.payload = "update", values
        return self

    def delete(self):
        self.operation = "delete"
        return self

    def eq(self, column: str, value: Any):
        self.filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False):
        self.order_by = (column, desc)
        return self

    def limit(self, count: int):
        self.row_limit = count
        return self

    def _matches(self, row: dict) -> bool:
        return all(row.get(column) == value for column, value in self.filters)

    def execute(self) -> FakeResponse:
        rows = self.db.tables.setdefault(self.table, [])

        if self.operation == "insert":
            return FakeResponse([deepcopy(self.db.add_row(self.table, self.payload))])

        if self.operation == "upsert":
            keys = [k.strip() for k in (self.on_conflict or "id").split(",")]
            for row in rows:
                if all(row.get(k) == self.payload.get(k) for k in keys):
                    row.update(deepcopy(self.payload))
                    return FakeResponse([deepcopy(row)])
            return FakeResponse([deepcopy(self.db.add_row(self.table, self.payload))])

        matched = [row for row in rows if self._matches(row)]

        if self.operation == "update":
            for row in matched:
                row.update(deepcopy(self.payload))
            return FakeResponse([deepcopy(row) for row in matched])

        if self.operation == "delete":
            self.db.tables[self.table] = [row for row in rows if not self._matches(row)]
            return FakeResponse([deepcopy(row) for row in matched])

        if self.order_by:
            column, desc = self.order_by
            matched.sort(key=lambda r: (r.get(column) is None, r.get(column) or ""), reverse=desc)
        if self.row_limit is not None:
            matched = matched[: self.row_limit]
        return FakeResponse([deepcopy(row) for row in matched])


class FakeSupabase:
    def __init__(self):
        self.tables: Dict[str, List[dict]] = {}

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def add_row(self, table: str, row: dict) -> dict:
        stored = deepcopy(row)
        stored.setdefault("id", str(uuid.uuid4()))
        self.tables.setdefault(table, []).append(stored)
        return stored

    def rows(self, table: str) -> List[dict]:
        return self.tables.get(table, [])


@pytest.fixture
def supabase() -> FakeSupabase:
    return FakeSupabase()


# ---------------------------------------------------------------------------
# Scripted GitHub API
# ---------------------------------------------------------------------------

Handler = Callable[[httpx.Request], httpx.Response]


class FakeGitHub:
    """
    Route table for httpx.MockTransport keyed by URL path.

    A route is either a JSON-able value (answered with 200) or a callable
    taking the request. Unknown paths answer 404 like GitHub does.
    """

    def __init__(self):
        self.routes: Dict[str, Any] = {}
        self.requests: List[httpx.Request] = []

    def add(self, path: str, response: Any) -> None:
        self.routes[path] = response

    def add_repository(self, owner: str, repo: str, size_kb: int = 10, default_branch: str = "main", **extra) -> None:
        self.add(f"/repos/{owner}/{repo}", {
            "id": abs(hash(f"{owner}/{repo}")) % 10_000_000,
            "name": repo,
            "full_name": f"{owner}/{repo}",
            "description": extra.get("description", ""),
            "private": False,
            "default_branch": default_branch,
            "size": size_kb,
            "language": "PHP",
            "clone_url": f"https://github.com/{owner}/{repo}.git",
            "html_url": f"https://github.com/{owner}/{repo}",
            "updated_at": "2024-01-01T00:00:00Z",
        })

    def add_file(self, owner: str, repo: str, path: str, content: str) -> None:
        self.add(f"/repos/{owner}/{repo}/contents/{path}", {
            "type": "file",
            "name": path.rsplit("/", 1)[-1],
            "path": path,
            "size": len(content.encode("utf-8")),
            "sha": uuid.uuid4().hex,
            "encoding": "base64",
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        })

    def add_tree(self, owner: str, repo: str, branch: str, files: Dict[str, str], extra_items=()) -> None:
        items = [
            {"path": path, "type": "blob", "sha": uuid.uuid4().hex, "size": len(content)}
            for path, content in files.items()
        ]
        items.extend(extra_items)
        self.add(f"/repos/{owner}/{repo}/git/trees/{branch}", {"sha": "root", "tree": items, "truncated": False})
        for path, content in files.items():
            self.add_file(owner, repo, path, content)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def client(settings, github) -> GitHubClient:
    return GitHubClient(settings, transport=httpx.MockTransport(github))


HELLO_PHP = """<?php
/**
 * Plugin Name: Hello Dolly
 * Description: This is not just a plugin, it symbolizes the hope of an entire generation.
 */

function hello_dolly_get_lyric() {
    $lyrics = "Hello, Dolly";
    return wptexturize( $lyrics );
}

function hello_dolly() {
    $chosen = hello_dolly_get_lyric();
    printf( '<p id="dolly">%s</p>', esc_html( $chosen ) );
}

add_action( 'admin_notices', 'hello_dolly' );
add_action( 'admin_head', 'dolly_css' );
"""

HELLO_DOLLY_FILES = {
    "hello.php": HELLO_PHP,
    "readme.txt": "=== Hello Dolly ===\nStable tag: 1.7.2\n",
    "composer.json": '{"name": "wordpress/hello-dolly"}',
}


@pytest.fixture
def hello_dolly(github) -> FakeGitHub:
    """WordPress/hello-dolly on branch trunk, with noise the tree filter drops."""
    github.add_repository("WordPress", "hello-dolly", size_kb=12, default_branch="trunk")
    github.add_tree(
        "WordPress", "hello-dolly", "trunk", HELLO_DOLLY_FILES,
        extra_items=[
            {"path": ".github", "type": "tree", "sha": "g"},
            {"path": ".github/workflows/ci.yml", "type": "blob", "sha": "c", "size": 10},
            {"path": "vendor/autoload.php", "type": "blob", "sha": "v", "size": 10},
            {"path": "assets/banner.png", "type": "blob", "sha": "b", "size": 10},
        ],
    )
    return github
