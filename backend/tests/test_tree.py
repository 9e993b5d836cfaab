"""Tests for git tree filtering."""

from thinktest.core.config import DEFAULT_IGNORED_DIRECTORIES, DEFAULT_SUPPORTED_EXTENSIONS
from thinktest.services.github.tree import build_tree, file_entries, has_supported_extension, is_excluded_path


def _blob(path, size=10):
    return {"path": path, "type": "blob", "sha": path, "size": size, "url": f"https://api.github.com/blobs/{path}"}


def _build(items):
    return build_tree(items, "acme", "widget", "main", DEFAULT_SUPPORTED_EXTENSIONS, DEFAULT_IGNORED_DIRECTORIES)


def test_excluded_paths():
    assert is_excluded_path("vendor/autoload.php", DEFAULT_IGNORED_DIRECTORIES)
    assert is_excluded_path("src/node_modules/x.js", DEFAULT_IGNORED_DIRECTORIES)
    assert is_excluded_path(".github/workflows/ci.yml", DEFAULT_IGNORED_DIRECTORIES)
    assert is_excluded_path("src/.cache/x.php", DEFAULT_IGNORED_DIRECTORIES)
    assert is_excluded_path(".env", DEFAULT_IGNORED_DIRECTORIES)
    assert not is_excluded_path("src/vendors.php", DEFAULT_IGNORED_DIRECTORIES)
    assert not is_excluded_path("includes/class-widget.php", DEFAULT_IGNORED_DIRECTORIES)


def test_supported_extensions():
    assert has_supported_extension("plugin.php", DEFAULT_SUPPORTED_EXTENSIONS)
    assert has_supported_extension("README.MD", DEFAULT_SUPPORTED_EXTENSIONS)
    assert not has_supported_extension("logo.png", DEFAULT_SUPPORTED_EXTENSIONS)
    assert not has_supported_extension("LICENSE", DEFAULT_SUPPORTED_EXTENSIONS)


def test_synthesizes_parent_directories():
    tree = _build([_blob("includes/admin/settings.php"), _blob("widget.php")])

    assert [(e.path, e.type) for e in tree] == [
        ("includes", "dir"),
        ("includes/admin", "dir"),
        ("includes/admin/settings.php", "file"),
        ("widget.php", "file"),
    ]
    admin = tree[1]
    assert admin.name == "admin"
    assert admin.html_url == "https://github.com/acme/widget/tree/main/includes/admin"


def test_file_urls():
    entry = _build([_blob("widget.php", size=42)])[0]
    assert entry.name == "widget.php"
    assert entry.size == 42
    assert entry.html_url == "https://github.com/acme/widget/blob/main/widget.php"
    assert entry.download_url == "https://raw.githubusercontent.com/acme/widget/main/widget.php"


def test_drops_ignored_hidden_and_unsupported():
    tree = _build([
        _blob("widget.php"),
        _blob("vendor/composer/autoload_real.php"),
        {"path": "vendor", "type": "tree", "sha": "v"},
        _blob("node_modules/lodash/index.js"),
        _blob(".github/workflows/ci.yml"),
        _blob("assets/banner.png"),
        {"path": "sub", "type": "commit", "sha": "s"},
    ])
    assert [e.path for e in tree] == ["widget.php"]


def test_reported_directory_kept_once():
    tree = _build([
        {"path": "src", "type": "tree", "sha": "tree-sha"},
        _blob("src/a.php"),
        _blob("src/b.php"),
    ])
    dirs = [e for e in tree if e.type == "dir"]
    assert len(dirs) == 1
    assert dirs[0].sha == "tree-sha"


def test_empty_directories_reported_by_github_are_kept():
    tree = _build([{"path": "languages", "type": "tree", "sha": "l"}])
    assert [(e.path, e.type) for e in tree] == [("languages", "dir")]


def test_file_entries():
    tree = _build([_blob("a/b.php"), _blob("c.js")])
    assert [e.path for e in file_entries(tree)] == ["a/b.php", "c.js"]
