"""
Flattening of GitHub git-tree listings into TreeEntry lists.

Two passes keyed by full path:
1. keep supported files and reported directories, dropping ignored and hidden segments
2. synthesize a directory entry for every implicit prefix of a kept file
"""

import logging
import posixpath
from typing import Dict, Iterable, List, Sequence

from thinktest.schemas.github import TreeEntry

logger = logging.getLogger(__name__)


def _segments(path: str) -> List[str]:
    return [s for s in path.split("/") if s]


def is_excluded_path(path: str, ignored_directories: Sequence[str]) -> bool:
    """True when any path segment is hidden or an ignored directory."""
    ignored = set(ignored_directories)
    for segment in _segments(path):
        if segment.startswith(".") or segment in ignored:
            return True
    return False


def has_supported_extension(path: str, supported_extensions: Sequence[str]) -> bool:
    _, ext = posixpath.splitext(path)
    return bool(ext) and ext.lower() in supported_extensions


def _html_url(owner: str, repo: str, branch: str, path: str, kind: str) -> str:
    view = "blob" if kind == "file" else "tree"
    return f"https://github.com/{owner}/{repo}/{view}/{branch}/{path}"


def build_tree(
    items: Iterable[dict],
    owner: str,
    repo: str,
    branch: str,
    supported_extensions: Sequence[str],
    ignored_directories: Sequence[str],
) -> List[TreeEntry]:
    """
    Build a filtered, path-sorted tree from raw git tree items.

    Args:
        items: the ``tree`` array of GET /repos/{o}/{r}/git/trees/{sha}
        owner, repo, branch: used for html/download URLs

    Returns:
        TreeEntry list sorted by path; directories included
    """
    entries: Dict[str, TreeEntry] = {}
    total = 0

    # Pass 1: reported files and directories
    for item in items:
        total += 1
        path = (item.get("path") or "").strip("/")
        if not path or is_excluded_path(path, ignored_directories):
            continue

        item_type = item.get("type")
        if item_type == "blob":
            if not has_supported_extension(path, supported_extensions):
                continue
            entries[path] = TreeEntry(
                name=posixpath.basename(path),
                path=path,
                type="file",
                sha=item.get("sha"),
                size=item.get("size") or 0,
                url=item.get("url"),
                html_url=_html_url(owner, repo, branch, path, "file"),
                download_url=f"https://raw.githubusercontent.com/{owner}/{repo}/{branch}/{path}",
            )
        elif item_type == "tree":
            entries[path] = TreeEntry(
                name=posixpath.basename(path),
                path=path,
                type="dir",
                sha=item.get("sha"),
                url=item.get("url"),
                html_url=_html_url(owner, repo, branch, path, "dir"),
            )

    # Pass 2: implicit parent directories of kept files
    for path in [p for p, e in entries.items() if e.type == "file"]:
        parts = _segments(path)
        for depth in range(1, len(parts)):
            prefix = "/".join(parts[:depth])
            if prefix not in entries:
                entries[prefix] = TreeEntry(
                    name=parts[depth - 1],
                    path=prefix,
                    type="dir",
                    html_url=_html_url(owner, repo, branch, prefix, "dir"),
                )

    tree = [entries[path] for path in sorted(entries)]
    file_count = sum(1 for e in tree if e.type == "file")
    logger.info(
        f"Tree filtered for {owner}/{repo}@{branch}: {total} items -> "
        f"{file_count} files, {len(tree) - file_count} directories"
    )
    return tree


def file_entries(tree: Iterable[TreeEntry]) -> List[TreeEntry]:
    """Only the file entries of a tree, in tree order."""
    return [entry for entry in tree if entry.type == "file"]
