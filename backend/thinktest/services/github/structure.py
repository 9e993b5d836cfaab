"""
WordPress plugin structure detection over fetched repository files.
"""

import posixpath
import re
from typing import Iterable, List, Optional, Tuple

# Value ends at the line end or at a closing "*/" on the same line
PLUGIN_HEADER = re.compile(r"Plugin Name:[ \t]*(.+?)[ \t]*(?:\*/|$)", re.IGNORECASE | re.MULTILINE)
WORDPRESS_FUNCTIONS = re.compile(r"\b(add_action|add_filter|wp_enqueue_script|wp_enqueue_style)\b")
ELEMENTOR_PATTERNS = re.compile(r"\b(Widget_Base|Controls_Manager|Elementor)\b")

ROOT_MANIFESTS = ("composer.json", "package.json", "readme.txt")
NESTED_MANIFESTS = ("block.json",)
README_NAMES = ("readme.txt", "readme.md")


def _add_pattern(patterns: List[str], name: str) -> None:
    if name not in patterns:
        patterns.append(name)


def detect_plugin_structure(files: Iterable[Tuple[str, str]]) -> dict:
    """
    Describe a plugin from its ``(path, content)`` pairs.

    ``type`` is "single_file" when the plugin has at most one PHP file,
    otherwise "multi_file". ``main_plugin_file`` is the first PHP file, in
    the given order, that carries a ``Plugin Name:`` header.
    """
    manifest_files: List[str] = []
    detected_patterns: List[str] = []
    main_plugin_file: Optional[str] = None
    plugin_name: Optional[str] = None
    php_files = 0
    has_readme = False

    for path, content in files:
        base = posixpath.basename(path).lower()
        is_root = "/" not in path

        if (is_root and base in ROOT_MANIFESTS) or base in NESTED_MANIFESTS:
            manifest_files.append(path)
        if is_root and base in README_NAMES:
            has_readme = True

        if not base.endswith(".php"):
            continue

        php_files += 1

        header = PLUGIN_HEADER.search(content)
        if header:
            _add_pattern(detected_patterns, "plugin_header")
            if main_plugin_file is None:
                main_plugin_file = path
                plugin_name = header.group(1).strip()

        if WORDPRESS_FUNCTIONS.search(content):
            _add_pattern(detected_patterns, "wordpress_functions")

        if ELEMENTOR_PATTERNS.search(content):
            _add_pattern(detected_patterns, "elementor_widget")

    manifest_names = {posixpath.basename(p).lower() for p in manifest_files}

    return {
        "type": "single_file" if php_files <= 1 else "multi_file",
        "has_manifest": bool(manifest_files),
        "manifest_files": manifest_files,
        "has_composer_json": "composer.json" in manifest_names,
        "has_package_json": "package.json" in manifest_names,
        "has_readme": has_readme,
        "main_plugin_file": main_plugin_file,
        "plugin_name": plugin_name,
        "php_file_count": php_files,
        "detected_patterns": detected_patterns,
    }
