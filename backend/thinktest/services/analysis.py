"""
Regex-based WordPress plugin analysis.

Works on the aggregated payload produced by the repository processor (many
files joined with ``// File:`` headers) as well as on a single PHP file.
"""

import logging
import re
from typing import Dict, List

logger = logging.getLogger(__name__)

HOOK_FUNCTIONS = ("add_action", "do_action")
FILTER_FUNCTIONS = ("add_filter", "apply_filters")
WORDPRESS_FUNCTIONS = HOOK_FUNCTIONS + FILTER_FUNCTIONS + ("wp_enqueue_script", "wp_enqueue_style")

SECURITY_FUNCTIONS = (
    "wp_verify_nonce", "check_admin_referer", "check_ajax_referer", "wp_nonce_field",
    "current_user_can", "sanitize_text_field", "sanitize_email", "sanitize_key",
    "esc_html", "esc_attr", "esc_url", "wp_kses",
)

FUNCTION_DEF = re.compile(r"\bfunction\s+([a-zA-Z_][a-zA-Z0-9_]*)\s*\(", re.IGNORECASE)
CLASS_DEF = re.compile(r"\bclass\s+([a-zA-Z_][a-zA-Z0-9_]*)", re.IGNORECASE)
HOOK_CALL = re.compile(
    r"\b(add_action|do_action|add_filter|apply_filters)\s*\(\s*['\"]([^'\"]+)['\"]",
)
REST_ROUTE = re.compile(r"\bregister_rest_route\s*\(\s*['\"]([^'\"]+)['\"]\s*,\s*['\"]([^'\"]+)['\"]")
WPDB_CALL = re.compile(r"\$wpdb\s*->\s*(query|get_results|get_row|get_var|get_col|insert|update|delete|replace|prepare)\s*\(")
BRANCHING = re.compile(r"\b(if|elseif|for|foreach|while|case|catch)\b|&&|\|\||\?")
FILE_HEADER = re.compile(r"^// File: (.+)$", re.MULTILINE)


def _line_of(content: str, offset: int) -> int:
    return content.count("\n", 0, offset) + 1


class PluginAnalyzer:
    """Extracts functions, classes, hooks and security patterns from plugin code."""

    def analyze(self, content: str, filename: str) -> Dict:
        analysis: Dict[str, List] = {
            "functions": [],
            "classes": [],
            "hooks": [],
            "filters": [],
            "wordpress_patterns": [],
            "ajax_handlers": [],
            "rest_endpoints": [],
            "database_operations": [],
            "security_patterns": [],
        }

        for match in FUNCTION_DEF.finditer(content):
            analysis["functions"].append({"name": match.group(1), "line": _line_of(content, match.start())})

        for match in CLASS_DEF.finditer(content):
            analysis["classes"].append({"name": match.group(1), "line": _line_of(content, match.start())})

        for function in WORDPRESS_FUNCTIONS:
            for match in re.finditer(rf"\b{re.escape(function)}\s*\(", content):
                analysis["wordpress_patterns"].append({
                    "type": "hook",
                    "function": function,
                    "line": _line_of(content, match.start()),
                })

        for match in HOOK_CALL.finditer(content):
            function, name = match.groups()
            entry = {"function": function, "name": name, "line": _line_of(content, match.start())}
            if function in HOOK_FUNCTIONS:
                analysis["hooks"].append(entry)
                if function == "add_action" and name.startswith(("wp_ajax_", "wp_ajax_nopriv_")):
                    analysis["ajax_handlers"].append(entry)
            else:
                analysis["filters"].append(entry)

        for match in REST_ROUTE.finditer(content):
            namespace, route = match.groups()
            analysis["rest_endpoints"].append({
                "namespace": namespace,
                "route": route,
                "line": _line_of(content, match.start()),
            })

        for match in WPDB_CALL.finditer(content):
            analysis["database_operations"].append({
                "method": match.group(1),
                "line": _line_of(content, match.start()),
            })

        for function in SECURITY_FUNCTIONS:
            count = len(re.findall(rf"\b{re.escape(function)}\s*\(", content))
            if count:
                analysis["security_patterns"].append({"function": function, "count": count})

        files = FILE_HEADER.findall(content)
        result = dict(analysis)
        result.update({
            "filename": filename,
            "file_count": len(files) or 1,
            "complexity_score": self._complexity(content, len(analysis["functions"])),
            "analysis_method": "regex",
        })

        logger.info(
            f"Analyzed {filename}: {len(analysis['functions'])} functions, "
            f"{len(analysis['classes'])} classes, {len(analysis['hooks'])} hooks"
        )
        return result

    @staticmethod
    def _complexity(content: str, function_count: int) -> int:
        """Branch points per function, plus one, capped at 100."""
        branches = len(BRANCHING.findall(content))
        return min(100, 1 + round(branches / max(1, function_count)))
