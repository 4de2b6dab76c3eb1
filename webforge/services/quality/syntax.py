"""
Static syntax diagnostics for generated sources.

Script files are parsed with the tree-sitter TypeScript grammars (TSX for
.tsx/.jsx/.js so JSX is accepted); JSON files are decoded.
"""

from __future__ import annotations

import json
from functools import lru_cache

import tree_sitter_typescript as ts_typescript
from tree_sitter import Language, Node, Parser

from ...models.project import GeneratedFile

MAX_ERRORS_PER_FILE = 3
SCRIPT_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs")


@lru_cache(maxsize=2)
def _parser(dialect: str) -> Parser:
    if dialect == "typescript":
        language = Language(ts_typescript.language_typescript())
    else:
        language = Language(ts_typescript.language_tsx())
    return Parser(language)


def _dialect_for(path: str) -> str:
    return "typescript" if path.lower().endswith(".ts") else "tsx"


def _error_nodes(root: Node) -> list[Node]:
    """ERROR and MISSING nodes, outermost first, in document order."""
    found: list[Node] = []
    stack = [root]
    while stack and len(found) < MAX_ERRORS_PER_FILE:
        node = stack.pop()
        if node.is_error or node.is_missing:
            found.append(node)
            continue
        if node.has_error:
            stack.extend(reversed(node.children))
    return found


def script_diagnostics(file: GeneratedFile) -> list[str]:
    tree = _parser(_dialect_for(file.path)).parse(file.content.encode("utf-8"))
    if not tree.root_node.has_error:
        return []
    issues = []
    for node in _error_nodes(tree.root_node):
        row, column = node.start_point
        detail = f"missing {node.type}" if node.is_missing else "unexpected syntax"
        issues.append(f"Syntax error in {file.path}:{row + 1}:{column + 1} - {detail}")
    return issues


def json_diagnostics(file: GeneratedFile) -> list[str]:
    try:
        json.loads(file.content)
    except json.JSONDecodeError as e:
        return [f"Syntax error in {file.path}:{e.lineno}:{e.colno} - {e.msg}"]
    return []


def syntax_diagnostics(files: list[GeneratedFile]) -> list[str]:
    """Diagnostics for every script and JSON file, at most a few per file."""
    issues: list[str] = []
    for file in files:
        lowered = file.path.lower()
        if lowered.endswith(SCRIPT_EXTENSIONS):
            issues.extend(script_diagnostics(file))
        elif lowered.endswith(".json"):
            issues.extend(json_diagnostics(file))
    return issues
