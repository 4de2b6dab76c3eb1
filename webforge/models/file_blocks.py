"""
File-block text format exchanged with the builder model.

    ---FILE: <relative-path>---
    <raw content>
    ---END FILE---
"""

from __future__ import annotations

import re
from typing import Iterable

from ..core.exceptions import PathTraversalError
from ..core.logging import get_logger
from .project import GeneratedFile, normalize_project_path

logger = get_logger(__name__)

FILE_BLOCK_PATTERN = re.compile(r"---FILE:\s*(.+?)---\n([\s\S]*?)---END FILE---")
_FENCE_OPEN = re.compile(r"^```[\w.+-]*[ \t]*\n")
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def strip_code_fence(content: str) -> str:
    """Remove a markdown fence wrapped around a whole file body.

    Unfenced bodies are returned verbatim.
    """
    stripped = content.strip()
    if _FENCE_OPEN.match(stripped) and _FENCE_CLOSE.search(stripped):
        return _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", stripped, count=1)) + "\n"
    return content


def parse_file_blocks(raw: str) -> list[GeneratedFile]:
    """Parse every file block in a model response.

    Blocks whose path is unsafe are dropped with a warning. Later blocks for
    the same path replace earlier ones.
    """
    by_path: dict[str, GeneratedFile] = {}
    for match in FILE_BLOCK_PATTERN.finditer(raw):
        raw_path = match.group(1).strip().lstrip("/")
        try:
            path = normalize_project_path(raw_path)
        except PathTraversalError as e:
            logger.warning("Dropping generated file with unsafe path", path=raw_path, reason=e.message)
            continue
        body = match.group(2)
        # the newline before the END marker belongs to the grammar
        if body.endswith("\n"):
            body = body[:-1]
        by_path[path] = GeneratedFile(path=path, content=strip_code_fence(body))
    return list(by_path.values())


def serialize_file_blocks(files: Iterable[GeneratedFile]) -> str:
    """Render files in the block format, one block per file."""
    return "\n\n".join(f"---FILE: {f.path}---\n{f.content}\n---END FILE---" for f in files)
