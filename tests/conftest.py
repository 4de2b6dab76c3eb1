"""Test configuration for WebForge."""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Any

import pytest
import structlog
from rich.logging import RichHandler

from webforge.agents.client import ContentPart, CostLedger, LLMClient
from webforge.core.config import ProviderDefaults, RuntimeValidationConfig, Settings, StreamConfig
from webforge.models.project import Project
from webforge.models.request import AIConfig, GenerationRequest

VANILLA_INDEX = """<!doctype html>
<html lang="en">
  <head>
    <meta charset="UTF-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1.0" />
    <title>Task Board</title>
    <link rel="stylesheet" href="styles.css" />
  </head>
  <body>
    <main id="app">
      <button id="add">Add task</button>
      <ul id="tasks"></ul>
    </main>
    <script src="app.js"></script>
  </body>
</html>
"""

VANILLA_STYLES = """body { margin: 0; font-family: system-ui, sans-serif; }
main { max-width: 100%; overflow-x: hidden; }
@media (min-width: 768px) { main { padding: 24px; } }
"""

VANILLA_APP = """const tasks = [];
document.getElementById('add').addEventListener('click', () => {
  tasks.push('Task ' + (tasks.length + 1));
  render();
});
function render() {
  document.getElementById('tasks').innerHTML = tasks.map((t) => '<li>' + t + '</li>').join('');
}
"""

REVIEW_PASS = json.dumps({"functionalPass": True, "criticalIssues": [], "patchInstructions": ""})
REVIEW_FAIL = json.dumps(
    {
        "functionalPass": False,
        "criticalIssues": ["Add button does nothing"],
        "patchInstructions": "Wire the add button.",
    }
)

DESIGN_SPEC_REPLY = json.dumps(
    {
        "appName": "Task Board",
        "description": "A small task board",
        "outputStack": "vanilla",
        "layout": {"structure": "single column", "sections": ["header", "list"], "breakpoints": ["768px"]},
        "visualSystem": {"palette": ["#0f172a"], "typography": ["system-ui"], "spacing": ["8px"]},
        "components": [{"name": "TaskList", "role": "list", "states": ["empty"]}],
        "interactions": ["add task"],
        "filePlan": [{"path": "extra.js", "purpose": "ignored"}],
    }
)


def file_blocks(files: dict[str, str]) -> str:
    """Render files in the builder's delimiter grammar."""
    return "\n\n".join(f"---FILE: {path}---\n{content}\n---END FILE---" for path, content in files.items())


VANILLA_BUILD_REPLY = file_blocks(
    {"index.html": VANILLA_INDEX, "styles.css": VANILLA_STYLES, "app.js": VANILLA_APP}
)


class ScriptedLLMClient(LLMClient):
    """LLMClient whose provider round trip replays scripted replies per agent.

    Each script entry is either reply text, a ``(text, input_tokens,
    output_tokens)`` tuple, or an exception to raise.
    """

    def __init__(
        self,
        config: AIConfig,
        ledger: CostLedger,
        defaults: ProviderDefaults | None = None,
        *,
        script: dict[str, list[Any]] | None = None,
    ) -> None:
        super().__init__(config, ledger, defaults)
        self.script = {label: list(replies) for label, replies in (script or {}).items()}
        self.calls: list[dict[str, Any]] = []
        self._label = ""

    async def complete(self, *, system_prompt: str, parts: list[ContentPart], max_tokens: int, label: str, json_schema: dict[str, Any] | None = None):  # type: ignore[override]
        self._label = label
        return await super().complete(
            system_prompt=system_prompt,
            parts=parts,
            max_tokens=max_tokens,
            label=label,
            json_schema=json_schema,
        )

    async def _send(self, system_prompt, parts, max_tokens, json_schema):  # type: ignore[override]
        self.calls.append(
            {"label": self._label, "system": system_prompt, "parts": parts, "json_schema": json_schema}
        )
        replies = self.script.get(self._label)
        if not replies:
            raise AssertionError(f"No scripted reply left for {self._label}")
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, tuple):
            return reply
        return reply, 1000, 500


class ScriptedClientFactory:
    """Client factory for GenerationPipeline that records created clients."""

    def __init__(self, script: dict[str, list[Any]]) -> None:
        self.script = script
        self.clients: list[ScriptedLLMClient] = []

    def __call__(self, config: AIConfig, ledger: CostLedger, defaults: ProviderDefaults) -> ScriptedLLMClient:
        client = ScriptedLLMClient(config, ledger, defaults, script=self.script)
        self.clients.append(client)
        return client

    @property
    def calls(self) -> list[dict[str, Any]]:
        return [call for client in self.clients for call in client.calls]


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo any setup_logging call made by a test (CLI and API entry points)."""
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in [h for h in root.handlers if isinstance(h, RichHandler)]:
        root.removeHandler(handler)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests.

    Yields:
        Path: A Path object pointing to the temporary directory.
            The directory is automatically cleaned up after the test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings() -> Settings:
    """Settings with runtime validation off and a small stream queue."""
    return Settings(
        runtime=RuntimeValidationConfig(mode="off"),
        stream=StreamConfig(queue_size=64, send_timeout_seconds=1.0),
    )


@pytest.fixture
def make_request():
    """Factory for valid generation requests.

    Returns:
        Callable accepting payload overrides (camelCase keys).
    """

    def _make(**overrides: Any) -> GenerationRequest:
        payload: dict[str, Any] = {
            "prompt": "Build a task board",
            "config": {"provider": "anthropic", "apiKey": "sk-test"},
            "outputStack": "vanilla",
            "qualityMode": "balanced",
        }
        payload.update(overrides)
        return GenerationRequest.parse_payload(payload)

    return _make


@pytest.fixture
def vanilla_project() -> Project:
    """A compliant vanilla project."""
    return Project.from_mapping(
        {"index.html": VANILLA_INDEX, "styles.css": VANILLA_STYLES, "app.js": VANILLA_APP}
    )


@pytest.fixture
def ledger() -> CostLedger:
    return CostLedger(limit_usd=1.0)


@pytest.fixture
def scripted_client(ledger):
    """Factory for a ScriptedLLMClient bound to the shared ledger."""

    def _make(script: dict[str, list[Any]], provider: str = "anthropic") -> ScriptedLLMClient:
        config = AIConfig(provider=provider, api_key="sk-test")
        return ScriptedLLMClient(config, ledger, script=script)

    return _make


FAKE_NPM = """#!/bin/sh
echo "$@" >> "$FAKE_NPM_LOG"
case "$1" in
  install)
    echo "added 12 packages"
    if [ -n "$FAKE_NPM_SLEEP" ]; then sleep "$FAKE_NPM_SLEEP"; fi
    exit "${FAKE_NPM_INSTALL_EXIT:-0}"
    ;;
  run)
    if [ "$2" = "build" ]; then
      echo "vite v6.0.0 building for production..."
      if [ "${FAKE_NPM_BUILD_EXIT:-0}" != "0" ]; then
        echo "src/App.tsx(3,7): error TS2304: Cannot find name 'Widget'." >&2
        echo "build step finished" >&2
      fi
      exit "${FAKE_NPM_BUILD_EXIT:-0}"
    fi
    if [ "$2" = "test" ]; then
      echo "1 passing"
      exit "${FAKE_NPM_TEST_EXIT:-0}"
    fi
    ;;
esac
exit 0
"""


@pytest.fixture
def fake_npm(temp_dir, monkeypatch):
    """A shell script standing in for npm that logs its invocations.

    Behavior is steered through FAKE_NPM_* environment variables.

    Returns:
        tuple: (script path, invocation log path)
    """
    script = temp_dir / "npm"
    script.write_text(FAKE_NPM)
    script.chmod(script.stat().st_mode | stat.S_IEXEC | stat.S_IXGRP | stat.S_IXOTH)
    log = temp_dir / "npm.log"
    log.write_text("")
    monkeypatch.setenv("FAKE_NPM_LOG", str(log))
    for name in ("FAKE_NPM_SLEEP", "FAKE_NPM_INSTALL_EXIT", "FAKE_NPM_BUILD_EXIT", "FAKE_NPM_TEST_EXIT"):
        monkeypatch.delenv(name, raising=False)
    return script, log


def invocations(log: Path) -> list[str]:
    return [line for line in log.read_text().splitlines() if line.strip()] if log.exists() else []


skip_on_windows = pytest.mark.skipif(os.name == "nt", reason="fake npm is a POSIX shell script")
