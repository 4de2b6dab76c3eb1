"""
Runtime Build Validation Service.

Materializes a framework project into a scratch directory and runs the real
package manager against it: install, then build when a build script exists,
then tests when enabled. Output is captured into bounded buffers and each
command is killed (TERM, then KILL after a grace period) when it overruns.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import shutil
import signal
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

import aiofiles

from ...core.config import RuntimeValidationConfig
from ...core.logging import get_logger
from ...models.project import Project
from ...models.quality import RuntimeBuildValidationResult, RuntimePhase
from ...models.request import OutputStack

logger = get_logger(__name__)

SKIPPED_ISSUE = "Runtime build validation skipped by environment."
MISSING_MANIFEST_ISSUE = "Missing package.json for runtime build validation."
INSTALL_ARGS = ("install", "--no-audit", "--no-fund", "--prefer-offline")
INTERESTING_LINE = re.compile(r"(error|failed|cannot|missing|unexpected|syntax|resolve|invalid)", re.IGNORECASE)
MAX_SUMMARY_LINES = 12
READ_CHUNK_BYTES = 4096

_KILL_SIGNAL = getattr(signal, "SIGKILL", signal.SIGTERM)


class OutputBuffer:
    """Text sink that keeps only the most recent ``limit`` characters."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self._text = ""

    def append(self, chunk: str) -> None:
        merged = self._text + chunk
        self._text = merged[-self.limit :] if len(merged) > self.limit else merged

    @property
    def text(self) -> str:
        return self._text


@dataclass
class CommandResult:
    """Exit status and captured output of one child process."""

    code: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.code == 0 and not self.timed_out

    @property
    def combined(self) -> str:
        return f"{self.stdout}\n{self.stderr}"

    def log_entry(self, label: str) -> str:
        body = "\n".join(part for part in (self.stdout, self.stderr) if part).strip()
        return f"[{label}]\n{body}"


def _signal_group(process: asyncio.subprocess.Process, sig: int) -> None:
    if process.returncode is not None:
        return
    try:
        if hasattr(os, "killpg"):
            os.killpg(process.pid, sig)
        elif sig == signal.SIGTERM:
            process.terminate()
        else:
            process.kill()
    except ProcessLookupError:
        pass


async def _terminate(process: asyncio.subprocess.Process, grace_seconds: float) -> None:
    _signal_group(process, signal.SIGTERM)
    try:
        await asyncio.wait_for(process.wait(), grace_seconds)
    except asyncio.TimeoutError:
        _signal_group(process, _KILL_SIGNAL)
        await process.wait()


async def run_command(
    argv: list[str],
    cwd: Path,
    *,
    timeout_seconds: float,
    kill_grace_seconds: float,
    max_output_chars: int,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run a command in its own process group with bounded output capture.

    A command that cannot be spawned yields exit code 1 with the OS error in
    stderr. On timeout the whole group is signalled and ``timed_out`` is set.
    """
    logger.info("Running command", command=" ".join(argv), cwd=str(cwd))
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
            start_new_session=True,
        )
    except OSError as e:
        return CommandResult(code=1, stdout="", stderr=str(e))

    stdout = OutputBuffer(max_output_chars)
    stderr = OutputBuffer(max_output_chars)

    async def read_stream(stream: asyncio.StreamReader, buffer: OutputBuffer) -> None:
        while True:
            chunk = await stream.read(READ_CHUNK_BYTES)
            if not chunk:
                break
            buffer.append(chunk.decode("utf-8", errors="replace"))

    async def communicate() -> int:
        # Read stdout and stderr concurrently so neither pipe fills up
        await asyncio.gather(
            read_stream(process.stdout, stdout),  # type: ignore
            read_stream(process.stderr, stderr),  # type: ignore
        )
        return await process.wait()

    task = asyncio.ensure_future(communicate())
    timed_out = False
    try:
        code = await asyncio.wait_for(asyncio.shield(task), timeout_seconds)
    except asyncio.TimeoutError:
        timed_out = True
        logger.warning("Command timed out", command=" ".join(argv), timeout=timeout_seconds)
        await _terminate(process, kill_grace_seconds)
        try:
            code = await asyncio.wait_for(task, max(kill_grace_seconds, 1.0))
        except asyncio.TimeoutError:
            # Orphaned grandchildren may still hold the pipes open
            code = process.returncode if process.returncode is not None else 1
    except asyncio.CancelledError:
        _signal_group(process, _KILL_SIGNAL)
        task.cancel()
        raise

    logger.info("Command completed", returncode=code, timed_out=timed_out)
    return CommandResult(code=code, stdout=stdout.text, stderr=stderr.text, timed_out=timed_out)


def summarize_failure(stage: RuntimePhase, output: str, timed_out: bool) -> list[str]:
    """Header plus the most telling output lines, at most twelve in total."""
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    interesting = [line for line in lines if INTERESTING_LINE.search(line)][:MAX_SUMMARY_LINES]
    selected = interesting or lines[-MAX_SUMMARY_LINES:]
    verb = "timed out" if timed_out else "command failed"
    return [f"Runtime {stage.value} {verb}.", *selected][:MAX_SUMMARY_LINES]


def _declared_scripts(manifest: str) -> dict[str, str]:
    data = json.loads(manifest)
    scripts = data.get("scripts") if isinstance(data, dict) else None
    return scripts if isinstance(scripts, dict) else {}


class RuntimeBuildValidator:
    """Service that proves a framework project installs and builds."""

    def __init__(self, config: RuntimeValidationConfig) -> None:
        self.config = config

    def should_run(self, output_stack: OutputStack) -> bool:
        if not output_stack.is_framework:
            return False
        if self.config.mode == "off":
            return False
        if self.config.constrained_environment and self.config.mode != "force":
            return False
        return True

    async def validate(self, project: Project, output_stack: OutputStack) -> RuntimeBuildValidationResult:
        """Validate a project build.

        Never raises for build problems: spawn errors, non-zero exits, timeouts
        and crashes all come back as a failed result.
        """
        start_time = time.perf_counter()

        def elapsed_ms() -> int:
            return int((time.perf_counter() - start_time) * 1000)

        if not self.should_run(output_stack):
            return RuntimeBuildValidationResult(
                passed=True,
                phase=RuntimePhase.SKIPPED,
                issues=[SKIPPED_ISSUE],
                duration_ms=elapsed_ms(),
            )

        manifest = project.content_of("package.json")
        if manifest is None:
            return RuntimeBuildValidationResult(
                passed=False,
                phase=RuntimePhase.INSTALL,
                issues=[MISSING_MANIFEST_ISSUE],
                duration_ms=elapsed_ms(),
            )

        root = Path(tempfile.mkdtemp(prefix="webforge-runtime-"))
        try:
            result = await self._run_in(root, project, manifest)
        except Exception as e:
            logger.error("Runtime validator crashed", error=str(e))
            result = RuntimeBuildValidationResult(
                passed=False,
                phase=RuntimePhase.BUILD,
                issues=[f"Runtime validator crashed: {e}"],
            )
        finally:
            await asyncio.to_thread(shutil.rmtree, root, True)

        result = result.model_copy(update={"duration_ms": elapsed_ms()})
        logger.info(
            "Runtime build validation completed",
            passed=result.passed,
            phase=result.phase.value,
            duration_ms=result.duration_ms,
        )
        return result

    async def _materialize(self, root: Path, project: Project) -> None:
        resolved_root = root.resolve()
        for file in project.files:
            target = root.joinpath(*file.path.split("/"))
            if not target.resolve().is_relative_to(resolved_root):
                logger.warning("Skipping file outside sandbox", path=file.path)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target, "w", encoding="utf-8") as f:
                await f.write(file.content)

    async def _run(self, args: tuple[str, ...], root: Path) -> CommandResult:
        return await run_command(
            [*self.config.npm_command, *args],
            root,
            timeout_seconds=self.config.timeout_seconds,
            kill_grace_seconds=self.config.kill_grace_seconds,
            max_output_chars=self.config.max_output_chars,
            env={**os.environ, "CI": "1"},
        )

    async def _run_in(self, root: Path, project: Project, manifest: str) -> RuntimeBuildValidationResult:
        await self._materialize(root, project)
        logs: list[str] = []

        def failed(phase: RuntimePhase, command: CommandResult) -> RuntimeBuildValidationResult:
            return RuntimeBuildValidationResult(
                passed=False,
                phase=phase,
                issues=summarize_failure(phase, command.combined, command.timed_out),
                logs=logs,
            )

        install = await self._run(INSTALL_ARGS, root)
        logs.append(install.log_entry("install"))
        if not install.ok:
            return failed(RuntimePhase.INSTALL, install)

        scripts = _declared_scripts(manifest)
        has_build = bool(scripts.get("build"))
        if has_build:
            build = await self._run(("run", "build"), root)
            logs.append(build.log_entry("build"))
            if not build.ok:
                return failed(RuntimePhase.BUILD, build)

        if self.config.run_tests and scripts.get("test"):
            test = await self._run(("run", "test"), root)
            logs.append(test.log_entry("test"))
            if not test.ok:
                return failed(RuntimePhase.TEST, test)

        return RuntimeBuildValidationResult(
            passed=True,
            phase=RuntimePhase.BUILD if has_build else RuntimePhase.INSTALL,
            logs=logs,
        )
