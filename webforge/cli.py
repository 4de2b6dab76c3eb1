"""
WebForge CLI.

Command-line interface for running the generation pipeline and the HTTP API.
"""

from __future__ import annotations

import asyncio
import base64
import json
import mimetypes
import os
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from .core.config import Settings, get_settings
from .core.exceptions import InputValidationError
from .core.logging import setup_logging
from .models.request import AIProvider, GenerationRequest

app = typer.Typer(
    name="webforge",
    help="Prompt, screenshot and URL to runnable web project generation",
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)

PROVIDER_KEY_ENV = {
    AIProvider.ANTHROPIC: "ANTHROPIC_API_KEY",
    AIProvider.OPENAI: "OPENAI_API_KEY",
}


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        from . import __version__

        console.print(f"WebForge v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """WebForge: staged LLM pipeline that builds and validates web projects."""
    pass


def _image_payload(path: Path) -> dict[str, str]:
    mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
    return {
        "name": path.name,
        "mimeType": mime_type,
        "base64": base64.b64encode(path.read_bytes()).decode("ascii"),
    }


def build_request(
    *,
    prompt: str,
    urls: list[str],
    images: list[Path],
    provider: AIProvider,
    api_key: str | None,
    model: str | None,
    stack: str,
    mode: str,
    max_retries: int,
    max_cost: float,
) -> GenerationRequest:
    """Assemble and validate a request from CLI options.

    Raises:
        InputValidationError: If the resulting request is invalid.
    """
    key = api_key or os.environ.get(PROVIDER_KEY_ENV[provider], "")
    payload = {
        "prompt": prompt,
        "urls": urls,
        "images": [_image_payload(path) for path in images],
        "config": {"provider": provider.value, "apiKey": key, "model": model},
        "outputStack": stack,
        "qualityMode": mode,
        "constraints": {"maxRetries": max_retries, "maxCostUsd": max_cost},
    }
    return GenerationRequest.parse_payload(payload)


@app.command()
def generate(
    prompt: str = typer.Argument("", help="What to build"),
    urls: list[str] = typer.Option([], "--url", "-u", help="Reference URL (https, up to 3)"),
    images: list[Path] = typer.Option(
        [],
        "--image",
        "-i",
        help="Reference screenshot",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    provider: AIProvider = typer.Option(AIProvider.ANTHROPIC, "--provider", help="Model provider"),
    api_key: Optional[str] = typer.Option(
        None,
        "--api-key",
        envvar="WEBFORGE_API_KEY",
        help="Provider API key (defaults to ANTHROPIC_API_KEY / OPENAI_API_KEY)",
    ),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model override"),
    stack: str = typer.Option("react-tailwind", "--stack", "-s", help="react-tailwind | vanilla"),
    mode: str = typer.Option("balanced", "--mode", help="strict-visual | balanced | function-first"),
    max_retries: int = typer.Option(1, "--max-retries", help="Repair passes (0-2)"),
    max_cost: float = typer.Option(1.0, "--max-cost", help="Cost cap in USD"),
    output_dir: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Directory to write the generated project into",
    ),
    ndjson: bool = typer.Option(False, "--ndjson", help="Print raw NDJSON stream lines to stdout"),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose logging"),
) -> None:
    """Generate a web project from a prompt, screenshots and reference URLs."""
    settings = get_settings()
    if verbose:
        settings = settings.model_copy(update={"log_level": "DEBUG"})
    setup_logging(settings)

    try:
        request = build_request(
            prompt=prompt,
            urls=urls,
            images=images,
            provider=provider,
            api_key=api_key,
            model=model,
            stack=stack,
            mode=mode,
            max_retries=max_retries,
            max_cost=max_cost,
        )
    except InputValidationError as e:
        err_console.print(f"[bold red]✗ {e}[/bold red]")
        raise typer.Exit(2)

    if not ndjson:
        console.print(Panel.fit(
            "[bold blue]WebForge[/bold blue]\n"
            "Prompt → Design Spec → Validated Web Project",
            border_style="blue",
        ))
        console.print(f"\n[bold]Stack:[/bold] {request.output_stack.label}")
        console.print(f"[bold]Quality mode:[/bold] {request.quality_mode.value}")
        console.print(f"[bold]Provider:[/bold] {request.config.provider.label}\n")

    asyncio.run(_run_generation(request, settings, output_dir, ndjson))


async def _run_generation(
    request: GenerationRequest, settings: Settings, output_dir: Path | None, ndjson: bool
) -> None:
    from .orchestration import EventChannel, GenerationPipeline
    from .storage import LocalProjectStore

    pipeline = GenerationPipeline(settings)
    channel = EventChannel(settings.stream)

    async def consume(progress: Progress | None, task_id: int | None) -> None:
        async for line in channel.stream():
            if ndjson:
                sys.stdout.write(line)
                sys.stdout.flush()
                continue
            chunk = json.loads(line)
            if chunk["type"] == "event" and progress is not None and task_id is not None:
                event = chunk["event"]
                progress.update(task_id, description=event["message"], completed=event["progress"])

    if ndjson:
        result, _ = await asyncio.gather(pipeline.run(request, channel), consume(None, None))
    else:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            console=console,
        ) as progress:
            task_id = progress.add_task("Starting...", total=100)
            result, _ = await asyncio.gather(pipeline.run(request, channel), consume(progress, task_id))

    if not result.success:
        err_console.print("\n[bold red]✗ Generation failed![/bold red]")
        err_console.print(f"Error: {result.error}")
        raise typer.Exit(1)

    stored_path: Path | None = None
    if output_dir is not None and result.metadata is not None:
        from .models.project import Project

        store = LocalProjectStore(output_dir)
        key = await store.save_project(result.metadata.name, Project.from_files(result.files), result.metadata)
        stored_path = store.get_local_path(key)

    if ndjson:
        return

    status = "[green]ACCEPTED[/green]" if result.accepted else "[yellow]BEST EFFORT[/yellow]"
    console.print(f"\n[bold green]✓ Generation finished[/bold green] {status}\n")

    table = Table(title="Generation Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Request ID", result.request_id)
    table.add_row("Project", result.metadata.name if result.metadata else "-")
    table.add_row("Files", str(len(result.files)))
    table.add_row("Visual Score", str(result.report.visual_score) if result.report else "-")
    table.add_row("Functional Review", "[green]PASSED[/green]" if result.report and result.report.functional_pass else "[red]FAILED[/red]")
    if result.runtime is not None:
        runtime_status = "SKIPPED" if result.runtime.skipped else ("PASSED" if result.runtime.passed else "FAILED")
        table.add_row("Runtime Build", f"{runtime_status} ({result.runtime.phase.value})")
    table.add_row("Repair Passes", str(result.retries_used))
    table.add_row("Rolled Back", "yes" if result.rolled_back else "no")
    table.add_row("Cost", f"${result.total_cost_usd:.4f}")
    if result.metadata and result.metadata.runtime_hint:
        table.add_row("Preview Runtime", result.metadata.runtime_hint.preferred_runtime.value)

    console.print(table)

    if result.report and result.report.issues:
        console.print("\n[bold]Open issues:[/bold]")
        for issue in result.report.issues[:10]:
            console.print(f"  • {issue}")

    if stored_path is not None:
        console.print(f"\n[bold]Generated project:[/bold] {stored_path}")


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", "-p", help="Bind port"),
) -> None:
    """Serve the NDJSON generation API."""
    import uvicorn

    console.print(f"[bold]Serving WebForge API on[/bold] http://{host}:{port}")
    uvicorn.run("webforge.api:create_app", host=host, port=port, factory=True)


@app.command()
def config() -> None:
    """Show the effective configuration."""
    cfg = get_settings()

    table = Table(title="Current Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("Log Level", cfg.log_level)
    table.add_row("OpenAI Model", cfg.providers.openai_model)
    table.add_row("Anthropic Model", cfg.providers.anthropic_model)
    table.add_row("Runtime Validation", cfg.runtime.mode)
    table.add_row("Constrained Environment", str(cfg.runtime.constrained_environment))
    table.add_row("Runtime Timeout", f"{cfg.runtime.timeout_seconds:.0f}s")
    table.add_row("Runtime Tests", str(cfg.runtime.run_tests))
    table.add_row("Strict Package Allowlist", str(cfg.policy.strict_package_allowlist))
    table.add_row("Screenshot Provider", "configured" if cfg.ingestion.screenshot_api_key else "disabled")

    console.print(table)

    console.print("\n[dim]Configure via environment variables:[/dim]")
    console.print("  WEBFORGE_LOG_LEVEL, WEBFORGE_RUNTIME_VALIDATION, WEBFORGE_RUNTIME_TIMEOUT")
    console.print("  WEBFORGE_STRICT_PACKAGE_ALLOWLIST, WEBFORGE_SCREENSHOT_API_KEY")
    console.print("  OPENAI_API_KEY, ANTHROPIC_API_KEY")


if __name__ == "__main__":
    app()
