"""CLI entry point - thin adapter over templator-core."""

from __future__ import annotations

import asyncio
import sys
import tomllib
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich import print as rprint
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskID, TextColumn
from rich.table import Table

from templator_core import VERSION, PipelineError, PipelineOrchestrator
from templator_core.phases import build_default_phases
from templator_core.ports.orchestrator import ProgressSinkProtocol
from templator_core.ports.storage import StorageError
from templator_io import (
    FileSystemLogStore,
    FileSystemProgressSink,
    ZipModulePackager,
    build_log_sink,
    load_design_upload,
)
from templator_llm import (
    LlmError,
    LlmErrorCorrectionService,
    LlmGenerationService,
    LlmRefinementService,
    OpenAICompatibleRuntime,
    resolve_api_key,
)
from templator_schemas.config import TemplatorConfig
from templator_schemas.events import PhaseEvent, RunEvent
from templator_schemas.exit_codes import ExitCode, resolve_exit_code
from templator_schemas.pipeline import PipelineRequest, PipelineResult, RequestOptions
from templator_schemas.primitives import ExportFormat, JsonValue
from templator_schemas.progress import ProgressUpdate
from templator_schemas.responses import ApiResponse, ErrorResponse, MetaInfo

DEFAULT_CONFIG_NAME = "templator.toml"
DEFAULT_CONFIG_TEMPLATE = """\
[pipeline]
retention_s = 3600

[pipeline.retry]
max_retries = 3
backoff_s = 1.0
max_backoff_s = 30.0
strategy = "exponential"
multiplier = 2.0

[pipeline.concurrency]
max_parallel_sections = 4

[[pipeline.phases]]
phase = "input_processing"

[[pipeline.phases]]
phase = "generation"

[[pipeline.phases]]
phase = "quality_assurance"
on_exhaustion = "fallback"

[[pipeline.phases]]
phase = "enhancement"
on_exhaustion = "fallback"

[[pipeline.phases]]
phase = "packaging"

[endpoint]
base_url = "https://api.openai.com/v1"
api_key_env = "OPENAI_API_KEY"
model_id = "gpt-4o"
temperature = 0.2
timeout_s = 120.0
refinement_iterations = 2

[[logging.sinks]]
type = "file"

[output]
output_dir = "out"
logs_dir = "logs"
progress_dir = "logs/progress"
"""

CONFIG_OPTION = typer.Option(
    Path(DEFAULT_CONFIG_NAME), "--config", "-c", help="Path to templator TOML config"
)
PIPELINE_ID_OPTION = typer.Option(
    None, "--pipeline-id", help="Run identifier (generated when omitted)"
)
MODEL_OPTION = typer.Option(None, "--model", "-m", help="Model override")
THRESHOLD_OPTION = typer.Option(
    75.0, "--quality-threshold", help="Quality bar as a fraction or percentage"
)
RETRIES_OPTION = typer.Option(
    None, "--max-retries", help="Retries per phase (config default when omitted)"
)
ENHANCE_OPTION = typer.Option(
    True, "--enhance/--no-enhance", help="Run the enhancement phase"
)
FORMAT_OPTION = typer.Option(
    ExportFormat.HUBSPOT, "--format", "-f", help="Module export format"
)
FORCE_OPTION = typer.Option(False, "--force", help="Overwrite an existing config")
DESIGN_ARGUMENT = typer.Argument(..., help="Design image to convert")

app = typer.Typer(
    help="Convert design images into editable web modules",
    no_args_is_help=True,
)


@app.callback()
def main() -> None:
    """Templator CLI."""


@app.command()
def version() -> None:
    """Display version information."""
    rprint(f"[bold]templator[/bold] v{VERSION}")


@app.command()
def init(
    config_path: Path = CONFIG_OPTION,
    force: bool = FORCE_OPTION,
) -> None:
    """Write a default configuration file.

    Raises:
        typer.Exit: When the file exists and --force is not given.
    """
    if config_path.exists() and not force:
        rprint(f"[red]Config already exists:[/red] {config_path}")
        raise typer.Exit(code=int(ExitCode.CONFIG_ERROR))
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEFAULT_CONFIG_TEMPLATE, encoding="utf-8")
    rprint(f"Wrote {config_path}")


@app.command()
def run(
    design_path: Path = DESIGN_ARGUMENT,
    config_path: Path = CONFIG_OPTION,
    pipeline_id: str | None = PIPELINE_ID_OPTION,
    model_id: str | None = MODEL_OPTION,
    quality_threshold: float = THRESHOLD_OPTION,
    max_retries: int | None = RETRIES_OPTION,
    enhance: bool = ENHANCE_OPTION,
    export_format: ExportFormat = FORMAT_OPTION,
) -> None:
    """Convert a design image into a packaged module.

    Raises:
        typer.Exit: With the exit code of the error when the run fails.
    """
    progress: Progress | None = None
    console: Console | None = None
    try:
        config = _load_resolved_config(config_path)
        options = RequestOptions.model_validate(
            {
                "model_id": model_id,
                "quality_threshold": quality_threshold,
                "max_retries": max_retries,
                "enable_enhancement": enhance,
                "export_format": export_format,
            },
            strict=False,
        )
        progress_sink: ProgressSinkProtocol = FileSystemProgressSink(
            config.output.progress_dir
        )
        if _should_render_progress():
            console = Console(stderr=True)
            progress = _build_progress(console)
            progress_sink = _ProgressReporter(progress_sink, progress, console)
        resolved_id = pipeline_id or uuid4().hex
        if progress is not None:
            with progress:
                result = asyncio.run(
                    _run_async(config, design_path, resolved_id, options, progress_sink)
                )
        else:
            result = asyncio.run(
                _run_async(config, design_path, resolved_id, options, progress_sink)
            )
        error = result.error.to_error_response() if result.error else None
        response: ApiResponse[PipelineResult] = ApiResponse(
            data=result, error=error, meta=MetaInfo(timestamp=_now_timestamp())
        )
    except KeyboardInterrupt:
        response = _error_response(
            ErrorResponse(
                code="pipeline.cancelled",
                message="Run interrupted",
                exit_code=int(ExitCode.CANCELLED),
            )
        )
    except Exception as exc:
        response = _error_response(_error_from_exception(exc))
    if console is not None:
        _render_summary(response, console)
    print(response.model_dump_json())
    if response.error is not None:
        exit_code = response.error.exit_code
        if exit_code is None:
            exit_code = int(resolve_exit_code(response.error.code))
        raise typer.Exit(code=exit_code)


class _ConfigError(Exception):
    """Raised for CLI configuration issues."""


class _ProgressReporter(ProgressSinkProtocol):
    def __init__(
        self,
        sink: ProgressSinkProtocol,
        progress: Progress,
        console: Console,
    ) -> None:
        self._sink = sink
        self._progress = progress
        self._console = console
        self._task: TaskID | None = None

    async def emit_progress(self, update: ProgressUpdate) -> None:
        await self._sink.emit_progress(update)
        self._handle_update(update)

    def _handle_update(self, update: ProgressUpdate) -> None:
        if update.event == PhaseEvent.STARTED and update.phase is not None:
            self._console.print(f"Starting {update.phase}")
        elif update.event == PhaseEvent.COMPLETED and update.phase is not None:
            self._console.print(f"{update.phase} complete")
        elif update.event == PhaseEvent.FALLBACK and update.phase is not None:
            self._console.print(f"[yellow]{update.phase} used its fallback[/yellow]")
        elif update.event == PhaseEvent.FAILED and update.phase is not None:
            self._console.print(f"[red]{update.phase} failed[/red]")
        elif update.event == RunEvent.CANCELLED:
            self._console.print("[red]Run cancelled[/red]")

        percent = update.snapshot.percent_complete
        if self._task is None:
            self._task = self._progress.add_task(
                update.pipeline_id, total=100, completed=percent
            )
        else:
            self._progress.update(self._task, completed=percent)
        self._progress.refresh()


def _now_timestamp() -> str:
    timestamp = datetime.now(UTC).isoformat()
    return timestamp.replace("+00:00", "Z")


def _should_render_progress() -> bool:
    return sys.stderr.isatty()


def _build_progress(console: Console) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
    )


async def _run_async(
    config: TemplatorConfig,
    design_path: Path,
    pipeline_id: str,
    options: RequestOptions,
    progress_sink: ProgressSinkProtocol,
) -> PipelineResult:
    runtime = OpenAICompatibleRuntime(
        config.endpoint, api_key=resolve_api_key(config.endpoint)
    )
    phases = build_default_phases(
        generator=LlmGenerationService(runtime),
        refiner=LlmRefinementService(
            runtime, max_iterations=config.endpoint.refinement_iterations
        ),
        corrector=LlmErrorCorrectionService(runtime),
        packager=ZipModulePackager(config.output.output_dir),
        default_model_id=config.endpoint.model_id,
    )
    log_sink = build_log_sink(
        config.logging, FileSystemLogStore(config.output.logs_dir)
    )
    orchestrator = PipelineOrchestrator(
        phases,
        config=config.pipeline,
        log_sink=log_sink,
        progress_sink=progress_sink,
    )
    design = await load_design_upload(design_path)
    request = PipelineRequest(pipeline_id=pipeline_id, design=design, options=options)
    return await orchestrator.execute_pipeline(request)


def _load_resolved_config(config_path: Path) -> TemplatorConfig:
    config = _load_config(config_path)
    return _resolve_output_paths(config, config_path)


def _load_config(config_path: Path) -> TemplatorConfig:
    _load_dotenv(config_path)
    if not config_path.exists():
        raise _ConfigError(
            f"Config not found: {config_path} (create one with `templator init`)"
        )
    try:
        with open(config_path, "rb") as handle:
            payload: dict[str, JsonValue] = tomllib.load(handle)
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise _ConfigError(f"Failed to read config: {exc}") from exc
    return TemplatorConfig.model_validate(payload, strict=False)


def _load_dotenv(config_path: Path) -> None:
    env_path = config_path.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path, override=False)


def _resolve_output_paths(
    config: TemplatorConfig, config_path: Path
) -> TemplatorConfig:
    base_dir = config_path.parent.resolve()
    output = config.output
    updated = output.model_copy(
        update={
            "output_dir": str(_resolve_path(Path(output.output_dir), base_dir)),
            "logs_dir": str(_resolve_path(Path(output.logs_dir), base_dir)),
            "progress_dir": str(_resolve_path(Path(output.progress_dir), base_dir)),
        }
    )
    return config.model_copy(update={"output": updated})


def _resolve_path(path: Path, base_dir: Path) -> Path:
    return path if path.is_absolute() else base_dir / path


def _render_summary(
    response: ApiResponse[PipelineResult], console: Console
) -> None:
    result = response.data
    if result is not None:
        table = Table(title=f"Run {result.pipeline_id}: {result.status}")
        table.add_column("Phase")
        table.add_column("Result")
        table.add_column("Quality", justify="right")
        table.add_column("Seconds", justify="right")
        for phase in result.phases:
            if phase.fallback_used:
                outcome = "fallback"
            else:
                outcome = "ok" if phase.success else "failed"
            quality = (
                "-" if phase.quality_score is None else f"{phase.quality_score:.1f}"
            )
            table.add_row(
                str(phase.phase), outcome, quality, f"{phase.execution_time_s:.2f}"
            )
        for skipped in result.skipped_phases:
            table.add_row(str(skipped), "skipped", "-", "-")
        console.print(table)
    if response.error is not None:
        console.print(f"[red]{response.error.code}[/red]: {response.error.message}")


def _error_response(error: ErrorResponse) -> ApiResponse[PipelineResult]:
    return ApiResponse(
        data=None,
        error=error,
        meta=MetaInfo(timestamp=_now_timestamp()),
    )


def _with_exit_code(code: str, message: str) -> ErrorResponse:
    return ErrorResponse(
        code=code, message=message, details=None, exit_code=int(resolve_exit_code(code))
    )


def _error_from_exception(exc: Exception) -> ErrorResponse:
    if isinstance(exc, PipelineError | StorageError | LlmError):
        return exc.info.to_error_response()
    if isinstance(exc, ValidationError):
        message = "Config validation failed"
        errors = exc.errors()
        if errors:
            first = errors[0]
            loc = first.get("loc", [])
            label = ".".join(str(part) for part in loc) if loc else ""
            detail = first.get("msg", "")
            if label and detail:
                message = f"Config validation failed: {label} - {detail}"
            elif detail:
                message = f"Config validation failed: {detail}"
        return _with_exit_code("validation_error", message)
    if isinstance(exc, _ConfigError):
        return _with_exit_code("config_error", str(exc))
    if isinstance(exc, ValueError):
        return _with_exit_code("validation_error", str(exc) or type(exc).__name__)
    return _with_exit_code("runtime_error", str(exc) or type(exc).__name__)


if __name__ == "__main__":
    app()
