"""Unit tests for templator-cli."""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from templator_cli.main import DEFAULT_CONFIG_TEMPLATE, app
from templator_llm.openai_runtime import OpenAICompatibleRuntime
from templator_llm.services import RefinedMarkup
from templator_schemas.config import TemplatorConfig
from templator_schemas.phases import EditableField
from templator_schemas.services import CorrectionResult, SectionDraft
from tests.helpers.builders import GOOD_HTML

runner = CliRunner()

_FIELDS = [
    EditableField(
        field_id="hero_heading",
        label="Hero Heading",
        selector="h2",
        default_value="Welcome",
    )
]
_OUTPUTS: dict[type, object] = {
    SectionDraft: SectionDraft(html=GOOD_HTML, editable_fields=_FIELDS),
    CorrectionResult: CorrectionResult(html=GOOD_HTML, editable_fields=_FIELDS),
    RefinedMarkup: RefinedMarkup(
        html=GOOD_HTML, editable_fields=_FIELDS, estimated_quality=95.0
    ),
}


def _fake_agent(model: object, *, output_type: type, instructions: str) -> MagicMock:
    agent = MagicMock()
    agent.run = AsyncMock(return_value=MagicMock(output=_OUTPUTS[output_type]))
    return agent


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    """Default config written by the init command.

    Returns:
        Path: Path to the config file.
    """
    path = tmp_path / "templator.toml"
    result = runner.invoke(app, ["init", "--config", str(path)])
    assert result.exit_code == 0
    return path


def _last_json(output: str) -> dict[str, object]:
    return json.loads(output.strip().splitlines()[-1])


def test_version_command() -> None:
    """Test version command outputs version string."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "templator v0.1.0" in result.stdout


def test_default_config_template_is_valid() -> None:
    """The init template parses into a valid config."""
    config = TemplatorConfig.model_validate(
        tomllib.loads(DEFAULT_CONFIG_TEMPLATE), strict=False
    )
    assert config.endpoint.model_id == "gpt-4o"
    assert len(config.pipeline.phases) == 5


def test_init_writes_config(config_path: Path) -> None:
    """Init writes the default template."""
    assert config_path.read_text(encoding="utf-8") == DEFAULT_CONFIG_TEMPLATE


def test_init_refuses_to_overwrite(config_path: Path) -> None:
    """Init keeps an existing config unless forced."""
    config_path.write_text("# custom\n", encoding="utf-8")

    refused = runner.invoke(app, ["init", "--config", str(config_path)])
    assert refused.exit_code == 10
    assert config_path.read_text(encoding="utf-8") == "# custom\n"

    forced = runner.invoke(app, ["init", "--config", str(config_path), "--force"])
    assert forced.exit_code == 0
    assert config_path.read_text(encoding="utf-8") == DEFAULT_CONFIG_TEMPLATE


def test_run_without_config_is_config_error(
    tmp_path: Path, design_file: Path
) -> None:
    """A missing config file exits with the config error code."""
    result = runner.invoke(
        app, ["run", str(design_file), "--config", str(tmp_path / "missing.toml")]
    )

    assert result.exit_code == 10
    payload = _last_json(result.stdout)
    assert payload["data"] is None
    error = payload["error"]
    assert isinstance(error, dict)
    assert error["code"] == "config_error"
    assert "templator init" in error["message"]


def test_run_with_invalid_config_is_validation_error(
    tmp_path: Path, design_file: Path
) -> None:
    """Config values failing validation exit with the validation code."""
    path = tmp_path / "templator.toml"
    path.write_text("[pipeline.retry]\nmax_retries = -1\n", encoding="utf-8")

    result = runner.invoke(app, ["run", str(design_file), "--config", str(path)])

    assert result.exit_code == 11
    error = _last_json(result.stdout)["error"]
    assert isinstance(error, dict)
    assert error["code"] == "validation_error"
    assert "pipeline.retry.max_retries" in error["message"]


def test_run_without_api_key_is_config_error(
    config_path: Path, design_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Hosted endpoints without a key exit with the config error code."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    result = runner.invoke(
        app, ["run", str(design_file), "--config", str(config_path)]
    )

    assert result.exit_code == 10
    error = _last_json(result.stdout)["error"]
    assert isinstance(error, dict)
    assert error["code"] == "llm.missing_api_key"


def test_run_with_missing_design_is_storage_error(
    config_path: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """An unreadable design file exits with the storage error code."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    result = runner.invoke(
        app, ["run", str(tmp_path / "nope.png"), "--config", str(config_path)]
    )

    assert result.exit_code == 23
    error = _last_json(result.stdout)["error"]
    assert isinstance(error, dict)
    assert error["code"] == "storage.io_error"


def test_run_packages_module(
    config_path: Path, design_file: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A full run with a stubbed model writes the module archive."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    with (
        patch("templator_llm.openai_runtime.Agent", side_effect=_fake_agent),
        patch.object(
            OpenAICompatibleRuntime, "build_model", return_value=(MagicMock(), {})
        ),
    ):
        result = runner.invoke(
            app,
            [
                "run",
                str(design_file),
                "--config",
                str(config_path),
                "--pipeline-id",
                "cli-run",
                "--format",
                "html",
            ],
        )

    assert result.exit_code == 0, result.stdout
    payload = _last_json(result.stdout)
    assert payload["error"] is None
    data = payload["data"]
    assert isinstance(data, dict)
    assert data["success"] is True
    assert data["pipeline_id"] == "cli-run"
    archive = config_path.parent / "out" / "module_cli-run.html.zip"
    assert archive.exists()
    log_path = config_path.parent / "logs" / "cli-run.jsonl"
    events = [
        json.loads(line)["event"]
        for line in log_path.read_text(encoding="utf-8").splitlines()
    ]
    assert events[0] == "run_started"
    assert events[-1] == "run_completed"
    progress_path = config_path.parent / "logs" / "progress" / "cli-run.jsonl"
    assert progress_path.exists()
