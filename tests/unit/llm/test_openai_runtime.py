"""Tests for OpenAI-compatible runtime adapter."""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import Field

from templator_llm.errors import LlmError, LlmErrorCode
from templator_llm.openai_runtime import (
    LOCAL_API_KEY,
    OpenAICompatibleRuntime,
    binary_from_data_url,
    resolve_api_key,
)
from templator_schemas.base import BaseSchema
from templator_schemas.config import ModelEndpointConfig

if TYPE_CHECKING:
    from collections.abc import Generator

IMAGE_URL = "data:image/png;base64," + base64.b64encode(b"pixels").decode()


class _Verdict(BaseSchema):
    """Test output schema for structured output tests."""

    winner: str = Field(..., description="Winner")


@pytest.fixture
def mock_agent() -> Generator[MagicMock]:
    """Mock pydantic-ai Agent class.

    Yields:
        MagicMock: Mocked Agent class.
    """
    with patch("templator_llm.openai_runtime.Agent") as mock:
        agent_instance = MagicMock()
        agent_instance.run = AsyncMock(
            return_value=MagicMock(output=_Verdict(winner="blue"))
        )
        mock.return_value = agent_instance
        yield mock


@pytest.fixture
def mock_build_model() -> Generator[MagicMock]:
    """Mock model construction.

    Yields:
        MagicMock: Mocked build_model method.
    """
    with patch.object(
        OpenAICompatibleRuntime,
        "build_model",
        return_value=(MagicMock(), {"temperature": 0.2}),
    ) as mock:
        yield mock


class TestResolveApiKey:
    """Tests for API key resolution."""

    def test_reads_key_from_environment(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The configured variable supplies the key."""
        monkeypatch.setenv("TEMPLATOR_TEST_KEY", "  sk-test  ")
        endpoint = ModelEndpointConfig(api_key_env="TEMPLATOR_TEST_KEY")
        assert resolve_api_key(endpoint) == "sk-test"

    def test_local_endpoint_needs_no_key(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Self-hosted endpoints get a placeholder key."""
        monkeypatch.delenv("TEMPLATOR_TEST_KEY", raising=False)
        endpoint = ModelEndpointConfig(
            base_url="http://localhost:11434/v1", api_key_env="TEMPLATOR_TEST_KEY"
        )
        assert resolve_api_key(endpoint) == LOCAL_API_KEY

    def test_hosted_endpoint_without_key_raises(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Hosted endpoints require a key."""
        monkeypatch.delenv("TEMPLATOR_TEST_KEY", raising=False)
        endpoint = ModelEndpointConfig(api_key_env="TEMPLATOR_TEST_KEY")

        with pytest.raises(LlmError) as excinfo:
            resolve_api_key(endpoint)

        info = excinfo.value.info
        assert info.code == LlmErrorCode.MISSING_API_KEY
        response = info.to_error_response()
        assert response.code == "llm.missing_api_key"
        assert response.exit_code == 10
        assert response.details is not None
        assert response.details.field == "TEMPLATOR_TEST_KEY"


class TestBinaryFromDataUrl:
    """Tests for data URL decoding."""

    def test_decodes_image(self) -> None:
        """Valid data URLs become binary content."""
        content = binary_from_data_url(IMAGE_URL)
        assert content.data == b"pixels"
        assert content.media_type == "image/png"

    @pytest.mark.parametrize(
        "value", ["https://example.com/a.png", "data:image/png;base64,@@@"]
    )
    def test_rejects_bad_input(self, value: str) -> None:
        """Anything but a base64 data URL is rejected."""
        with pytest.raises(ValueError):
            binary_from_data_url(value)


class TestBuildModel:
    """Tests for provider-specific model construction."""

    def test_openai_endpoint_uses_chat_model(self) -> None:
        """OpenAI-compatible endpoints get an OpenAI chat model."""
        endpoint = ModelEndpointConfig(base_url="https://llm.example.com/v1")
        runtime = OpenAICompatibleRuntime(endpoint, api_key="sk-test")
        with (
            patch("templator_llm.openai_runtime.OpenAIProvider") as provider,
            patch("templator_llm.openai_runtime.OpenAIChatModel") as chat_model,
        ):
            model, settings = runtime.build_model("custom-model")

        provider.assert_called_once_with(
            base_url="https://llm.example.com/v1", api_key="sk-test"
        )
        assert chat_model.call_args.args == ("custom-model",)
        assert model is chat_model.return_value
        assert settings == {"temperature": 0.2, "timeout": 120.0, "max_tokens": 4096}

    def test_openrouter_endpoint_uses_router_model(self) -> None:
        """OpenRouter endpoints get the OpenRouter model and provider."""
        endpoint = ModelEndpointConfig(base_url="https://openrouter.ai/api/v1")
        runtime = OpenAICompatibleRuntime(endpoint, api_key="sk-or")
        with (
            patch("templator_llm.openai_runtime.OpenRouterProvider") as provider,
            patch("templator_llm.openai_runtime.OpenRouterModel") as router_model,
        ):
            model, _ = runtime.build_model()

        provider.assert_called_once_with(api_key="sk-or")
        assert router_model.call_args.args == ("gpt-4o",)
        assert model is router_model.return_value


class TestRunStructured:
    """Tests for structured model calls."""

    @pytest.mark.asyncio
    async def test_returns_agent_output(
        self, mock_agent: MagicMock, mock_build_model: MagicMock
    ) -> None:
        """The agent output is returned and the image is attached."""
        runtime = OpenAICompatibleRuntime(ModelEndpointConfig(), api_key="sk-test")

        output = await runtime.run_structured(
            "Pick a winner",
            output_type=_Verdict,
            instructions="Be fair",
            model_id="judge-model",
            image_data_url=IMAGE_URL,
        )

        assert output == _Verdict(winner="blue")
        mock_build_model.assert_called_once_with("judge-model")
        assert mock_agent.call_args.kwargs == {
            "output_type": _Verdict,
            "instructions": "Be fair",
        }
        content = mock_agent.return_value.run.call_args.args[0]
        assert content[0] == "Pick a winner"
        assert content[1].data == b"pixels"

    @pytest.mark.asyncio
    async def test_failures_become_llm_errors(
        self, mock_agent: MagicMock, mock_build_model: MagicMock
    ) -> None:
        """Any agent exception is wrapped as a request failure."""
        mock_agent.return_value.run.side_effect = TimeoutError("slow endpoint")
        runtime = OpenAICompatibleRuntime(ModelEndpointConfig(), api_key="sk-test")

        with pytest.raises(LlmError) as excinfo:
            await runtime.run_structured(
                "Pick", output_type=_Verdict, instructions="Be fair"
            )

        info = excinfo.value.info
        assert info.code == LlmErrorCode.REQUEST_FAILED
        assert info.message == "Model request failed: slow endpoint"
        assert info.details is not None
        assert info.details.model_id == "gpt-4o"
        assert info.details.reason == "TimeoutError"
        assert info.to_error_response().exit_code == 30
