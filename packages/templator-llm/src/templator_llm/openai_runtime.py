"""OpenAI-compatible runtime adapter powered by pydantic-ai."""

from __future__ import annotations

import base64
import binascii
import os
import re
from typing import cast

from pydantic_ai import Agent, BinaryContent
from pydantic_ai.messages import UserContent
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel, OpenAIChatModelSettings
from pydantic_ai.models.openrouter import OpenRouterModel, OpenRouterModelSettings
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.providers.openrouter import OpenRouterProvider
from pydantic_ai.settings import ModelSettings

from templator_llm.errors import LlmError, LlmErrorCode, LlmErrorDetails, LlmErrorInfo
from templator_llm.providers import detect_provider
from templator_schemas.config import ModelEndpointConfig

LOCAL_API_KEY = "local"
_DATA_URL = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.S)


def resolve_api_key(endpoint: ModelEndpointConfig) -> str:
    """Read the endpoint API key from the environment.

    Self-hosted endpoints without a key get a placeholder.

    Returns:
        str: API key.

    Raises:
        LlmError: If the key is missing for a hosted endpoint.
    """
    api_key = os.environ.get(endpoint.api_key_env, "").strip()
    if api_key:
        return api_key
    if detect_provider(endpoint.base_url).is_local:
        return LOCAL_API_KEY
    raise LlmError(
        LlmErrorInfo(
            code=LlmErrorCode.MISSING_API_KEY,
            message=f"Environment variable {endpoint.api_key_env} is not set",
            details=LlmErrorDetails(
                base_url=endpoint.base_url, env_var=endpoint.api_key_env
            ),
        )
    )


def binary_from_data_url(data_url: str) -> BinaryContent:
    """Image content for a base64 data URL.

    Raises:
        ValueError: If the data URL is malformed.
    """
    match = _DATA_URL.match(data_url)
    if match is None:
        raise ValueError("Image must be a base64 data URL")
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except binascii.Error as exc:
        raise ValueError("Image data URL is not valid base64") from exc
    return BinaryContent(data=data, media_type=match.group("mime"))


class OpenAICompatibleRuntime:
    """Structured-output model calls against an OpenAI-compatible endpoint."""

    def __init__(self, endpoint: ModelEndpointConfig, *, api_key: str) -> None:
        """Initialize the runtime.

        Args:
            endpoint: Endpoint settings.
            api_key: API key for the endpoint.
        """
        self._endpoint = endpoint
        self._api_key = api_key

    @property
    def endpoint(self) -> ModelEndpointConfig:
        """Endpoint settings in use."""
        return self._endpoint

    def build_model(self, model_id: str | None = None) -> tuple[Model, ModelSettings]:
        """Create the provider-specific model and its settings.

        Returns:
            tuple[Model, ModelSettings]: Model ready for a pydantic-ai Agent.
        """
        endpoint = self._endpoint
        resolved_id = model_id or endpoint.model_id
        if detect_provider(endpoint.base_url).is_openrouter:
            router_settings: OpenRouterModelSettings = {
                "temperature": endpoint.temperature,
                "timeout": endpoint.timeout_s,
                "max_tokens": endpoint.max_output_tokens,
            }
            model: Model = OpenRouterModel(
                resolved_id, provider=OpenRouterProvider(api_key=self._api_key)
            )
            return model, cast(ModelSettings, router_settings)
        openai_settings: OpenAIChatModelSettings = {
            "temperature": endpoint.temperature,
            "timeout": endpoint.timeout_s,
            "max_tokens": endpoint.max_output_tokens,
        }
        model = OpenAIChatModel(
            resolved_id,
            provider=OpenAIProvider(base_url=endpoint.base_url, api_key=self._api_key),
        )
        return model, cast(ModelSettings, openai_settings)

    async def run_structured[OutputT](
        self,
        prompt: str,
        *,
        output_type: type[OutputT],
        instructions: str,
        model_id: str | None = None,
        image_data_url: str | None = None,
    ) -> OutputT:
        """Run one prompt and return the validated structured output.

        Args:
            prompt: User prompt text.
            output_type: Schema the model must produce.
            instructions: System instructions.
            model_id: Model override.
            image_data_url: Optional image attached to the prompt.

        Returns:
            OutputT: Parsed model output.

        Raises:
            LlmError: If the request fails.
        """
        resolved_id = model_id or self._endpoint.model_id
        model, settings = self.build_model(resolved_id)
        content: list[UserContent] = [prompt]
        if image_data_url:
            content.append(binary_from_data_url(image_data_url))
        agent = Agent(model, output_type=output_type, instructions=instructions)
        try:
            result = await agent.run(content, model_settings=settings)
        except Exception as exc:
            raise LlmError(
                LlmErrorInfo(
                    code=LlmErrorCode.REQUEST_FAILED,
                    message=f"Model request failed: {str(exc) or type(exc).__name__}",
                    details=LlmErrorDetails(
                        model_id=resolved_id,
                        base_url=self._endpoint.base_url,
                        reason=type(exc).__name__,
                    ),
                )
            ) from exc
        return result.output
