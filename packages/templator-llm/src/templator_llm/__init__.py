"""Model-backed collaborators for templator."""

from templator_llm.errors import LlmError, LlmErrorCode, LlmErrorDetails, LlmErrorInfo
from templator_llm.openai_runtime import (
    OpenAICompatibleRuntime,
    binary_from_data_url,
    resolve_api_key,
)
from templator_llm.providers import ProviderCapabilities, detect_provider
from templator_llm.services import (
    LlmErrorCorrectionService,
    LlmGenerationService,
    LlmRefinementService,
    RefinedMarkup,
)

__all__ = [
    "LlmError",
    "LlmErrorCode",
    "LlmErrorCorrectionService",
    "LlmErrorDetails",
    "LlmErrorInfo",
    "LlmGenerationService",
    "LlmRefinementService",
    "OpenAICompatibleRuntime",
    "ProviderCapabilities",
    "RefinedMarkup",
    "binary_from_data_url",
    "detect_provider",
    "resolve_api_key",
]
