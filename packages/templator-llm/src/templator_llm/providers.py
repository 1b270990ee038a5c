"""Provider detection from endpoint base URLs."""

from __future__ import annotations

import ipaddress
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field


class ProviderCapabilities(BaseModel):
    """What the runtime needs to know about an endpoint."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(description="Human-readable provider name")
    is_openrouter: bool = Field(description="Whether the provider is OpenRouter")
    is_local: bool = Field(description="Whether the endpoint is self-hosted")


OPENROUTER_CAPABILITIES = ProviderCapabilities(
    name="OpenRouter", is_openrouter=True, is_local=False
)
OPENAI_CAPABILITIES = ProviderCapabilities(
    name="OpenAI", is_openrouter=False, is_local=False
)
LOCAL_CAPABILITIES = ProviderCapabilities(
    name="Local", is_openrouter=False, is_local=True
)
GENERIC_CAPABILITIES = ProviderCapabilities(
    name="Generic OpenAI-compatible", is_openrouter=False, is_local=False
)


def _is_private_host(hostname: str) -> bool:
    if hostname in ("localhost", "0.0.0.0") or hostname.endswith(
        (".local", ".localhost")
    ):
        return True
    try:
        address = ipaddress.ip_address(hostname)
    except ValueError:
        return False
    return address.is_private or address.is_loopback


def detect_provider(base_url: str) -> ProviderCapabilities:
    """Detect provider capabilities from a base URL.

    Returns:
        ProviderCapabilities: Capabilities of the detected provider.
    """
    value = base_url.strip().lower()
    if not value.startswith(("http://", "https://")):
        value = f"https://{value}"
    hostname = urlparse(value).hostname or ""
    if hostname == "openrouter.ai" or hostname.endswith(".openrouter.ai"):
        return OPENROUTER_CAPABILITIES
    if hostname == "api.openai.com":
        return OPENAI_CAPABILITIES
    if _is_private_host(hostname):
        return LOCAL_CAPABILITIES
    return GENERIC_CAPABILITIES
