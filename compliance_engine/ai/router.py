"""Construction of provider adapters from settings."""

from __future__ import annotations

from compliance_engine.ai.model_selection import ProviderId
from compliance_engine.ai.providers import AnthropicProvider, GeminiProvider, OpenAIProvider, Provider
from compliance_engine.config import Settings


def build_providers(settings: Settings) -> dict[str, Provider]:
  """Return one adapter per supported provider keyed by provider id."""
  dummy = settings.dummy_responses
  return {
    ProviderId.ANTHROPIC.value: AnthropicProvider(model=settings.anthropic_model, api_key=settings.anthropic_api_key, dummy=dummy),
    ProviderId.OPENAI.value: OpenAIProvider(model=settings.openai_model, api_key=settings.openai_api_key, dummy=dummy),
    ProviderId.GEMINI.value: GeminiProvider(model=settings.gemini_model, api_key=settings.gemini_api_key, dummy=dummy),
  }

