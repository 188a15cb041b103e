"""Provider implementations."""

from compliance_engine.ai.providers.anthropic import AnthropicProvider
from compliance_engine.ai.providers.base import CompletionRequest, ModelResponse, Provider, SimpleModelResponse
from compliance_engine.ai.providers.gemini import GeminiProvider
from compliance_engine.ai.providers.openai import OpenAIProvider

__all__ = ["AnthropicProvider", "CompletionRequest", "GeminiProvider", "ModelResponse", "OpenAIProvider", "Provider", "SimpleModelResponse"]
