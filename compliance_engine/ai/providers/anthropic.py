"""Anthropic provider implementation using the anthropic SDK."""

from __future__ import annotations

import logging
import os

from anthropic import AsyncAnthropic

from compliance_engine.ai.providers.base import CompletionRequest, ModelResponse, Provider, SimpleModelResponse, require_content

logger = logging.getLogger(__name__)


class AnthropicProvider(Provider):
  """Claude models, favored for structured long-form policy writing."""

  def __init__(self, model: str = "claude-sonnet-4-20250514", api_key: str | None = None, *, dummy: bool = False) -> None:
    self.name: str = "anthropic"
    self.model: str = model
    self.dummy = dummy
    self._api_key = api_key
    self._client: AsyncAnthropic | None = None

  def _get_client(self) -> AsyncAnthropic:
    if self._client is None:
      api_key = self._api_key or os.getenv("ANTHROPIC_API_KEY")
      if not api_key:
        raise ValueError("ANTHROPIC_API_KEY environment variable is required")
      self._client = AsyncAnthropic(api_key=api_key)
    return self._client

  async def complete(self, request: CompletionRequest) -> ModelResponse:
    """Generate a message completion."""
    if self.dummy:
      return self.dummy_response(request)

    system_prompt = request.system_prompt
    if request.json_output:
      system_prompt = f"{system_prompt}\n\nRespond with a single valid JSON object and nothing else."

    response = await self._get_client().messages.create(model=self.model, max_tokens=request.max_tokens, system=system_prompt, messages=[{"role": "user", "content": request.user_prompt}])

    # Concatenate text blocks; tool or thinking blocks are not requested.
    text = "".join(block.text for block in response.content if getattr(block, "type", None) == "text")
    content = require_content(self.name, text)
    logger.debug("Anthropic response model=%s chars=%d stop_reason=%s", self.model, len(content), response.stop_reason)
    usage = None

    if response.usage:
      usage = {"prompt_tokens": response.usage.input_tokens, "completion_tokens": response.usage.output_tokens, "total_tokens": response.usage.input_tokens + response.usage.output_tokens}

    return SimpleModelResponse(content=content, model=self.model, usage=usage, finish_reason=response.stop_reason)
