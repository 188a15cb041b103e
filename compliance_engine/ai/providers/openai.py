"""OpenAI provider implementation using the openai SDK."""

from __future__ import annotations

import logging
import os

from openai import AsyncOpenAI

from compliance_engine.ai.providers.base import CompletionRequest, ModelResponse, Provider, SimpleModelResponse, require_content

logger = logging.getLogger(__name__)


class OpenAIProvider(Provider):
  """GPT models, favored for precise technical and procedural documents."""

  def __init__(self, model: str = "gpt-4o", api_key: str | None = None, base_url: str | None = None, *, dummy: bool = False) -> None:
    self.name: str = "openai"
    self.model: str = model
    self.dummy = dummy
    self._api_key = api_key
    self._base_url = base_url
    self._client: AsyncOpenAI | None = None

  def _get_client(self) -> AsyncOpenAI:
    # Build the client on first use so missing keys surface as call failures.
    if self._client is None:
      api_key = self._api_key or os.getenv("OPENAI_API_KEY")
      if not api_key:
        raise ValueError("OPENAI_API_KEY environment variable is required")
      self._client = AsyncOpenAI(api_key=api_key, base_url=self._base_url)
    return self._client

  async def complete(self, request: CompletionRequest) -> ModelResponse:
    """Generate a chat completion."""
    if self.dummy:
      return self.dummy_response(request)

    kwargs = {}
    if request.json_output:
      kwargs["response_format"] = {"type": "json_object"}

    response = await self._get_client().chat.completions.create(
      model=self.model,
      messages=[{"role": "system", "content": request.system_prompt}, {"role": "user", "content": request.user_prompt}],
      max_tokens=request.max_tokens,
      **kwargs,
    )

    choice = response.choices[0]
    content = require_content(self.name, choice.message.content)
    logger.debug("OpenAI response model=%s chars=%d finish_reason=%s", self.model, len(content), choice.finish_reason)
    usage = None

    if response.usage:
      usage = {"prompt_tokens": response.usage.prompt_tokens, "completion_tokens": response.usage.completion_tokens, "total_tokens": response.usage.total_tokens}

    return SimpleModelResponse(content=content, model=self.model, usage=usage, finish_reason=choice.finish_reason)
