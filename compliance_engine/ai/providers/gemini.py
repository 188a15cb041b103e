"""Gemini provider implementation using the google-genai SDK."""

from __future__ import annotations

import logging
import os

from google import genai
from google.genai import types

from compliance_engine.ai.providers.base import CompletionRequest, ModelResponse, Provider, SimpleModelResponse, require_content

logger = logging.getLogger(__name__)


class GeminiProvider(Provider):
  """Gemini models, used for documents that need a very large context window."""

  def __init__(self, model: str = "gemini-2.5-pro", api_key: str | None = None, *, dummy: bool = False) -> None:
    self.name: str = "gemini"
    self.model: str = model
    self.dummy = dummy
    self._api_key = api_key
    self._client: genai.Client | None = None

  def _get_client(self) -> genai.Client:
    if self._client is None:
      api_key = self._api_key or os.getenv("GEMINI_API_KEY")
      if not api_key:
        raise ValueError("GEMINI_API_KEY environment variable is required")
      self._client = genai.Client(api_key=api_key)
    return self._client

  async def complete(self, request: CompletionRequest) -> ModelResponse:
    """Generate content through the async client."""
    if self.dummy:
      return self.dummy_response(request)

    config = types.GenerateContentConfig(system_instruction=request.system_prompt, max_output_tokens=request.max_tokens, response_mime_type="application/json" if request.json_output else None)
    # Use the async client to avoid blocking the asyncio event loop.
    response = await self._get_client().aio.models.generate_content(model=self.model, contents=request.user_prompt, config=config)

    content = require_content(self.name, response.text)
    finish_reason = None
    if response.candidates:
      raw_reason = response.candidates[0].finish_reason
      finish_reason = getattr(raw_reason, "value", None) or (str(raw_reason) if raw_reason is not None else None)
    logger.debug("Gemini response model=%s chars=%d finish_reason=%s", self.model, len(content), finish_reason)
    usage = None

    if response.usage_metadata:
      usage = {"prompt_tokens": response.usage_metadata.prompt_token_count, "completion_tokens": response.usage_metadata.candidates_token_count, "total_tokens": response.usage_metadata.total_token_count}

    return SimpleModelResponse(content=content, model=self.model, usage=usage, finish_reason=finish_reason)
