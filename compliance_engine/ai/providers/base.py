"""Base interfaces for model providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Protocol


class ModelResponse(Protocol):
  """Response contract for model outputs."""

  content: str
  usage: dict[str, int] | None
  finish_reason: str | None
  model: str


@dataclass
class SimpleModelResponse:
  """Minimal model response structure."""

  content: str
  model: str
  usage: dict[str, int] | None = None
  finish_reason: str | None = None


@dataclass(frozen=True)
class CompletionRequest:
  """Provider-neutral text completion request."""

  system_prompt: str
  user_prompt: str
  max_tokens: int = 4000
  json_output: bool = False


class Provider(ABC):
  """Abstract base class for text-completion providers."""

  name: str
  model: str
  dummy: bool = False

  @abstractmethod
  async def complete(self, request: CompletionRequest) -> ModelResponse:
    """Return a completion for the request or raise on provider failure."""

  def dummy_response(self, request: CompletionRequest) -> SimpleModelResponse:
    """Build a deterministic response for local runs without API keys."""
    if request.json_output:
      content = '{"overallScore": 85, "grade": "B", "metrics": [], "strengths": ["Deterministic local output"], "weaknesses": [], "recommendations": []}'
    else:
      heading = request.user_prompt.strip().splitlines()[0] if request.user_prompt.strip() else "Document"
      content = f"# {heading}\n\nGenerated locally by the {self.name} dummy adapter."
    return SimpleModelResponse(content=content, model=f"{self.model}-dummy", usage=None, finish_reason="stop")


def require_content(provider: str, content: str | None) -> str:
  """Treat empty completions as provider errors."""
  if content is None or not content.strip():
    raise RuntimeError(f"{provider} returned an empty completion.")
  return content
