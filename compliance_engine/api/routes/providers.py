from fastapi import APIRouter, Depends, HTTPException, status

from compliance_engine.api.deps import get_generation_manager
from compliance_engine.api.models import ProvidersStatusResponse, ProviderStatusResponse
from compliance_engine.services.generation import GenerationJobManager

router = APIRouter()


@router.get("/status", response_model=ProvidersStatusResponse)
async def get_provider_status(manager: GenerationJobManager = Depends(get_generation_manager)) -> ProvidersStatusResponse:  # noqa: B008
  """Report circuit breaker state for every configured provider."""
  stats = manager.provider_status()
  return ProvidersStatusResponse(providers=[ProviderStatusResponse(**entry) for entry in stats.values()])


@router.post("/{provider}/reset", response_model=ProviderStatusResponse)
async def reset_provider_breaker(provider: str, manager: GenerationJobManager = Depends(get_generation_manager)) -> ProviderStatusResponse:  # noqa: B008
  """Close a provider's breaker by hand after an outage is resolved."""
  try:
    await manager.reset_provider(provider)
  except KeyError as exc:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown provider '{provider}'") from exc
  return ProviderStatusResponse(**manager.provider_status()[provider])
