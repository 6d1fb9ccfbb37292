"""
Integrations Router - registered providers and stored configs

Secrets never leave the store: responses only say whether keys are present.
"""
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from agents.pipeline import Stores
from integrations import IntegrationStatus, ProviderNotFoundError
from integrations.contract import supported_capabilities
from models import IntegrationSummary
from routers.deps import get_stores

router = APIRouter(prefix="/api/integrations", tags=["integrations"])


def _provider_or_404(stores: Stores, provider_id: str):
    try:
        return stores.registry.lookup(provider_id)
    except ProviderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("", response_model=List[IntegrationSummary])
async def list_integrations(stores: Stores = Depends(get_stores)):
    """Registered providers with the apps configured for each"""
    return [
        IntegrationSummary(
            id=provider.id,
            name=provider.descriptor.name,
            description=provider.descriptor.description,
            capabilities=supported_capabilities(provider),
            apps=stores.integrations.all_app_names(provider.id),
        )
        for provider in stores.registry.providers()
    ]


@router.get("/{provider_id}/status/{app_name}", response_model=IntegrationStatus)
async def integration_status(provider_id: str, app_name: str, stores: Stores = Depends(get_stores)):
    _provider_or_404(stores, provider_id)
    config = stores.integrations.get_provider(provider_id, app_name)
    return IntegrationStatus.from_config(app_name, config, provider_id)


@router.delete("/{provider_id}/{app_name}")
async def remove_integration(provider_id: str, app_name: str, stores: Stores = Depends(get_stores)):
    """Forget the stored config for one app"""
    _provider_or_404(stores, provider_id)
    if not stores.integrations.remove_provider(provider_id, app_name):
        raise HTTPException(status_code=404, detail=f"{provider_id} is not configured for {app_name}")
    return {"success": True}


__all__ = ["router"]
