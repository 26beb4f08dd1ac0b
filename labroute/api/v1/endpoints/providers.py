"""
Delivery provider endpoints.
"""
from typing import Optional

from fastapi import APIRouter

from labroute.core.dependencies import StoreDep
from labroute.models import Provider
from labroute.schemas.provider import ProviderSelectionRequest

router = APIRouter()


@router.get("", response_model=list[Provider])
async def list_providers(store: StoreDep):
    return store.providers


@router.post("/select", response_model=Optional[Provider])
async def select_provider(data: ProviderSelectionRequest, store: StoreDep):
    """
    Pick a courier for a package.

    Rush jobs prefer the lowest fallback priority; standard jobs the highest.
    Falls back to the in-house fleet when nobody can carry the package.
    """
    return await store.select_provider(data)
