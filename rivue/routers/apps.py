"""Lookup endpoints for the dashboard's app and country pickers."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from rivue.dependencies import get_credential_provider
from rivue.schemas.fetch import ConfiguredApp, Country
from rivue.services.credentials import CredentialProvider
from rivue.utils.territories import RSS_COUNTRIES

router = APIRouter(tags=["apps"])


@router.get("/apps", response_model=list[ConfiguredApp], response_model_by_alias=True)
async def list_apps(
    provider: CredentialProvider = Depends(get_credential_provider),
) -> list[ConfiguredApp]:
    """Apps declared through APPLE_APP_<id>_NAME environment variables."""
    return provider.configured_apps()


@router.get("/countries", response_model=list[Country])
async def list_countries() -> list[Country]:
    return [Country(code=code, name=name) for code, name in RSS_COUNTRIES.items()]
