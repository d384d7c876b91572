"""
Configuration endpoints.

Public reads never expose secret entries. Admin routes require the
administrative bearer secret.
"""

from typing import List

from fastapi import APIRouter, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from identity_bridge.api.deps import AdminAccess, Config
from identity_bridge.kernel.exceptions import ConfigNotFound
from identity_bridge.kernel.models.configuration import ConfigEntry
from identity_bridge.logging_config import get_logger
from identity_bridge.schemas.common import SuccessResponse
from identity_bridge.schemas.configuration import (
    ConfigEntryResponse,
    ConfigListResponse,
    ConfigUpdate,
    ConfigValueResponse,
    RefreshResponse,
)

router = APIRouter()
logger = get_logger(__name__)


def _list_response(entries: List[ConfigEntry], include_secrets: bool = False) -> ConfigListResponse:
    items = [
        ConfigEntryResponse.model_validate(entry)
        for entry in entries
        if include_secrets or not entry.is_secret
    ]
    return ConfigListResponse(items=items, total=len(items))


def _store_error(action: str, key: str, e: SQLAlchemyError) -> HTTPException:
    logger.exception("Configuration %s failed", action, extra={"config_key": key})
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action} configuration '{key}': {type(e).__name__}",
    )


@router.get("", response_model=ConfigListResponse)
async def list_public_config(cache: Config):
    """List non-secret configuration entries."""
    return _list_response(await cache.list_entries())


@router.get("/admin/all", response_model=ConfigListResponse)
async def list_all_config(cache: Config, _: AdminAccess):
    """List every configuration entry, secrets included."""
    return _list_response(await cache.list_entries(), include_secrets=True)


@router.get("/category/{category}", response_model=ConfigListResponse)
async def list_config_by_category(category: str, cache: Config):
    """List non-secret entries in one category."""
    return _list_response(await cache.list_entries(category))


@router.post("/refresh", response_model=RefreshResponse)
async def refresh_config(cache: Config, _: AdminAccess):
    """Reload the configuration cache from the store."""
    refreshed = await cache.refresh()
    if not refreshed:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to refresh configuration; previous values kept",
        )
    return RefreshResponse(refreshed=True, keys=len(cache.snapshot()))


@router.get("/{key}", response_model=ConfigValueResponse)
async def get_config_value(key: str, cache: Config):
    """Get a single non-secret value from the configuration table."""
    try:
        value = await cache.aget(key, include_static=False)
    except ConfigNotFound:
        value = None
    if value is None or cache.is_secret(key):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Configuration key '{key}' not found",
        )
    return ConfigValueResponse(key=key, value=value)


@router.put("/{key}", response_model=SuccessResponse)
async def update_config(key: str, data: ConfigUpdate, cache: Config, _: AdminAccess):
    """Create or update a configuration entry."""
    try:
        await cache.set(
            key,
            data.value,
            description=data.description,
            category=data.category,
            is_secret=data.is_secret,
        )
    except SQLAlchemyError as e:
        raise _store_error("update", key, e)
    return SuccessResponse(message=f"Configuration '{key}' updated")


@router.delete("/{key}", response_model=SuccessResponse)
async def delete_config(key: str, cache: Config, _: AdminAccess):
    """Delete a configuration entry."""
    try:
        deleted = await cache.delete(key)
    except SQLAlchemyError as e:
        raise _store_error("delete", key, e)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Configuration key '{key}' not found",
        )
    return SuccessResponse(message=f"Configuration '{key}' deleted")
