"""
Configuration schemas.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ConfigValueResponse(BaseModel):
    """Single public configuration value."""

    key: str
    value: str


class ConfigEntryResponse(BaseModel):
    """Configuration row. Secret values are masked unless requested by an admin."""

    model_config = ConfigDict(from_attributes=True)

    key: str
    value: str
    description: Optional[str] = None
    category: str = "general"
    is_secret: bool = False
    updated_at: Optional[datetime] = None


class ConfigListResponse(BaseModel):
    items: List[ConfigEntryResponse]
    total: int


class ConfigUpdate(BaseModel):
    """Admin upsert of a configuration key."""

    value: str
    description: Optional[str] = Field(None, max_length=1000)
    category: str = Field("general", min_length=1, max_length=64)
    is_secret: bool = False


class RefreshResponse(BaseModel):
    refreshed: bool
    keys: int
