import uuid
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

UNKNOWN = "unknown"

class LinkCreate(BaseModel):
    # Scheme and alias rules are enforced by the service so every caller gets them.
    destination: str = Field(..., min_length=1, max_length=2048)
    custom_alias: Optional[str] = None
    secret: Optional[str] = Field(None, min_length=1, max_length=128)
    expires_at: Optional[datetime] = None

class LinkUpdate(BaseModel):
    destination: Optional[str] = Field(None, min_length=1, max_length=2048)
    active: Optional[bool] = None
    expires_at: Optional[datetime] = None

class LinkResponse(BaseModel):
    id: uuid.UUID
    code: str
    short_url: str
    destination: str
    owner: Optional[str]
    custom_alias: bool
    protected: bool
    active: bool
    expires_at: Optional[datetime]
    click_count: int
    created_at: datetime
    updated_at: datetime

class LinkPage(BaseModel):
    items: list[LinkResponse]
    total: int
    offset: int
    limit: int

class ClickMetadata(BaseModel):
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    country: str = UNKNOWN
    region: str = UNKNOWN
    city: str = UNKNOWN
    device: str = UNKNOWN
    browser: str = UNKNOWN
    os: str = UNKNOWN
