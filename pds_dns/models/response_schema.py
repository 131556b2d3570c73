from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class DomainCreate(BaseModel):
    name: str
    description: Optional[str] = None
    owner: Optional[str] = None


class DomainResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    owner: Optional[str] = None
    verified: bool
    verified_at: Optional[datetime] = None
    source: str
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MessageResponse(BaseModel):
    message: str
    domain: Optional[str] = None
