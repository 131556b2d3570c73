from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from pds_dns.models.record_db import RecordType


class RecordCreate(BaseModel):
    domain: str
    name: str = "@"
    type: RecordType
    value: str = Field(min_length=1)
    ttl: int = Field(default=300, ge=0)
    active: bool = True


class RecordUpdate(BaseModel):
    value: Optional[str] = Field(default=None, min_length=1)
    ttl: Optional[int] = Field(default=None, ge=0)
    active: Optional[bool] = None


class RecordResponse(BaseModel):
    id: int
    domain: str
    name: str
    fqdn: str
    type: RecordType
    value: str
    ttl: int
    active: bool
    created_at: datetime
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record, domain_name: str):
        return cls(
            id=record.id,
            domain=domain_name,
            name=record.name,
            fqdn=record.fqdn,
            type=record.type,
            value=record.value,
            ttl=record.ttl,
            active=record.active,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
