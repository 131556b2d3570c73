from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from pds_dns.auth.api_key import verify_api_key
from pds_dns.auth.rate_limiter import limiter
from pds_dns.models.record_schema import RecordCreate, RecordUpdate, RecordResponse
from pds_dns.services import records as record_service
from pds_dns.storage import record_repository as repo
from pds_dns.storage.db import get_db

router = APIRouter(dependencies=[Depends(verify_api_key)])


async def to_response(record, db: AsyncSession) -> RecordResponse:
    domain = await repo.fetch_domain_by_id(db, record.domain_id)
    return RecordResponse.from_record(record, domain.name if domain else "")


@router.post("/", status_code=201, response_model=RecordResponse)
@limiter.limit("30/minute")
async def add_dns_record(request: Request, record: RecordCreate, db: AsyncSession = Depends(get_db)):
    new_record = await record_service.create_record(record, db)
    return await to_response(new_record, db)


@router.get("/{record_id}", response_model=RecordResponse)
async def get_dns_record(record_id: int, db: AsyncSession = Depends(get_db)):
    record = await record_service.get_record(record_id, db)
    return await to_response(record, db)


@router.patch("/{record_id}", response_model=RecordResponse)
async def update_dns_record(record_id: int, update: RecordUpdate, db: AsyncSession = Depends(get_db)):
    record = await record_service.update_record(record_id, update, db)
    return await to_response(record, db)


@router.delete("/{record_id}", response_model=RecordResponse)
async def delete_dns_record(record_id: int, hard: bool = False, db: AsyncSession = Depends(get_db)):
    """Deactivates the record; pass ``hard=true`` to remove it."""
    record = await record_service.delete_record(record_id, db, hard=hard)
    return await to_response(record, db)
