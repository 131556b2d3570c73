from typing import List, Optional
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from pds_dns.api.deps import get_verification_engine
from pds_dns.api.record_routes import to_response
from pds_dns.auth.api_key import verify_api_key
from pds_dns.models.record_db import RecordType
from pds_dns.models.record_schema import RecordResponse
from pds_dns.models.response_schema import DomainCreate, DomainResponse, MessageResponse
from pds_dns.models.verification_schema import VerificationResult
from pds_dns.services import records as record_service
from pds_dns.services.verification import VerificationEngine
from pds_dns.storage.db import get_db

router = APIRouter(dependencies=[Depends(verify_api_key)])


@router.post("/", status_code=201, response_model=DomainResponse)
async def create_domain(domain: DomainCreate, db: AsyncSession = Depends(get_db)):
    return await record_service.create_domain(domain, db)


@router.get("/", response_model=List[DomainResponse])
async def list_domains(verified: Optional[bool] = None, db: AsyncSession = Depends(get_db)):
    return await record_service.list_domains(db, verified)


@router.get("/{name}", response_model=DomainResponse)
async def get_domain(name: str, db: AsyncSession = Depends(get_db)):
    return await record_service.get_domain(name, db)


@router.delete("/{name}", response_model=MessageResponse)
async def delete_domain(name: str, db: AsyncSession = Depends(get_db)):
    await record_service.delete_domain(name, db)
    return {"message": "Domain deleted successfully", "domain": name.lower()}


@router.get("/{name}/records", response_model=List[RecordResponse])
async def list_records_for_domain(name: str, type: Optional[RecordType] = None, db: AsyncSession = Depends(get_db)):
    found = await record_service.list_records_for_domain(name, db, type)
    return [await to_response(record, db) for record in found]


@router.get("/{name}/verifications", response_model=List[VerificationResult])
async def list_domain_verifications(
    name: str,
    db: AsyncSession = Depends(get_db),
    engine: VerificationEngine = Depends(get_verification_engine),
):
    return await engine.list_verifications(db, name)


@router.post("/{name}/reset-verification", response_model=DomainResponse)
async def reset_domain_verification(
    name: str,
    db: AsyncSession = Depends(get_db),
    engine: VerificationEngine = Depends(get_verification_engine),
):
    return await engine.reset_domain_verification(db, name)
