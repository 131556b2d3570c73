import logging
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from pds_dns.core.errors import ErrorCode, NotFound, DuplicateDomain, InvalidRecord
from pds_dns.models.record_db import Domain, DNSRecord, RecordType
from pds_dns.models.record_schema import RecordCreate, RecordUpdate
from pds_dns.models.response_schema import DomainCreate
from pds_dns.storage import record_repository as repo
from pds_dns.utils.hostname_utils import validate_domain_or_raise, validate_record_name_or_raise, build_fqdn
from pds_dns.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


async def create_domain(data: DomainCreate, db: AsyncSession) -> Domain:
    """Register a domain; names are stored lowercase and must be unique."""
    name = validate_domain_or_raise(data.name)
    if await repo.fetch_domain_by_name(db, name):
        logger.warning(f"Domain already exists: {name}")
        raise DuplicateDomain()
    domain, created = await repo.get_or_create_domain(db, name, description=data.description, owner=data.owner)
    if not created:
        raise DuplicateDomain()
    logger.info(f"Created new domain: {name}")
    return domain

async def get_domain(name: str, db: AsyncSession) -> Domain:
    domain = await repo.fetch_domain_by_name(db, name)
    if domain is None:
        raise NotFound(ErrorCode.DOMAIN_NOT_FOUND)
    return domain

async def list_domains(db: AsyncSession, verified: Optional[bool] = None) -> List[Domain]:
    return await repo.fetch_domains(db, verified)

async def delete_domain(name: str, db: AsyncSession):
    """Removes the domain together with its records and verifications."""
    domain = await get_domain(name, db)
    await db.delete(domain)
    await db.commit()
    logger.info(f"Deleted domain {domain.name}")

async def create_record(data: RecordCreate, db: AsyncSession) -> DNSRecord:
    """Insert a DNS record, registering its domain on first use."""
    domain_name = validate_domain_or_raise(data.domain)
    name = validate_record_name_or_raise(data.name)
    if data.ttl < 0:
        raise InvalidRecord(ErrorCode.INVALID_TTL)

    domain, created = await repo.get_or_create_domain(db, domain_name)
    if created:
        logger.info(f"Created new domain: {domain_name}")

    record = DNSRecord(
        domain_id=domain.id,
        name=name,
        fqdn=build_fqdn(name, domain_name),
        type=RecordType(data.type),
        value=data.value,
        ttl=data.ttl,
        active=data.active,
        created_at=utcnow(),
    )
    await repo.insert_record(db, record)
    logger.info(f"Created {record.type.value} record {record.fqdn} (id={record.id})")
    return record

async def get_record(record_id: int, db: AsyncSession) -> DNSRecord:
    record = await repo.fetch_record(db, record_id)
    if record is None:
        raise NotFound(ErrorCode.RECORD_NOT_FOUND)
    return record

async def update_record(record_id: int, data: RecordUpdate, db: AsyncSession) -> DNSRecord:
    """Only value, ttl and active may change; the record's name and type are fixed."""
    record = await get_record(record_id, db)
    if data.value is not None:
        record.value = data.value
    if data.ttl is not None:
        if data.ttl < 0:
            raise InvalidRecord(ErrorCode.INVALID_TTL)
        record.ttl = data.ttl
    if data.active is not None:
        record.active = data.active
    record.updated_at = utcnow()
    await db.commit()
    logger.info(f"Updated {record.type.value} record {record.fqdn} (id={record.id})")
    return record

async def delete_record(record_id: int, db: AsyncSession, hard: bool = False) -> DNSRecord:
    """
    Deactivates by default so the responder stops serving the record at once;
    ``hard=True`` removes the row.
    """
    record = await get_record(record_id, db)
    if hard:
        await db.delete(record)
        logger.info(f"Deleted {record.type.value} record {record.fqdn} (id={record.id})")
    else:
        record.active = False
        record.updated_at = utcnow()
        logger.info(f"Deactivated {record.type.value} record {record.fqdn} (id={record.id})")
    await db.commit()
    return record

async def list_records_for_domain(domain_name: str, db: AsyncSession, record_type: Optional[RecordType] = None) -> List[DNSRecord]:
    domain = await get_domain(domain_name, db)
    return await repo.fetch_records_for_domain(db, domain.id, record_type)
