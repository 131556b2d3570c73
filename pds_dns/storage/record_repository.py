# storage/record_repository.py
from dataclasses import dataclass
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from pds_dns.models.record_db import Domain, DNSRecord, RecordType
from pds_dns.utils.hostname_utils import normalize_domain


@dataclass(frozen=True)
class TxtAnswer:
    value: str
    ttl: Optional[int]


async def fetch_domain_by_name(db: AsyncSession, name: str) -> Optional[Domain]:
    result = await db.execute(
        select(Domain).where(Domain.name == normalize_domain(name)).execution_options(populate_existing=True)
    )
    return result.scalars().first()

async def fetch_domain_by_id(db: AsyncSession, domain_id: int) -> Optional[Domain]:
    return await db.get(Domain, domain_id, populate_existing=True)

async def get_or_create_domain(db: AsyncSession, name: str, **fields):
    """Returns (domain, created). Tolerates a concurrent insert of the same name."""
    name = normalize_domain(name)
    domain = await fetch_domain_by_name(db, name)
    if domain:
        return domain, False
    domain = Domain(name=name, **fields)
    try:
        db.add(domain)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return await fetch_domain_by_name(db, name), False
    return domain, True

async def fetch_domains(db: AsyncSession, verified: Optional[bool] = None) -> List[Domain]:
    stmt = select(Domain).order_by(Domain.name)
    if verified is not None:
        stmt = stmt.where(Domain.verified == verified)
    result = await db.execute(stmt)
    return result.scalars().all()

async def fetch_record(db: AsyncSession, record_id: int) -> Optional[DNSRecord]:
    return await db.get(DNSRecord, record_id)

async def fetch_records_for_domain(db: AsyncSession, domain_id: int, record_type: RecordType = None) -> List[DNSRecord]:
    stmt = select(DNSRecord).where(DNSRecord.domain_id == domain_id)
    if record_type is not None:
        stmt = stmt.where(DNSRecord.type == record_type)
    result = await db.execute(stmt.order_by(DNSRecord.created_at.desc(), DNSRecord.id.desc()))
    return result.scalars().all()

async def find_active_txt_records(db: AsyncSession, name: str) -> List[TxtAnswer]:
    result = await db.execute(
        select(DNSRecord.value, DNSRecord.ttl)
        .where(
            DNSRecord.fqdn == normalize_domain(name),
            DNSRecord.type == RecordType.TXT,
            DNSRecord.active.is_(True),
        )
        .order_by(DNSRecord.id)
    )
    return [TxtAnswer(value=value, ttl=ttl) for value, ttl in result.all()]

async def find_active_txt_values_for_domain(db: AsyncSession, domain_id: int) -> List[str]:
    result = await db.execute(
        select(DNSRecord.value).where(
            DNSRecord.domain_id == domain_id,
            DNSRecord.type == RecordType.TXT,
            DNSRecord.active.is_(True),
        )
    )
    return list(result.scalars().all())

async def insert_record(db: AsyncSession, record: DNSRecord) -> DNSRecord:
    db.add(record)
    await db.commit()
    return record


class SqlRecordStore:
    """
    Read side of the record store for long-lived consumers (the DNS responder).
    Every call opens its own session so concurrent queries share nothing.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def find_active_txt_records(self, name: str) -> List[TxtAnswer]:
        async with self.session_factory() as db:
            return await find_active_txt_records(db, name)

    async def find_records_for_domain(self, domain_id: int) -> List[DNSRecord]:
        async with self.session_factory() as db:
            return await fetch_records_for_domain(db, domain_id)
