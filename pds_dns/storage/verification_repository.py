# storage/verification_repository.py
from datetime import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete
from pds_dns.models.record_db import Domain
from pds_dns.models.verification_db import Verification, VerificationStatus


async def fetch_verification(db: AsyncSession, verification_id: str) -> Optional[Verification]:
    return await db.get(Verification, verification_id, populate_existing=True)

async def fetch_by_token(db: AsyncSession, token: str) -> Optional[Verification]:
    result = await db.execute(
        select(Verification).where(Verification.token == token).execution_options(populate_existing=True)
    )
    return result.scalars().first()

async def fetch_by_domain_and_token(db: AsyncSession, domain_id: int, token: str) -> Optional[Verification]:
    result = await db.execute(
        select(Verification)
        .where(Verification.domain_id == domain_id, Verification.token == token)
        .execution_options(populate_existing=True)
    )
    return result.scalars().first()

async def fetch_pending_for_service(db: AsyncSession, domain_id: int, service_id: str) -> Optional[Verification]:
    result = await db.execute(
        select(Verification).where(
            Verification.domain_id == domain_id,
            Verification.service_id == service_id,
            Verification.status == VerificationStatus.PENDING,
        ).execution_options(populate_existing=True)
    )
    return result.scalars().first()

async def fetch_verifications(db: AsyncSession, domain_id: int = None) -> List[Verification]:
    stmt = select(Verification).order_by(Verification.created_at.desc()).execution_options(populate_existing=True)
    if domain_id is not None:
        stmt = stmt.where(Verification.domain_id == domain_id)
    result = await db.execute(stmt)
    return result.scalars().all()

async def fetch_pending_ids(db: AsyncSession, limit: int = 500) -> List[str]:
    result = await db.execute(
        select(Verification.id)
        .where(Verification.status == VerificationStatus.PENDING)
        .order_by(Verification.last_checked_at.is_(None).desc(), Verification.last_checked_at)
        .limit(limit)
    )
    return list(result.scalars().all())


# Compare-and-set writes. Each returns True only if this caller won the row.

async def claim_attempt(db: AsyncSession, verification_id: str, seen_attempts: int, max_attempts: int, now: datetime) -> bool:
    if seen_attempts >= max_attempts:
        return False
    result = await db.execute(
        update(Verification)
        .where(
            Verification.id == verification_id,
            Verification.status == VerificationStatus.PENDING,
            Verification.attempts == seen_attempts,
        )
        .values(attempts=seen_attempts + 1, last_checked_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1

async def transition_from_pending(db: AsyncSession, verification_id: str, status: VerificationStatus, now: datetime) -> bool:
    values = {"status": status, "completed_at": now, "last_checked_at": now}
    if status is VerificationStatus.VERIFIED:
        values["verified_at"] = now
    result = await db.execute(
        update(Verification)
        .where(
            Verification.id == verification_id,
            Verification.status == VerificationStatus.PENDING,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1

async def mark_domain_verified(db: AsyncSession, domain_id: int, now: datetime):
    await db.execute(
        update(Domain)
        .where(Domain.id == domain_id)
        .values(verified=True, verified_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )

async def delete_for_domain(db: AsyncSession, domain_id: int) -> int:
    result = await db.execute(
        delete(Verification)
        .where(Verification.domain_id == domain_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
