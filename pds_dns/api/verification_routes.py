from typing import List, Optional
from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from pds_dns.api.deps import get_verification_engine
from pds_dns.auth.api_key import verify_api_key
from pds_dns.auth.rate_limiter import limiter, CHALLENGE_LIMIT
from pds_dns.models.verification_schema import (
    ChallengeRequest,
    ChallengeResponse,
    CompleteRequest,
    CompleteResponse,
    ExternalVerifyRequest,
    ExternalVerifyResponse,
    VerificationResult,
)
from pds_dns.services.verification import VerificationEngine
from pds_dns.storage.db import get_db

router = APIRouter(dependencies=[Depends(verify_api_key)])


@router.post("/", response_model=ChallengeResponse, status_code=201)
@limiter.limit(CHALLENGE_LIMIT)
async def generate_challenge(
    request: Request,
    response: Response,
    body: ChallengeRequest,
    db: AsyncSession = Depends(get_db),
    engine: VerificationEngine = Depends(get_verification_engine),
):
    challenge = await engine.generate_challenge(
        db, body.domain, body.service_type, body.service_id, publish_record=body.publish_record
    )
    if challenge.existing:
        response.status_code = 200
    return challenge


@router.get("/", response_model=List[VerificationResult])
async def list_verifications(
    domain: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    engine: VerificationEngine = Depends(get_verification_engine),
):
    return await engine.list_verifications(db, domain)


@router.post("/external", response_model=ExternalVerifyResponse)
@limiter.limit(CHALLENGE_LIMIT)
async def verify_external_token(
    request: Request,
    body: ExternalVerifyRequest,
    db: AsyncSession = Depends(get_db),
    engine: VerificationEngine = Depends(get_verification_engine),
):
    return await engine.verify_external_token(db, body.domain, body.token, body.service_type, body.service_id)


@router.get("/token/{token}", response_model=VerificationResult)
async def check_status_by_token(
    token: str,
    db: AsyncSession = Depends(get_db),
    engine: VerificationEngine = Depends(get_verification_engine),
):
    return await engine.check_status(db, token=token)


@router.get("/{verification_id}", response_model=VerificationResult)
async def check_status(
    verification_id: str,
    db: AsyncSession = Depends(get_db),
    engine: VerificationEngine = Depends(get_verification_engine),
):
    """Re-checks DNS for a pending verification; terminal ones are returned as stored."""
    return await engine.check_status(db, verification_id=verification_id)


@router.get("/{verification_id}/status", response_model=VerificationResult)
async def describe_verification(
    verification_id: str,
    db: AsyncSession = Depends(get_db),
    engine: VerificationEngine = Depends(get_verification_engine),
):
    return await engine.describe(db, verification_id=verification_id)


@router.post("/{verification_id}/complete", response_model=CompleteResponse)
async def complete_verification(
    verification_id: str,
    body: CompleteRequest,
    db: AsyncSession = Depends(get_db),
    engine: VerificationEngine = Depends(get_verification_engine),
):
    return await engine.complete_verification(db, verification_id, body.service_id, force=body.force)
