"""
Domain ownership verification engine.

A verification starts ``pending`` and ends in exactly one terminal status:
``verified``, ``failed`` (all attempts used), ``expired`` (deadline passed)
or ``force_completed``. Terminal rows are never written again.

Writes to a verification row are compare-and-set UPDATEs (see
``storage.verification_repository``), so two callers racing on the same
verification cannot both consume an attempt or both fire a notification.
Different verifications never contend with each other.
"""
import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pds_dns.core.config import settings
from pds_dns.core.errors import (
    AlreadyTerminal,
    ErrorCode,
    NotFound,
    ServiceError,
    ServiceMismatch,
    TransientLookupFailure,
)
from pds_dns.models.record_db import DNSRecord, Domain, RecordType
from pds_dns.models.verification_db import ServiceType, Verification, VerificationStatus
from pds_dns.models.verification_schema import (
    ChallengeResponse,
    CompleteResponse,
    ExternalVerifyResponse,
    NotificationPayload,
    VerificationResult,
)
from pds_dns.services.challenge import (
    VERIFY_LABEL,
    Evidence,
    EvidenceKind,
    evidence_for,
    external_prefix,
    format_txt_record,
    generate_verification_token,
    challenge_record_name,
    txt_record_name,
)
from pds_dns.storage import record_repository as records
from pds_dns.storage import verification_repository as repo
from pds_dns.utils.hostname_utils import validate_domain_or_raise
from pds_dns.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

PENDING_MESSAGE = (
    "TXT record not found yet. Please ensure you have created the record "
    "and allow time for DNS propagation."
)


def coerce_service_type(service_type) -> ServiceType:
    try:
        return ServiceType(service_type)
    except ValueError:
        raise ServiceError(ErrorCode.INVALID_SERVICE_TYPE, status_code=400)


class VerificationEngine:
    def __init__(
        self,
        resolver=None,
        notifier=None,
        max_attempts: int = None,
        token_expiry: int = None,
        native_via_public_dns: bool = None,
        clock=utcnow,
    ):
        self.resolver = resolver
        self.notifier = notifier
        self.max_attempts = max_attempts or settings.MAX_VERIFICATION_ATTEMPTS
        self.token_expiry = token_expiry if token_expiry is not None else settings.CHALLENGE_TOKEN_EXPIRY
        self.native_via_public_dns = (
            settings.VERIFY_NATIVE_VIA_PUBLIC_DNS if native_via_public_dns is None else native_via_public_dns
        )
        self.clock = clock

    # ------------------------------------------------------------------
    # Challenge issue
    # ------------------------------------------------------------------

    async def generate_challenge(
        self,
        db: AsyncSession,
        domain: str,
        service_type=ServiceType.PDS,
        service_id: str = "api",
        publish_record: bool = False,
    ) -> ChallengeResponse:
        domain_name = validate_domain_or_raise(domain)
        service_type = coerce_service_type(service_type)

        domain_row, created = await records.get_or_create_domain(db, domain_name)
        if created:
            logger.info(f"Created new domain: {domain_name}")
        domain_id = domain_row.id

        existing = await repo.fetch_pending_for_service(db, domain_id, service_id)
        if existing:
            if self.clock() > existing.expires_at:
                await self._finish(db, existing, VerificationStatus.EXPIRED, domain_name)
            else:
                logger.info(f"Returning in-flight challenge for {domain_name}, service {service_id}")
                return self._challenge_response(existing, domain_name, existing=True)

        now = self.clock()
        token = generate_verification_token()
        verification = Verification(
            domain_id=domain_id,
            token=token,
            txt_record=format_txt_record(token, service_type),
            status=VerificationStatus.PENDING,
            attempts=0,
            service_type=service_type,
            service_id=service_id,
            created_at=now,
            expires_at=now + timedelta(seconds=self.token_expiry),
        )
        db.add(verification)
        if publish_record:
            fqdn = txt_record_name(domain_name)
            db.add(DNSRecord(
                domain_id=domain_id,
                name=VERIFY_LABEL,
                fqdn=fqdn,
                type=RecordType.TXT,
                value=format_txt_record(token),
                ttl=settings.DNS_DEFAULT_TTL,
                active=True,
            ))
        try:
            await db.commit()
        except IntegrityError:
            # Lost the race against a concurrent request for the same (domain, service)
            await db.rollback()
            existing = await repo.fetch_pending_for_service(db, domain_id, service_id)
            if existing is None:
                raise
            return self._challenge_response(existing, domain_name, existing=True)

        logger.info(
            f"Generated verification challenge for domain: {domain_name}, "
            f"service: {service_type.value}/{service_id}"
        )
        return self._challenge_response(verification, domain_name)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def attempt_verification(self, db: AsyncSession, verification: Verification) -> VerificationResult:
        domain_name = await self._domain_name(db, verification)

        if verification.status.is_terminal:
            return self._result(verification, domain_name)

        now = self.clock()
        if now > verification.expires_at:
            return await self._finish(db, verification, VerificationStatus.EXPIRED, domain_name)

        seen = verification.attempts
        if not await repo.claim_attempt(db, verification.id, seen, self.max_attempts, now):
            await db.commit()
            current = await repo.fetch_verification(db, verification.id)
            if current.status.is_terminal:
                return self._result(current, domain_name)
            if current.attempts >= self.max_attempts:
                return await self._finish(db, current, VerificationStatus.FAILED, domain_name)
            return self._result(current, domain_name, "Verification attempt already in progress")
        await db.commit()
        attempts = seen + 1

        source = await self._find_evidence(db, verification, domain_name)
        if source:
            return await self._finish(
                db, verification, VerificationStatus.VERIFIED, domain_name, f"Domain verified via {source}"
            )

        if attempts >= self.max_attempts:
            logger.info(f"Domain {domain_name} verification failed after {attempts} attempts")
            return await self._finish(
                db, verification, VerificationStatus.FAILED, domain_name, "Maximum verification attempts reached"
            )

        logger.info(f"Domain {domain_name} verification pending - TXT record not found yet ({attempts}/{self.max_attempts})")
        current = await repo.fetch_verification(db, verification.id)
        return self._result(current, domain_name, PENDING_MESSAGE)

    async def check_status(self, db: AsyncSession, verification_id: str = None, token: str = None) -> VerificationResult:
        verification = await self.get_verification(db, verification_id=verification_id, token=token)
        return await self.attempt_verification(db, verification)

    async def describe(self, db: AsyncSession, verification_id: str = None, token: str = None) -> VerificationResult:
        verification = await self.get_verification(db, verification_id=verification_id, token=token)
        return self._result(verification, await self._domain_name(db, verification))

    async def complete_verification(
        self, db: AsyncSession, verification_id: str, service_id: str = None, force: bool = False
    ) -> CompleteResponse:
        verification = await self.get_verification(db, verification_id=verification_id)
        domain_name = await self._domain_name(db, verification)

        if service_id and verification.service_id != service_id:
            logger.warning(f"Service {service_id} tried to complete verification {verification_id} it does not own")
            raise ServiceMismatch()

        if verification.status.is_terminal:
            if verification.status in (VerificationStatus.VERIFIED, VerificationStatus.FORCE_COMPLETED):
                return self._complete_response(verification, domain_name, "Verification already completed")
            raise AlreadyTerminal(verification.status.value)

        if force:
            result = await self._finish(db, verification, VerificationStatus.FORCE_COMPLETED, domain_name)
            if result.status not in (VerificationStatus.VERIFIED, VerificationStatus.FORCE_COMPLETED):
                raise AlreadyTerminal(result.status.value)
            logger.info(f"Verification for {domain_name} completed (forced)")
            return CompleteResponse(
                success=True, status=result.status, domain=domain_name, completed_at=result.completed_at,
                message="Verification force completed",
            )

        result = await self.attempt_verification(db, verification)
        return CompleteResponse(
            success=result.status is VerificationStatus.VERIFIED,
            status=result.status,
            domain=domain_name,
            completed_at=result.completed_at,
            message="Domain verification successful" if result.verified else "Domain not verified yet",
        )

    async def verify_external_token(
        self,
        db: AsyncSession,
        domain: str,
        token: str,
        service_type=ServiceType.ONELOGIN,
        service_id: str = "external",
    ) -> ExternalVerifyResponse:
        """
        Verifies a token published in a third party's TXT convention. A domain we
        have never seen is registered on its first successful proof.
        """
        domain_name = validate_domain_or_raise(domain)
        service_type = coerce_service_type(service_type)
        if not external_prefix(service_type):
            raise ServiceError(ErrorCode.INVALID_SERVICE_TYPE, status_code=400)
        evidence = next(e for e in evidence_for(service_type, token, domain_name) if e.kind is EvidenceKind.EXTERNAL)
        logger.info(f"Verifying domain {domain_name} with external token format ({evidence.provider})")

        domain_row = await records.fetch_domain_by_name(db, domain_name)
        if domain_row is not None:
            known = await repo.fetch_by_domain_and_token(db, domain_row.id, token)
            if known is not None:
                result = await self.attempt_verification(db, known)
                return ExternalVerifyResponse(
                    domain=domain_name, status=result.status, verified=result.verified,
                    verification_id=result.verification_id, message=result.message,
                )

        other = await repo.fetch_by_token(db, token)
        if other is not None:
            raise ServiceError(ErrorCode.INVALID_TOKEN, status_code=400)

        if not await self._lookup(evidence):
            logger.info(f"Domain {domain_name} verification failed - TXT record not found")
            return ExternalVerifyResponse(
                domain=domain_name, status=VerificationStatus.FAILED, verified=False,
                message=f'TXT record "{evidence.expected_value}" not found',
            )

        registered = False
        if domain_row is None:
            domain_row, registered = await records.get_or_create_domain(db, domain_name, source=evidence.provider)

        domain_id = domain_row.id
        now = self.clock()
        verification = Verification(
            domain_id=domain_id,
            token=token,
            txt_record=evidence.expected_value,
            status=VerificationStatus.VERIFIED,
            attempts=1,
            service_type=service_type,
            service_id=service_id,
            source=evidence.provider,
            created_at=now,
            expires_at=now,
            last_checked_at=now,
            completed_at=now,
            verified_at=now,
        )
        db.add(verification)
        await repo.mark_domain_verified(db, domain_id, now)
        try:
            await db.commit()
        except IntegrityError:
            # A concurrent proof of the same token committed first
            await db.rollback()
            stored = await repo.fetch_by_token(db, token)
            if stored is None:
                raise
            if stored.domain_id != domain_id:
                raise ServiceError(ErrorCode.INVALID_TOKEN, status_code=400)
            return ExternalVerifyResponse(
                domain=domain_name, status=stored.status, verified=stored.status is VerificationStatus.VERIFIED,
                verification_id=stored.id, registered=False,
                message=f"Domain verified with {evidence.provider} record",
            )
        logger.info(f"Domain {domain_name} verified successfully with external token")
        await self._notify(verification, domain_name)
        return ExternalVerifyResponse(
            domain=domain_name, status=VerificationStatus.VERIFIED, verified=True,
            verification_id=verification.id, registered=registered,
            message=f"Domain verified with {evidence.provider} record",
        )

    # ------------------------------------------------------------------
    # Lookups and housekeeping
    # ------------------------------------------------------------------

    async def get_verification(self, db: AsyncSession, verification_id: str = None, token: str = None) -> Verification:
        verification = None
        if verification_id:
            verification = await repo.fetch_verification(db, verification_id)
        elif token:
            verification = await repo.fetch_by_token(db, token)
        if verification is None:
            raise NotFound(ErrorCode.VERIFICATION_NOT_FOUND)
        return verification

    async def list_verifications(self, db: AsyncSession, domain: str = None) -> List[VerificationResult]:
        domain_id = None
        if domain:
            domain_row = await records.fetch_domain_by_name(db, domain)
            if domain_row is None:
                raise NotFound(ErrorCode.DOMAIN_NOT_FOUND)
            domain_id = domain_row.id
        rows = await repo.fetch_verifications(db, domain_id)
        return [self._result(v, await self._domain_name(db, v)) for v in rows]

    async def reset_domain_verification(self, db: AsyncSession, domain: str) -> Domain:
        domain_row = await records.fetch_domain_by_name(db, domain)
        if domain_row is None:
            raise NotFound(ErrorCode.DOMAIN_NOT_FOUND)
        removed = await repo.delete_for_domain(db, domain_row.id)
        domain_row.verified = False
        domain_row.verified_at = None
        domain_row.updated_at = self.clock()
        await db.commit()
        logger.info(f"Reset verification for {domain_row.name} ({removed} verification(s) removed)")
        return domain_row

    async def _find_evidence(self, db: AsyncSession, verification: Verification, domain_name: str) -> Optional[str]:
        """Returns a description of where matching evidence was found, or None."""
        plan = evidence_for(verification.service_type, verification.token, domain_name)
        native = plan[0]

        stored = await records.find_active_txt_values_for_domain(db, verification.domain_id)
        if native.matches_any(stored):
            return "record store"

        for evidence in plan[1:]:
            if await self._lookup(evidence):
                return f"{evidence.provider} TXT record"

        if self.native_via_public_dns and await self._lookup(native):
            return "public DNS"
        return None

    async def _lookup(self, evidence: Evidence) -> bool:
        if self.resolver is None:
            return False
        for name in evidence.lookup_names:
            try:
                values = await self.resolver.lookup_txt(name)
            except TransientLookupFailure as e:
                logger.warning(f"Transient DNS failure checking {name}: {e.detail}")
                continue
            if evidence.matches_any(values):
                return True
        return False

    async def _finish(
        self,
        db: AsyncSession,
        verification: Verification,
        status: VerificationStatus,
        domain_name: str,
        message: str = None,
    ) -> VerificationResult:
        now = self.clock()
        won = await repo.transition_from_pending(db, verification.id, status, now)
        if won and status is VerificationStatus.VERIFIED:
            await repo.mark_domain_verified(db, verification.domain_id, now)
        await db.commit()

        current = await repo.fetch_verification(db, verification.id)
        if not won:
            # Somebody else already settled this verification; report what they stored
            return self._result(current, domain_name)

        logger.info(f"Verification {current.id} for {domain_name} is now {status.value}")
        await self._notify(current, domain_name)
        return self._result(current, domain_name, message)

    async def _notify(self, verification: Verification, domain_name: str):
        if self.notifier is None:
            return
        payload = NotificationPayload(
            verification_id=verification.id,
            domain=domain_name,
            status=verification.status,
            service_id=verification.service_id,
            completed_at=verification.completed_at,
        )
        try:
            await self.notifier.notify(payload, verification.service_type)
        except Exception:
            logger.exception(f"Failed to notify service about verification {verification.id}")

    async def _domain_name(self, db: AsyncSession, verification: Verification) -> str:
        domain_row = await records.fetch_domain_by_id(db, verification.domain_id)
        return domain_row.name if domain_row else ""

    def _result(self, verification: Verification, domain_name: str, message: str = None) -> VerificationResult:
        return VerificationResult(
            verification_id=verification.id,
            domain=domain_name,
            status=verification.status,
            attempts=verification.attempts,
            attempts_remaining=max(0, self.max_attempts - verification.attempts),
            service_type=verification.service_type,
            service_id=verification.service_id,
            created_at=verification.created_at,
            expires_at=verification.expires_at,
            completed_at=verification.completed_at,
            verified_at=verification.verified_at,
            message=message,
        )

    def _challenge_response(self, verification: Verification, domain_name: str, existing: bool = False) -> ChallengeResponse:
        name = challenge_record_name(domain_name, verification.service_type)
        return ChallengeResponse(
            verification_id=verification.id,
            domain=domain_name,
            token=verification.token,
            txt_record_name=name,
            txt_record_value=verification.txt_record,
            status=verification.status,
            expires_at=verification.expires_at,
            instructions=f"Create a TXT record for {name} with the value: {verification.txt_record}",
            existing=existing,
        )

    def _complete_response(self, verification: Verification, domain_name: str, message: str) -> CompleteResponse:
        return CompleteResponse(
            success=True,
            status=verification.status,
            domain=domain_name,
            completed_at=verification.completed_at,
            message=message,
        )


def build_verification_engine() -> VerificationEngine:
    from pds_dns.services.external_resolver import ExternalResolver
    from pds_dns.services.notifier import WebhookNotifier

    return VerificationEngine(resolver=ExternalResolver(), notifier=WebhookNotifier())
