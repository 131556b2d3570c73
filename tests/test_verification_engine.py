from datetime import timedelta

import pytest

from pds_dns.core.errors import AlreadyTerminal, InvalidDomain, NotFound, ServiceMismatch
from pds_dns.models.verification_db import ServiceType, VerificationStatus
from pds_dns.services.verification import PENDING_MESSAGE
from pds_dns.storage import record_repository


async def test_generate_challenge_creates_pending_verification(db, verification_engine, clock):
    challenge = await verification_engine.generate_challenge(db, "Example.com")

    assert challenge.domain == "example.com"
    assert challenge.status is VerificationStatus.PENDING
    assert challenge.txt_record_name == "_pds-verify.example.com"
    assert challenge.txt_record_value == f"pds-verify={challenge.token}"
    assert len(challenge.token) == 64
    assert challenge.expires_at == clock.now + timedelta(seconds=86400)
    assert challenge.existing is False

    domain = await record_repository.fetch_domain_by_name(db, "example.com")
    assert domain is not None
    assert domain.verified is False


async def test_in_flight_challenge_is_returned_again(db, verification_engine):
    first = await verification_engine.generate_challenge(db, "example.com", service_id="portal")
    second = await verification_engine.generate_challenge(db, "example.com", service_id="portal")
    other = await verification_engine.generate_challenge(db, "example.com", service_id="mobile")

    assert second.existing is True
    assert second.verification_id == first.verification_id
    assert second.token == first.token
    assert other.verification_id != first.verification_id


async def test_invalid_domain_is_rejected(db, verification_engine):
    with pytest.raises(InvalidDomain):
        await verification_engine.generate_challenge(db, "localhost")


async def test_expired_pending_challenge_is_replaced(db, verification_engine, clock):
    first = await verification_engine.generate_challenge(db, "example.com")
    clock.advance(seconds=86401)

    second = await verification_engine.generate_challenge(db, "example.com")

    assert second.verification_id != first.verification_id
    assert second.existing is False
    old = await verification_engine.describe(db, verification_id=first.verification_id)
    assert old.status is VerificationStatus.EXPIRED
    assert old.attempts == 0


async def test_verified_through_public_dns(db, verification_engine, resolver, clock):
    challenge = await verification_engine.generate_challenge(db, "example.com")
    resolver.publish("_pds-verify.example.com", challenge.txt_record_value)

    result = await verification_engine.check_status(db, verification_id=challenge.verification_id)

    assert result.status is VerificationStatus.VERIFIED
    assert result.verified
    assert result.attempts == 1
    assert result.verified_at == clock.now
    assert result.completed_at == clock.now
    domain = await record_repository.fetch_domain_by_name(db, "example.com")
    assert domain.verified is True


async def test_apex_txt_record_also_counts(db, verification_engine, resolver):
    challenge = await verification_engine.generate_challenge(db, "example.com")
    resolver.publish("example.com", "v=spf1 -all")
    resolver.publish("example.com", challenge.txt_record_value)

    result = await verification_engine.check_status(db, token=challenge.token)

    assert result.status is VerificationStatus.VERIFIED


async def test_published_record_verifies_from_the_record_store(db, verification_engine, resolver):
    challenge = await verification_engine.generate_challenge(db, "example.com", publish_record=True)

    result = await verification_engine.check_status(db, verification_id=challenge.verification_id)

    assert result.status is VerificationStatus.VERIFIED
    assert result.message == "Domain verified via record store"
    assert resolver.queries == []
    served = await record_repository.find_active_txt_records(db, "_pds-verify.example.com")
    assert [a.value for a in served] == [challenge.txt_record_value]


async def test_onelogin_challenge_verifies_with_external_record(db, verification_engine, resolver):
    challenge = await verification_engine.generate_challenge(db, "example.com", ServiceType.ONELOGIN)
    assert challenge.txt_record_name == "example.com"
    assert challenge.txt_record_value.startswith("onelogin-domain-verification=")
    resolver.publish("example.com", challenge.txt_record_value)

    result = await verification_engine.check_status(db, verification_id=challenge.verification_id)

    assert result.status is VerificationStatus.VERIFIED
    assert result.message == "Domain verified via onelogin TXT record"


async def test_attempts_run_out_then_failed(db, verification_engine):
    challenge = await verification_engine.generate_challenge(db, "example.com")

    for attempt in range(1, 5):
        result = await verification_engine.check_status(db, verification_id=challenge.verification_id)
        assert result.status is VerificationStatus.PENDING
        assert result.attempts == attempt
        assert result.attempts_remaining == 5 - attempt
        assert result.message == PENDING_MESSAGE

    result = await verification_engine.check_status(db, verification_id=challenge.verification_id)
    assert result.status is VerificationStatus.FAILED
    assert result.attempts == 5
    assert result.attempts_remaining == 0

    # Terminal: further checks change nothing
    again = await verification_engine.check_status(db, verification_id=challenge.verification_id)
    assert again.status is VerificationStatus.FAILED
    assert again.attempts == 5


async def test_expired_before_any_attempt(db, verification_engine, clock, resolver):
    challenge = await verification_engine.generate_challenge(db, "example.com")
    resolver.publish("_pds-verify.example.com", challenge.txt_record_value)
    clock.advance(days=2)

    result = await verification_engine.check_status(db, verification_id=challenge.verification_id)

    assert result.status is VerificationStatus.EXPIRED
    assert result.attempts == 0
    assert resolver.queries == []


async def test_verified_is_final(db, verification_engine, resolver):
    challenge = await verification_engine.generate_challenge(db, "example.com")
    resolver.publish("_pds-verify.example.com", challenge.txt_record_value)
    await verification_engine.check_status(db, verification_id=challenge.verification_id)

    resolver.records.clear()
    result = await verification_engine.check_status(db, verification_id=challenge.verification_id)

    assert result.status is VerificationStatus.VERIFIED
    assert result.attempts == 1


async def test_transient_lookup_failure_consumes_an_attempt(db, verification_engine, resolver):
    challenge = await verification_engine.generate_challenge(db, "example.com")
    resolver.failing.update({"_pds-verify.example.com", "example.com"})

    result = await verification_engine.check_status(db, verification_id=challenge.verification_id)
    assert result.status is VerificationStatus.PENDING
    assert result.attempts == 1

    resolver.failing.clear()
    resolver.publish("_pds-verify.example.com", challenge.txt_record_value)
    result = await verification_engine.check_status(db, verification_id=challenge.verification_id)
    assert result.status is VerificationStatus.VERIFIED
    assert result.attempts == 2


async def test_terminal_transition_notifies_once(db, verification_engine, resolver, notifier):
    challenge = await verification_engine.generate_challenge(db, "example.com", ServiceType.GOVERNMENT, "gov-portal")
    resolver.publish("_pds-verify.example.com", challenge.txt_record_value)

    await verification_engine.check_status(db, verification_id=challenge.verification_id)
    await verification_engine.check_status(db, verification_id=challenge.verification_id)

    assert len(notifier.sent) == 1
    payload, service_type = notifier.sent[0]
    assert service_type is ServiceType.GOVERNMENT
    assert payload.verification_id == challenge.verification_id
    assert payload.domain == "example.com"
    assert payload.status is VerificationStatus.VERIFIED
    assert payload.service_id == "gov-portal"


async def test_pending_check_does_not_notify(db, verification_engine, notifier):
    challenge = await verification_engine.generate_challenge(db, "example.com")
    await verification_engine.check_status(db, verification_id=challenge.verification_id)
    assert notifier.sent == []


async def test_unknown_verification(db, verification_engine):
    with pytest.raises(NotFound):
        await verification_engine.check_status(db, verification_id="missing")
    with pytest.raises(NotFound):
        await verification_engine.check_status(db, token="missing")


async def test_complete_rejects_other_service(db, verification_engine):
    challenge = await verification_engine.generate_challenge(db, "example.com", service_id="portal")
    with pytest.raises(ServiceMismatch):
        await verification_engine.complete_verification(db, challenge.verification_id, service_id="intruder")


async def test_force_complete(db, verification_engine, notifier):
    challenge = await verification_engine.generate_challenge(db, "example.com", service_id="portal")

    response = await verification_engine.complete_verification(
        db, challenge.verification_id, service_id="portal", force=True
    )

    assert response.success is True
    assert response.status is VerificationStatus.FORCE_COMPLETED
    assert response.completed_at is not None
    assert len(notifier.sent) == 1

    again = await verification_engine.complete_verification(db, challenge.verification_id, force=True)
    assert again.success is True
    assert again.message == "Verification already completed"


async def test_complete_without_evidence_stays_pending(db, verification_engine):
    challenge = await verification_engine.generate_challenge(db, "example.com")

    response = await verification_engine.complete_verification(db, challenge.verification_id)

    assert response.success is False
    assert response.status is VerificationStatus.PENDING
    assert response.message == "Domain not verified yet"


async def test_complete_after_failure_is_a_conflict(db, verification_engine):
    challenge = await verification_engine.generate_challenge(db, "example.com")
    for _ in range(5):
        await verification_engine.check_status(db, verification_id=challenge.verification_id)

    with pytest.raises(AlreadyTerminal) as exc:
        await verification_engine.complete_verification(db, challenge.verification_id, force=True)
    assert exc.value.status == "failed"
    assert exc.value.status_code == 409


async def test_reset_domain_verification(db, verification_engine, resolver):
    challenge = await verification_engine.generate_challenge(db, "example.com")
    resolver.publish("_pds-verify.example.com", challenge.txt_record_value)
    await verification_engine.check_status(db, verification_id=challenge.verification_id)

    domain = await verification_engine.reset_domain_verification(db, "example.com")

    assert domain.verified is False
    assert domain.verified_at is None
    assert await verification_engine.list_verifications(db, "example.com") == []


async def test_list_verifications(db, verification_engine):
    await verification_engine.generate_challenge(db, "one.com")
    await verification_engine.generate_challenge(db, "two.com")

    assert len(await verification_engine.list_verifications(db)) == 2
    listed = await verification_engine.list_verifications(db, "one.com")
    assert [v.domain for v in listed] == ["one.com"]
    with pytest.raises(NotFound):
        await verification_engine.list_verifications(db, "unknown.com")
