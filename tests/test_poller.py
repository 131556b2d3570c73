import asyncio

from pds_dns.models.verification_db import VerificationStatus
from pds_dns.services.verification_poller import VerificationPoller


async def test_poll_checks_every_pending_verification(session_factory, verification_engine, resolver):
    async with session_factory() as db:
        ready = await verification_engine.generate_challenge(db, "ready.com")
        waiting = await verification_engine.generate_challenge(db, "waiting.com")
    resolver.publish("_pds-verify.ready.com", ready.txt_record_value)

    poller = VerificationPoller(verification_engine, session_factory, interval=0)
    assert await poller.poll_pending() == 2

    async with session_factory() as db:
        done = await verification_engine.describe(db, verification_id=ready.verification_id)
        still = await verification_engine.describe(db, verification_id=waiting.verification_id)
    assert done.status is VerificationStatus.VERIFIED
    assert still.status is VerificationStatus.PENDING
    assert still.attempts == 1

    # Only the pending one is left to poll
    assert await poller.poll_pending() == 1


async def test_disabled_poller_does_not_start(session_factory, verification_engine):
    poller = VerificationPoller(verification_engine, session_factory, interval=0)
    assert poller.start() is None


async def test_poller_start_and_stop(session_factory, verification_engine):
    poller = VerificationPoller(verification_engine, session_factory, interval=60)
    task = poller.start()
    assert task is not None
    assert poller.start() is task
    await poller.stop()
    assert task.cancelled() or task.done()


class BrokenResolver:
    """Raises a non-DNS error for one domain and answers normally for the rest."""

    def __init__(self, records):
        self.records = records

    async def lookup_txt(self, name):
        if name.endswith("broken.com"):
            raise ValueError("bad nameserver")
        return list(self.records.get(name, []))


async def test_unexpected_error_on_one_row_does_not_stop_the_batch(session_factory, verification_engine):
    async with session_factory() as db:
        await verification_engine.generate_challenge(db, "broken.com")
        ready = await verification_engine.generate_challenge(db, "ready.com")
    verification_engine.resolver = BrokenResolver({"_pds-verify.ready.com": [ready.txt_record_value]})

    poller = VerificationPoller(verification_engine, session_factory, interval=0)
    assert await poller.poll_pending() == 1

    async with session_factory() as db:
        done = await verification_engine.describe(db, verification_id=ready.verification_id)
    assert done.status is VerificationStatus.VERIFIED


async def test_poller_keeps_running_after_unexpected_error(session_factory, verification_engine):
    async with session_factory() as db:
        await verification_engine.generate_challenge(db, "broken.com")
    verification_engine.resolver = BrokenResolver({})

    poller = VerificationPoller(verification_engine, session_factory, interval=0.05)
    task = poller.start()
    await asyncio.sleep(0.2)
    try:
        assert not task.done()
    finally:
        await poller.stop()
