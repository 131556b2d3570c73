from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.exc import SQLAlchemyError
from pds_dns.core.config import settings
from pds_dns.storage import verification_repository as repo
import asyncio
import logging

logger = logging.getLogger(__name__)


class VerificationPoller:
    """
    Re-checks pending verifications on a timer. Uses the engine's normal
    attempt path, so every poll consumes an attempt exactly like a client check.
    """

    def __init__(self, engine, session_factory: async_sessionmaker, interval: float = None, batch_size: int = 500):
        self.engine = engine
        self.session_factory = session_factory
        self.interval = interval if interval is not None else settings.VERIFICATION_POLL_INTERVAL
        self.batch_size = batch_size
        self._task = None

    async def poll_pending(self) -> int:
        async with self.session_factory() as db:
            pending = await repo.fetch_pending_ids(db, self.batch_size)

        checked = 0
        for verification_id in pending:
            # One session per verification; a failure on one row must not stall the rest
            async with self.session_factory() as db:
                try:
                    verification = await repo.fetch_verification(db, verification_id)
                    if verification is None:
                        continue
                    result = await self.engine.attempt_verification(db, verification)
                    checked += 1
                    logger.debug(f"Polled verification {verification_id}: {result.status.value}")
                except SQLAlchemyError:
                    logger.error(f"Storage error polling verification {verification_id}", exc_info=True)
                except Exception:
                    logger.error(f"Unexpected error polling verification {verification_id}", exc_info=True)
        return checked

    async def periodic_poll(self):
        while True:
            try:
                checked = await self.poll_pending()
                if checked:
                    logger.info(f"Verification poller checked {checked} pending verification(s)")
            except SQLAlchemyError:
                logger.error("Verification poller could not read pending verifications", exc_info=True)
            except Exception:
                logger.error("Verification poller iteration failed", exc_info=True)
            await asyncio.sleep(self.interval)

    def start(self):
        if self.interval <= 0:
            logger.info("Verification poller disabled")
            return None
        if self._task is None:
            self._task = asyncio.create_task(self.periodic_poll())
            logger.info(f"Verification poller started (every {self.interval}s)")
        return self._task

    async def stop(self):
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
