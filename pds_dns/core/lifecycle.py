from fastapi import FastAPI
from pds_dns.core.config import settings
from pds_dns.core.logger import logger, configure_logging
from pds_dns.services.dns_server import DNSResponder
from pds_dns.services.verification_poller import VerificationPoller
from pds_dns.storage.db import AsyncSessionLocal, init_db
from pds_dns.storage.record_repository import SqlRecordStore

# Database, DNS responder and poller come up with the app and go down with it
def setup_startup_tasks(app: FastAPI):
    @app.on_event("startup")
    async def startup_event():
        configure_logging()
        await init_db()
        if settings.DNS_ENABLED:
            app.state.dns_responder = DNSResponder(SqlRecordStore(AsyncSessionLocal))
            await app.state.dns_responder.start()
        app.state.verification_poller = VerificationPoller(app.state.verification_engine, AsyncSessionLocal)
        app.state.verification_poller.start()
        logger.info("🚀 Application startup complete.")

    @app.on_event("shutdown")
    async def shutdown_event():
        poller = getattr(app.state, "verification_poller", None)
        if poller is not None:
            await poller.stop()
        responder = getattr(app.state, "dns_responder", None)
        if responder is not None:
            await responder.stop()
        logger.info("🛑 Application shutdown complete.")
