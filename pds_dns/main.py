from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi.middleware import SlowAPIMiddleware
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import SQLAlchemyError
import logging

from pds_dns.auth.rate_limiter import limiter
from pds_dns.core.config import settings
from pds_dns.core.errors import ErrorCode, ServiceError
from pds_dns.core.lifecycle import setup_startup_tasks
from pds_dns.api import domain_routes, record_routes, verification_routes
from pds_dns.services.verification import build_verification_engine

logger = logging.getLogger(__name__)

app = FastAPI(title="PDS DNS Verification Service")

# Middleware
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

app.state.verification_engine = build_verification_engine()

if not settings.TESTING:
    setup_startup_tasks(app)

# Error handler for rate limit
@app.exception_handler(RateLimitExceeded)
async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded. Try again later."}
    )

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

# Storage failures are reported without leaking driver details
@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Storage error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": ErrorCode.INTERNAL})

# Routes
app.include_router(domain_routes.router, prefix="/api/domains", tags=["domains"])
app.include_router(record_routes.router, prefix="/api/records", tags=["records"])
app.include_router(verification_routes.router, prefix="/api/verifications", tags=["verifications"])

@app.get("/health")
@limiter.exempt
async def health(request: Request):
    return {"status": "ok"}
