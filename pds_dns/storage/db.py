from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession, AsyncEngine
from sqlalchemy.pool import StaticPool
from pds_dns.core.config import settings

DATABASE_URL = settings.DATABASE_URL


def build_engine(url: str = DATABASE_URL, echo: bool = settings.DB_ECHO) -> AsyncEngine:
    kwargs = {"echo": echo, "future": True}
    if url.startswith("sqlite") and (url.endswith("://") or ":memory:" in url):
        # In-memory SQLite lives inside one connection; share it across sessions
        kwargs.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
    return create_async_engine(url, **kwargs)


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine()

# Create sessionmaker bound to the async engine
AsyncSessionLocal = build_sessionmaker(engine)

# Dependency function for FastAPI routes
async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session

# Initialize DB (run this at app startup)
async def init_db(bind: AsyncEngine = None):
    # Ensure models are imported so metadata is complete
    from pds_dns.models.record_db import Base
    import pds_dns.models.verification_db  # noqa: F401
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
