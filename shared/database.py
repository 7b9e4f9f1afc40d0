import ssl as _ssl
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from shared.config import settings


def _normalize_url(url: str) -> str:
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        # asyncpg takes ssl as a connect arg, not a query param
        url = url.split("?sslmode=")[0]
    return url


def make_engine(url: str, echo: bool = False) -> AsyncEngine:
    url = _normalize_url(url)
    kwargs = {"echo": echo}
    if url.startswith("postgresql+asyncpg://"):
        kwargs.update(pool_size=5, max_overflow=10)
        if "supabase" in url:
            ctx = _ssl.create_default_context()
            ctx.check_hostname = False
            ctx.verify_mode = _ssl.CERT_NONE
            kwargs["connect_args"] = {"ssl": ctx}
    return create_async_engine(url, **kwargs)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = make_engine(settings.DATABASE_URL, echo=settings.LOG_LEVEL == "DEBUG") if settings.DATABASE_URL else None

async_session = make_session_factory(engine) if engine else None
