from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from condo_notify.config import config


def engine_options(url: str) -> dict:
    """Pool settings for the server database; SQLite (tests, local runs) keeps the defaults"""
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": config.DB_POOL_SIZE,
        "max_overflow": config.DB_MAX_OVERFLOW,
        # idle connections may already be closed by the server
        "pool_pre_ping": True,
    }


engine = create_async_engine(config.DATABASE_URL, echo=False, **engine_options(config.DATABASE_URL))

AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

class Base(DeclarativeBase):
    pass
