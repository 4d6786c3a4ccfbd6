"""
Base de dados SQLAlchemy.

Configuração assíncrona e sessão para o PostgreSQL.
"""

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from access_control.config import get_settings

settings = get_settings()


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"poolclass": NullPool}
    return {
        "pool_size": settings.postgres_pool_size,
        "max_overflow": settings.postgres_max_overflow,
    }


# Engine assíncrono
engine = create_async_engine(
    settings.postgres_url,
    echo=settings.debug,
    **_engine_options(settings.postgres_url),
)

# Session factory assíncrono
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# JSONB no PostgreSQL, JSON genérico nos demais dialetos
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Classe base para todos os modelos SQLAlchemy."""

    pass


async def get_db() -> AsyncSession:
    """
    Dependency para injetar sessão de banco nos endpoints.

    Yields:
        AsyncSession: Sessão assíncrona do PostgreSQL
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
