"""Configuração global do pytest para os testes do backend.

As variáveis de ambiente abaixo são definidas ANTES de qualquer import da
aplicação: ``access_control/db/base.py`` cria o engine no nível de módulo e
``get_settings`` é cacheado. Os testes usam SQLite (aiosqlite) em arquivo
temporário por teste; tabelas de domínio que não pertencem a este serviço
(animals, visits...) são criadas com DDL simples.
"""
from __future__ import annotations

import asyncio
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("METRICS_ENABLED", "true")
os.environ.setdefault("AUDIT_ENABLED", "true")

import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import access_control.db.models  # noqa: F401  (registra os modelos no metadata)
from access_control.db.base import Base

OWNED_TABLES = ("animals", "visits", "inseminations", "bulls", "herds")


async def _create_schema(engine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        for table_name in OWNED_TABLES:
            await conn.execute(
                text(
                    f"CREATE TABLE {table_name} ("
                    "id INTEGER PRIMARY KEY, organization_id INTEGER NOT NULL)"
                )
            )


@pytest.fixture
def session_factory(tmp_path):
    """Session factory ligada a um banco SQLite novo por teste."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'access.db'}",
        poolclass=NullPool,
    )
    asyncio.run(_create_schema(engine))
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory
    asyncio.run(engine.dispose())


@pytest.fixture
def seed(session_factory):
    """Persiste objetos ORM ou executa SQL bruto (``str``) no banco de teste."""

    async def _seed(*items) -> None:
        async with session_factory() as session:
            for item in items:
                if isinstance(item, str):
                    await session.execute(text(item))
                else:
                    session.add(item)
                    await session.flush()
            await session.commit()

    def _run(*items) -> None:
        asyncio.run(_seed(*items))

    return _run


@pytest.fixture
def run_with_session(session_factory):
    """Executa ``fn(session)`` em uma sessão nova e devolve o resultado."""

    def _run(fn):
        async def _inner():
            async with session_factory() as session:
                return await fn(session)

        return asyncio.run(_inner())

    return _run
