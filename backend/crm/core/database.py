"""
Configurazione Database - SQLAlchemy 2.0 Async
Progetto: Export CRM (Gestionale Export Veicoli)

Definisce engine, session factory, dependency injection per FastAPI
e il commit atomico delle unità di lavoro contabili.
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from crm.core.config import settings
from crm.core.exceptions import ConflictError

# Logger per questo modulo
logger = logging.getLogger(__name__)

# ------------------------------------------------------------
# Engine Async SQLAlchemy 2.0
# ------------------------------------------------------------
engine: AsyncEngine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
)


# ------------------------------------------------------------
# Session Factory
# ------------------------------------------------------------
AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency injection per FastAPI.

    Una sessione per richiesta: ogni operazione composta (riallocazione +
    ricalcolo costi, stato pagamento + movimento) vive nella stessa
    transazione e viene confermata una sola volta.

    Yields:
        AsyncSession: Sessione database async
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def commit_unit(db: AsyncSession, operation: str) -> None:
    """
    Conferma l'unità di lavoro corrente (tutto o niente).

    Args:
        db: Sessione database
        operation: Descrizione dell'operazione, usata nei log

    Raises:
        ConflictError: violazione di vincolo (es. numero duplicato)
    """
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        logger.error("Errore di integrità durante %s: %s", operation, e)
        raise ConflictError(f"Operazione non completata: {operation}")


async def init_db() -> None:
    """
    Verifica la connessione al database all'avvio.
    """
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Connessione al database stabilita con successo")
    except Exception as e:
        logger.error("Errore connessione database: %s", e)
        raise


async def close_db() -> None:
    """
    Chiude le connessioni al database.

    Da chiamare durante lo shutdown dell'applicazione.
    """
    await engine.dispose()
    logger.info("Connessioni database chiuse")
