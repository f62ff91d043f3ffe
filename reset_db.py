import asyncio
import logging
import os
import sys

# Aggiungi backend/ alla PYTHONPATH per importare crm.*
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "backend"))

from crm.core.database import engine
from crm.models import Base

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger("reset_db")


async def reset():
    logger.info("Connessione al database, eliminazione tabelle...")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        logger.info("Tabelle eliminate. Creazione nuove tabelle...")
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()
    logger.info("Database resettato con successo!")


if __name__ == "__main__":
    asyncio.run(reset())
