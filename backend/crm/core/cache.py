"""
Cache delle risposte in lettura
Progetto: Export CRM (Gestionale Export Veicoli)

Collaboratore opzionale: il motore contabile funziona correttamente
anche senza cache (NullCache ricalcola sempre). La cache non è mai
la fonte di verità per saldi o stati di pagamento.

Chiavi usate:
- wallet:{customer_id}:{currency}
- invoice:token:{share_token}
- invoices:...
"""

import logging
import time
from typing import Any, Awaitable, Callable, Dict, Protocol, Tuple

# Logger per questo modulo
logger = logging.getLogger(__name__)

Fetcher = Callable[[], Awaitable[Any]]


class ResponseCache(Protocol):
    """Contratto minimo del collaboratore di cache."""

    async def get_or_compute(self, key: str, ttl_seconds: int, fetcher: Fetcher) -> Any:
        ...

    async def invalidate(self, key_or_prefix: str) -> None:
        ...


class NullCache:
    """Nessuna cache: ogni lettura chiama il fetcher."""

    async def get_or_compute(self, key: str, ttl_seconds: int, fetcher: Fetcher) -> Any:
        return await fetcher()

    async def invalidate(self, key_or_prefix: str) -> None:
        return None


class MemoryCache:
    """
    Cache TTL in memoria di processo.

    Adatta a deployment con un solo worker. Una chiave che termina
    con ":" viene trattata come prefisso in invalidate().
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._clock = clock

    async def get_or_compute(self, key: str, ttl_seconds: int, fetcher: Fetcher) -> Any:
        now = self._clock()
        entry = self._entries.get(key)
        if entry is not None and entry[0] > now:
            return entry[1]

        value = await fetcher()
        if ttl_seconds > 0:
            self._entries[key] = (now + ttl_seconds, value)
        return value

    async def invalidate(self, key_or_prefix: str) -> None:
        if key_or_prefix.endswith(":"):
            stale = [k for k in self._entries if k.startswith(key_or_prefix)]
        else:
            stale = [key_or_prefix] if key_or_prefix in self._entries else []
        for key in stale:
            del self._entries[key]
        if stale:
            logger.debug("Cache invalidata per %s (%d chiavi)", key_or_prefix, len(stale))


# ------------------------------------------------------------
# Istanza di processo
# ------------------------------------------------------------
_cache: ResponseCache = NullCache()


def get_cache() -> ResponseCache:
    """Dependency FastAPI: restituisce la cache configurata."""
    return _cache


def set_cache(cache: ResponseCache) -> None:
    """Sostituisce l'implementazione (startup applicazione o test)."""
    global _cache
    _cache = cache


def wallet_key(customer_id: Any, currency: str) -> str:
    return f"wallet:{customer_id}:{currency}"


def share_token_key(share_token: str) -> str:
    return f"invoice:token:{share_token}"


INVOICE_LIST_PREFIX = "invoices:"
