"""
Service Layer per il wallet clienti
Progetto: Export CRM (Gestionale Export Veicoli)

Il saldo wallet non è mai salvato: si ricava ad ogni lettura dai
movimenti del cliente nella valuta richiesta.

    balance = depositi - prelievi da wallet - rimborsi

- depositi: INCOMING con descrizione "Deposit"
- prelievi: OUTGOING con descrizione che inizia per "Applied from wallet"
- rimborsi: OUTGOING con descrizione "Refund"

I movimenti "Payment for Invoice ..." non toccano il saldo.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.cache import ResponseCache, get_cache, wallet_key
from crm.core.config import settings
from crm.core.database import commit_unit
from crm.core.exceptions import InsufficientBalanceError, NotFoundError
from crm.core.money import round2, to_decimal
from crm.core.permissions import can_manage_wallet, can_view_wallet, ensure
from crm.models import Customer, Transaction, TransactionDirection, TransactionType
from crm.models.transaction import (
    DEPOSIT_DESCRIPTION,
    REFUND_DESCRIPTION,
    WALLET_APPLICATION_PREFIX,
)
from crm.schemas.transaction import WalletMovementCreate, WalletSummary
from crm.services.ledger import append_entry, normalize_currency

# Logger per questo modulo
logger = logging.getLogger(__name__)


def project_balance(transactions: Iterable[Any], currency: str) -> WalletSummary:
    """
    Calcola il saldo wallet da un insieme di movimenti.

    Considera solo i movimenti nella valuta indicata. Un saldo
    negativo (registro incoerente) viene restituito così com'è.
    """
    deposits = Decimal("0")
    applied = Decimal("0")
    refunds = Decimal("0")
    count = 0

    for tx in transactions:
        if tx.currency != currency:
            continue
        count += 1
        amount = to_decimal(tx.amount)
        description = tx.description or ""
        if tx.direction == TransactionDirection.INCOMING.value:
            if description == DEPOSIT_DESCRIPTION:
                deposits += amount
        elif description.startswith(WALLET_APPLICATION_PREFIX):
            applied += amount
        elif description == REFUND_DESCRIPTION:
            refunds += amount

    return WalletSummary(
        currency=currency,
        deposits=round2(deposits),
        applied_from_wallet=round2(applied),
        refunds=round2(refunds),
        balance=round2(deposits - applied - refunds),
        transaction_count=count,
    )


class WalletService:
    """
    Service per saldo, depositi e rimborsi del wallet clienti.

    get_balance() legge sempre il registro; get_summary() può essere
    servito dalla cache di risposta, invalidata ad ogni movimento.
    """

    def __init__(self, cache: Optional[ResponseCache] = None) -> None:
        self._cache = cache

    @property
    def cache(self) -> ResponseCache:
        return self._cache if self._cache is not None else get_cache()

    async def _ensure_customer(self, db: AsyncSession, customer_id: uuid.UUID) -> Customer:
        customer = await db.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError(f"Cliente {customer_id} non trovato")
        return customer

    async def _customer_transactions(
        self,
        db: AsyncSession,
        customer_id: uuid.UUID,
        currency: str,
    ) -> Sequence[Transaction]:
        result = await db.execute(
            select(Transaction).where(
                Transaction.customer_id == customer_id,
                Transaction.currency == currency,
            )
        )
        return result.scalars().all()

    async def _project(self, db: AsyncSession, customer_id: uuid.UUID, currency: str) -> WalletSummary:
        summary = project_balance(await self._customer_transactions(db, customer_id, currency), currency)
        summary.customer_id = customer_id
        if summary.balance < 0:
            logger.warning(
                "Saldo wallet negativo per cliente %s: %s %s", customer_id, summary.balance, currency
            )
        return summary

    async def get_balance(
        self,
        db: AsyncSession,
        customer_id: uuid.UUID,
        currency: Optional[str] = None,
    ) -> Decimal:
        """
        Saldo wallet autoritativo (senza cache).

        Args:
            db: Sessione database
            customer_id: UUID del cliente
            currency: Valuta (default da configurazione, JPY)

        Returns:
            Decimal: saldo arrotondato a 2 decimali (può essere negativo)
        """
        summary = await self._project(db, customer_id, normalize_currency(currency))
        return summary.balance

    async def get_summary(
        self,
        db: AsyncSession,
        customer_id: uuid.UUID,
        currency: Optional[str] = None,
        user: Any = None,
    ) -> WalletSummary:
        """
        Riepilogo wallet (depositi, prelievi, rimborsi, saldo).

        Raises:
            ForbiddenError: ruolo non abilitato alla consultazione
            NotFoundError: cliente non trovato
        """
        ensure(can_view_wallet(user), "Non hai i permessi per consultare il wallet")
        await self._ensure_customer(db, customer_id)
        currency = normalize_currency(currency)

        async def fetch() -> WalletSummary:
            return await self._project(db, customer_id, currency)

        return await self.cache.get_or_compute(
            wallet_key(customer_id, currency),
            settings.response_cache_ttl_seconds,
            fetch,
        )

    async def record_deposit(
        self,
        db: AsyncSession,
        customer_id: uuid.UUID,
        data: WalletMovementCreate,
        user: Any,
    ) -> Transaction:
        """
        Registra un deposito sul wallet (INCOMING "Deposit").

        Raises:
            ForbiddenError: ruolo non abilitato
            NotFoundError: cliente non trovato
        """
        ensure(can_manage_wallet(user), "Non hai i permessi per registrare depositi")
        await self._ensure_customer(db, customer_id)

        entry = append_entry(
            db,
            direction=TransactionDirection.INCOMING,
            type=TransactionType.DEPOSIT,
            amount=data.amount,
            description=DEPOSIT_DESCRIPTION,
            currency=data.currency,
            transaction_date=data.transaction_date or date.today(),
            reference_number=data.reference_number,
            customer_id=customer_id,
            created_by_id=getattr(user, "id", None),
        )
        await commit_unit(db, "registrazione deposito")
        await self.cache.invalidate(wallet_key(customer_id, entry.currency))
        logger.info("Deposito %s %s registrato per cliente %s", entry.amount, entry.currency, customer_id)
        return entry

    async def record_refund(
        self,
        db: AsyncSession,
        customer_id: uuid.UUID,
        data: WalletMovementCreate,
        user: Any,
    ) -> Transaction:
        """
        Rimborsa fondi wallet al cliente (OUTGOING "Refund").

        Raises:
            ForbiddenError: ruolo non abilitato
            NotFoundError: cliente non trovato
            InsufficientBalanceError: importo superiore al saldo
        """
        ensure(can_manage_wallet(user), "Non hai i permessi per registrare rimborsi")
        await self._ensure_customer(db, customer_id)
        currency = normalize_currency(data.currency)
        amount = round2(data.amount)

        balance = await self.get_balance(db, customer_id, currency)
        if amount > balance:
            raise InsufficientBalanceError(balance, amount, currency)

        entry = append_entry(
            db,
            direction=TransactionDirection.OUTGOING,
            type=TransactionType.REFUND,
            amount=amount,
            description=REFUND_DESCRIPTION,
            currency=currency,
            transaction_date=data.transaction_date or date.today(),
            reference_number=data.reference_number,
            customer_id=customer_id,
            created_by_id=getattr(user, "id", None),
        )
        await commit_unit(db, "registrazione rimborso")
        await self.cache.invalidate(wallet_key(customer_id, currency))
        logger.info("Rimborso %s %s registrato per cliente %s", amount, currency, customer_id)
        return entry
