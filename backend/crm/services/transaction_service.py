"""
Service Layer per il registro movimenti
Progetto: Export CRM (Gestionale Export Veicoli)

I movimenti sono append-only: dopo la creazione sono modificabili
solo riferimento e data. Saldi wallet e stati di pagamento si
ricavano sempre dal registro.
"""

import logging
import uuid
from datetime import date
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.cache import ResponseCache, get_cache, wallet_key
from crm.core.database import commit_unit
from crm.core.exceptions import BusinessValidationError, NotFoundError
from crm.core.permissions import can_manage_transactions, ensure
from crm.models import (
    CostItem,
    Customer,
    Invoice,
    Transaction,
    TransactionDirection,
    TransactionType,
    Vehicle,
    Vendor,
)
from crm.schemas.common import total_pages
from crm.schemas.transaction import (
    TransactionCreate,
    TransactionList,
    TransactionUpdate,
    VendorPaymentCreate,
)
from crm.services.ledger import append_entry
from crm.services.payment_service import PaymentService

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Entità collegabili a un movimento: campo → (modello, etichetta per l'errore)
LINKED_ENTITIES = {
    "customer_id": (Customer, "Cliente"),
    "vehicle_id": (Vehicle, "Veicolo"),
    "invoice_id": (Invoice, "Fattura"),
    "cost_item_id": (CostItem, "Costo"),
    "vendor_id": (Vendor, "Fornitore"),
}


class TransactionService:
    """Service per consultazione e registrazione dei movimenti."""

    def __init__(
        self,
        payment_service: Optional[PaymentService] = None,
        cache: Optional[ResponseCache] = None,
    ) -> None:
        self.payment_service = payment_service or PaymentService(cache=cache)
        self._cache = cache

    @property
    def cache(self) -> ResponseCache:
        return self._cache if self._cache is not None else get_cache()

    async def get(self, db: AsyncSession, transaction_id: uuid.UUID) -> Transaction:
        """
        Recupera un movimento per ID.

        Raises:
            NotFoundError: movimento non trovato
        """
        transaction = await db.get(Transaction, transaction_id)
        if transaction is None:
            raise NotFoundError(f"Movimento {transaction_id} non trovato")
        return transaction

    async def get_all(
        self,
        db: AsyncSession,
        customer_id: Optional[uuid.UUID] = None,
        invoice_id: Optional[uuid.UUID] = None,
        direction: Optional[TransactionDirection] = None,
        transaction_type: Optional[TransactionType] = None,
        currency: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> TransactionList:
        """
        Lista paginata dei movimenti, più recenti per primi.

        Tutti i filtri sono opzionali e combinabili.
        """
        conditions = []
        if customer_id:
            conditions.append(Transaction.customer_id == customer_id)
        if invoice_id:
            conditions.append(Transaction.invoice_id == invoice_id)
        if direction:
            conditions.append(Transaction.direction == TransactionDirection(direction).value)
        if transaction_type:
            conditions.append(Transaction.type == TransactionType(transaction_type).value)
        if currency:
            conditions.append(Transaction.currency == currency.upper())
        if date_from:
            conditions.append(Transaction.transaction_date >= date_from)
        if date_to:
            conditions.append(Transaction.transaction_date <= date_to)

        count_result = await db.execute(select(func.count(Transaction.id)).where(*conditions))
        total = count_result.scalar() or 0

        stmt = (
            select(Transaction)
            .where(*conditions)
            .order_by(Transaction.transaction_date.desc(), Transaction.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await db.execute(stmt)

        return TransactionList(
            items=list(result.scalars().all()),
            total=total,
            page=page,
            per_page=per_page,
            total_pages=total_pages(total, per_page),
        )

    async def _ensure_links(self, db: AsyncSession, data: TransactionCreate) -> None:
        for field, (model, label) in LINKED_ENTITIES.items():
            value = getattr(data, field)
            if value is not None and await db.get(model, value) is None:
                raise BusinessValidationError(f"{label} {value} non esiste")

    async def create(self, db: AsyncSession, data: TransactionCreate, user: Any) -> Transaction:
        """
        Registra un movimento manuale.

        Se il movimento è collegato a una fattura, lo stato di
        pagamento viene riallineato nella stessa transazione.

        Raises:
            ForbiddenError: ruolo non abilitato
            BusinessValidationError: entità collegata inesistente
        """
        ensure(can_manage_transactions(user), "Non hai i permessi per registrare movimenti")
        await self._ensure_links(db, data)

        entry = append_entry(
            db,
            direction=data.direction,
            type=data.type,
            amount=data.amount,
            description=data.description,
            currency=data.currency,
            transaction_date=data.transaction_date,
            reference_number=data.reference_number,
            customer_id=data.customer_id,
            vehicle_id=data.vehicle_id,
            invoice_id=data.invoice_id,
            cost_item_id=data.cost_item_id,
            vendor_id=data.vendor_id,
            created_by_id=getattr(user, "id", None),
        )
        await db.flush()

        if entry.invoice_id is not None:
            await self.payment_service.recalc_payment_status(db, entry.invoice_id)

        await commit_unit(db, "registrazione movimento")
        if entry.customer_id is not None:
            await self.cache.invalidate(wallet_key(entry.customer_id, entry.currency))

        logger.info("Movimento %s registrato: %s %s", entry.id, entry.amount, entry.currency)
        return entry

    async def record_vendor_payment(
        self,
        db: AsyncSession,
        data: VendorPaymentCreate,
        user: Any,
    ) -> Transaction:
        """
        Registra il pagamento di un costo a fornitore.

        Crea un movimento OUTGOING VENDOR_PAYMENT e imposta la
        data di pagamento sul costo.

        Raises:
            ForbiddenError: ruolo non abilitato
            NotFoundError: costo non trovato
        """
        ensure(can_manage_transactions(user), "Non hai i permessi per registrare pagamenti fornitori")

        cost_item = await db.get(CostItem, data.cost_item_id)
        if cost_item is None:
            raise NotFoundError(f"Costo {data.cost_item_id} non trovato")

        payment_date = data.payment_date or date.today()
        entry = append_entry(
            db,
            direction=TransactionDirection.OUTGOING,
            type=TransactionType.VENDOR_PAYMENT,
            amount=data.amount if data.amount is not None else cost_item.amount,
            description=f"Vendor payment: {cost_item.description}",
            currency=data.currency,
            transaction_date=payment_date,
            reference_number=data.reference_number,
            cost_item_id=cost_item.id,
            vendor_id=cost_item.vendor_id,
            created_by_id=getattr(user, "id", None),
        )
        cost_item.payment_date = payment_date

        await commit_unit(db, "pagamento fornitore")
        logger.info("Pagamento fornitore registrato per costo %s: %s", cost_item.id, entry.amount)
        return entry

    async def update_metadata(
        self,
        db: AsyncSession,
        transaction_id: uuid.UUID,
        data: TransactionUpdate,
        user: Any,
    ) -> Transaction:
        """
        Modifica riferimento e/o data di un movimento.

        Per un movimento OUTGOING collegato a un costo, la nuova data
        diventa anche la data di pagamento del costo.

        Raises:
            ForbiddenError: ruolo non abilitato
            NotFoundError: movimento non trovato
        """
        ensure(can_manage_transactions(user), "Non hai i permessi per modificare movimenti")
        transaction = await self.get(db, transaction_id)
        changes = data.model_dump(exclude_unset=True)

        if "reference_number" in changes:
            transaction.reference_number = changes["reference_number"]

        new_date = changes.get("transaction_date")
        if new_date is not None and new_date != transaction.transaction_date:
            transaction.transaction_date = new_date
            if (
                transaction.direction == TransactionDirection.OUTGOING.value
                and transaction.cost_item_id is not None
            ):
                cost_item = await db.get(CostItem, transaction.cost_item_id)
                if cost_item is not None:
                    cost_item.payment_date = new_date

        await commit_unit(db, "modifica movimento")
        await db.refresh(transaction)
        return transaction
