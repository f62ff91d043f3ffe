"""
Service Layer per la Fatturazione di vendita
Progetto: Export CRM (Gestionale Export Veicoli)

Definisce la logica di business per le fatture al cliente:
numerazione, voci, imposta, flusso di approvazione e link pubblico.
Ogni variazione del ricavo ricalcola il conto economico nella
stessa transazione.
"""

import logging
import secrets
import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from crm.core.cache import INVOICE_LIST_PREFIX, ResponseCache, get_cache, share_token_key
from crm.core.config import settings
from crm.core.database import commit_unit
from crm.core.exceptions import BusinessValidationError, ConflictError, NotFoundError
from crm.core.money import round2
from crm.core.permissions import (
    can_approve_invoice,
    can_edit_invoice,
    can_finalize_invoice,
    can_unlock_invoice,
    ensure,
)
from crm.models import (
    Customer,
    Invoice,
    InvoiceCharge,
    InvoiceStatus,
    PaymentStatus,
    Vehicle,
)
from crm.schemas.common import total_pages
from crm.schemas.invoice import (
    ChargeCreate,
    ChargeUpdate,
    InvoiceCreate,
    InvoiceList,
    InvoiceRead,
    InvoiceTaxUpdate,
)
from crm.services.cost_invoice_service import CostInvoiceService

# Logger per questo modulo
logger = logging.getLogger(__name__)


class InvoiceService:
    """
    Service per la gestione delle fatture di vendita.

    Implementa:
    - Numerazione progressiva annuale (INV-YYYY-NNNN)
    - Gestione voci e imposta con ricalcolo del conto economico
    - Flusso DRAFT → PENDING_APPROVAL → APPROVED → FINALIZED
    - Lettura pubblica tramite share token
    """

    def __init__(
        self,
        cost_service: Optional[CostInvoiceService] = None,
        cache: Optional[ResponseCache] = None,
    ) -> None:
        self.cost_service = cost_service or CostInvoiceService()
        self._cache = cache

    @property
    def cache(self) -> ResponseCache:
        return self._cache if self._cache is not None else get_cache()

    async def _invalidate(self, invoice: Invoice) -> None:
        await self.cache.invalidate(INVOICE_LIST_PREFIX)
        if invoice.share_token:
            await self.cache.invalidate(share_token_key(invoice.share_token))

    # ------------------------------------------------------------
    # Numerazione
    # ------------------------------------------------------------

    async def _generate_invoice_number(self, db: AsyncSession, invoice_date: date) -> str:
        """
        Genera numero fattura progressivo annuale.

        Formato: INV-YYYY-NNNN (es. INV-2025-0001)

        Logica:
        1. Acquisisce advisory lock PostgreSQL sul prefisso dell'anno
        2. Cerca l'ultima fattura dell'anno
        3. Incrementa il progressivo (oltre 9999 prosegue con più cifre)
        """
        prefix = f"INV-{invoice_date.year}-"

        # SELECT FOR UPDATE non blocca nulla se non esistono righe per l'anno corrente
        await db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"), {"lock_key": prefix})

        stmt = (
            select(Invoice.invoice_number)
            .where(Invoice.invoice_number.like(f"{prefix}%"))
            .order_by(func.length(Invoice.invoice_number).desc(), Invoice.invoice_number.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        last_number = result.scalar_one_or_none()

        next_number = int(last_number[len(prefix):]) + 1 if last_number else 1
        return f"{prefix}{next_number:04d}"

    # ------------------------------------------------------------
    # Lettura
    # ------------------------------------------------------------

    async def get(self, db: AsyncSession, invoice_id: uuid.UUID) -> Invoice:
        """
        Recupera una fattura per ID con le voci.

        Raises:
            NotFoundError: Fattura non trovata
        """
        stmt = (
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .options(selectinload(Invoice.charges))
        )
        result = await db.execute(stmt)
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError(f"Fattura {invoice_id} non trovata")
        return invoice

    async def get_by_share_token(self, db: AsyncSession, share_token: str) -> InvoiceRead:
        """
        Lettura pubblica tramite share token (servita dalla cache).

        Raises:
            NotFoundError: Nessuna fattura con questo token
        """

        async def fetch() -> InvoiceRead:
            stmt = (
                select(Invoice)
                .where(Invoice.share_token == share_token)
                .options(selectinload(Invoice.charges))
            )
            result = await db.execute(stmt)
            invoice = result.scalar_one_or_none()
            if not invoice:
                raise NotFoundError("Fattura non trovata")
            return InvoiceRead.model_validate(invoice)

        return await self.cache.get_or_compute(
            share_token_key(share_token),
            settings.response_cache_ttl_seconds,
            fetch,
        )

    async def get_all(
        self,
        db: AsyncSession,
        customer_id: Optional[uuid.UUID] = None,
        status: Optional[InvoiceStatus] = None,
        payment_status: Optional[PaymentStatus] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> InvoiceList:
        """
        Lista paginata delle fatture, più recenti per prime.

        Args:
            db: Sessione database
            customer_id: Filtro per cliente
            status: Filtro per stato approvazione
            payment_status: Filtro per stato incasso
            page: Numero pagina (1-based)
            per_page: Elementi per pagina

        Returns:
            InvoiceList: Lista paginata
        """
        conditions = []
        if customer_id:
            conditions.append(Invoice.customer_id == customer_id)
        if status:
            conditions.append(Invoice.status == InvoiceStatus(status).value)
        if payment_status:
            conditions.append(Invoice.payment_status == PaymentStatus(payment_status).value)

        async def fetch() -> InvoiceList:
            count_result = await db.execute(select(func.count(Invoice.id)).where(*conditions))
            total = count_result.scalar() or 0

            stmt = (
                select(Invoice)
                .where(*conditions)
                .options(selectinload(Invoice.charges))
                .order_by(Invoice.created_at.desc())
                .offset((page - 1) * per_page)
                .limit(per_page)
            )
            result = await db.execute(stmt)
            return InvoiceList(
                items=list(result.scalars().all()),
                total=total,
                page=page,
                per_page=per_page,
                total_pages=total_pages(total, per_page),
            )

        key = f"{INVOICE_LIST_PREFIX}{customer_id}:{status}:{payment_status}:{page}:{per_page}"
        return await self.cache.get_or_compute(key, settings.response_cache_ttl_seconds, fetch)

    # ------------------------------------------------------------
    # Creazione
    # ------------------------------------------------------------

    async def create(self, db: AsyncSession, data: InvoiceCreate, user: Any) -> Invoice:
        """
        Crea una fattura in bozza.

        Steps:
        1. Verifica cliente e veicolo
        2. Genera il numero INV-YYYY-NNNN
        3. Crea la fattura (DRAFT, PENDING) con le voci in ordine
        4. Calcola il conto economico (incluse le quote condivise del veicolo)

        Raises:
            BusinessValidationError: Cliente o veicolo inesistente
        """
        if await db.get(Customer, data.customer_id) is None:
            raise BusinessValidationError(f"Cliente {data.customer_id} non esiste")
        if data.vehicle_id is not None and await db.get(Vehicle, data.vehicle_id) is None:
            raise BusinessValidationError(f"Veicolo {data.vehicle_id} non esiste")

        invoice = Invoice(
            id=uuid.uuid4(),
            invoice_number=await self._generate_invoice_number(db, date.today()),
            customer_id=data.customer_id,
            vehicle_id=data.vehicle_id,
            due_date=data.due_date,
            notes=data.notes,
            status=InvoiceStatus.DRAFT.value,
            payment_status=PaymentStatus.PENDING.value,
            is_locked=False,
            tax_enabled=data.tax_enabled,
            tax_rate=round2(data.tax_rate),
            created_by_id=getattr(user, "id", None),
        )
        invoice.charges = [
            InvoiceCharge(
                description=charge.description.strip(),
                charge_type=charge.charge_type,
                amount=round2(charge.amount),
                sort_order=position,
            )
            for position, charge in enumerate(data.charges)
        ]
        db.add(invoice)
        await db.flush()

        await self.cost_service.recompute(db, invoice.id)
        await commit_unit(db, f"creazione fattura {invoice.invoice_number}")
        await self.cache.invalidate(INVOICE_LIST_PREFIX)

        logger.info("Creata fattura %s per cliente %s", invoice.invoice_number, invoice.customer_id)
        return await self.get(db, invoice.id)

    # ------------------------------------------------------------
    # Voci e imposta
    # ------------------------------------------------------------

    async def _editable(self, db: AsyncSession, invoice_id: uuid.UUID, user: Any) -> Invoice:
        invoice = await self.get(db, invoice_id)
        ensure(can_edit_invoice(user, invoice), "Non hai i permessi per modificare questa fattura")
        return invoice

    def _find_charge(self, invoice: Invoice, charge_id: uuid.UUID) -> InvoiceCharge:
        for charge in invoice.charges:
            if charge.id == charge_id:
                return charge
        raise NotFoundError(f"Voce {charge_id} non trovata")

    async def _save_revenue_change(self, db: AsyncSession, invoice: Invoice, operation: str) -> Invoice:
        await db.flush()
        await self.cost_service.recompute(db, invoice.id)
        await commit_unit(db, operation)
        await self._invalidate(invoice)
        return await self.get(db, invoice.id)

    async def add_charge(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        data: ChargeCreate,
        user: Any,
    ) -> Invoice:
        """Aggiunge una voce in coda e ricalcola il conto economico."""
        invoice = await self._editable(db, invoice_id, user)
        next_order = max((charge.sort_order for charge in invoice.charges), default=-1) + 1
        invoice.charges.append(
            InvoiceCharge(
                invoice_id=invoice.id,
                description=data.description.strip(),
                charge_type=data.charge_type,
                amount=round2(data.amount),
                sort_order=next_order,
            )
        )
        return await self._save_revenue_change(db, invoice, "inserimento voce")

    async def update_charge(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        charge_id: uuid.UUID,
        data: ChargeUpdate,
        user: Any,
    ) -> Invoice:
        """Modifica una voce e ricalcola il conto economico."""
        invoice = await self._editable(db, invoice_id, user)
        charge = self._find_charge(invoice, charge_id)

        changes = data.model_dump(exclude_unset=True)
        if "description" in changes and changes["description"] is None:
            raise BusinessValidationError("La descrizione è obbligatoria")
        if "amount" in changes:
            if changes["amount"] is None:
                raise BusinessValidationError("L'importo è obbligatorio")
            changes["amount"] = round2(changes["amount"])
        for field, value in changes.items():
            setattr(charge, field, value)

        return await self._save_revenue_change(db, invoice, "modifica voce")

    async def delete_charge(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        charge_id: uuid.UUID,
        user: Any,
    ) -> Invoice:
        """Elimina una voce e ricalcola il conto economico."""
        invoice = await self._editable(db, invoice_id, user)
        charge = self._find_charge(invoice, charge_id)
        invoice.charges.remove(charge)
        await db.delete(charge)
        return await self._save_revenue_change(db, invoice, "eliminazione voce")

    async def update_tax(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        data: InvoiceTaxUpdate,
        user: Any,
    ) -> Invoice:
        """
        Modifica la configurazione dell'imposta.

        Raises:
            ForbiddenError: Fattura non modificabile dall'utente
            BusinessValidationError: Aliquota fuori da 0..100
        """
        invoice = await self._editable(db, invoice_id, user)
        if data.tax_rate < 0 or data.tax_rate > 100:
            raise BusinessValidationError("L'aliquota deve essere compresa tra 0 e 100")
        invoice.tax_enabled = data.tax_enabled
        invoice.tax_rate = round2(data.tax_rate)
        return await self._save_revenue_change(db, invoice, "modifica imposta")

    # ------------------------------------------------------------
    # Flusso di approvazione
    # ------------------------------------------------------------

    def _require_status(self, invoice: Invoice, expected: InvoiceStatus, action: str) -> None:
        if invoice.status != expected.value:
            raise ConflictError(
                f"Impossibile {action} la fattura {invoice.invoice_number}: "
                f"stato {invoice.status}, richiesto {expected.value}"
            )

    async def _save_transition(self, db: AsyncSession, invoice: Invoice, previous: str) -> Invoice:
        await commit_unit(db, f"cambio stato fattura {invoice.invoice_number}")
        await self._invalidate(invoice)
        logger.info("Fattura %s: %s → %s", invoice.invoice_number, previous, invoice.status)
        return await self.get(db, invoice.id)

    async def submit(self, db: AsyncSession, invoice_id: uuid.UUID, user: Any) -> Invoice:
        """
        Invia la bozza in approvazione (DRAFT → PENDING_APPROVAL).

        Raises:
            ConflictError: La fattura non è in bozza
            BusinessValidationError: Nessuna voce in fattura
        """
        invoice = await self._editable(db, invoice_id, user)
        self._require_status(invoice, InvoiceStatus.DRAFT, "inviare in approvazione")
        if not invoice.charges:
            raise BusinessValidationError("La fattura non ha voci")
        previous = invoice.status
        invoice.status = InvoiceStatus.PENDING_APPROVAL.value
        return await self._save_transition(db, invoice, previous)

    async def approve(self, db: AsyncSession, invoice_id: uuid.UUID, user: Any) -> Invoice:
        """
        Approva la fattura (PENDING_APPROVAL → APPROVED).

        Genera lo share token se non presente.

        Raises:
            ForbiddenError: Utente non admin
            ConflictError: Stato diverso da PENDING_APPROVAL
        """
        ensure(can_approve_invoice(user), "Solo un amministratore può approvare le fatture")
        invoice = await self.get(db, invoice_id)
        self._require_status(invoice, InvoiceStatus.PENDING_APPROVAL, "approvare")

        previous = invoice.status
        invoice.status = InvoiceStatus.APPROVED.value
        invoice.approved_at = datetime.now(timezone.utc)
        invoice.approved_by_id = getattr(user, "id", None)
        if not invoice.share_token:
            invoice.share_token = secrets.token_urlsafe(32)
        return await self._save_transition(db, invoice, previous)

    async def reject(self, db: AsyncSession, invoice_id: uuid.UUID, user: Any) -> Invoice:
        """Respinge la fattura riportandola in bozza (PENDING_APPROVAL → DRAFT)."""
        ensure(can_approve_invoice(user), "Solo un amministratore può respingere le fatture")
        invoice = await self.get(db, invoice_id)
        self._require_status(invoice, InvoiceStatus.PENDING_APPROVAL, "respingere")
        previous = invoice.status
        invoice.status = InvoiceStatus.DRAFT.value
        return await self._save_transition(db, invoice, previous)

    async def finalize(self, db: AsyncSession, invoice_id: uuid.UUID, user: Any) -> Invoice:
        """
        Finalizza e blocca la fattura (APPROVED → FINALIZED).

        Raises:
            ForbiddenError: Utente non admin
            ConflictError: Stato diverso da APPROVED
        """
        ensure(can_finalize_invoice(user), "Solo un amministratore può finalizzare le fatture")
        invoice = await self.get(db, invoice_id)
        self._require_status(invoice, InvoiceStatus.APPROVED, "finalizzare")

        previous = invoice.status
        invoice.status = InvoiceStatus.FINALIZED.value
        invoice.is_locked = True
        invoice.finalized_at = datetime.now(timezone.utc)
        invoice.finalized_by_id = getattr(user, "id", None)
        return await self._save_transition(db, invoice, previous)

    async def unlock(self, db: AsyncSession, invoice_id: uuid.UUID, user: Any) -> Invoice:
        """
        Sblocca una fattura finalizzata riportandola ad APPROVED.

        Raises:
            ForbiddenError: Utente non admin
            ConflictError: La fattura non è bloccata
        """
        ensure(can_unlock_invoice(user), "Solo un amministratore può sbloccare le fatture")
        invoice = await self.get(db, invoice_id)
        if not invoice.is_locked:
            raise ConflictError(f"La fattura {invoice.invoice_number} non è bloccata")

        previous = invoice.status
        invoice.status = InvoiceStatus.APPROVED.value
        invoice.is_locked = False
        return await self._save_transition(db, invoice, previous)
