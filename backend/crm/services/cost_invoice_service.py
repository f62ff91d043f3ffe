"""
Service Layer per il conto economico delle fatture
Progetto: Export CRM (Gestionale Export Veicoli)

Calcola ricavo, costo totale, profitto, margine e ROI di una fattura
di vendita. I valori salvati su CostInvoice si ricavano sempre dallo
stato corrente di voci, costi fornitori e quote di fatture condivise:
recompute() è idempotente e non applica mai variazioni incrementali.
"""

import logging
import uuid
from decimal import Decimal
from typing import Any, Iterable, NamedTuple, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from crm.core.database import commit_unit
from crm.core.exceptions import BusinessValidationError, NotFoundError
from crm.core.money import HUNDRED, ZERO, percentage, round2, sum_amounts, to_decimal
from crm.core.permissions import can_edit_invoice, ensure
from crm.models import (
    CostInvoice,
    CostItem,
    Invoice,
    SharedInvoice,
    SharedInvoiceType,
    SharedInvoiceVehicle,
    Vendor,
)
from crm.schemas.cost_invoice import (
    CostBreakdown,
    CostItemCreate,
    CostItemRead,
    CostItemUpdate,
    ProfitMetrics,
)

# Logger per questo modulo
logger = logging.getLogger(__name__)

# Tipi di voce che riducono il subtotale
SUBTRACTING_CHARGE_TYPES = frozenset({"discount", "deposit"})

# Etichette delle voci sintetiche per le quote condivise
SHARED_ITEM_LABELS = {
    SharedInvoiceType.FORWARDER.value: ("Forwarder Fee", "Forwarding"),
    SharedInvoiceType.CONTAINER.value: ("Container Freight", "Freight"),
}


class RevenueBreakdown(NamedTuple):
    subtotal: Decimal
    tax_amount: Decimal
    revenue: Decimal


# ------------------------------------------------------------
# Funzioni pure
# ------------------------------------------------------------

def is_subtracting_charge(charge: Any) -> bool:
    """True per le voci di tipo sconto o acconto."""
    return (getattr(charge, "charge_type", None) or "").lower() in SUBTRACTING_CHARGE_TYPES


def charges_subtotal(charges: Iterable[Any]) -> Decimal:
    """
    Subtotale delle voci prima dell'imposta.

    Le voci "discount" e "deposit" vengono sottratte, le altre sommate.
    """
    subtotal = Decimal("0")
    for charge in charges:
        amount = to_decimal(charge.amount)
        subtotal = subtotal - amount if is_subtracting_charge(charge) else subtotal + amount
    return subtotal


def compute_revenue(
    charges: Iterable[Any],
    tax_enabled: bool,
    tax_rate: Any,
) -> RevenueBreakdown:
    """
    Calcola il ricavo della fattura.

    revenue = subtotal + subtotal * tax_rate / 100 (se l'imposta è abilitata)

    Args:
        charges: Voci della fattura
        tax_enabled: Flag imposta
        tax_rate: Aliquota percentuale

    Returns:
        RevenueBreakdown: subtotale, imposta e ricavo
    """
    subtotal = charges_subtotal(charges)
    tax_amount = ZERO
    if tax_enabled and tax_rate is not None:
        tax_amount = round2(subtotal * to_decimal(tax_rate) / HUNDRED)
    return RevenueBreakdown(subtotal, tax_amount, subtotal + tax_amount)


def compute_profit_metrics(revenue: Any, total_cost: Any) -> ProfitMetrics:
    """
    Calcola profitto, margine e ROI.

    - profit = round2(revenue - total_cost)
    - margin = profit / revenue * 100 (0 se revenue <= 0)
    - roi = profit / total_cost * 100 (0 se total_cost <= 0)

    Valori negativi non sollevano errori: vengono riportati così come sono.
    """
    revenue = to_decimal(revenue)
    total_cost = to_decimal(total_cost)
    profit = round2(revenue - total_cost)
    return ProfitMetrics(
        total_revenue=round2(revenue),
        total_cost=round2(total_cost),
        profit=profit,
        margin=percentage(profit, revenue),
        roi=percentage(profit, total_cost),
    )


def shared_cost_item(allocation: SharedInvoiceVehicle, shared: SharedInvoice) -> CostItemRead:
    """Voce sintetica in sola lettura per una quota di fattura condivisa."""
    label, category = SHARED_ITEM_LABELS.get(shared.type, ("Shared Cost", None))
    return CostItemRead(
        id=allocation.id,
        description=f"{label} ({shared.invoice_number})",
        amount=allocation.allocated_amount,
        vendor_id=shared.vendor_id,
        category=category,
        payment_deadline=shared.payment_deadline,
        is_shared=True,
        shared_invoice_id=shared.id,
    )


class CostInvoiceService:
    """
    Service per il calcolo del conto economico delle fatture.

    recompute() esegue solo flush: la transazione viene confermata
    dal chiamante, così che riallocazioni e ricalcoli costituiscano
    un'unica unità di lavoro.
    """

    # ------------------------------------------------------------
    # Caricamento
    # ------------------------------------------------------------

    async def _get_invoice(self, db: AsyncSession, invoice_id: uuid.UUID) -> Invoice:
        stmt = (
            select(Invoice)
            .where(Invoice.id == invoice_id)
            .options(
                selectinload(Invoice.charges),
                selectinload(Invoice.cost_invoice).selectinload(CostInvoice.items),
            )
        )
        result = await db.execute(stmt)
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFoundError(f"Fattura {invoice_id} non trovata")
        return invoice

    async def _shared_allocations(
        self,
        db: AsyncSession,
        vehicle_id: Optional[uuid.UUID],
    ) -> Sequence[tuple[SharedInvoiceVehicle, SharedInvoice]]:
        """Quote del veicolo su tutte le fatture condivise a cui partecipa."""
        if vehicle_id is None:
            return []
        stmt = (
            select(SharedInvoiceVehicle, SharedInvoice)
            .join(SharedInvoice, SharedInvoice.id == SharedInvoiceVehicle.shared_invoice_id)
            .where(SharedInvoiceVehicle.vehicle_id == vehicle_id)
            .order_by(SharedInvoice.invoice_number)
        )
        result = await db.execute(stmt)
        return [tuple(row) for row in result.all()]

    async def _invoice_ids_for_vehicles(
        self,
        db: AsyncSession,
        vehicle_ids: Iterable[uuid.UUID],
    ) -> list[uuid.UUID]:
        ids = list(dict.fromkeys(vehicle_ids))
        if not ids:
            return []
        result = await db.execute(
            select(Invoice.id).where(Invoice.vehicle_id.in_(ids)).order_by(Invoice.invoice_number)
        )
        return list(result.scalars().all())

    async def _get_or_create_cost_invoice(self, db: AsyncSession, invoice: Invoice) -> CostInvoice:
        if invoice.cost_invoice is not None:
            return invoice.cost_invoice

        cost_invoice = CostInvoice(
            invoice_id=invoice.id,
            total_revenue=ZERO,
            total_cost=ZERO,
            profit=ZERO,
            margin=ZERO,
            roi=ZERO,
            items=[],
        )
        db.add(cost_invoice)
        invoice.cost_invoice = cost_invoice
        await db.flush()
        logger.debug("Creato conto economico per fattura %s", invoice.invoice_number)
        return cost_invoice

    # ------------------------------------------------------------
    # Ricalcolo
    # ------------------------------------------------------------

    async def _apply_metrics(
        self,
        db: AsyncSession,
        invoice: Invoice,
        cost_invoice: CostInvoice,
    ) -> ProfitMetrics:
        revenue = compute_revenue(invoice.charges, invoice.tax_enabled, invoice.tax_rate).revenue
        regular_cost = sum_amounts(item.amount for item in cost_invoice.items)
        allocations = await self._shared_allocations(db, invoice.vehicle_id)
        shared_cost = sum_amounts(alloc.allocated_amount for alloc, _ in allocations)

        metrics = compute_profit_metrics(revenue, regular_cost + shared_cost)
        cost_invoice.total_revenue = metrics.total_revenue
        cost_invoice.total_cost = metrics.total_cost
        cost_invoice.profit = metrics.profit
        cost_invoice.margin = metrics.margin
        cost_invoice.roi = metrics.roi
        return metrics

    async def recompute(self, db: AsyncSession, invoice_id: uuid.UUID) -> CostInvoice:
        """
        Ricalcola e salva (flush) il conto economico di una fattura.

        Steps:
        1. Carica fattura con voci e costi
        2. Crea CostInvoice se non esiste
        3. Ricavo da voci (+ imposta)
        4. Costo = costi fornitori + quote condivise del veicolo
        5. Profitto, margine, ROI

        Args:
            db: Sessione database
            invoice_id: UUID della fattura

        Returns:
            CostInvoice: Conto economico aggiornato

        Raises:
            NotFoundError: Fattura non trovata
        """
        invoice = await self._get_invoice(db, invoice_id)
        cost_invoice = await self._get_or_create_cost_invoice(db, invoice)
        metrics = await self._apply_metrics(db, invoice, cost_invoice)
        await db.flush()
        logger.debug(
            "Ricalcolato conto economico fattura %s: costo=%s profitto=%s",
            invoice.invoice_number, metrics.total_cost, metrics.profit,
        )
        return cost_invoice

    async def recompute_for_vehicles(
        self,
        db: AsyncSession,
        vehicle_ids: Iterable[uuid.UUID],
    ) -> list[CostInvoice]:
        """Ricalcola il conto economico di ogni fattura dei veicoli indicati."""
        invoice_ids = await self._invoice_ids_for_vehicles(db, vehicle_ids)
        recomputed = [await self.recompute(db, invoice_id) for invoice_id in invoice_ids]
        if recomputed:
            logger.info("Ricalcolati %d conti economici dopo variazione quote", len(recomputed))
        return recomputed

    async def get_breakdown(self, db: AsyncSession, invoice_id: uuid.UUID) -> CostBreakdown:
        """
        Dettaglio costi della fattura in sola lettura.

        Include i costi fornitori e una voce sintetica per ogni quota
        di fattura condivisa del veicolo. Le metriche sono calcolate
        sullo stato corrente senza scrivere nulla.

        Raises:
            NotFoundError: Fattura non trovata
        """
        invoice = await self._get_invoice(db, invoice_id)
        cost_invoice = invoice.cost_invoice
        regular_items = list(cost_invoice.items) if cost_invoice is not None else []
        allocations = await self._shared_allocations(db, invoice.vehicle_id)

        regular_cost = sum_amounts(item.amount for item in regular_items)
        shared_cost = sum_amounts(alloc.allocated_amount for alloc, _ in allocations)
        revenue = compute_revenue(invoice.charges, invoice.tax_enabled, invoice.tax_rate).revenue

        items = [CostItemRead.model_validate(item) for item in regular_items]
        items.extend(shared_cost_item(alloc, shared) for alloc, shared in allocations)

        return CostBreakdown(
            invoice_id=invoice.id,
            cost_invoice_id=cost_invoice.id if cost_invoice is not None else None,
            metrics=compute_profit_metrics(revenue, regular_cost + shared_cost),
            regular_cost=round2(regular_cost),
            shared_cost=round2(shared_cost),
            items=items,
        )

    # ------------------------------------------------------------
    # Costi fornitori
    # ------------------------------------------------------------

    async def _ensure_vendor(self, db: AsyncSession, vendor_id: uuid.UUID) -> None:
        if await db.get(Vendor, vendor_id) is None:
            raise BusinessValidationError(f"Fornitore {vendor_id} non trovato")

    def _find_item(self, cost_invoice: Optional[CostInvoice], item_id: uuid.UUID) -> CostItem:
        if cost_invoice is not None:
            for item in cost_invoice.items:
                if item.id == item_id:
                    return item
        raise NotFoundError(f"Costo {item_id} non trovato")

    async def add_cost_item(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        data: CostItemCreate,
        user: Any,
    ) -> CostItem:
        """
        Aggiunge un costo fornitore e ricalcola il conto economico.

        Raises:
            NotFoundError: Fattura non trovata
            ForbiddenError: L'utente non può modificare la fattura
            BusinessValidationError: Fornitore inesistente
        """
        invoice = await self._get_invoice(db, invoice_id)
        ensure(can_edit_invoice(user, invoice), "Non hai i permessi per modificare i costi di questa fattura")
        await self._ensure_vendor(db, data.vendor_id)

        cost_invoice = await self._get_or_create_cost_invoice(db, invoice)
        item = CostItem(
            cost_invoice_id=cost_invoice.id,
            description=data.description.strip(),
            amount=round2(data.amount),
            vendor_id=data.vendor_id,
            category=data.category,
            payment_date=data.payment_date,
            payment_deadline=data.payment_deadline,
        )
        cost_invoice.items.append(item)
        db.add(item)

        await self._apply_metrics(db, invoice, cost_invoice)
        await commit_unit(db, "inserimento costo")
        await db.refresh(item)
        logger.info("Aggiunto costo %s a fattura %s", item.amount, invoice.invoice_number)
        return item

    async def update_cost_item(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        item_id: uuid.UUID,
        data: CostItemUpdate,
        user: Any,
    ) -> CostItem:
        """Modifica un costo fornitore e ricalcola il conto economico."""
        invoice = await self._get_invoice(db, invoice_id)
        ensure(can_edit_invoice(user, invoice), "Non hai i permessi per modificare i costi di questa fattura")
        item = self._find_item(invoice.cost_invoice, item_id)

        changes = data.model_dump(exclude_unset=True)
        for field in ("description", "amount", "vendor_id", "payment_deadline"):
            if field in changes and changes[field] is None:
                raise BusinessValidationError(f"Il campo {field} è obbligatorio")
        if "vendor_id" in changes and changes["vendor_id"] != item.vendor_id:
            await self._ensure_vendor(db, changes["vendor_id"])
        if "amount" in changes:
            changes["amount"] = round2(changes["amount"])
        for field, value in changes.items():
            setattr(item, field, value)

        await self._apply_metrics(db, invoice, invoice.cost_invoice)
        await commit_unit(db, "modifica costo")
        await db.refresh(item)
        return item

    async def delete_cost_item(
        self,
        db: AsyncSession,
        invoice_id: uuid.UUID,
        item_id: uuid.UUID,
        user: Any,
    ) -> None:
        """Elimina un costo fornitore e ricalcola il conto economico."""
        invoice = await self._get_invoice(db, invoice_id)
        ensure(can_edit_invoice(user, invoice), "Non hai i permessi per modificare i costi di questa fattura")
        cost_invoice = invoice.cost_invoice
        item = self._find_item(cost_invoice, item_id)

        cost_invoice.items.remove(item)
        await db.delete(item)
        await self._apply_metrics(db, invoice, cost_invoice)
        await commit_unit(db, "eliminazione costo")
        logger.info("Eliminato costo %s da fattura %s", item_id, invoice.invoice_number)
