"""
Service Layer per le fatture condivise
Progetto: Export CRM (Gestionale Export Veicoli)

Ripartisce il totale di una fattura spedizioniere/container in parti
uguali tra i veicoli collegati. Ogni variazione dell'insieme dei
veicoli riscrive tutte le quote e ricalcola il conto economico delle
fatture dei veicoli coinvolti, nella stessa transazione.

Arrotondamento: ogni quota è round2(totale / N). La somma delle quote
può differire dal totale di al massimo 0.01 * (N - 1); il residuo non
viene redistribuito.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from crm.core.database import commit_unit
from crm.core.exceptions import BusinessValidationError, ConflictError, NotFoundError
from crm.core.money import ZERO, round2, to_decimal
from crm.core.permissions import can_delete_shared_invoice, ensure
from crm.models import (
    ContainerInvoice,
    SharedInvoice,
    SharedInvoiceVehicle,
    Vehicle,
    Vendor,
)
from crm.schemas.common import total_pages
from crm.schemas.shared_invoice import (
    SharedCostLine,
    SharedInvoiceCreate,
    SharedInvoiceList,
    SharedInvoiceUpdate,
)
from crm.services.cost_invoice_service import CostInvoiceService

# Logger per questo modulo
logger = logging.getLogger(__name__)


def split_evenly(total: Any, count: int) -> Decimal:
    """
    Quota per veicolo: round2(total / count).

    Restituisce 0 se non ci sono veicoli.
    """
    if count <= 0:
        return ZERO
    return round2(to_decimal(total) / count)


def _unique(ids: Iterable[uuid.UUID]) -> list[uuid.UUID]:
    return list(dict.fromkeys(ids))


def _cost_lines_json(lines: Iterable[SharedCostLine]) -> list[dict[str, Any]]:
    return [line.model_dump(mode="json") for line in lines]


class SharedInvoiceService:
    """
    Service per le fatture condivise e la ripartizione dei costi.

    Ogni operazione pubblica è un'unità di lavoro: riallocazione e
    ricalcolo dei conti economici vengono confermati insieme.
    """

    def __init__(self, cost_service: Optional[CostInvoiceService] = None) -> None:
        self.cost_service = cost_service or CostInvoiceService()

    # ------------------------------------------------------------
    # Helper
    # ------------------------------------------------------------

    async def _get(self, db: AsyncSession, shared_invoice_id: uuid.UUID) -> SharedInvoice:
        stmt = (
            select(SharedInvoice)
            .where(SharedInvoice.id == shared_invoice_id)
            .options(selectinload(SharedInvoice.vehicles))
        )
        result = await db.execute(stmt)
        shared = result.scalar_one_or_none()
        if not shared:
            raise NotFoundError(f"Fattura condivisa {shared_invoice_id} non trovata")
        return shared

    async def _ensure_vehicles_exist(self, db: AsyncSession, vehicle_ids: list[uuid.UUID]) -> None:
        result = await db.execute(
            select(func.count(Vehicle.id)).where(Vehicle.id.in_(vehicle_ids))
        )
        if result.scalar() != len(vehicle_ids):
            raise BusinessValidationError("Uno o più veicoli non esistono")

    async def _ensure_vendor(self, db: AsyncSession, vendor_id: uuid.UUID) -> None:
        if await db.get(Vendor, vendor_id) is None:
            raise BusinessValidationError(f"Fornitore {vendor_id} non trovato")

    async def _container_invoice_count(self, db: AsyncSession, shared_invoice_id: uuid.UUID) -> int:
        result = await db.execute(
            select(func.count(ContainerInvoice.id)).where(
                ContainerInvoice.shared_invoice_id == shared_invoice_id
            )
        )
        return result.scalar() or 0

    async def _generate_invoice_number(self, db: AsyncSession, invoice_type: str) -> str:
        """
        Genera il numero progressivo annuale per tipo.

        Formato: TYPE-YYYY-NNN (es. FORWARDER-2025-007). Oltre 999 il
        progressivo prosegue con più cifre.
        """
        prefix = f"{invoice_type}-{date.today().year}-"

        # Advisory lock per tipo/anno: evita numeri duplicati in concorrenza
        await db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:lock_key))"), {"lock_key": prefix})

        stmt = (
            select(SharedInvoice.invoice_number)
            .where(SharedInvoice.invoice_number.like(f"{prefix}%"))
            .order_by(
                func.length(SharedInvoice.invoice_number).desc(),
                SharedInvoice.invoice_number.desc(),
            )
            .limit(1)
        )
        result = await db.execute(stmt)
        last_number = result.scalar_one_or_none()

        next_number = int(last_number[len(prefix):]) + 1 if last_number else 1
        return f"{prefix}{next_number:03d}"

    def _reallocate(self, shared: SharedInvoice) -> Decimal:
        """Riscrive tutte le quote con round2(totale / N)."""
        amount = split_evenly(shared.total_amount, len(shared.vehicles))
        for row in shared.vehicles:
            row.allocated_amount = amount
        return amount

    def _attach(self, shared: SharedInvoice, vehicle_ids: Iterable[uuid.UUID], amount: Decimal) -> None:
        for vehicle_id in vehicle_ids:
            shared.vehicles.append(
                SharedInvoiceVehicle(
                    shared_invoice_id=shared.id,
                    vehicle_id=vehicle_id,
                    allocated_amount=amount,
                )
            )

    async def _replace_vehicles(
        self,
        db: AsyncSession,
        shared: SharedInvoice,
        vehicle_ids: list[uuid.UUID],
    ) -> set[uuid.UUID]:
        """
        Sostituisce l'insieme dei veicoli e riscrive le quote.

        Returns:
            set: veicoli coinvolti (precedenti + nuovi)
        """
        target = _unique(vehicle_ids)
        if not target:
            raise BusinessValidationError("Selezionare almeno un veicolo")
        await self._ensure_vehicles_exist(db, target)

        previous = {row.vehicle_id for row in shared.vehicles}
        for row in [r for r in shared.vehicles if r.vehicle_id not in target]:
            shared.vehicles.remove(row)
            await db.delete(row)

        self._attach(shared, [v for v in target if v not in previous], ZERO)
        amount = self._reallocate(shared)
        logger.info(
            "Fattura condivisa %s: %d veicoli, quota %s",
            shared.invoice_number, len(shared.vehicles), amount,
        )
        return previous | set(target)

    # ------------------------------------------------------------
    # Lettura
    # ------------------------------------------------------------

    async def get(self, db: AsyncSession, shared_invoice_id: uuid.UUID) -> SharedInvoice:
        """
        Recupera una fattura condivisa con le quote.

        Raises:
            NotFoundError: Fattura condivisa non trovata
        """
        return await self._get(db, shared_invoice_id)

    async def get_all(
        self,
        db: AsyncSession,
        invoice_type: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
    ) -> SharedInvoiceList:
        """Lista paginata, più recenti per prime, con filtro opzionale per tipo."""
        conditions = []
        if invoice_type:
            conditions.append(SharedInvoice.type == invoice_type)

        count_result = await db.execute(select(func.count(SharedInvoice.id)).where(*conditions))
        total = count_result.scalar() or 0

        stmt = (
            select(SharedInvoice)
            .where(*conditions)
            .options(selectinload(SharedInvoice.vehicles))
            .order_by(SharedInvoice.created_at.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await db.execute(stmt)

        return SharedInvoiceList(
            items=list(result.scalars().all()),
            total=total,
            page=page,
            per_page=per_page,
            total_pages=total_pages(total, per_page),
        )

    # ------------------------------------------------------------
    # Scrittura
    # ------------------------------------------------------------

    async def create(self, db: AsyncSession, data: SharedInvoiceCreate) -> SharedInvoice:
        """
        Crea una fattura condivisa e ripartisce il totale.

        Steps:
        1. Valida importo, veicoli (almeno uno, tutti esistenti) e fornitore
        2. Genera il numero TYPE-YYYY-NNN
        3. Crea le quote a round2(totale / N)
        4. Ricalcola i conti economici delle fatture dei veicoli

        Raises:
            BusinessValidationError: dati mancanti o veicoli/fornitore inesistenti
        """
        vehicle_ids = _unique(data.vehicle_ids)
        if not vehicle_ids:
            raise BusinessValidationError("Selezionare almeno un veicolo")
        if data.total_amount <= 0:
            raise BusinessValidationError("Il totale deve essere maggiore di zero")
        await self._ensure_vehicles_exist(db, vehicle_ids)
        await self._ensure_vendor(db, data.vendor_id)

        invoice_type = data.type.value
        shared = SharedInvoice(
            type=invoice_type,
            invoice_number=await self._generate_invoice_number(db, invoice_type),
            total_amount=round2(data.total_amount),
            invoice_date=data.invoice_date,
            payment_deadline=data.payment_deadline,
            vendor_id=data.vendor_id,
            cost_lines=_cost_lines_json(data.cost_lines),
        )
        amount = split_evenly(shared.total_amount, len(vehicle_ids))
        self._attach(shared, vehicle_ids, amount)
        db.add(shared)
        await db.flush()

        await self.cost_service.recompute_for_vehicles(db, vehicle_ids)
        await commit_unit(db, "creazione fattura condivisa")
        logger.info(
            "Creata fattura condivisa %s: totale %s su %d veicoli (quota %s)",
            shared.invoice_number, shared.total_amount, len(vehicle_ids), amount,
        )
        return shared

    async def update(
        self,
        db: AsyncSession,
        shared_invoice_id: uuid.UUID,
        data: SharedInvoiceUpdate,
    ) -> SharedInvoice:
        """
        Aggiorna una fattura condivisa.

        Una variazione del totale riscrive tutte le quote; vehicle_ids,
        se presente, sostituisce l'insieme dei veicoli.
        """
        shared = await self._get(db, shared_invoice_id)
        changes = data.model_dump(exclude_unset=True)
        vehicle_ids = changes.pop("vehicle_ids", None)

        if "vendor_id" in changes:
            if changes["vendor_id"] is None:
                raise BusinessValidationError("Il fornitore è obbligatorio")
            await self._ensure_vendor(db, changes["vendor_id"])
        if "payment_deadline" in changes and changes["payment_deadline"] is None:
            raise BusinessValidationError("La scadenza di pagamento è obbligatoria")
        if "cost_lines" in changes:
            changes["cost_lines"] = _cost_lines_json(data.cost_lines or [])

        total_changed = False
        if changes.get("total_amount") is not None:
            new_total = round2(changes.pop("total_amount"))
            total_changed = new_total != round2(shared.total_amount)
            shared.total_amount = new_total
        changes.pop("total_amount", None)

        for field, value in changes.items():
            setattr(shared, field, value)

        affected = {row.vehicle_id for row in shared.vehicles}
        if vehicle_ids is not None:
            affected |= await self._replace_vehicles(db, shared, vehicle_ids)
        elif total_changed:
            self._reallocate(shared)

        await db.flush()
        if vehicle_ids is not None or total_changed:
            await self.cost_service.recompute_for_vehicles(db, affected)
        await commit_unit(db, "modifica fattura condivisa")
        return shared

    async def set_vehicles(
        self,
        db: AsyncSession,
        shared_invoice_id: uuid.UUID,
        vehicle_ids: list[uuid.UUID],
    ) -> SharedInvoice:
        """
        Sostituisce i veicoli collegati e riscrive tutte le quote.

        Raises:
            BusinessValidationError: lista vuota o veicoli inesistenti
        """
        shared = await self._get(db, shared_invoice_id)
        affected = await self._replace_vehicles(db, shared, vehicle_ids)
        await db.flush()
        await self.cost_service.recompute_for_vehicles(db, affected)
        await commit_unit(db, "impostazione veicoli fattura condivisa")
        return shared

    async def add_vehicles(
        self,
        db: AsyncSession,
        shared_invoice_id: uuid.UUID,
        vehicle_ids: list[uuid.UUID],
    ) -> SharedInvoice:
        """
        Aggiunge veicoli e riscrive le quote di tutti i membri.

        N = veicoli esistenti + nuovi; ogni quota (anche delle righe
        esistenti) diventa round2(totale / N). I veicoli già collegati
        vengono ignorati.

        Raises:
            BusinessValidationError: lista vuota o veicoli inesistenti
        """
        incoming = _unique(vehicle_ids)
        if not incoming:
            raise BusinessValidationError("Selezionare almeno un veicolo")

        shared = await self._get(db, shared_invoice_id)
        await self._ensure_vehicles_exist(db, incoming)

        existing = {row.vehicle_id for row in shared.vehicles}
        new_ids = [v for v in incoming if v not in existing]

        amount = split_evenly(shared.total_amount, len(existing) + len(new_ids))
        for row in shared.vehicles:
            row.allocated_amount = amount
        self._attach(shared, new_ids, amount)
        await db.flush()

        await self.cost_service.recompute_for_vehicles(db, existing | set(new_ids))
        await commit_unit(db, "aggiunta veicoli fattura condivisa")
        logger.info(
            "Fattura condivisa %s: aggiunti %d veicoli, quota %s",
            shared.invoice_number, len(new_ids), amount,
        )
        return shared

    async def remove_vehicle(
        self,
        db: AsyncSession,
        shared_invoice_id: uuid.UUID,
        vehicle_id: uuid.UUID,
    ) -> SharedInvoice:
        """
        Rimuove un veicolo e ripartisce il totale sui restanti.

        Senza veicoli restanti non rimane alcuna quota.

        Raises:
            NotFoundError: fattura non trovata o veicolo non collegato
        """
        shared = await self._get(db, shared_invoice_id)
        row = next((r for r in shared.vehicles if r.vehicle_id == vehicle_id), None)
        if row is None:
            raise NotFoundError(
                f"Il veicolo {vehicle_id} non è collegato alla fattura condivisa {shared.invoice_number}"
            )

        shared.vehicles.remove(row)
        await db.delete(row)
        amount = self._reallocate(shared)
        await db.flush()

        affected = {vehicle_id} | {r.vehicle_id for r in shared.vehicles}
        await self.cost_service.recompute_for_vehicles(db, affected)
        await commit_unit(db, "rimozione veicolo fattura condivisa")
        logger.info(
            "Fattura condivisa %s: rimosso veicolo %s, %d restanti a %s",
            shared.invoice_number, vehicle_id, len(shared.vehicles), amount,
        )
        return shared

    async def delete(self, db: AsyncSession, shared_invoice_id: uuid.UUID, user: Any) -> None:
        """
        Elimina una fattura condivisa con tutte le quote.

        Dopo l'eliminazione ricalcola il conto economico di ogni
        fattura dei veicoli che erano collegati.

        Raises:
            ForbiddenError: solo admin
            NotFoundError: fattura condivisa non trovata
            ConflictError: esistono fatture container collegate
        """
        ensure(can_delete_shared_invoice(user), "Solo gli amministratori possono eliminare fatture condivise")
        shared = await self._get(db, shared_invoice_id)

        linked = await self._container_invoice_count(db, shared_invoice_id)
        if linked:
            raise ConflictError(
                f"Impossibile eliminare la fattura condivisa {shared.invoice_number}: "
                f"collegata a {linked} fatture container",
                extra={"containerInvoiceCount": linked},
            )

        vehicle_ids = [row.vehicle_id for row in shared.vehicles]
        await db.delete(shared)
        await db.flush()

        await self.cost_service.recompute_for_vehicles(db, vehicle_ids)
        await commit_unit(db, "eliminazione fattura condivisa")
        logger.info(
            "Eliminata fattura condivisa %s (%d veicoli ricalcolati)",
            shared.invoice_number, len(vehicle_ids),
        )
