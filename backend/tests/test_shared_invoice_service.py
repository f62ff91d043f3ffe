"""
Unit tests for SharedInvoiceService.

Verificano la ripartizione in parti uguali, la riallocazione a ogni
variazione dei veicoli e la cascata di ricalcolo all'eliminazione.
"""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from crm.core.exceptions import BusinessValidationError, ConflictError, ForbiddenError, NotFoundError
from crm.models import SharedInvoiceType
from crm.schemas.shared_invoice import SharedInvoiceCreate, SharedInvoiceUpdate
from crm.services.cost_invoice_service import CostInvoiceService
from crm.services.shared_invoice_service import SharedInvoiceService, split_evenly

from conftest import (
    MockCharge,
    MockCostInvoice,
    MockCostItem,
    MockInvoice,
)


@pytest.fixture
def cost_service():
    service = CostInvoiceService()
    service.recompute_for_vehicles = AsyncMock(return_value=[])
    return service


@pytest.fixture
def service(cost_service):
    return SharedInvoiceService(cost_service)


def _amounts(shared):
    return [row.allocated_amount for row in shared.vehicles]


class TestSplitEvenly:
    """Tests for the equal-split rule."""

    def test_three_vehicles(self):
        """Test 300.000 su 3 veicoli → 100.000."""
        assert split_evenly(Decimal("300000"), 3) == Decimal("100000.00")

    def test_four_vehicles(self):
        """Test 300.000 su 4 veicoli → 75.000."""
        assert split_evenly(Decimal("300000"), 4) == Decimal("75000.00")

    def test_residual_not_redistributed(self):
        """Test 100.000 / 3: il residuo di arrotondamento resta."""
        share = split_evenly(Decimal("100000"), 3)
        assert share == Decimal("33333.33")
        assert share * 3 == Decimal("99999.99")

    def test_no_vehicles(self):
        """Test nessun veicolo → 0."""
        assert split_evenly(Decimal("1000"), 0) == Decimal("0.00")


class TestInvoiceNumber:
    """Tests for TYPE-YYYY-NNN numbering."""

    async def _generate(self, service, mock_db, last_number):
        result = MagicMock()
        result.scalar_one_or_none.return_value = last_number
        mock_db.execute.side_effect = [MagicMock(), result]
        return await service._generate_invoice_number(mock_db, "FORWARDER")

    async def test_first_of_year(self, service, mock_db):
        """Test primo numero dell'anno."""
        number = await self._generate(service, mock_db, None)
        assert number == f"FORWARDER-{date.today().year}-001"

    async def test_increment(self, service, mock_db):
        """Test incremento del progressivo."""
        year = date.today().year
        number = await self._generate(service, mock_db, f"FORWARDER-{year}-009")
        assert number == f"FORWARDER-{year}-010"

    async def test_beyond_999(self, service, mock_db):
        """Test oltre 999 il progressivo prosegue."""
        year = date.today().year
        number = await self._generate(service, mock_db, f"FORWARDER-{year}-999")
        assert number == f"FORWARDER-{year}-1000"


class TestCreate:
    """Tests for shared invoice creation."""

    def _data(self, vehicle_ids, total="300000"):
        return SharedInvoiceCreate(
            type=SharedInvoiceType.FORWARDER,
            total_amount=Decimal(total),
            payment_deadline=date(2025, 3, 31),
            vendor_id=uuid.uuid4(),
            vehicle_ids=vehicle_ids,
        )

    async def test_create_splits_total(self, service, cost_service, mock_db):
        """Test 300.000 su 3 veicoli: tre quote da 100.000 e ricalcolo."""
        vehicle_ids = [uuid.uuid4() for _ in range(3)]

        with patch.object(service, "_ensure_vehicles_exist", AsyncMock()), \
                patch.object(service, "_ensure_vendor", AsyncMock()), \
                patch.object(service, "_generate_invoice_number", AsyncMock(return_value="FORWARDER-2025-001")):
            shared = await service.create(mock_db, self._data(vehicle_ids))

        assert shared.invoice_number == "FORWARDER-2025-001"
        assert _amounts(shared) == [Decimal("100000.00")] * 3
        assert [row.vehicle_id for row in shared.vehicles] == vehicle_ids
        cost_service.recompute_for_vehicles.assert_awaited_once_with(mock_db, vehicle_ids)
        mock_db.commit.assert_awaited_once()

    async def test_create_deduplicates_vehicles(self, service, mock_db):
        """Test veicoli ripetuti contati una volta."""
        vehicle_id = uuid.uuid4()

        with patch.object(service, "_ensure_vehicles_exist", AsyncMock()), \
                patch.object(service, "_ensure_vendor", AsyncMock()), \
                patch.object(service, "_generate_invoice_number", AsyncMock(return_value="FORWARDER-2025-002")):
            shared = await service.create(mock_db, self._data([vehicle_id, vehicle_id], total="1000"))

        assert _amounts(shared) == [Decimal("1000.00")]

    async def test_create_without_vehicles(self, service, mock_db):
        """Test nessun veicolo: errore di validazione, nessuna scrittura."""
        with pytest.raises(BusinessValidationError):
            await service.create(mock_db, self._data([]))
        mock_db.add.assert_not_called()

    async def test_create_unknown_vehicle(self, service, mock_db):
        """Test veicolo inesistente."""
        count = MagicMock()
        count.scalar.return_value = 1
        mock_db.execute.return_value = count

        with pytest.raises(BusinessValidationError, match="veicoli non esistono"):
            await service.create(mock_db, self._data([uuid.uuid4(), uuid.uuid4()]))
        mock_db.commit.assert_not_awaited()


class TestVehicleMembership:
    """Tests for add/remove/replace of vehicles."""

    async def test_add_vehicle_rewrites_all_shares(
        self, service, cost_service, mock_db, shared_invoice_three_vehicles
    ):
        """Test quarto veicolo: tutte le quote diventano 75.000."""
        shared = shared_invoice_three_vehicles
        existing = {row.vehicle_id for row in shared.vehicles}
        new_vehicle = uuid.uuid4()

        with patch.object(service, "_get", AsyncMock(return_value=shared)), \
                patch.object(service, "_ensure_vehicles_exist", AsyncMock()):
            await service.add_vehicles(mock_db, shared.id, [new_vehicle])

        assert len(shared.vehicles) == 4
        assert _amounts(shared) == [Decimal("75000.00")] * 4
        affected = cost_service.recompute_for_vehicles.await_args.args[1]
        assert set(affected) == existing | {new_vehicle}

    async def test_add_already_attached_vehicle_ignored(
        self, service, mock_db, shared_invoice_three_vehicles
    ):
        """Test veicolo già collegato non duplicato."""
        shared = shared_invoice_three_vehicles
        attached = shared.vehicles[0].vehicle_id

        with patch.object(service, "_get", AsyncMock(return_value=shared)), \
                patch.object(service, "_ensure_vehicles_exist", AsyncMock()):
            await service.add_vehicles(mock_db, shared.id, [attached])

        assert len(shared.vehicles) == 3
        assert _amounts(shared) == [Decimal("100000.00")] * 3

    async def test_add_empty_list(self, service, mock_db):
        """Test lista vuota."""
        with pytest.raises(BusinessValidationError):
            await service.add_vehicles(mock_db, uuid.uuid4(), [])

    async def test_remove_vehicle_reallocates(
        self, service, cost_service, mock_db, shared_invoice_three_vehicles
    ):
        """Test rimozione: 300.000 sui 2 restanti → 150.000."""
        shared = shared_invoice_three_vehicles
        removed = shared.vehicles[0]

        with patch.object(service, "_get", AsyncMock(return_value=shared)):
            await service.remove_vehicle(mock_db, shared.id, removed.vehicle_id)

        mock_db.delete.assert_awaited_once_with(removed)
        assert _amounts(shared) == [Decimal("150000.00")] * 2
        affected = cost_service.recompute_for_vehicles.await_args.args[1]
        assert removed.vehicle_id in affected
        assert len(affected) == 3

    async def test_remove_unattached_vehicle(self, service, mock_db, shared_invoice_three_vehicles):
        """Test veicolo non collegato."""
        with patch.object(service, "_get", AsyncMock(return_value=shared_invoice_three_vehicles)):
            with pytest.raises(NotFoundError):
                await service.remove_vehicle(mock_db, shared_invoice_three_vehicles.id, uuid.uuid4())

    async def test_set_vehicles_replaces(self, service, mock_db, shared_invoice_three_vehicles):
        """Test sostituzione: un vecchio veicolo resta, due nuovi entrano."""
        shared = shared_invoice_three_vehicles
        kept = shared.vehicles[0].vehicle_id
        new_ids = [uuid.uuid4(), uuid.uuid4()]

        with patch.object(service, "_get", AsyncMock(return_value=shared)), \
                patch.object(service, "_ensure_vehicles_exist", AsyncMock()):
            await service.set_vehicles(mock_db, shared.id, [kept] + new_ids)

        assert {row.vehicle_id for row in shared.vehicles} == {kept, *new_ids}
        assert _amounts(shared) == [Decimal("100000.00")] * 3
        assert mock_db.delete.await_count == 2


class TestUpdate:
    """Tests for shared invoice updates."""

    async def test_total_change_reallocates(
        self, service, cost_service, mock_db, shared_invoice_three_vehicles
    ):
        """Test nuovo totale 600.000 → 200.000 a veicolo."""
        shared = shared_invoice_three_vehicles

        with patch.object(service, "_get", AsyncMock(return_value=shared)):
            await service.update(mock_db, shared.id, SharedInvoiceUpdate(total_amount=Decimal("600000")))

        assert _amounts(shared) == [Decimal("200000.00")] * 3
        cost_service.recompute_for_vehicles.assert_awaited_once()

    async def test_metadata_change_no_recompute(
        self, service, cost_service, mock_db, shared_invoice_three_vehicles
    ):
        """Test modifica della sola scadenza: nessun ricalcolo."""
        shared = shared_invoice_three_vehicles

        with patch.object(service, "_get", AsyncMock(return_value=shared)):
            await service.update(mock_db, shared.id, SharedInvoiceUpdate(payment_deadline=date(2025, 5, 1)))

        assert shared.payment_deadline == date(2025, 5, 1)
        cost_service.recompute_for_vehicles.assert_not_awaited()
        mock_db.commit.assert_awaited_once()


class TestDelete:
    """Tests for the deletion cascade."""

    async def test_delete_requires_admin(self, service, mock_db, accountant_user):
        """Test solo admin può eliminare."""
        with pytest.raises(ForbiddenError):
            await service.delete(mock_db, uuid.uuid4(), accountant_user)
        mock_db.delete.assert_not_awaited()

    async def test_delete_blocked_by_container_invoices(
        self, service, mock_db, admin_user, shared_invoice_three_vehicles
    ):
        """Test fatture container collegate: ConflictError con conteggio."""
        shared = shared_invoice_three_vehicles

        with patch.object(service, "_get", AsyncMock(return_value=shared)), \
                patch.object(service, "_container_invoice_count", AsyncMock(return_value=2)):
            with pytest.raises(ConflictError) as exc_info:
                await service.delete(mock_db, shared.id, admin_user)

        assert exc_info.value.extra == {"containerInvoiceCount": 2}
        mock_db.delete.assert_not_awaited()
        mock_db.commit.assert_not_awaited()

    async def test_delete_cascade_reduces_total_cost(self, mock_db, admin_user, shared_invoice_three_vehicles):
        """Test dopo l'eliminazione il costo totale scende della quota rimossa."""
        shared = shared_invoice_three_vehicles
        vehicle_id = shared.vehicles[0].vehicle_id
        invoice = MockInvoice(
            vehicle_id=vehicle_id,
            charges=[MockCharge(amount=Decimal("200000"))],
            cost_invoice=MockCostInvoice(
                items=[MockCostItem(amount=Decimal("40000.00"))],
                total_cost=Decimal("140000.00"),
            ),
        )
        cost_service = CostInvoiceService()
        service = SharedInvoiceService(cost_service)

        with patch.object(service, "_get", AsyncMock(return_value=shared)), \
                patch.object(service, "_container_invoice_count", AsyncMock(return_value=0)), \
                patch.object(cost_service, "_invoice_ids_for_vehicles", AsyncMock(return_value=[invoice.id])), \
                patch.object(cost_service, "_get_invoice", AsyncMock(return_value=invoice)), \
                patch.object(cost_service, "_shared_allocations", AsyncMock(return_value=[])):
            await service.delete(mock_db, shared.id, admin_user)

        mock_db.delete.assert_awaited_once_with(shared)
        assert invoice.cost_invoice.total_cost == Decimal("40000.00")
        assert invoice.cost_invoice.profit == Decimal("160000.00")
        mock_db.commit.assert_awaited_once()

    async def test_delete_recomputes_former_members(
        self, service, cost_service, mock_db, admin_user, shared_invoice_three_vehicles
    ):
        """Test ricalcolo per tutti i veicoli che erano collegati."""
        shared = shared_invoice_three_vehicles
        vehicle_ids = [row.vehicle_id for row in shared.vehicles]

        with patch.object(service, "_get", AsyncMock(return_value=shared)), \
                patch.object(service, "_container_invoice_count", AsyncMock(return_value=0)):
            await service.delete(mock_db, shared.id, admin_user)

        cost_service.recompute_for_vehicles.assert_awaited_once_with(mock_db, vehicle_ids)
