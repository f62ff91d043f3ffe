"""
Integration tests for cost recomputation on a real async session.

Usano un database SQLite (aiosqlite) su file temporaneo: verificano
che il primo ricalcolo di una fattura senza conto economico funzioni
con il caricamento async delle relazioni.
"""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from crm.models import Base, CostInvoice, Customer, Invoice, InvoiceCharge, Vehicle, Vendor
from crm.schemas.cost_invoice import CostItemCreate
from crm.schemas.invoice import ChargeCreate, InvoiceCreate
from crm.schemas.shared_invoice import SharedInvoiceCreate
from crm.services.cost_invoice_service import CostInvoiceService
from crm.services.invoice_service import InvoiceService
from crm.services.shared_invoice_service import SharedInvoiceService


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'crm.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture
async def seeded(session_factory):
    """Cliente, fornitore, veicolo e una fattura da 100.000 senza conto economico."""
    ids = {
        "customer": uuid.uuid4(),
        "vendor": uuid.uuid4(),
        "vehicle": uuid.uuid4(),
        "invoice": uuid.uuid4(),
    }
    async with session_factory() as db:
        db.add_all([
            Customer(id=ids["customer"], name="Tokyo Motors Export"),
            Vendor(id=ids["vendor"], name="Nippon Forwarding", type="FORWARDER"),
            Vehicle(id=ids["vehicle"], vin="JTEBU5JR0J5512345", make="Toyota", model="Land Cruiser"),
        ])
        await db.flush()
        db.add(Invoice(
            id=ids["invoice"],
            invoice_number="INV-2025-0001",
            customer_id=ids["customer"],
            vehicle_id=ids["vehicle"],
            charges=[InvoiceCharge(description="Toyota Land Cruiser", amount=Decimal("100000.00"), sort_order=0)],
        ))
        await db.commit()
    return ids


async def _cost_invoice(session_factory, invoice_id):
    async with session_factory() as db:
        result = await db.execute(select(CostInvoice).where(CostInvoice.invoice_id == invoice_id))
        return result.scalar_one()


class TestFirstRecompute:
    """Tests for invoices without a CostInvoice yet."""

    async def test_recompute_creates_cost_invoice(self, session_factory, seeded):
        """Test primo ricalcolo: conto economico creato con i ricavi."""
        async with session_factory() as db:
            await CostInvoiceService().recompute(db, seeded["invoice"])
            await db.commit()

        cost_invoice = await _cost_invoice(session_factory, seeded["invoice"])
        assert cost_invoice.total_revenue == Decimal("100000.00")
        assert cost_invoice.total_cost == Decimal("0.00")
        assert cost_invoice.profit == Decimal("100000.00")
        assert cost_invoice.margin == Decimal("100.00")
        assert cost_invoice.roi == Decimal("0.00")

    async def test_recompute_twice_in_same_session(self, session_factory, seeded):
        """Test secondo ricalcolo nella stessa sessione: nessun duplicato."""
        service = CostInvoiceService()
        async with session_factory() as db:
            first = await service.recompute(db, seeded["invoice"])
            second = await service.recompute(db, seeded["invoice"])
            await db.commit()
        assert first.id == second.id

    async def test_first_cost_item(self, session_factory, seeded, sales_user):
        """Test primo costo fornitore su fattura senza conto economico."""
        data = CostItemCreate(
            description="Auction fee",
            amount=Decimal("40000"),
            vendor_id=seeded["vendor"],
            payment_deadline=date(2025, 3, 31),
        )
        async with session_factory() as db:
            item = await CostInvoiceService().add_cost_item(db, seeded["invoice"], data, sales_user)

        assert item.amount == Decimal("40000.00")
        cost_invoice = await _cost_invoice(session_factory, seeded["invoice"])
        assert cost_invoice.total_cost == Decimal("40000.00")
        assert cost_invoice.profit == Decimal("60000.00")
        assert cost_invoice.margin == Decimal("60.00")
        assert cost_invoice.roi == Decimal("150.00")


class TestCascades:
    """Tests for flows that recompute fresh invoices."""

    async def test_invoice_create(self, session_factory, seeded, sales_user):
        """Test creazione fattura con imposta: conto economico calcolato."""
        service = InvoiceService()
        data = InvoiceCreate(
            customer_id=seeded["customer"],
            vehicle_id=seeded["vehicle"],
            tax_enabled=True,
            tax_rate=Decimal("10"),
            charges=[ChargeCreate(description="Toyota Hilux", amount=Decimal("20000"))],
        )
        async with session_factory() as db:
            with patch.object(service, "_generate_invoice_number", AsyncMock(return_value="INV-2025-0002")):
                invoice = await service.create(db, data, sales_user)

        cost_invoice = await _cost_invoice(session_factory, invoice.id)
        assert cost_invoice.total_revenue == Decimal("22000.00")
        assert cost_invoice.profit == Decimal("22000.00")

    async def test_shared_invoice_create(self, session_factory, seeded):
        """Test fattura condivisa su veicolo con fattura senza conto economico."""
        service = SharedInvoiceService()
        data = SharedInvoiceCreate(
            type="FORWARDER",
            total_amount=Decimal("10000"),
            payment_deadline=date(2025, 3, 31),
            vendor_id=seeded["vendor"],
            vehicle_ids=[seeded["vehicle"]],
        )
        async with session_factory() as db:
            with patch.object(service, "_generate_invoice_number", AsyncMock(return_value="FORWARDER-2025-001")):
                await service.create(db, data)

        cost_invoice = await _cost_invoice(session_factory, seeded["invoice"])
        assert cost_invoice.total_cost == Decimal("10000.00")
        assert cost_invoice.profit == Decimal("90000.00")
