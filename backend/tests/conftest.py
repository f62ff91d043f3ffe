"""
Pytest configuration and fixtures for the accounting engine tests.

I service vengono testati con una AsyncSession mock: i loader che
eseguono query vengono sostituiti con patch.object nei singoli test.
"""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.cache import NullCache, set_cache


# ============================================================
# Fixtures per AsyncSession Mock
# ============================================================


@pytest.fixture
def mock_db():
    """Crea un mock di AsyncSession."""
    db = AsyncMock(spec=AsyncSession)
    db.execute = AsyncMock()
    db.add = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.delete = AsyncMock()
    db.get = AsyncMock()
    return db


@pytest.fixture(autouse=True)
def null_cache():
    """Ogni test parte senza cache di processo."""
    cache = NullCache()
    set_cache(cache)
    yield cache
    set_cache(NullCache())


# ============================================================
# Utenti per ruolo
# ============================================================


class MockUser:
    """Mock del modello User."""
    def __init__(self, **kwargs):
        self.id = kwargs.get('id', uuid.uuid4())
        self.email = kwargs.get('email', 'utente@example.com')
        self.full_name = kwargs.get('full_name', 'Utente Test')
        self.role = kwargs.get('role', 'sales')
        self.is_active = kwargs.get('is_active', True)


@pytest.fixture
def admin_user():
    return MockUser(role="admin", email="admin@example.com")


@pytest.fixture
def manager_user():
    return MockUser(role="manager", email="manager@example.com")


@pytest.fixture
def sales_user():
    return MockUser(role="sales", email="sales@example.com")


@pytest.fixture
def accountant_user():
    return MockUser(role="accountant", email="accountant@example.com")


# ============================================================
# Fatture di vendita
# ============================================================


class MockCharge:
    """Mock di InvoiceCharge."""
    def __init__(self, **kwargs):
        self.id = kwargs.get('id', uuid.uuid4())
        self.description = kwargs.get('description', 'Toyota Land Cruiser 2019')
        self.charge_type = kwargs.get('charge_type', 'vehicle')
        self.amount = kwargs.get('amount', Decimal("100000.00"))
        self.sort_order = kwargs.get('sort_order', 0)


class MockCostItem:
    """Mock di CostItem."""
    def __init__(self, **kwargs):
        self.id = kwargs.get('id', uuid.uuid4())
        self.cost_invoice_id = kwargs.get('cost_invoice_id', uuid.uuid4())
        self.description = kwargs.get('description', 'Auction fee')
        self.amount = kwargs.get('amount', Decimal("40000.00"))
        self.vendor_id = kwargs.get('vendor_id', uuid.uuid4())
        self.category = kwargs.get('category', 'Auction')
        self.payment_date = kwargs.get('payment_date', None)
        self.payment_deadline = kwargs.get('payment_deadline', date(2025, 3, 31))


class MockCostInvoice:
    """Mock di CostInvoice."""
    def __init__(self, **kwargs):
        self.id = kwargs.get('id', uuid.uuid4())
        self.invoice_id = kwargs.get('invoice_id', uuid.uuid4())
        self.total_revenue = kwargs.get('total_revenue', Decimal("0.00"))
        self.total_cost = kwargs.get('total_cost', Decimal("0.00"))
        self.profit = kwargs.get('profit', Decimal("0.00"))
        self.margin = kwargs.get('margin', Decimal("0.00"))
        self.roi = kwargs.get('roi', Decimal("0.00"))
        self.items = kwargs.get('items', [])


class MockInvoice:
    """Mock di Invoice."""
    def __init__(self, **kwargs):
        self.id = kwargs.get('id', uuid.uuid4())
        self.invoice_number = kwargs.get('invoice_number', 'INV-2025-0001')
        self.customer_id = kwargs.get('customer_id', uuid.uuid4())
        self.vehicle_id = kwargs.get('vehicle_id', uuid.uuid4())
        self.status = kwargs.get('status', 'DRAFT')
        self.payment_status = kwargs.get('payment_status', 'PENDING')
        self.paid_at = kwargs.get('paid_at', None)
        self.is_locked = kwargs.get('is_locked', False)
        self.tax_enabled = kwargs.get('tax_enabled', False)
        self.tax_rate = kwargs.get('tax_rate', Decimal("0.00"))
        self.share_token = kwargs.get('share_token', None)
        self.approved_at = kwargs.get('approved_at', None)
        self.approved_by_id = kwargs.get('approved_by_id', None)
        self.finalized_at = kwargs.get('finalized_at', None)
        self.finalized_by_id = kwargs.get('finalized_by_id', None)
        self.due_date = kwargs.get('due_date', None)
        self.notes = kwargs.get('notes', None)
        self.charges = kwargs.get('charges', [])
        self.cost_invoice = kwargs.get('cost_invoice', None)


@pytest.fixture
def mock_invoice():
    """Fattura in bozza con una voce da 100.000."""
    return MockInvoice(charges=[MockCharge()])


@pytest.fixture
def taxed_invoice():
    """Fattura da 20.000 con imposta al 10% (totale 22.000)."""
    return MockInvoice(
        invoice_number="INV-2025-0042",
        charges=[MockCharge(amount=Decimal("20000.00"))],
        tax_enabled=True,
        tax_rate=Decimal("10.00"),
    )


# ============================================================
# Fatture condivise
# ============================================================


class MockAllocation:
    """Mock di SharedInvoiceVehicle."""
    def __init__(self, **kwargs):
        self.id = kwargs.get('id', uuid.uuid4())
        self.shared_invoice_id = kwargs.get('shared_invoice_id', uuid.uuid4())
        self.vehicle_id = kwargs.get('vehicle_id', uuid.uuid4())
        self.allocated_amount = kwargs.get('allocated_amount', Decimal("0.00"))


class MockSharedInvoice:
    """Mock di SharedInvoice."""
    def __init__(self, **kwargs):
        self.id = kwargs.get('id', uuid.uuid4())
        self.type = kwargs.get('type', 'FORWARDER')
        self.invoice_number = kwargs.get('invoice_number', 'FORWARDER-2025-001')
        self.total_amount = kwargs.get('total_amount', Decimal("300000.00"))
        self.invoice_date = kwargs.get('invoice_date', date(2025, 3, 1))
        self.payment_deadline = kwargs.get('payment_deadline', date(2025, 3, 31))
        self.vendor_id = kwargs.get('vendor_id', uuid.uuid4())
        self.cost_lines = kwargs.get('cost_lines', [])
        self.vehicles = kwargs.get('vehicles', [])


@pytest.fixture
def shared_invoice_three_vehicles():
    """Fattura spedizioniere da 300.000 ripartita su 3 veicoli."""
    shared = MockSharedInvoice()
    shared.vehicles = [
        MockAllocation(shared_invoice_id=shared.id, allocated_amount=Decimal("100000.00"))
        for _ in range(3)
    ]
    return shared


# ============================================================
# Movimenti
# ============================================================


class MockTransaction:
    """Mock di Transaction."""
    def __init__(self, **kwargs):
        self.id = kwargs.get('id', uuid.uuid4())
        self.direction = kwargs.get('direction', 'INCOMING')
        self.type = kwargs.get('type', 'DEPOSIT')
        self.amount = kwargs.get('amount', Decimal("0.00"))
        self.currency = kwargs.get('currency', 'JPY')
        self.transaction_date = kwargs.get('transaction_date', date(2025, 3, 1))
        self.description = kwargs.get('description', 'Deposit')
        self.reference_number = kwargs.get('reference_number', None)
        self.customer_id = kwargs.get('customer_id', None)
        self.vehicle_id = kwargs.get('vehicle_id', None)
        self.invoice_id = kwargs.get('invoice_id', None)
        self.cost_item_id = kwargs.get('cost_item_id', None)
        self.vendor_id = kwargs.get('vendor_id', None)


@pytest.fixture
def wallet_transactions():
    """Depositi 50.000, prelievi 20.000, rimborsi 5.000 (saldo 25.000)."""
    return [
        MockTransaction(direction="INCOMING", description="Deposit", amount=Decimal("50000.00")),
        MockTransaction(
            direction="OUTGOING",
            type="WALLET_APPLICATION",
            description="Applied from wallet to Invoice INV-2025-0001",
            amount=Decimal("20000.00"),
        ),
        MockTransaction(direction="OUTGOING", type="REFUND", description="Refund", amount=Decimal("5000.00")),
        MockTransaction(
            direction="INCOMING",
            type="PAYMENT",
            description="Payment for Invoice INV-2025-0001",
            amount=Decimal("20000.00"),
        ),
    ]
