"""
Unit tests for TransactionService.
"""

import uuid
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from crm.core.exceptions import BusinessValidationError, ForbiddenError, NotFoundError
from crm.models import TransactionDirection, TransactionType
from crm.schemas.transaction import TransactionCreate, TransactionUpdate, VendorPaymentCreate
from crm.services.payment_service import PaymentService
from crm.services.transaction_service import TransactionService

from conftest import MockCostItem, MockTransaction


@pytest.fixture
def payment_service():
    service = PaymentService()
    service.recalc_payment_status = AsyncMock()
    return service


@pytest.fixture
def service(payment_service):
    return TransactionService(payment_service=payment_service)


def _incoming(**kwargs):
    data = dict(
        direction=TransactionDirection.INCOMING,
        type=TransactionType.PAYMENT,
        amount=Decimal("5000"),
        description="Bank transfer",
    )
    data.update(kwargs)
    return TransactionCreate(**data)


class TestCreate:
    """Tests for manual ledger entries."""

    async def test_linked_invoice_triggers_recalc(self, service, payment_service, mock_db, accountant_user):
        """Test movimento su fattura: stato pagamento riallineato nello stesso commit."""
        invoice_id = uuid.uuid4()
        mock_db.get.return_value = MagicMock()

        entry = await service.create(mock_db, _incoming(invoice_id=invoice_id), accountant_user)

        assert entry.invoice_id == invoice_id
        assert entry.amount == Decimal("5000.00")
        payment_service.recalc_payment_status.assert_awaited_once_with(mock_db, invoice_id)
        mock_db.commit.assert_awaited_once()

    async def test_unlinked_entry_no_recalc(self, service, payment_service, mock_db, admin_user):
        """Test movimento senza fattura."""
        await service.create(mock_db, _incoming(type=TransactionType.ADJUSTMENT), admin_user)
        payment_service.recalc_payment_status.assert_not_awaited()
        mock_db.add.assert_called_once()

    async def test_missing_linked_entity(self, service, mock_db, accountant_user):
        """Test cliente inesistente: errore di validazione."""
        mock_db.get.return_value = None
        with pytest.raises(BusinessValidationError, match="Cliente"):
            await service.create(mock_db, _incoming(customer_id=uuid.uuid4()), accountant_user)
        mock_db.add.assert_not_called()

    async def test_requires_role(self, service, mock_db, manager_user):
        """Test manager non registra movimenti."""
        with pytest.raises(ForbiddenError):
            await service.create(mock_db, _incoming(), manager_user)

    def test_amount_must_be_positive(self):
        """Test importo zero rifiutato."""
        with pytest.raises(ValueError):
            _incoming(amount=Decimal("0"))


class TestVendorPayment:
    """Tests for vendor payouts."""

    async def test_vendor_payment_sets_payment_date(self, service, mock_db, accountant_user):
        """Test movimento OUTGOING e data di pagamento sul costo."""
        cost_item = MockCostItem(amount=Decimal("40000.00"), description="Auction fee")
        mock_db.get.return_value = cost_item

        entry = await service.record_vendor_payment(
            mock_db,
            VendorPaymentCreate(cost_item_id=cost_item.id, payment_date=date(2025, 3, 15)),
            accountant_user,
        )

        assert entry.direction == "OUTGOING"
        assert entry.type == "VENDOR_PAYMENT"
        assert entry.amount == Decimal("40000.00")
        assert entry.vendor_id == cost_item.vendor_id
        assert entry.cost_item_id == cost_item.id
        assert cost_item.payment_date == date(2025, 3, 15)
        mock_db.commit.assert_awaited_once()

    async def test_partial_vendor_payment(self, service, mock_db, accountant_user):
        """Test importo diverso dal costo."""
        mock_db.get.return_value = MockCostItem(amount=Decimal("40000.00"))
        entry = await service.record_vendor_payment(
            mock_db,
            VendorPaymentCreate(cost_item_id=uuid.uuid4(), amount=Decimal("15000")),
            accountant_user,
        )
        assert entry.amount == Decimal("15000.00")

    async def test_unknown_cost_item(self, service, mock_db, accountant_user):
        """Test costo inesistente."""
        mock_db.get.return_value = None
        with pytest.raises(NotFoundError):
            await service.record_vendor_payment(
                mock_db, VendorPaymentCreate(cost_item_id=uuid.uuid4()), accountant_user
            )


class TestUpdateMetadata:
    """Tests for reference/date edits."""

    async def test_date_change_syncs_cost_item(self, service, mock_db, accountant_user):
        """Test nuova data su pagamento fornitore aggiorna il costo."""
        cost_item = MockCostItem(payment_date=date(2025, 3, 1))
        transaction = MockTransaction(direction="OUTGOING", type="VENDOR_PAYMENT", cost_item_id=cost_item.id)
        mock_db.get.return_value = cost_item

        with patch.object(service, "get", AsyncMock(return_value=transaction)):
            await service.update_metadata(
                mock_db,
                transaction.id,
                TransactionUpdate(transaction_date=date(2025, 3, 20), reference_number="WIRE-77"),
                accountant_user,
            )

        assert transaction.transaction_date == date(2025, 3, 20)
        assert transaction.reference_number == "WIRE-77"
        assert cost_item.payment_date == date(2025, 3, 20)

    async def test_incoming_date_change_leaves_cost_items(self, service, mock_db, accountant_user):
        """Test movimento in entrata: nessun costo toccato."""
        transaction = MockTransaction(direction="INCOMING")

        with patch.object(service, "get", AsyncMock(return_value=transaction)):
            await service.update_metadata(
                mock_db, transaction.id, TransactionUpdate(transaction_date=date(2025, 4, 1)), accountant_user
            )

        assert transaction.transaction_date == date(2025, 4, 1)
        mock_db.get.assert_not_awaited()

    async def test_amount_not_editable(self):
        """Test importo non previsto tra i campi modificabili."""
        assert "amount" not in TransactionUpdate.model_fields
