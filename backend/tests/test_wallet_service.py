"""
Unit tests for the wallet balance projection and WalletService.
"""

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from crm.core.cache import MemoryCache
from crm.core.exceptions import ForbiddenError, InsufficientBalanceError, NotFoundError
from crm.schemas.transaction import WalletMovementCreate
from crm.services.wallet_service import WalletService, project_balance

from conftest import MockTransaction


@pytest.fixture
def service():
    return WalletService()


class TestProjectBalance:
    """Tests for the pure balance projection."""

    def test_reference_example(self, wallet_transactions):
        """Test depositi 50.000, prelievi 20.000, rimborsi 5.000 → 25.000."""
        summary = project_balance(wallet_transactions, "JPY")
        assert summary.deposits == Decimal("50000.00")
        assert summary.applied_from_wallet == Decimal("20000.00")
        assert summary.refunds == Decimal("5000.00")
        assert summary.balance == Decimal("25000.00")
        assert summary.transaction_count == 4

    def test_invoice_payments_ignored(self):
        """Test "Payment for Invoice" non tocca il saldo."""
        transactions = [
            MockTransaction(direction="INCOMING", type="PAYMENT", description="Payment for Invoice INV-2025-0001",
                            amount=Decimal("99999")),
        ]
        assert project_balance(transactions, "JPY").balance == Decimal("0.00")

    def test_other_currency_ignored(self, wallet_transactions):
        """Test movimenti in altra valuta esclusi."""
        wallet_transactions.append(
            MockTransaction(direction="INCOMING", description="Deposit", amount=Decimal("100"), currency="USD")
        )
        assert project_balance(wallet_transactions, "JPY").balance == Decimal("25000.00")
        assert project_balance(wallet_transactions, "USD").balance == Decimal("100.00")

    def test_description_must_match_exactly(self):
        """Test deposito riconosciuto solo con descrizione "Deposit"."""
        transactions = [
            MockTransaction(direction="INCOMING", description="Deposit ", amount=Decimal("100")),
            MockTransaction(direction="INCOMING", description="deposit", amount=Decimal("100")),
        ]
        assert project_balance(transactions, "JPY").deposits == Decimal("0.00")

    def test_negative_balance_reported(self):
        """Test registro incoerente: saldo negativo restituito così com'è."""
        transactions = [MockTransaction(direction="OUTGOING", description="Refund", amount=Decimal("500"))]
        assert project_balance(transactions, "JPY").balance == Decimal("-500.00")

    def test_empty(self):
        """Test nessun movimento."""
        summary = project_balance([], "JPY")
        assert summary.balance == Decimal("0.00")
        assert summary.transaction_count == 0


class TestWalletService:
    """Tests for deposits, refunds and summaries."""

    async def test_get_balance(self, service, mock_db, wallet_transactions):
        """Test saldo dal registro del cliente."""
        with patch.object(service, "_customer_transactions", AsyncMock(return_value=wallet_transactions)):
            balance = await service.get_balance(mock_db, uuid.uuid4(), "jpy")
        assert balance == Decimal("25000.00")

    async def test_summary_requires_role(self, service, mock_db, sales_user):
        """Test sales non consulta il wallet."""
        with pytest.raises(ForbiddenError):
            await service.get_summary(mock_db, uuid.uuid4(), user=sales_user)

    async def test_summary_unknown_customer(self, service, mock_db, manager_user):
        """Test cliente inesistente."""
        mock_db.get.return_value = None
        with pytest.raises(NotFoundError):
            await service.get_summary(mock_db, uuid.uuid4(), user=manager_user)

    async def test_summary_served_from_cache(self, mock_db, manager_user, accountant_user, wallet_transactions):
        """Test seconda lettura dalla cache, invalidata da un deposito."""
        service = WalletService(cache=MemoryCache())
        customer_id = uuid.uuid4()
        mock_db.get.return_value = MagicMock()
        loader = AsyncMock(return_value=wallet_transactions)

        with patch.object(service, "_customer_transactions", loader):
            first = await service.get_summary(mock_db, customer_id, "JPY", user=manager_user)
            await service.get_summary(mock_db, customer_id, "JPY", user=manager_user)
            assert loader.await_count == 1

            await service.record_deposit(
                mock_db, customer_id, WalletMovementCreate(amount=Decimal("1000")), accountant_user
            )
            await service.get_summary(mock_db, customer_id, "JPY", user=manager_user)
            assert loader.await_count == 2

        assert first.customer_id == customer_id
        assert first.balance == Decimal("25000.00")

    async def test_record_deposit(self, service, mock_db, accountant_user):
        """Test deposito: movimento INCOMING "Deposit"."""
        customer_id = uuid.uuid4()
        mock_db.get.return_value = MagicMock()

        entry = await service.record_deposit(
            mock_db, customer_id, WalletMovementCreate(amount=Decimal("50000"), reference_number="BANK-1"),
            accountant_user,
        )

        assert entry.direction == "INCOMING"
        assert entry.type == "DEPOSIT"
        assert entry.description == "Deposit"
        assert entry.currency == "JPY"
        assert entry.customer_id == customer_id
        assert entry.created_by_id == accountant_user.id
        mock_db.add.assert_called_once_with(entry)
        mock_db.commit.assert_awaited_once()

    async def test_deposit_requires_role(self, service, mock_db, manager_user):
        """Test manager non registra depositi."""
        with pytest.raises(ForbiddenError):
            await service.record_deposit(
                mock_db, uuid.uuid4(), WalletMovementCreate(amount=Decimal("1")), manager_user
            )

    async def test_refund_within_balance(self, service, mock_db, admin_user):
        """Test rimborso entro il saldo."""
        mock_db.get.return_value = MagicMock()
        with patch.object(service, "get_balance", AsyncMock(return_value=Decimal("25000.00"))):
            entry = await service.record_refund(
                mock_db, uuid.uuid4(), WalletMovementCreate(amount=Decimal("25000")), admin_user
            )

        assert entry.direction == "OUTGOING"
        assert entry.description == "Refund"
        assert entry.amount == Decimal("25000.00")

    async def test_refund_exceeding_balance(self, service, mock_db, admin_user):
        """Test rimborso oltre il saldo: errore, nessuna scrittura."""
        mock_db.get.return_value = MagicMock()
        with patch.object(service, "get_balance", AsyncMock(return_value=Decimal("100.00"))):
            with pytest.raises(InsufficientBalanceError):
                await service.record_refund(
                    mock_db, uuid.uuid4(), WalletMovementCreate(amount=Decimal("100.01")), admin_user
                )

        mock_db.add.assert_not_called()
        mock_db.commit.assert_not_awaited()
