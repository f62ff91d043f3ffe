"""
Modello SQLAlchemy per il registro movimenti
Progetto: Export CRM (Gestionale Export Veicoli)

I movimenti sono append-only: importo, direzione e descrizione non
vengono mai modificati. La descrizione ha valore semantico
("Deposit", "Refund", "Applied from wallet to Invoice ...",
"Payment for Invoice ...") ed è usata dal calcolo del saldo wallet.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from crm.models import Base
from crm.models.mixins import UUIDMixin, money_column


class TransactionDirection(str, Enum):
    """Direzione del movimento."""
    INCOMING = "INCOMING"
    OUTGOING = "OUTGOING"


class TransactionType(str, Enum):
    """Tipo di movimento."""
    PAYMENT = "PAYMENT"
    DEPOSIT = "DEPOSIT"
    REFUND = "REFUND"
    WALLET_APPLICATION = "WALLET_APPLICATION"
    VENDOR_PAYMENT = "VENDOR_PAYMENT"
    ADJUSTMENT = "ADJUSTMENT"


# Descrizioni con valore semantico per il saldo wallet
DEPOSIT_DESCRIPTION = "Deposit"
REFUND_DESCRIPTION = "Refund"
WALLET_APPLICATION_PREFIX = "Applied from wallet"
INVOICE_PAYMENT_PREFIX = "Payment for Invoice"


def wallet_application_description(invoice_number: str) -> str:
    return f"{WALLET_APPLICATION_PREFIX} to Invoice {invoice_number}"


def invoice_payment_description(invoice_number: str) -> str:
    return f"{INVOICE_PAYMENT_PREFIX} {invoice_number}"


class Transaction(Base, UUIDMixin):
    """
    Movimento di denaro.

    Attributes:
        direction: INCOMING o OUTGOING
        type: Categoria del movimento
        amount: Importo (sempre positivo)
        currency: Valuta ISO (default JPY)
        transaction_date: Data valuta
        description: Descrizione (semantica, vedi costanti sopra)
        reference_number: Riferimento esterno (bonifico, gateway, ...)
        customer_id, vehicle_id, invoice_id, cost_item_id, vendor_id: collegamenti opzionali
        created_by_id: Utente che ha registrato il movimento
        created_at: Data/ora di registrazione
    """

    __tablename__ = "transactions"

    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)

    amount: Mapped[Decimal] = money_column("Importo del movimento", default=None)

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="JPY",
        doc="Valuta ISO 4217",
    )

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(255), nullable=False)

    reference_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # ------------------------------------------------------------
    # Collegamenti opzionali
    # ------------------------------------------------------------
    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=True
    )
    vehicle_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("vehicles.id", ondelete="SET NULL"), nullable=True
    )
    invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("invoices.id", ondelete="RESTRICT"), nullable=True
    )
    cost_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("cost_items.id", ondelete="SET NULL"), nullable=True
    )
    vendor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True
    )
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint("direction IN ('INCOMING', 'OUTGOING')", name="ck_transactions_direction"),
        Index("ix_transactions_customer_currency", "customer_id", "currency"),
        Index("ix_transactions_invoice_id", "invoice_id"),
        Index("ix_transactions_transaction_date", "transaction_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.id}, {self.direction} {self.amount} {self.currency}, "
            f"description={self.description!r})>"
        )
