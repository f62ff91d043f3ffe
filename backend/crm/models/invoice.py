"""
Modelli SQLAlchemy per la Fatturazione di vendita
Progetto: Export CRM (Gestionale Export Veicoli)

Contiene:
- Invoice: Fattura di vendita al cliente
- InvoiceCharge: Voci della fattura (veicolo, trasporto, sconti...)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crm.models import Base
from crm.models.mixins import TimestampMixin, UUIDMixin, money_column

# Import per type hinting relazioni (evita circular import)
if TYPE_CHECKING:
    from crm.models.cost_invoice import CostInvoice


class InvoiceStatus(str, Enum):
    """Stato del flusso di approvazione della fattura."""
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    FINALIZED = "FINALIZED"


class PaymentStatus(str, Enum):
    """Stato di incasso della fattura."""
    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class Invoice(Base, UUIDMixin, TimestampMixin):
    """
    Modello per le fatture di vendita.

    Una fattura appartiene a un cliente e (opzionalmente) a un veicolo.
    Il ricavo è la somma delle voci, più IVA se abilitata.
    Una volta FINALIZED la fattura è bloccata finché un admin non la sblocca.

    Attributes:
        invoice_number: Numero progressivo annuale (formato: INV-YYYY-NNNN)
        customer_id: Cliente intestatario
        vehicle_id: Veicolo venduto (opzionale)
        status: Stato approvazione (DRAFT → PENDING_APPROVAL → APPROVED → FINALIZED)
        payment_status: Stato incasso (PENDING, PARTIALLY_PAID, PAID)
        paid_at: Data/ora del saldo (mai sovrascritta)
        is_locked: Blocco modifiche
        tax_enabled: IVA/consumption tax abilitata
        tax_rate: Aliquota percentuale
        share_token: Token per la consultazione pubblica

    Relationships:
        charges: Voci della fattura (ordinate)
        cost_invoice: Riepilogo costi/profitto (1:1, creato al primo uso)
    """

    __tablename__ = "invoices"

    # ------------------------------------------------------------
    # Colonne Identificazione
    # ------------------------------------------------------------
    invoice_number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        unique=True,
        doc="Numero fattura progressivo annuale (formato: INV-YYYY-NNNN)",
    )

    customer_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="RESTRICT"),
        nullable=False,
        doc="UUID del cliente intestatario",
    )

    vehicle_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("vehicles.id", ondelete="SET NULL"),
        nullable=True,
        doc="UUID del veicolo venduto",
    )

    due_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Data scadenza pagamento",
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        doc="Note interne",
    )

    # ------------------------------------------------------------
    # Colonne Workflow
    # ------------------------------------------------------------
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=InvoiceStatus.DRAFT.value,
        doc="Stato approvazione",
    )

    is_locked: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Blocco modifiche (impostato alla finalizzazione)",
    )

    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    finalized_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    share_token: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        unique=True,
        doc="Token per il link pubblico alla fattura",
    )

    # ------------------------------------------------------------
    # Colonne Pagamento
    # ------------------------------------------------------------
    payment_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PaymentStatus.PENDING.value,
        doc="Stato incasso",
    )

    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Data/ora del saldo completo",
    )

    # ------------------------------------------------------------
    # Colonne Imposte
    # ------------------------------------------------------------
    tax_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        doc="Applica imposta sul totale voci",
    )

    tax_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Aliquota percentuale (es. 10.00)",
    )

    # ------------------------------------------------------------
    # Relazioni
    # ------------------------------------------------------------
    charges: Mapped[List["InvoiceCharge"]] = relationship(
        "InvoiceCharge",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="InvoiceCharge.sort_order",
        doc="Voci della fattura",
    )

    cost_invoice: Mapped[Optional["CostInvoice"]] = relationship(
        "CostInvoice",
        cascade="all, delete-orphan",
        lazy="selectin",
        uselist=False,
        doc="Riepilogo costi e marginalità",
    )

    __table_args__ = (
        Index("ix_invoices_customer_id", "customer_id"),
        Index("ix_invoices_vehicle_id", "vehicle_id"),
        Index("ix_invoices_status", "status"),
        CheckConstraint("tax_rate >= 0 AND tax_rate <= 100", name="ck_invoices_tax_rate_range"),
    )

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, number={self.invoice_number}, status={self.status})>"


class InvoiceCharge(Base, UUIDMixin, TimestampMixin):
    """
    Voce della fattura.

    Le voci di tipo "discount" e "deposit"
    vengono sottratte nel subtotale (cost_invoice_service.charges_subtotal).
    """

    __tablename__ = "invoice_charges"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        doc="UUID della fattura",
    )

    description: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
        doc="Descrizione della voce",
    )

    charge_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        doc="Tipo voce (vehicle, shipping, discount, deposit, ...)",
    )

    amount: Mapped[Decimal] = money_column("Importo della voce")

    sort_order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Posizione nella fattura",
    )

    __table_args__ = (
        Index("ix_invoice_charges_invoice_order", "invoice_id", "sort_order"),
    )

    def __repr__(self) -> str:
        return f"<InvoiceCharge(id={self.id}, amount={self.amount})>"
