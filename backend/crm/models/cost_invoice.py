"""
Modelli SQLAlchemy per il conto economico della fattura
Progetto: Export CRM (Gestionale Export Veicoli)

Contiene:
- CostInvoice: riepilogo ricavi/costi/profitto di una fattura (1:1)
- CostItem: costo fatturato da un fornitore

CostInvoice è una cache di una funzione pura: i suoi campi si
ricavano sempre da voci, costi e allocazioni condivise
(vedi CostInvoiceService.recompute).
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Date, ForeignKey, Index, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crm.models import Base
from crm.models.mixins import TimestampMixin, UUIDMixin, money_column


class CostInvoice(Base, UUIDMixin, TimestampMixin):
    """
    Riepilogo economico di una fattura di vendita.

    Attributes:
        invoice_id: Fattura di riferimento (univoca)
        total_revenue: Ricavo (voci + imposta)
        total_cost: Costi fornitori + quota costi condivisi
        profit: total_revenue - total_cost
        margin: profit / total_revenue * 100
        roi: profit / total_cost * 100
    """

    __tablename__ = "cost_invoices"

    invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        doc="UUID della fattura di vendita",
    )

    total_revenue: Mapped[Decimal] = money_column("Ricavo totale (con imposta)")
    total_cost: Mapped[Decimal] = money_column("Costo totale")
    profit: Mapped[Decimal] = money_column("Profitto")

    margin: Mapped[Decimal] = mapped_column(
        Numeric(9, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="Margine percentuale sul ricavo",
    )

    roi: Mapped[Decimal] = mapped_column(
        Numeric(9, 2),
        nullable=False,
        default=Decimal("0.00"),
        doc="ROI percentuale sul costo",
    )

    items: Mapped[List["CostItem"]] = relationship(
        "CostItem",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="CostItem.created_at",
        doc="Costi fornitori",
    )

    def __repr__(self) -> str:
        return f"<CostInvoice(invoice_id={self.invoice_id}, profit={self.profit})>"


class CostItem(Base, UUIDMixin, TimestampMixin):
    """
    Costo fatturato da un fornitore su una fattura di vendita.

    payment_deadline è obbligatoria; payment_date viene valorizzata
    quando si registra il pagamento al fornitore.
    """

    __tablename__ = "cost_items"

    cost_invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("cost_invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    amount: Mapped[Decimal] = money_column("Importo del costo")

    vendor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("vendors.id", ondelete="RESTRICT"),
        nullable=False,
        doc="Fornitore che ha emesso il costo",
    )

    category: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        doc="Categoria (Forwarding, Freight, Inspection, ...)",
    )

    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    payment_deadline: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Scadenza pagamento al fornitore",
    )

    __table_args__ = (
        Index("ix_cost_items_cost_invoice_id", "cost_invoice_id"),
        Index("ix_cost_items_vendor_id", "vendor_id"),
    )

    def __repr__(self) -> str:
        return f"<CostItem(id={self.id}, amount={self.amount})>"
