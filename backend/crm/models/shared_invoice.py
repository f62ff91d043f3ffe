"""
Modelli SQLAlchemy per le fatture condivise
Progetto: Export CRM (Gestionale Export Veicoli)

Contiene:
- SharedInvoice: fattura spedizioniere/container non legata a un solo veicolo
- SharedInvoiceVehicle: quota allocata a ciascun veicolo
- ContainerInvoice: fattura container a valle che può riferire una SharedInvoice
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from crm.models import Base
from crm.models.mixins import TimestampMixin, UUIDMixin, money_column


class SharedInvoiceType(str, Enum):
    """Tipi di fattura condivisa."""
    FORWARDER = "FORWARDER"
    CONTAINER = "CONTAINER"


class SharedInvoice(Base, UUIDMixin, TimestampMixin):
    """
    Fattura condivisa tra più veicoli.

    Il totale viene ripartito in parti uguali tra i veicoli collegati;
    ogni variazione dei veicoli riscrive tutte le quote.

    Attributes:
        type: FORWARDER o CONTAINER
        invoice_number: Numero progressivo (formato: TYPE-YYYY-NNN)
        total_amount: Totale da ripartire
        invoice_date: Data documento
        payment_deadline: Scadenza pagamento
        vendor_id: Fornitore emittente
        cost_lines: Dettaglio voci del fornitore [{description, amount}]

    Relationships:
        vehicles: Quote allocate per veicolo
    """

    __tablename__ = "shared_invoices"

    type: Mapped[str] = mapped_column(String(20), nullable=False)

    invoice_number: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        unique=True,
        doc="Numero fattura condivisa (formato: TYPE-YYYY-NNN)",
    )

    total_amount: Mapped[Decimal] = money_column("Totale da ripartire tra i veicoli")

    invoice_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    payment_deadline: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        doc="Scadenza pagamento al fornitore",
    )

    vendor_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("vendors.id", ondelete="RESTRICT"),
        nullable=False,
    )

    cost_lines: Mapped[List[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        doc="Dettaglio voci fornitore, validato da SharedCostLine",
    )

    vehicles: Mapped[List["SharedInvoiceVehicle"]] = relationship(
        "SharedInvoiceVehicle",
        cascade="all, delete-orphan",
        lazy="selectin",
        doc="Quote allocate ai veicoli",
    )

    __table_args__ = (
        CheckConstraint("type IN ('FORWARDER', 'CONTAINER')", name="ck_shared_invoices_type"),
        Index("ix_shared_invoices_type", "type"),
    )

    def __repr__(self) -> str:
        return f"<SharedInvoice(id={self.id}, number={self.invoice_number})>"


class SharedInvoiceVehicle(Base, UUIDMixin, TimestampMixin):
    """Quota di una fattura condivisa attribuita a un veicolo."""

    __tablename__ = "shared_invoice_vehicles"

    shared_invoice_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("shared_invoices.id", ondelete="CASCADE"),
        nullable=False,
    )

    vehicle_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("vehicles.id", ondelete="CASCADE"),
        nullable=False,
    )

    allocated_amount: Mapped[Decimal] = money_column("Quota allocata al veicolo")

    __table_args__ = (
        UniqueConstraint("shared_invoice_id", "vehicle_id", name="uq_shared_invoice_vehicle"),
        Index("ix_shared_invoice_vehicles_vehicle_id", "vehicle_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<SharedInvoiceVehicle(shared_invoice_id={self.shared_invoice_id}, "
            f"vehicle_id={self.vehicle_id}, amount={self.allocated_amount})>"
        )


class ContainerInvoice(Base, UUIDMixin, TimestampMixin):
    """
    Fattura container a valle.

    Finché riferisce una SharedInvoice, quest'ultima non può
    essere eliminata (ondelete RESTRICT).
    """

    __tablename__ = "container_invoices"

    container_number: Mapped[str] = mapped_column(String(20), nullable=False)

    shared_invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("shared_invoices.id", ondelete="RESTRICT"),
        nullable=True,
    )

    amount: Mapped[Decimal] = money_column("Importo fattura container")

    __table_args__ = (
        Index("ix_container_invoices_shared_invoice_id", "shared_invoice_id"),
    )
