"""
Modello SQLAlchemy per l'entità Vehicle
Progetto: Export CRM (Gestionale Export Veicoli)

Veicoli in esportazione. Un veicolo può comparire in più fatture
di vendita e in più fatture condivise (spedizioniere/container).
"""

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from crm.models import Base
from crm.models.mixins import TimestampMixin, UUIDMixin


class Vehicle(Base, UUIDMixin, TimestampMixin):
    """
    Modello per i veicoli.

    Attributes:
        id: UUID primary key
        vin: Numero telaio (univoco)
        make: Marca
        model: Modello
        year: Anno di produzione
        customer_id: Cliente acquirente (opzionale finché non venduto)
    """

    __tablename__ = "vehicles"

    vin: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
        doc="Numero telaio (VIN / chassis number)",
    )

    make: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Marca del veicolo",
    )

    model: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Modello del veicolo",
    )

    year: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Anno di produzione",
    )

    customer_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("customers.id", ondelete="SET NULL"),
        nullable=True,
        doc="UUID del cliente acquirente",
    )

    __table_args__ = (
        Index("ix_vehicles_customer_id", "customer_id"),
    )

    def __repr__(self) -> str:
        return f"<Vehicle(id={self.id}, vin={self.vin})>"
