"""
Modello SQLAlchemy per l'entità Customer
Progetto: Export CRM (Gestionale Export Veicoli)

Clienti importatori. Il saldo wallet non è una colonna:
si ricava dai movimenti (vedi WalletService).
"""

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from crm.models import Base
from crm.models.mixins import TimestampMixin, UUIDMixin


class Customer(Base, UUIDMixin, TimestampMixin):
    """
    Modello per i clienti.

    Attributes:
        id: UUID primary key
        name: Nome o ragione sociale
        email: Email di contatto
        phone: Telefono
        country: Paese di destinazione (ISO 3166 alpha-2)
    """

    __tablename__ = "customers"

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Nome o ragione sociale del cliente",
    )

    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        index=True,
        doc="Email di contatto",
    )

    phone: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        doc="Telefono",
    )

    country: Mapped[Optional[str]] = mapped_column(
        String(2),
        nullable=True,
        doc="Paese di destinazione (ISO 3166 alpha-2)",
    )

    def __repr__(self) -> str:
        return f"<Customer(id={self.id}, name={self.name})>"
