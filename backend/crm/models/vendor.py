"""
Modello SQLAlchemy per l'entità Vendor
Progetto: Export CRM (Gestionale Export Veicoli)

Fornitori che fatturano costi: spedizionieri, linee container,
trasporti interni, ispezioni.
"""

from enum import Enum

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from crm.models import Base
from crm.models.mixins import TimestampMixin, UUIDMixin


class VendorType(str, Enum):
    """Categorie di fornitore."""
    FORWARDER = "FORWARDER"
    CONTAINER_LINE = "CONTAINER_LINE"
    TRANSPORT = "TRANSPORT"
    INSPECTION = "INSPECTION"
    OTHER = "OTHER"


class Vendor(Base, UUIDMixin, TimestampMixin):
    """Fornitore (nome + categoria)."""

    __tablename__ = "vendors"

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Ragione sociale del fornitore",
    )

    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=VendorType.OTHER.value,
        doc="Categoria fornitore",
    )

    def __repr__(self) -> str:
        return f"<Vendor(id={self.id}, name={self.name})>"
