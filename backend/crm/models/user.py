"""
Modello SQLAlchemy per l'entità User
Progetto: Export CRM (Gestionale Export Veicoli)

Utenti del back-office. Il ruolo determina le capability
verificate in crm.core.permissions.
"""

from __future__ import annotations
from enum import Enum

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from crm.models import Base
from crm.models.mixins import TimestampMixin, UUIDMixin


class UserRole(str, Enum):
    """Ruoli utente nel sistema."""
    ADMIN = "admin"
    MANAGER = "manager"
    SALES = "sales"
    ACCOUNTANT = "accountant"


class User(Base, UUIDMixin, TimestampMixin):
    """
    Modello per gli utenti del sistema.

    Attributes:
        id: UUID primary key
        email: Email univoca dell'utente
        full_name: Nome completo
        role: Ruolo (admin, manager, sales, accountant)
        is_active: Indica se l'utente è attivo
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        doc="Email univoca dell'utente",
    )

    full_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Nome completo dell'utente",
    )

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=UserRole.SALES.value,
        doc="Ruolo dell'utente",
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        doc="Indica se l'utente è attivo",
    )

    __table_args__ = (
        Index("ix_users_role", "role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
