"""
Mixin SQLAlchemy per modelli
Progetto: Export CRM (Gestionale Export Veicoli)

Mixin e colonne riutilizzabili per i modelli.
"""

import datetime
import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import DateTime, Numeric, Uuid
from sqlalchemy import event
from sqlalchemy.orm import Mapped, MappedColumn, mapped_column, Session
from sqlalchemy.sql import func


def money_column(doc: str, nullable: bool = False, default: Any = Decimal("0.00")) -> MappedColumn[Any]:
    """
    Colonna importo: Numeric(14, 2).

    Gli importi in JPY superano facilmente le 8 cifre intere,
    da qui la precisione 14.
    """
    return mapped_column(
        Numeric(14, 2),
        nullable=nullable,
        default=default,
        doc=doc,
    )


class TimestampMixin:
    """
    Mixin per gestione automatica timestamp creazione e aggiornamento.

    - created_at: impostato dal database alla creazione
    - updated_at: aggiornato dal listener before_flush
    """

    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        doc="Data/ora di creazione del record",
    )

    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        doc="Data/ora ultimo aggiornamento del record",
    )


class UUIDMixin:
    """Mixin per primary key UUID generata lato applicazione."""

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        doc="UUID primary key",
    )


# ------------------------------------------------------------
# Event Listeners
# ------------------------------------------------------------
@event.listens_for(Session, "before_flush")
def update_timestamp(session: Session, flush_context, instances) -> None:
    """
    Aggiorna updated_at per gli oggetti nuovi e per quelli modificati.

    I movimenti contabili (Transaction) non hanno updated_at e
    vengono quindi ignorati.
    """
    now = datetime.datetime.now(datetime.timezone.utc)

    for obj in session.dirty:
        if hasattr(obj, "updated_at") and session.is_modified(obj, include_collections=False):
            obj.updated_at = now

    for obj in session.new:
        if hasattr(obj, "updated_at"):
            obj.updated_at = now
