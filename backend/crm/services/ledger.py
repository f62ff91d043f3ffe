"""
Registro movimenti - primitive di scrittura e lettura
Progetto: Export CRM (Gestionale Export Veicoli)

Il registro è append-only: le funzioni qui aggiungono movimenti alla
sessione senza confermare la transazione, che resta al chiamante.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.config import settings
from crm.core.exceptions import BusinessValidationError
from crm.core.money import round2, to_decimal
from crm.models import Transaction, TransactionDirection, TransactionType

# Logger per questo modulo
logger = logging.getLogger(__name__)


def normalize_currency(currency: Optional[str]) -> str:
    """Valuta in maiuscolo, default da configurazione."""
    return (currency or settings.default_currency).strip().upper()


def append_entry(
    db: AsyncSession,
    *,
    direction: TransactionDirection,
    type: TransactionType,
    amount: Decimal,
    description: str,
    currency: Optional[str] = None,
    transaction_date: Optional[date] = None,
    reference_number: Optional[str] = None,
    customer_id: Optional[uuid.UUID] = None,
    vehicle_id: Optional[uuid.UUID] = None,
    invoice_id: Optional[uuid.UUID] = None,
    cost_item_id: Optional[uuid.UUID] = None,
    vendor_id: Optional[uuid.UUID] = None,
    created_by_id: Optional[uuid.UUID] = None,
) -> Transaction:
    """
    Aggiunge un movimento alla sessione.

    Raises:
        BusinessValidationError: importo non positivo
    """
    amount = round2(amount)
    if amount <= 0:
        raise BusinessValidationError("L'importo del movimento deve essere maggiore di zero")

    entry = Transaction(
        id=uuid.uuid4(),
        direction=TransactionDirection(direction).value,
        type=TransactionType(type).value,
        amount=amount,
        currency=normalize_currency(currency),
        transaction_date=transaction_date or date.today(),
        description=description,
        reference_number=reference_number,
        customer_id=customer_id,
        vehicle_id=vehicle_id,
        invoice_id=invoice_id,
        cost_item_id=cost_item_id,
        vendor_id=vendor_id,
        created_by_id=created_by_id,
    )
    db.add(entry)
    logger.debug("Movimento %s %s %s: %s", entry.direction, entry.amount, entry.currency, description)
    return entry


async def incoming_total_for_invoice(db: AsyncSession, invoice_id: uuid.UUID) -> Decimal:
    """
    Totale incassato registrato su una fattura.

    Somma i movimenti INCOMING collegati alla fattura, esclusi i depositi
    (che alimentano il wallet e non la fattura).
    """
    result = await db.execute(
        select(func.coalesce(func.sum(Transaction.amount), 0)).where(
            Transaction.invoice_id == invoice_id,
            Transaction.direction == TransactionDirection.INCOMING.value,
            Transaction.type != TransactionType.DEPOSIT.value,
        )
    )
    return to_decimal(result.scalar())
