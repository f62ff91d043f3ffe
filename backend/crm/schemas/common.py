"""
Tipi Pydantic condivisi
Progetto: Export CRM (Gestionale Export Veicoli)

Money: importo Decimal serializzato in JSON come numero
arrotondato a 2 decimali.
"""

from decimal import Decimal
from typing import Annotated

from pydantic import PlainSerializer

from crm.core.money import round2


def _money_to_json(value: Decimal) -> float:
    return float(round2(value))


Money = Annotated[
    Decimal,
    PlainSerializer(_money_to_json, return_type=float, when_used="json"),
]


def total_pages(total: int, per_page: int) -> int:
    """Numero di pagine (almeno 1)."""
    return (total + per_page - 1) // per_page if total > 0 else 1
