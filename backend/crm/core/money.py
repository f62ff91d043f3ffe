"""
Utility numeriche per importi monetari
Progetto: Export CRM (Gestionale Export Veicoli)

Tutti gli importi del motore contabile sono Decimal.
L'arrotondamento è sempre a 2 decimali con ROUND_HALF_UP.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Union

Number = Union[Decimal, int, float, str, None]

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def to_decimal(value: Number) -> Decimal:
    """
    Converte un valore numerico in Decimal.

    I float passano da str() per evitare artefatti binari
    (0.1 -> Decimal("0.1") e non 0.1000000000000000055...).
    None viene trattato come zero.

    Raises:
        ValueError: Se il valore non è numerico
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Importo non valido: {value!r}")
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Importo non valido: {value!r}")


def round2(value: Number) -> Decimal:
    """Arrotonda a 2 decimali (ROUND_HALF_UP)."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_amounts(values: Iterable[Number]) -> Decimal:
    """Somma una sequenza di importi senza arrotondare."""
    total = Decimal("0")
    for value in values:
        total += to_decimal(value)
    return total


def percentage(numerator: Number, denominator: Number) -> Decimal:
    """
    Calcola numerator / denominator * 100 arrotondato a 2 decimali.

    Restituisce 0 se il denominatore non è positivo.
    """
    den = to_decimal(denominator)
    if den <= 0:
        return ZERO
    return round2(to_decimal(numerator) / den * HUNDRED)
