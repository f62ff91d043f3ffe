"""
Controlli di capability per ruolo
Progetto: Export CRM (Gestionale Export Veicoli)

Predicati puri sul ruolo dell'utente (e, dove serve, sullo stato
della fattura). I service chiamano `ensure()` che solleva
ForbiddenError quando il controllo fallisce.
"""

from typing import Any, Optional

from crm.core.exceptions import ForbiddenError
from crm.models.invoice import InvoiceStatus
from crm.models.user import UserRole

ADMIN = UserRole.ADMIN.value
MANAGER = UserRole.MANAGER.value
SALES = UserRole.SALES.value
ACCOUNTANT = UserRole.ACCOUNTANT.value


def _role(user: Optional[Any]) -> Optional[str]:
    if user is None:
        return None
    role = getattr(user, "role", None)
    return role.value if isinstance(role, UserRole) else role


def has_role(user: Optional[Any], *roles: str) -> bool:
    """True se l'utente ha uno dei ruoli indicati."""
    return _role(user) in roles


def can_edit_invoice(user: Optional[Any], invoice: Any) -> bool:
    """
    Verifica se l'utente può modificare la fattura (voci, costi, IVA).

    - Fatture bloccate o FINALIZED: mai modificabili
    - Fatture APPROVED: solo admin
    - Altrimenti: sales, manager, admin
    """
    if invoice.is_locked or invoice.status == InvoiceStatus.FINALIZED.value:
        return False
    if invoice.status == InvoiceStatus.APPROVED.value:
        return has_role(user, ADMIN)
    return has_role(user, SALES, MANAGER, ADMIN)


def can_approve_invoice(user: Optional[Any]) -> bool:
    return has_role(user, ADMIN)


def can_finalize_invoice(user: Optional[Any]) -> bool:
    return has_role(user, ADMIN)


def can_unlock_invoice(user: Optional[Any]) -> bool:
    return has_role(user, ADMIN)


def can_record_payment(user: Optional[Any]) -> bool:
    return has_role(user, ADMIN, MANAGER, ACCOUNTANT)


def can_view_wallet(user: Optional[Any]) -> bool:
    return has_role(user, ADMIN, MANAGER, ACCOUNTANT)


def can_manage_wallet(user: Optional[Any]) -> bool:
    return has_role(user, ADMIN, ACCOUNTANT)


def can_delete_shared_invoice(user: Optional[Any]) -> bool:
    return has_role(user, ADMIN)


def can_manage_transactions(user: Optional[Any]) -> bool:
    return has_role(user, ADMIN, ACCOUNTANT)


def ensure(allowed: bool, detail: str = "Accesso non autorizzato") -> None:
    """
    Solleva ForbiddenError se il controllo di capability è fallito.

    Raises:
        ForbiddenError: allowed è False
    """
    if not allowed:
        raise ForbiddenError(detail)
