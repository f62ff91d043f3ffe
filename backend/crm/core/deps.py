"""
Dependency Injection per autenticazione
Progetto: Export CRM (Gestionale Export Veicoli)

Funzioni di dependency injection per autenticazione e autorizzazione.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crm.core.database import get_db
from crm.core.security import decode_token
from crm.models.user import User

# Bearer scheme - estrae il token dall'header Authorization.
# I token sono emessi dal servizio di autenticazione esterno.
bearer_scheme = HTTPBearer(auto_error=False)


async def _load_user(token: str, db: AsyncSession) -> User:
    token_data = decode_token(token)

    if token_data.type != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token non valido per questa operazione",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = UUID(token_data.sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="ID utente invalido nel token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Utente non trovato o disattivato",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency per ottenere l'utente corrente dal token JWT.

    Raises:
        HTTPException 401: Se il token è assente, invalido o l'utente non è attivo
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token di autenticazione non fornito",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return await _load_user(credentials.credentials, db)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """
    Come get_current_user, ma restituisce None senza token.

    Usata dagli endpoint che accettano in alternativa il segreto
    del webhook di pagamento.
    """
    if credentials is None:
        return None
    return await _load_user(credentials.credentials, db)


def require_role(*allowed_roles: str):
    """
    Factory function per creare una dependency che verifica il ruolo.

    Example:
        @router.post("/admin-only")
        async def admin_endpoint(admin: User = Depends(require_role("admin"))):
            ...
    """
    async def role_checker(
        current_user: Annotated[User, Depends(get_current_user)]
    ) -> User:
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Accesso negato. Ruolo richiesto: {', '.join(allowed_roles)}",
            )
        return current_user

    return role_checker


# Type aliases per uso comune
CurrentUser = Annotated[User, Depends(get_current_user)]
OptionalUser = Annotated[Optional[User], Depends(get_optional_user)]
LedgerUser = Annotated[User, Depends(require_role("admin", "accountant"))]


# Export
__all__ = [
    "get_current_user",
    "get_optional_user",
    "require_role",
    "bearer_scheme",
    "CurrentUser",
    "OptionalUser",
    "LedgerUser",
]
