"""
Modulo di sicurezza per token JWT e webhook
Progetto: Export CRM (Gestionale Export Veicoli)

Emissione/decodifica dei token di accesso e confronto a tempo
costante del segreto condiviso del gateway di pagamento.
"""

import hmac
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, status
from jose import JWTError, jwt

from crm.core.config import settings
from crm.schemas.token import TokenPayload


def create_access_token(user_id: str, role: str) -> str:
    """
    Crea un token di accesso JWT.

    Args:
        user_id: ID dell'utente
        role: Ruolo dell'utente

    Returns:
        Token JWT codificato
    """
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=settings.access_token_expire_minutes
    )

    payload = {
        "sub": user_id,
        "role": role,
        "exp": expire,
        "type": "access",
    }

    return jwt.encode(
        payload,
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_token(token: str) -> TokenPayload:
    """
    Decodifica e valida un token JWT.

    Raises:
        HTTPException: Se il token è invalido o scaduto
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Token invalido o scaduto: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token invalido: missing subject",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return TokenPayload(
        sub=payload["sub"],
        role=payload.get("role", ""),
        exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        type=payload.get("type", "access"),
    )


def verify_webhook_secret(provided: Optional[str], expected: Optional[str] = None) -> bool:
    """
    Confronta il segreto ricevuto con quello configurato.

    Un segreto configurato vuoto disabilita l'autenticazione via webhook.

    Args:
        provided: Segreto ricevuto nella richiesta
        expected: Segreto atteso (default: settings.payment_webhook_secret)

    Returns:
        True se i segreti coincidono byte per byte
    """
    expected = settings.payment_webhook_secret if expected is None else expected
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


__all__ = [
    "create_access_token",
    "decode_token",
    "verify_webhook_secret",
]
