"""
Unit tests for JWT decoding, webhook secret and auth dependencies.
"""

import uuid
from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException
from jose import jwt

from crm.core.config import settings
from crm.core.deps import get_current_user, get_optional_user
from crm.core.security import create_access_token, decode_token, verify_webhook_secret

from conftest import MockUser


class TestTokens:
    """Tests for access token decoding."""

    def test_decode_issued_token(self):
        """Test token emesso e decodificato con ruolo e soggetto."""
        user_id = str(uuid.uuid4())
        payload = decode_token(create_access_token(user_id, "accountant"))

        assert payload.sub == user_id
        assert payload.role == "accountant"
        assert payload.type == "access"

    def test_wrong_signature(self):
        """Test firma con chiave diversa rifiutata."""
        token = jwt.encode({"sub": "x", "exp": 9999999999}, "altra-chiave", algorithm=settings.jwt_algorithm)
        with pytest.raises(HTTPException) as exc:
            decode_token(token)
        assert exc.value.status_code == 401

    def test_missing_subject(self):
        """Test token senza soggetto."""
        token = jwt.encode({"exp": 9999999999}, settings.secret_key, algorithm=settings.jwt_algorithm)
        with pytest.raises(HTTPException):
            decode_token(token)


class TestWebhookSecret:
    """Tests for constant-time secret comparison."""

    def test_match(self):
        """Test segreti identici."""
        assert verify_webhook_secret("s3cret", "s3cret") is True

    def test_mismatch(self):
        """Test segreto diverso."""
        assert verify_webhook_secret("s3cret", "S3cret") is False

    def test_empty_configured_secret_disables(self):
        """Test segreto configurato vuoto: webhook disabilitato."""
        assert verify_webhook_secret("", "") is False
        assert verify_webhook_secret("qualsiasi", "") is False

    def test_missing_header(self):
        """Test header assente."""
        assert verify_webhook_secret(None, "s3cret") is False


class TestDependencies:
    """Tests for the user dependencies."""

    async def test_current_user_requires_token(self, mock_db):
        """Test senza credenziali: 401."""
        with pytest.raises(HTTPException) as exc:
            await get_current_user(None, mock_db)
        assert exc.value.status_code == 401

    async def test_optional_user_without_token(self, mock_db):
        """Test senza credenziali: nessun utente."""
        assert await get_optional_user(None, mock_db) is None
        mock_db.execute.assert_not_awaited()

    async def test_current_user_loaded(self, mock_db):
        """Test utente attivo caricato dal token."""
        user = MockUser(role="manager")
        result = MagicMock()
        result.scalar_one_or_none.return_value = user
        mock_db.execute.return_value = result
        credentials = MagicMock(credentials=create_access_token(str(user.id), user.role))

        assert await get_current_user(credentials, mock_db) is user

    async def test_inactive_user_rejected(self, mock_db):
        """Test utente disattivato: 401."""
        user = MockUser(is_active=False)
        result = MagicMock()
        result.scalar_one_or_none.return_value = user
        mock_db.execute.return_value = result
        credentials = MagicMock(credentials=create_access_token(str(user.id), user.role))

        with pytest.raises(HTTPException) as exc:
            await get_current_user(credentials, mock_db)
        assert exc.value.status_code == 401
