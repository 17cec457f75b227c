"""Tests for session token handling in request dependencies."""

import asyncio

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from artifactci.api.deps import get_current_login, require_login
from artifactci.core.config import settings


def _credentials(token):
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestGetCurrentLogin:
    def test_anonymous(self):
        assert asyncio.run(get_current_login(None)) is None

    def test_valid_token(self):
        token = jwt.encode({"sub": "octocat"}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        assert asyncio.run(get_current_login(_credentials(token))) == "octocat"

    def test_invalid_token_is_401(self):
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(get_current_login(_credentials("not-a-jwt")))
        assert exc_info.value.status_code == 401

    def test_wrong_key_is_401(self):
        token = jwt.encode({"sub": "octocat"}, "other-key", algorithm="HS256")
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(get_current_login(_credentials(token)))
        assert exc_info.value.status_code == 401

    def test_missing_subject_is_401(self):
        token = jwt.encode({"foo": "bar"}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(get_current_login(_credentials(token)))
        assert exc_info.value.status_code == 401


class TestRequireLogin:
    def test_anonymous_is_401(self):
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(require_login(None))
        assert exc_info.value.status_code == 401

    def test_passes_login_through(self):
        assert asyncio.run(require_login("octocat")) == "octocat"
