"""Tests for bearer token verification and the auth dependencies."""

import time

import jwt
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from peerloom.api.v1.dependency import User, get_current_user, verify_token
from peerloom.api.v1.errors import app_error_handler
from peerloom.app_config import get_app_environ_config
from peerloom.utils.app_errors import AppError

SECRET = "test-jwt-secret-with-enough-length-for-hs256"


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch: pytest.MonkeyPatch) -> str:
    cfg = get_app_environ_config()
    monkeypatch.setattr(cfg, "AUTH_JWT_SECRET", SECRET)
    monkeypatch.setattr(cfg, "AUTH_JWT_AUDIENCE", "authenticated")
    return SECRET


def make_token(secret: str = SECRET, **claims) -> str:
    payload = {"sub": "user_1", "aud": "authenticated", "exp": int(time.time()) + 300, **claims}
    return jwt.encode(payload, secret, algorithm="HS256")


class TestVerifyToken:
    def test_valid_token(self):
        user = verify_token(make_token(user_metadata={"firstName": "Ann", "full_name": "Ann Lee"}))

        assert user == User(user_id="user_1", user_name="Ann")

    def test_name_falls_back_to_full_name_then_email(self):
        assert verify_token(make_token(user_metadata={"full_name": "Ann Lee"})).user_name == "Ann Lee"
        assert verify_token(make_token(email="ann@example.com")).user_name == "ann@example.com"
        assert verify_token(make_token()).user_name is None

    @pytest.mark.parametrize(
        "token",
        [
            pytest.param(None, id="missing"),
            pytest.param("garbage", id="malformed"),
            pytest.param(make_token(secret="another-secret-with-enough-length-for-hs256"), id="wrong-secret"),
            pytest.param(make_token(aud="anon"), id="wrong-audience"),
            pytest.param(make_token(exp=int(time.time()) - 10), id="expired"),
        ],
    )
    def test_rejected_tokens(self, token: str | None):
        with pytest.raises(AppError) as exc_info:
            verify_token(token)

        assert exc_info.value.errcode == "E_BAD_TOKEN"
        assert exc_info.value.status_code == 401

    def test_missing_subject(self):
        token = jwt.encode({"aud": "authenticated"}, SECRET, algorithm="HS256")

        with pytest.raises(AppError) as exc_info:
            verify_token(token)

        assert exc_info.value.status_code == 401

    def test_unconfigured_secret(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(get_app_environ_config(), "AUTH_JWT_SECRET", None)

        with pytest.raises(AppError) as exc_info:
            verify_token(make_token())

        assert exc_info.value.status_code == 503


class TestGetCurrentUser:
    @pytest.fixture
    def client(self) -> TestClient:
        app = FastAPI()
        app.add_exception_handler(AppError, app_error_handler)  # type: ignore[arg-type]

        @app.get("/me")
        async def me(user: User = Depends(get_current_user)) -> User:
            return user

        return TestClient(app)

    def test_bearer_header(self, client: TestClient):
        response = client.get("/me", headers={"Authorization": f"Bearer {make_token()}"})

        assert response.status_code == 200
        assert response.json()["user_id"] == "user_1"

    def test_missing_header(self, client: TestClient):
        response = client.get("/me")

        assert response.status_code == 401
        assert response.json()["errcode"] == "E_BAD_TOKEN"

    def test_wrong_scheme(self, client: TestClient):
        response = client.get("/me", headers={"Authorization": f"Basic {make_token()}"})

        assert response.status_code == 401
