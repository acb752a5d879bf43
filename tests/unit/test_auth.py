from datetime import timedelta
import jwt
import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from auth import create_access_token, get_current_user_id
from config import Config


@pytest.fixture
def client(jwt_secret):
    app = FastAPI()

    @app.get("/whoami")
    async def whoami(user_id: str = Depends(get_current_user_id)):
        return {"user_id": user_id}

    return TestClient(app)


def test_valid_token_resolves_user(client):
    """Given a valid bearer token, when a protected route is called, it should see the token's user id."""
    response = client.get("/whoami", headers={"Authorization": f"Bearer {create_access_token('u1')}"})
    assert response.status_code == 200
    assert response.json() == {"user_id": "u1"}


def test_missing_token_is_unauthorized(client):
    """Given no Authorization header, when a protected route is called, it should return 401."""
    response = client.get("/whoami")
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_expired_token_is_unauthorized(client):
    """Given an expired token, when a protected route is called, it should return 401."""
    token = create_access_token("u1", expires_delta=timedelta(seconds=-5))
    response = client.get("/whoami", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Token has expired"


def test_token_signed_with_other_secret_is_unauthorized(client):
    """Given a token signed with another secret, when a protected route is called, it should return 401."""
    token = jwt.encode({"sub": "u1"}, "not-the-secret", algorithm="HS256")
    response = client.get("/whoami", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid token"


def test_token_without_subject_is_unauthorized(client):
    """Given a token without a sub claim, when a protected route is called, it should return 401."""
    token = jwt.encode({"name": "u1"}, Config.JWT_SECRET, algorithm="HS256")
    response = client.get("/whoami", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401


def test_missing_server_secret_is_server_error(client, monkeypatch):
    """Given no configured JWT secret, when a protected route is called, it should return 500."""
    monkeypatch.setattr(Config, "JWT_SECRET", "")
    response = client.get("/whoami", headers={"Authorization": "Bearer anything"})
    assert response.status_code == 500
