# tests/conftest.py
import uuid

import pytest
from fastapi.testclient import TestClient

from game_service.config import Settings
from game_service.main import create_app

TEST_SECRET = "test-secret"
TEST_PASSWORD = "password123"


def make_settings(**overrides) -> Settings:
    values = {"database_url": "sqlite://", "jwt_secret_key": TEST_SECRET}
    values.update(overrides)
    return Settings(**values)


def register_user(client, username=None, email=None, password=TEST_PASSWORD, **extra):
    """Registra un usuario único y devuelve la respuesta HTTP."""
    suffix = uuid.uuid4().hex[:8]
    payload = {
        "username": username or f"player_{suffix}",
        "email": email or f"testuser_{suffix}@example.com",
        "password": password,
    }
    payload.update(extra)
    return client.post("/api/auth/register", json=payload)


def login_headers(client, email, password=TEST_PASSWORD) -> dict:
    r_login = client.post("/api/auth/login", json={"email": email, "password": password})
    assert r_login.status_code == 200, r_login.text
    return {"Authorization": f"Bearer {r_login.json()['token']}"}


@pytest.fixture()
def settings():
    return make_settings()


@pytest.fixture()
def app(settings):
    # sqlite:// en memoria: cada test arranca con una base de datos vacía
    application = create_app(settings)
    yield application
    application.state.engine.dispose()


@pytest.fixture()
def client(app):
    return TestClient(app)


@pytest.fixture()
def session_factory(app):
    return app.state.session_factory


@pytest.fixture()
def test_user(client):
    """Registra un usuario de prueba y devuelve sus datos junto con la contraseña usada."""
    r_register = register_user(client)
    assert r_register.status_code == 201, r_register.text
    user = r_register.json()["user"]
    user["password"] = TEST_PASSWORD
    return user


@pytest.fixture()
def test_user_token(client, test_user):
    r_login = client.post(
        "/api/auth/login",
        json={"email": test_user["email"], "password": test_user["password"]},
    )
    assert r_login.status_code == 200, r_login.text
    return r_login.json()["token"]


# Fixture de utilidad para las cabeceras de autorización
@pytest.fixture()
def auth_headers(test_user_token):
    return {"Authorization": f"Bearer {test_user_token}"}
