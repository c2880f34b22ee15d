# tests/conftest.py
import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel

from agentflow.config import Settings
from agentflow.container import build_services
from agentflow.db import create_schema, make_engine
from agentflow.main import create_app

# Directorio de usuarios sembrado en cada prueba: (id, username, name, email)
USERS = [
    ("u_alice", "alice", "Alice Doe", "alice@example.com"),
    ("u_bob", "bob", "Bob Roe", "bob@example.com"),
    ("u_carol", "carol", "Carol Poe", "carol@example.com"),
    ("u_dave", "dave", None, "dave@example.com"),
]

OWNER, BOB, CAROL, DAVE = "u_alice", "u_bob", "u_carol", "u_dave"


def auth(user_id: str) -> dict:
    """Cabecera Bearer del stub de autenticación para ``user_id``."""
    return {"Authorization": f"Bearer mock-{user_id}"}


def nodes(*ids: str) -> list:
    return [{"id": i, "type": "http.request", "config": {"url": f"https://example.com/{i}"}} for i in ids]


@pytest.fixture()
def engine():
    # BD en memoria: "sqlite://" + StaticPool mantiene UNA conexión viva por prueba
    eng = make_engine("sqlite://")
    create_schema(eng)
    yield eng
    SQLModel.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture()
def settings():
    # sin .env: las pruebas no dependen del entorno local
    return Settings(_env_file=None)


@pytest.fixture()
def services(engine, settings):
    svc = build_services(engine, settings)
    for user_id, username, name, email in USERS:
        svc.users.register(user_id, username, name, email)
    return svc


@pytest.fixture()
def make_workflow(services):
    """Crea un workflow de ``owner`` y devuelve su id."""
    def _make(name="Pipeline A", owner=OWNER, **fields):
        return services.workflows.create({"name": name, **fields}, owner)
    return _make


@pytest.fixture()
def client(services):
    """Cliente de pruebas para peticiones HTTP síncronas contra la app."""
    return TestClient(create_app(services))


@pytest.fixture()
def auth_headers():
    return auth(OWNER)
