"""Фикстуры для тестов API: отдельная SQLite-БД на каждый тест."""
import asyncio

import pytest
from fastapi.testclient import TestClient

from machlog.config import Settings
from machlog.core.database import BackendClient
from machlog.main import create_app

ADMIN_EMAIL = "admin@test.local"
ADMIN_PASSWORD = "admin-pass"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        jwt_secret="test-secret",
        superuser_email=ADMIN_EMAIL,
        superuser_password=ADMIN_PASSWORD,
        superuser_name="Админ Тестов",
        log_level="WARNING",
    )


@pytest.fixture
def client(settings):
    """Тестовый клиент приложения (lifespan создаёт схему, администратора и вопросы)."""
    app = create_app(settings)
    with TestClient(app) as c:
        yield c


def login(client, email, password):
    r = client.post("/auth/login", data={"username": email, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def admin_headers(client):
    return login(client, ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def make_user(client, admin_headers):
    """Зарегистрировать пользователя с ролью и вернуть (профиль, заголовки)."""
    counter = {"n": 0}

    def _make(role="operator", full_name=None):
        counter["n"] += 1
        email = f"{role}{counter['n']}@test.local"
        r = client.post(
            "/auth/register",
            json={
                "email": email,
                "password": "secret-1",
                "full_name": full_name or f"{role.title()} {counter['n']}",
                "role": role,
            },
            headers=admin_headers,
        )
        assert r.status_code == 201, r.text
        return r.json(), login(client, email, "secret-1")

    return _make


@pytest.fixture
def make_machine(client, admin_headers):
    def _make(code="EXC-01", name="Экскаватор", location="Карьер 1", **extra):
        r = client.post(
            "/machines",
            json={"code": code, "name": name, "location": location, **extra},
            headers=admin_headers,
        )
        assert r.status_code == 201, r.text
        return r.json()

    return _make


@pytest.fixture
def run_db(settings):
    """Выполнить async-функцию с сессией на той же тестовой БД (свой движок на каждый вызов)."""
    def _run(fn):
        async def _main():
            backend = BackendClient(settings.database_url)
            try:
                await backend.create_schema()
                async with backend.session() as session:
                    return await fn(session)
            finally:
                await backend.dispose()
        return asyncio.run(_main())

    return _run
