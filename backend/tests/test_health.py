"""Проверка живости приложения."""


def test_health(client):
    """GET /health возвращает 200 и status ok."""
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data.get("status") == "ok"


def test_health_without_database(tmp_path):
    """Недоступная БД не мешает старту: /health отвечает, сессия считается отсутствующей."""
    from fastapi.testclient import TestClient

    from machlog.config import Settings
    from machlog.main import create_app

    missing = tmp_path / "no-such-dir" / "db.sqlite"
    app = create_app(Settings(database_url=f"sqlite+aiosqlite:///{missing}", jwt_secret="x"))
    with TestClient(app) as c:
        assert c.get("/health").json() == {"status": "ok"}
        assert c.get("/auth/session").json()["status"] == "unauthenticated"
