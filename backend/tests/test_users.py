"""Пользователи: список с фильтром, правка роли, удаление-надгробие."""


def test_users_admin_only(client, make_user):
    _tech, headers = make_user("technician")
    assert client.get("/users", headers=headers).status_code == 403


def test_list_and_filter(client, admin_headers, make_user):
    make_user("operator", full_name="Иван Петров")
    make_user("technician", full_name="Anna Smith")

    users = client.get("/users", headers=admin_headers).json()
    assert len(users) == 3
    # новые сверху
    assert users[0]["full_name"] == "Anna Smith"

    r = client.get("/users", params={"q": "SMITH"}, headers=admin_headers)
    assert [u["full_name"] for u in r.json()] == ["Anna Smith"]
    r = client.get("/users", params={"q": "techn"}, headers=admin_headers)
    assert [u["role"] for u in r.json()] == ["technician"]
    r = client.get("/users", params={"q": "@test.local"}, headers=admin_headers)
    assert len(r.json()) == 3


def test_update_role_and_name(client, admin_headers, make_user):
    op, _headers = make_user("operator")
    r = client.patch(
        f"/users/{op['id']}",
        json={"full_name": "Пётр Сидоров", "role": "technician"},
        headers=admin_headers,
    )
    assert r.status_code == 200
    data = r.json()
    assert data["role"] == "technician"
    assert data["full_name"] == "Пётр Сидоров"
    assert data["email"] == op["email"]

    r = client.patch(f"/users/{op['id']}", json={"role": "boss"}, headers=admin_headers)
    assert r.status_code == 422


def test_delete_is_tombstone(client, admin_headers, make_user, make_machine):
    op, op_headers = make_user("operator")
    m = make_machine()
    checkin = client.post(f"/machines/scan/{m['qr_code_uuid']}/checkins", headers=op_headers).json()

    r = client.delete(f"/users/{op['id']}", headers=admin_headers)
    assert r.json() == {"ok": True}

    assert client.get("/auth/me", headers=op_headers).status_code == 401
    r = client.post("/auth/login", data={"username": op["email"], "password": "secret-1"})
    assert r.status_code == 401
    assert op["id"] not in [u["id"] for u in client.get("/users", headers=admin_headers).json()]
    assert client.delete(f"/users/{op['id']}", headers=admin_headers).status_code == 404

    # история осмотров остаётся
    r = client.get(f"/checkins/{checkin['id']}", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["user_id"] == op["id"]


def test_cannot_delete_self(client, admin_headers):
    me = client.get("/auth/me", headers=admin_headers).json()
    r = client.delete(f"/users/{me['id']}", headers=admin_headers)
    assert r.status_code == 400
