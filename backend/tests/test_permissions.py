"""Права по ролям и решения роутера клиента."""
import pytest

from machlog.core.permissions import (
    Resource,
    SessionState,
    can_access_resource,
    can_manage_machines,
    can_manage_users,
    evaluate_route,
    find_rule,
)


@pytest.mark.parametrize("role, machines, users", [
    ("operator", False, False),
    ("technician", True, False),
    ("admin", True, True),
    ("ghost", False, False),
    (None, False, False),
])
def test_resource_table(role, machines, users):
    assert can_manage_machines(role) is machines
    assert can_manage_users(role) is users
    assert can_access_resource(role, Resource.INSPECTION) is (role in ("operator", "technician", "admin"))


def test_login_is_public_in_any_state():
    for state in SessionState:
        assert evaluate_route("/login", state).action == "render"


def test_loading_session_waits():
    d = evaluate_route("/machines", SessionState.LOADING)
    assert d.action == "wait"
    assert d.location is None


def test_unauthenticated_goes_to_login():
    d = evaluate_route("/checklist/abc", SessionState.UNAUTHENTICATED)
    assert (d.action, d.location) == ("redirect", "/login")


def test_role_gates():
    auth = SessionState.AUTHENTICATED
    assert evaluate_route("/machines", auth, "operator").location == "/"
    assert evaluate_route("/machines", auth, "technician").action == "render"
    assert evaluate_route("/users", auth, "technician").location == "/"
    assert evaluate_route("/register", auth, "admin").action == "render"
    assert evaluate_route("/machine/1234", auth, "operator").action == "render"
    assert evaluate_route("/", auth, "operator").action == "render"


def test_unknown_path_redirects_home():
    d = evaluate_route("/nowhere", SessionState.AUTHENTICATED, "admin")
    assert (d.action, d.location) == ("redirect", "/")


def test_params_match_single_segment():
    assert find_rule("/machine/abc").pattern == "/machine/:scanToken"
    assert find_rule("/machine/abc/extra") is None
    assert find_rule("/machines/").pattern == "/machines"


def test_route_endpoint_follows_role(client, make_user):
    _op, op_headers = make_user("operator")
    r = client.get("/auth/route", params={"path": "/users"}, headers=op_headers)
    assert r.json() == {"path": "/users", "action": "redirect", "location": "/"}

    r = client.get("/auth/route", params={"path": "/users"})
    assert r.json()["location"] == "/login"


def test_route_endpoint_follows_demotion(client, admin_headers, make_user):
    """После смены роли следующий же запрос с тем же токеном видит новую роль."""
    tech, headers = make_user("technician")
    assert client.get("/auth/route", params={"path": "/machines"}, headers=headers).json()["action"] == "render"
    assert client.get("/machines", headers=headers).status_code == 200

    client.patch(f"/users/{tech['id']}", json={"role": "operator"}, headers=admin_headers)
    r = client.get("/auth/route", params={"path": "/machines"}, headers=headers)
    assert r.json()["location"] == "/"
    assert client.get("/machines", headers=headers).status_code == 403
