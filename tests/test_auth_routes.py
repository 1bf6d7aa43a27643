import jwt

from castaway.models.models import User
from castaway.services import repository as repo
from castaway.services.auth_service import issue_token, verify_token


def _signup(client, handle="marooned", password="secret1", server_code="alpha", **extra):
    body = {"handle": handle, "password": password, "serverCode": server_code}
    body.update(extra)
    return client.post("/api/signup", json=body)


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.get_json()["success"] is True


def test_signup_issues_token_and_seeds_island(client):
    resp = _signup(client)

    assert resp.status_code == 200
    data = resp.get_json()
    assert data["success"] is True
    assert data["user"]["handle"] == "marooned"
    assert data["user"]["server_code"] == "ALPHA"
    assert data["user"]["mode"] == "IDLE"
    assert verify_token(data["token"])["userId"] == data["user"]["id"]
    assert repo.get_room(0, 0, "ALPHA").title == "The Crash Site"


def test_signup_duplicate_handle_is_per_island(client):
    assert _signup(client).status_code == 200

    dup = _signup(client, handle="MAROONED")
    assert dup.status_code == 400
    assert dup.get_json() == {"success": False, "error": "Handle already taken on this island"}

    assert _signup(client, server_code="beta").status_code == 200


def test_signup_validation(client):
    assert _signup(client, handle="ab").get_json()["error"] == "Handle must be between 3 and 20 characters"
    assert _signup(client, password="12345").get_json()["error"] == "Password must be at least 6 characters"
    resp = _signup(client, server_code="   ")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Island code is required"


def test_system_handle_is_reserved(client):
    resp = _signup(client, handle="System")
    assert resp.status_code == 400


def test_access_code_gate(client, test_app, monkeypatch):
    monkeypatch.setitem(test_app.config, "SERVER_ACCESS_CODE", "open-sesame")

    denied = _signup(client)
    assert denied.status_code == 403
    assert denied.get_json()["error"] == "ACCESS DENIED: Invalid Server Code."

    assert _signup(client, accessCode="open-sesame").status_code == 200
    login = client.post("/api/login", json={"handle": "marooned", "password": "secret1", "serverCode": "alpha"})
    assert login.status_code == 403


def test_island_allow_list(client, test_app, monkeypatch):
    monkeypatch.setitem(test_app.config, "VALID_SERVER_CODES", "alpha, beta")

    assert _signup(client, server_code="Beta").status_code == 200
    resp = _signup(client, handle="other", server_code="gamma")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid island code"


def test_login(client):
    _signup(client)

    ok = client.post("/api/login", json={"handle": "marooned", "password": "secret1", "serverCode": "ALPHA"})
    assert ok.status_code == 200
    assert ok.get_json()["user"]["handle"] == "marooned"

    bad = client.post("/api/login", json={"handle": "marooned", "password": "wrong!!", "serverCode": "ALPHA"})
    assert bad.status_code == 401
    assert bad.get_json()["error"] == "Invalid credentials"

    nobody = client.post("/api/login", json={"handle": "ghost", "password": "secret1", "serverCode": "ALPHA"})
    assert nobody.status_code == 401


def test_login_on_wrong_island(client):
    _signup(client)

    resp = client.post("/api/login", json={"handle": "marooned", "password": "secret1", "serverCode": "beta"})

    assert resp.status_code == 401
    assert resp.get_json()["error"] == "Invalid island code for this user"


def test_system_account_cannot_log_in(client):
    _signup(client)
    system = User.query.filter_by(handle="system", server_code="ALPHA").one()
    assert system.check_password("!") is False

    resp = client.post("/api/login", json={"handle": "system", "password": "!", "serverCode": "ALPHA"})
    assert resp.status_code == 401


def test_token_round_trip(make_user, test_app):
    user = make_user()
    claims = verify_token(issue_token(user))

    assert claims["userId"] == user.id
    assert claims["handle"] == user.handle
    assert claims["exp"] > claims["iat"]


def test_rejected_tokens(make_user, test_app, monkeypatch):
    user = make_user()
    forged = jwt.encode({"userId": user.id, "handle": user.handle}, "not-the-secret", algorithm="HS256")
    assert verify_token(forged) is None
    assert verify_token("garbage") is None
    assert verify_token(None) is None

    monkeypatch.setitem(test_app.config, "JWT_EXPIRES_HOURS", -1)
    assert verify_token(issue_token(user)) is None
