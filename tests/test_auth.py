from datetime import timedelta

from pfmp.modules.auth.identity import Identity
from pfmp.modules.auth.models.user import User
from pfmp.modules.auth.services.auth_service import AuthService

from factories import EMAILS

NEW_ACCOUNT = {
    "name": "Paul Bernard",
    "email": "paul.bernard@example.fr",
    "password": "secret-pfmp",
    "role": "TUTOR",
}


def test_login_is_case_insensitive_and_returns_token(client):
    resp = client.post("/auth/login", json={"email": EMAILS["teacher"].upper(), "password": "motdepasse123"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["token_type"] == "bearer"
    assert body["user_role"] == "TEACHER"


def test_wrong_password_is_refused(client):
    resp = client.post("/auth/login", json={"email": EMAILS["teacher"], "password": "nope"})
    assert resp.status_code == 401


def test_me_returns_account(client, login):
    resp = client.get("/auth/me", headers=login("head"))
    assert resp.status_code == 200
    assert resp.json()["email"] == EMAILS["head"]


def test_forged_and_expired_tokens_are_refused(client):
    expired = AuthService.create_access_token(EMAILS["head"], expires_delta=timedelta(minutes=-1))
    for token in ("not-a-jwt", expired):
        resp = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401


def test_inactive_account_cannot_use_its_token(client, login, session):
    headers = login("tutor")
    user = session.query(User).filter(User.email == EMAILS["tutor"]).one()
    user.is_active = False
    session.commit()
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_admin_registers_account(client, login):
    resp = client.post("/auth/register", json=NEW_ACCOUNT, headers=login("admin"))
    assert resp.status_code == 201
    assert resp.json()["role"] == "TUTOR"

    duplicate = client.post("/auth/register", json=NEW_ACCOUNT, headers=login("admin"))
    assert duplicate.status_code == 400

    token = client.post("/auth/login", json={"email": NEW_ACCOUNT["email"], "password": "secret-pfmp"})
    assert token.status_code == 200


def test_only_admins_register_accounts(client, login):
    resp = client.post("/auth/register", json=NEW_ACCOUNT, headers=login("teacher"))
    assert resp.status_code == 403


def test_identity_privilege_from_settings(monkeypatch):
    user = User(name="Chef", email="Chef@Example.fr", is_super_admin=False)
    assert AuthService.identity_for(user) == Identity(email="Chef@Example.fr", is_privileged=False, name="Chef")

    monkeypatch.setattr("pfmp.modules.auth.services.auth_service.settings.SUPER_ADMIN_EMAILS", ["chef@example.fr"])
    assert AuthService.identity_for(user).is_privileged
