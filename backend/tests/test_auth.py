import pytest

from authentication.local_users import verify_local_user
from authentication.security import create_access_token


def _login(client, email="manager@commission-tracker.com", password="manager123"):
    return client.post("/auth/login", json={"email": email, "password": password})


def test_login_and_me(anon_client):
    response = _login(anon_client)

    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "bearer"
    assert body["role"] == "manager"

    me = anon_client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.status_code == 200
    assert me.json()["email"] == "manager@commission-tracker.com"


def test_wrong_password_is_rejected(anon_client):
    assert _login(anon_client, password="nope").status_code == 401


def test_unknown_user_is_rejected():
    assert verify_local_user("someone@commission-tracker.com", "manager123") is None


@pytest.mark.parametrize(
    "path",
    ["/commissions", "/dashboard/summaries", "/dashboard/metrics", "/devices/annotations", "/files"],
)
def test_protected_routes_need_a_token(anon_client, path):
    assert anon_client.get(path).status_code == 401


def test_invalid_token_is_rejected(anon_client):
    response = anon_client.get("/commissions", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 401


def test_token_for_unknown_user_is_rejected(anon_client):
    token = create_access_token({"sub": "ghost@commission-tracker.com", "role": "manager"})

    response = anon_client.get("/commissions", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_health_is_public(anon_client):
    assert anon_client.get("/health").json() == {"status": "ok"}
