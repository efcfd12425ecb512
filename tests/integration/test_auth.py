import pytest

MACHINES = "/api/v1/machines"
PAYLOAD = {"name": "pve1", "kind": "proxmox", "make": "Lenovo", "model": "M720q"}


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"Authorization": "Bearer wrong-token"},
        {"Authorization": "Basic dGVzdDp0ZXN0"},
        {"Authorization": "bearer test-token-123"},
        {"Authorization": "Bearer "},
        {"Authorization": "test-token-123"},
    ],
)
def test_protected_routes_reject_bad_credentials(client, headers):
    response = client.get(MACHINES, headers=headers)
    assert response.status_code == 401
    assert response.json() == {"error": "unauthorized"}
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_unauthenticated_create_has_no_side_effect(client, auth_headers):
    response = client.post(MACHINES, json=PAYLOAD, headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401

    assert client.get(MACHINES, headers=auth_headers).json() == []


def test_unauthenticated_update_and_delete_leave_record_alone(client, auth_headers):
    record = client.post(MACHINES, json=PAYLOAD, headers=auth_headers).json()
    url = f"{MACHINES}/{record['id']}"

    assert client.put(url, json={**PAYLOAD, "name": "evil"}).status_code == 401
    assert client.delete(url).status_code == 401

    assert client.get(url, headers=auth_headers).json() == record


def test_auth_runs_before_body_parsing(client):
    response = client.post(
        MACHINES, content=b"{not json", headers={"Content-Type": "application/json"}
    )
    assert response.status_code == 401


def test_auth_runs_before_existence_check(client):
    assert client.get(f"{MACHINES}/missing").status_code == 401
    assert client.delete(f"{MACHINES}/missing").status_code == 401


def test_health_is_public(client):
    assert client.get("/healthz").status_code == 200
