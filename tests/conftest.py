import pytest
from fastapi.testclient import TestClient

from lab_gear.app import create_app
from lab_gear.config import LabGearConfig

API_TOKEN = "test-token-123"


@pytest.fixture
def config(tmp_path):
    return LabGearConfig(api_token=API_TOKEN, db_path=str(tmp_path / "lab_gear.db"))


@pytest.fixture
def app(config):
    return create_app(config)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {API_TOKEN}"}


@pytest.fixture
def pve2_payload():
    return {
        "name": "pve2",
        "kind": "proxmox",
        "make": "Dell",
        "model": "OptiPlex 7050",
        "cpu": "i7-7700",
        "ram_gb": 32,
        "storage_tb": 1.5,
        "location": "rack-1",
        "serial": "SN-0042",
        "notes": "primary hypervisor",
    }
