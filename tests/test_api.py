"""Tests for the compile service API."""

import pytest
from fastapi.testclient import TestClient

from api.database import Database
from api.main import app
from api.routers.apps import get_compiler
from api.services.compiler import CompilerService


@pytest.fixture
def client(tmp_path, forward_context):
    database = Database(f"sqlite:///{tmp_path / 'test.db'}")
    app.dependency_overrides[get_compiler] = lambda: CompilerService(forward_context, database)
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_preview_does_not_record(client, storage_spec):
    response = client.post("/api/v1/apps/preview", json=storage_spec)
    body = response.json()

    assert response.status_code == 200
    assert body["app_name"] == "demo"
    assert body["auth_mode"] == "none"
    assert body["storage"]["storage_class"] == "longhorn-persistent"
    assert body["storage"]["reclaim_policy"] == "Retain"
    assert body["diff"] is None
    assert client.get("/api/v1/apps/demo").status_code == 404


def test_compile_records_and_diffs(client, basic_spec, forward_spec):
    """Test that a second compile reports changes against the first."""
    first = client.post("/api/v1/apps", json=basic_spec).json()
    assert len(first["diff"]["create"]) == len(first["nodes"])

    second = client.post("/api/v1/apps", json=forward_spec).json()
    assert second["diff"]["create"] == ["ConfigMap/demo/demo-forward-auth"]
    assert second["diff"]["update"] == ["Ingress/demo/demo"]
    assert second["diff"]["delete"] == []

    third = client.post("/api/v1/apps", json=forward_spec).json()
    assert third["diff"]["create"] == third["diff"]["update"] == third["diff"]["delete"] == []


def test_list_and_get(client, basic_spec):
    client.post("/api/v1/apps", json=basic_spec)
    client.post("/api/v1/apps", json={**basic_spec, "name": "another"})

    listed = client.get("/api/v1/apps").json()
    assert [item["app_name"] for item in listed] == ["another", "demo"]

    snapshot = client.get("/api/v1/apps/demo").json()
    assert snapshot["nodes"][0]["id"] == "Namespace/demo"


def test_delete_returns_teardown_order(client, storage_spec):
    client.post("/api/v1/apps", json=storage_spec)

    response = client.delete("/api/v1/apps/demo")
    body = response.json()

    assert response.status_code == 200
    assert body["delete"][0] == "Certificate/demo/demo-tls"
    assert body["delete"][-1] == "Namespace/demo"
    assert client.get("/api/v1/apps/demo").status_code == 404


def test_delete_unknown(client):
    assert client.delete("/api/v1/apps/missing").status_code == 404


def test_validation_error_lists_violations(client):
    response = client.post("/api/v1/apps/preview", json={"name": "Bad", "image": "", "port": 0})
    body = response.json()

    assert response.status_code == 422
    assert body["app"] == "Bad"
    assert len(body["violations"]) == 3


def test_configuration_error(tmp_path, context, forward_spec):
    database = Database(f"sqlite:///{tmp_path / 'test.db'}")
    app.dependency_overrides[get_compiler] = lambda: CompilerService(context, database)
    try:
        response = TestClient(app).post("/api/v1/apps", json=forward_spec)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 409
    assert response.json()["violations"][0].startswith("auth.mode:")
    assert database.get_snapshot("demo") is None
