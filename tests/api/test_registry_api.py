import json

import pytest
from fastapi.testclient import TestClient

from chat_relay.api.registry import create_app
from chat_relay.services.registry import ServiceRegistry


@pytest.fixture
def registry_file(tmp_path):
    return str(tmp_path / "service-registry.json")


@pytest.fixture
def client(config, registry_file):
    app = create_app(config, registry=ServiceRegistry(registry_file))
    with TestClient(app) as test_client:
        yield test_client


def register(client, name="api", url="http://localhost:3002", **extra):
    return client.post("/register", json={"serviceName": name, "url": url, **extra})


class TestRegistryApi:
    def test_register_and_lookup(self, client):
        response = register(client, metadata={"type": "chat-proxy"})
        assert response.status_code == 200
        assert response.json() == {"success": True, "message": "Service 'api' registered successfully"}

        service = client.get("/service/api").json()
        assert service["url"] == "http://localhost:3002"
        assert service["health"] == "http://localhost:3002/health"
        assert service["metadata"] == {"type": "chat-proxy"}
        assert "lastRegistered" in service

    def test_custom_health_url(self, client):
        register(client, health="http://localhost:3002/api/ai-chat/ping")
        assert client.get("/service/api").json()["health"] == "http://localhost:3002/api/ai-chat/ping"

    def test_register_missing_url(self, client):
        response = client.post("/register", json={"serviceName": "api"})
        assert response.status_code == 400
        assert response.json()["detail"]["error"]["code"] == "missing_required_field"

    def test_register_invalid_body(self, client):
        response = client.post("/register", content=b"[]", headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json()["detail"]["error"]["code"] == "invalid_request_format"

    def test_list_services(self, client):
        register(client, "api", "http://localhost:3002")
        register(client, "frontend", "http://localhost:3000")
        services = client.get("/services").json()
        assert set(services) == {"api", "frontend"}

    def test_unregister(self, client):
        register(client)
        response = client.post("/unregister", json={"serviceName": "api"})
        assert response.json() == {"success": True, "message": "Service 'api' unregistered successfully"}
        assert client.get("/service/api").status_code == 404

    def test_unregister_unknown(self, client):
        response = client.post("/unregister", json={"serviceName": "ghost"})
        assert response.status_code == 404
        assert response.json()["detail"]["error"]["message"] == "Service 'ghost' not found"

    def test_unregister_requires_name(self, client):
        assert client.post("/unregister", json={}).status_code == 400

    def test_health(self, client):
        register(client)
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["service"] == "Service Registry"
        assert data["serviceCount"] == 1
        assert data["uptime"] >= 0

    def test_registry_file_reflects_mutations(self, client, registry_file):
        register(client, "api")
        register(client, "frontend", "http://localhost:3000")
        client.post("/unregister", json={"serviceName": "api"})
        with open(registry_file, encoding="utf-8") as f:
            assert list(json.load(f)) == ["frontend"]


class TestRegistryLifecycle:
    def test_state_survives_restart(self, config, registry_file):
        with TestClient(create_app(config, registry=ServiceRegistry(registry_file))) as first:
            register(first, "api")

        with TestClient(create_app(config, registry=ServiceRegistry(registry_file))) as second:
            assert second.get("/service/api").status_code == 200
            assert second.get("/health").json()["serviceCount"] == 1
