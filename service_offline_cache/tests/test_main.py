"""
Unit tests for the offline cache service.
"""

import pytest
from fastapi.testclient import TestClient

from service_offline_cache.app.main import OfflineCacheService, create_storage
from service_offline_cache.app.caching.redis_storage import RedisCacheStorage
from service_offline_cache.app.caching.storage import MemoryCacheStorage
from shared.config import get_config
from shared.errors import ValidationError
from shared.test_helpers import HTML_ACCEPT, FakeNetwork, default_site


def make_config(**overrides):
    settings = {
        "site_origin": "http://testserver",
        "upstream_url": "http://upstream",
        "storage_backend": "memory",
    }
    settings.update(overrides)
    return get_config("offline_cache", 8080, **settings)


class TestOfflineCacheService:
    """Test cases for OfflineCacheService."""

    @pytest.fixture
    def network(self):
        return FakeNetwork()

    @pytest.fixture
    def service(self, network):
        return OfflineCacheService(make_config(), transport=network.transport())

    @pytest.fixture
    def client(self, service):
        with TestClient(service.app) as client:
            yield client

    def test_startup_activates_configured_version(self, client, network):
        """Startup pre-warms the manifest and activates v1."""
        response = client.get("/_worker/status")

        assert response.status_code == 200
        data = response.json()
        assert data["active"]["version"] == "v1"
        assert data["active"]["state"] == "active"
        assert data["waiting"] is None
        assert data["caches"] == ["kontrollitud-static-v1", "kontrollitud-dynamic-v1"]
        assert sorted(network.paths()) == ["/", "/index.html", "/manifest.json", "/robots.txt"]
        assert all(request.url.host == "upstream" for request in network.calls)

    def test_health_check(self, client):
        """Health reports storage and worker status."""
        response = client.get("/_worker/health")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "offline_cache"
        assert data["status"] == "ok"
        assert data["dependencies"] == {"cache_storage": "ok", "worker": "ok"}

    def test_metrics_endpoint(self, client):
        """Prometheus exposition includes worker metrics."""
        client.get("/assets/app.js")

        response = client.get("/_worker/metrics")

        assert response.status_code == 200
        assert "offline_cache_worker_state" in response.text
        assert "offline_cache_responses_total" in response.text

    def test_document_served_from_cache_when_offline(self, client, network):
        """A visited page stays readable once the network is gone."""
        online = client.get("/companies/spa-tervis", headers={"Accept": HTML_ACCEPT})
        network.offline = True
        offline = client.get("/companies/spa-tervis", headers={"Accept": HTML_ACCEPT})

        assert online.status_code == 200
        assert offline.status_code == 200
        assert offline.text == "<html>Spa Tervis</html>"
        assert offline.headers["content-type"].startswith("text/html")

    def test_unvisited_document_gets_app_shell_when_offline(self, client, network):
        """Offline navigations fall back to the pre-warmed app shell."""
        network.offline = True

        response = client.get("/companies/not-visited", headers={"Accept": HTML_ACCEPT})

        assert response.status_code == 200
        assert response.text == "<html>app shell</html>"

    def test_asset_served_from_cache(self, client, network):
        """A cached asset is served without contacting the upstream."""
        first = client.get("/assets/app.js")
        second = client.get("/assets/app.js")

        assert first.text == second.text == "console.log('app')"
        assert network.paths().count("/assets/app.js") == 1

    def test_default_request_offline(self, client, network):
        """Network-only requests turn failures into a 408."""
        network.offline = True

        response = client.get("/sitemap.xml")

        assert response.status_code == 408
        assert response.text == "Network error"

    def test_api_request_offline(self, client, network):
        """API failures propagate as NETWORK_ERROR."""
        network.offline = True

        response = client.get("/api/companies")

        assert response.status_code == 502
        assert response.json()["code"] == "NETWORK_ERROR"

    def test_post_bypasses_caches(self, client, service, network):
        """Non-GET requests reach the upstream and are never cached."""
        response = client.post("/companies/spa-tervis", content=b"review=5", headers={"Accept": HTML_ACCEPT})

        assert response.status_code == 200
        assert network.calls[-1].method == "POST"
        assert network.calls[-1].content == b"review=5"
        status = client.get("/_worker/status").json()
        assert status["caches"] == ["kontrollitud-static-v1", "kontrollitud-dynamic-v1"]

    def test_skip_waiting_message(self, client):
        """Control messages go to the active worker when nothing waits."""
        response = client.post("/_worker/message", json={"type": "SKIP_WAITING"})

        assert response.status_code == 200
        data = response.json()
        assert data["handled"] is True
        assert data["version"] == "v1"
        assert data["registration"]["active"]["skip_waiting"] is True

    def test_unknown_message_is_ignored(self, client):
        response = client.post("/_worker/message", json={"type": "PURGE"})

        assert response.status_code == 200
        assert response.json()["handled"] is False

    def test_update_evicts_previous_version(self, client):
        """Installing v2 replaces v1 and deletes its caches."""
        response = client.post("/_worker/update", json={"version": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["version"] == "v2"
        assert data["state"] == "active"
        status = client.get("/_worker/status").json()
        assert status["active"]["version"] == "v2"
        assert status["caches"] == ["kontrollitud-static-v2", "kontrollitud-dynamic-v2"]

    def test_update_to_registered_version(self, client):
        response = client.post("/_worker/update", json={"version": 1})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_update_invalid_body(self, client):
        response = client.post("/_worker/update", json={"version": "latest"})

        assert response.status_code == 422

    def test_unknown_client_disconnect(self, client):
        response = client.delete("/_worker/clients/tab-9")

        assert response.status_code == 200
        assert response.json()["disconnected"] is False


class TestWaitingWorker:
    """Test cases for updates that wait for open clients."""

    @pytest.fixture
    def network(self):
        return FakeNetwork()

    @pytest.fixture
    def client(self, network):
        service = OfflineCacheService(
            make_config(skip_waiting_on_install=False),
            transport=network.transport(),
        )
        with TestClient(service.app) as client:
            yield client

    def test_update_waits_until_client_closes(self, client):
        """v2 waits while tab-1 is open and takes over once it closes."""
        client.get("/", headers={"Accept": HTML_ACCEPT, "X-Client-Id": "tab-1"})

        update = client.post("/_worker/update", json={"version": 2})
        assert update.json()["state"] == "waiting"

        response = client.delete("/_worker/clients/tab-1")

        data = response.json()
        assert data["disconnected"] is True
        assert data["registration"]["active"]["version"] == "v2"
        assert data["registration"]["waiting"] is None

    def test_skip_waiting_message_promotes_waiting_worker(self, client):
        client.get("/", headers={"Accept": HTML_ACCEPT, "X-Client-Id": "tab-1"})
        client.post("/_worker/update", json={"version": 2})

        response = client.post("/_worker/message", json={"type": "SKIP_WAITING"})

        data = response.json()
        assert data["version"] == "v2"
        assert data["state"] == "active"
        assert data["registration"]["active"]["version"] == "v2"
        assert data["registration"]["clients"] == 1


class TestInstallFailure:
    """Test cases for a deployment whose manifest cannot be fetched."""

    def test_requests_pass_through_without_worker(self):
        pages = default_site()
        del pages["/manifest.json"]
        network = FakeNetwork(pages)
        service = OfflineCacheService(make_config(), transport=network.transport())

        with TestClient(service.app) as client:
            health = client.get("/_worker/health").json()
            first = client.get("/assets/app.js")
            second = client.get("/assets/app.js")
            status = client.get("/_worker/status").json()

        assert health["dependencies"]["worker"] == "error"
        assert first.status_code == second.status_code == 200
        assert network.paths().count("/assets/app.js") == 2
        assert status["active"] is None


class TestCreateStorage:
    """Test cases for storage backend selection."""

    def test_memory_backend(self):
        assert isinstance(create_storage(make_config()), MemoryCacheStorage)

    def test_redis_backend(self):
        storage = create_storage(make_config(storage_backend="redis", redis_namespace="test"))

        assert isinstance(storage, RedisCacheStorage)
        assert storage.index_key == "test:caches"

    def test_unknown_backend(self):
        with pytest.raises(ValidationError):
            create_storage(make_config(storage_backend="sqlite"))
