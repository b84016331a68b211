"""Tests for /health and / endpoints."""

from vaultgen.services.job_service import JobService


class TestHealth:

    def test_health_returns_200(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["db"] == "ok"
        assert "uptime_seconds" in data
        assert "version" in data
        assert data["active_jobs"] == 0
        assert data["generation_configured"] in (True, False)

    def test_active_jobs_counted(self, client, db):
        service = JobService(db)
        service.enqueue("owner-a", "funnel-1", "sms-sequence")
        service.start(service.enqueue("owner-a", "funnel-1", "email-sequence"))
        assert client.get("/health").json()["active_jobs"] == 2

    def test_root_returns_api_info(self, client):
        resp = client.get("/")
        assert resp.status_code == 200
        assert resp.json()["name"] == "vaultgen API"


class TestResponseHeaders:

    def test_response_includes_middleware_headers(self, client):
        resp = client.get("/health")
        assert "x-request-id" in resp.headers
        assert "x-response-time" in resp.headers

    def test_request_id_echoed(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "abc123"})
        assert resp.headers["x-request-id"] == "abc123"
