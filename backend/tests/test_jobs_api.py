import unittest
from unittest.mock import AsyncMock, MagicMock

from fakes import TEST_SECRET, FakeRenderBackend, build_gateway
from fastapi import Request
from fastapi.testclient import TestClient

from repoviz.api.deps import get_gateway, get_rate_limit_store
from repoviz.config import Settings
from repoviz.dtos.job import VisualizationSettings
from repoviz.main import create_app
from repoviz.middleware.request_context import client_identity
from repoviz.repositories.rate_limit_store import InMemoryRateLimitStore
from repoviz.services.exceptions import ConfigurationError

REPO = "https://github.com/acme/widgets"


class ApiTestCase(unittest.TestCase):
    quota = 20
    settings_overrides = {}

    def setUp(self):
        self.backend = FakeRenderBackend()
        self.gateway = build_gateway(self.backend, quota=self.quota)
        self.store = InMemoryRateLimitStore()

        # Lifespan is not entered, so no Redis connection is made
        self.app = create_app(Settings(SECRET_KEY=TEST_SECRET, **self.settings_overrides))
        self.app.dependency_overrides[get_gateway] = lambda: self.gateway
        self.app.dependency_overrides[get_rate_limit_store] = lambda: self.store
        self.client = TestClient(self.app)

    def tearDown(self):
        self.app.dependency_overrides.clear()


class TestStartEndpoint(ApiTestCase):
    quota = 2

    def test_start_returns_job_id_and_rate_limit_headers(self):
        response = self.client.post("/jobs/start", json={"repo_url": REPO})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"job_id": "job-1"})
        self.assertEqual(response.headers["X-RateLimit-Limit"], "2")
        self.assertEqual(response.headers["X-RateLimit-Remaining"], "1")
        self.assertIn("X-Request-ID", response.headers)

    def test_quota_exhausted_returns_429(self):
        self.client.post("/jobs/start", json={"repo_url": REPO})
        self.client.post("/jobs/start", json={"repo_url": REPO})

        response = self.client.post("/jobs/start", json={"repo_url": REPO})

        self.assertEqual(response.status_code, 429)
        body = response.json()
        self.assertEqual(body["code"], "RATE_LIMITED")
        self.assertEqual(body["limit"], 2)
        self.assertEqual(body["remaining"], 0)
        self.assertGreater(int(response.headers["Retry-After"]), 0)
        self.assertEqual(response.headers["X-RateLimit-Remaining"], "0")
        self.assertEqual(len(self.backend.start_payloads), 2)

    def test_rotating_forwarded_for_does_not_reset_quota(self):
        codes = [
            self.client.post(
                "/jobs/start",
                json={"repo_url": REPO},
                headers={"X-Forwarded-For": f"6.6.6.{i}", "X-Real-IP": f"7.7.7.{i}"},
            ).status_code
            for i in range(10)
        ]

        self.assertEqual(codes[:2], [200, 200])
        self.assertEqual(set(codes[2:]), {429})
        self.assertEqual(len(self.backend.start_payloads), 2)

    def test_invalid_repo_url_is_bad_request(self):
        response = self.client.post("/jobs/start", json={"repo_url": "not a url"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "BAD_REQUEST")
        self.assertEqual(self.backend.requests, [])

    def test_missing_body_field_is_validation_error(self):
        response = self.client.post("/jobs/start", json={})

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["code"], "VALIDATION_ERROR")

    def test_out_of_range_font_size_rejected(self):
        response = self.client.post(
            "/jobs/start",
            json={"repo_url": REPO, "settings": {"dir_font_size": 99}},
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(self.backend.requests, [])

    def test_backend_failure_is_generic_502(self):
        self.backend.fail_with = 500

        response = self.client.post("/jobs/start", json={"repo_url": REPO})

        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json(), {"error": "Rendering backend unavailable", "code": "GATEWAY_ERROR"})


class TestStartBehindTrustedProxy(ApiTestCase):
    quota = 2
    settings_overrides = {"TRUST_FORWARDED_FOR": True, "TRUSTED_PROXY_COUNT": 1}

    def test_identity_is_the_proxy_appended_hop(self):
        codes = [
            self.client.post(
                "/jobs/start",
                json={"repo_url": REPO},
                headers={"X-Forwarded-For": f"6.6.6.{i}, 203.0.113.7"},
            ).status_code
            for i in range(4)
        ]
        other = self.client.post(
            "/jobs/start",
            json={"repo_url": REPO},
            headers={"X-Forwarded-For": "6.6.6.1, 198.51.100.2"},
        )

        self.assertEqual(codes, [200, 200, 429, 429])
        self.assertEqual(other.status_code, 200)


class TestClientIdentity(unittest.TestCase):
    def request(self, forwarded=None, peer=("10.0.0.9", 5000)):
        headers = [(b"x-forwarded-for", forwarded.encode())] if forwarded else []
        return Request({"type": "http", "headers": headers, "client": peer})

    def test_peer_address_by_default(self):
        self.assertEqual(client_identity(self.request("1.2.3.4")), "10.0.0.9")

    def test_forwarded_hop_counted_from_the_right(self):
        request = self.request("6.6.6.6, 1.2.3.4, 172.16.0.1")

        self.assertEqual(client_identity(request, trust_forwarded_for=True), "172.16.0.1")
        self.assertEqual(client_identity(request, trust_forwarded_for=True, trusted_proxy_count=2), "1.2.3.4")
        self.assertEqual(client_identity(request, trust_forwarded_for=True, trusted_proxy_count=9), "6.6.6.6")

    def test_falls_back_to_peer_without_header(self):
        self.assertEqual(client_identity(self.request(), trust_forwarded_for=True), "10.0.0.9")
        self.assertEqual(client_identity(self.request(peer=None)), "anonymous")


class TestStatusAndStopEndpoints(ApiTestCase):
    def test_settings_round_trip_through_status(self):
        chosen = {"show_usernames": False, "dir_font_size": 14}
        job_id = self.client.post("/jobs/start", json={"repo_url": REPO, "settings": chosen}).json()["job_id"]

        response = self.client.get(f"/jobs/{job_id}/status")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["Cache-Control"], "no-store")
        body = response.json()
        self.assertEqual(body["step"], 1)
        self.assertEqual(body["repo_url"], REPO)
        self.assertEqual(
            VisualizationSettings.model_validate(body["settings"]),
            VisualizationSettings(show_usernames=False, dir_font_size=14),
        )

    def test_unknown_job_is_404(self):
        response = self.client.get("/jobs/expired/status")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "NOT_FOUND")

    def test_stop_is_idempotent_over_get_and_post(self):
        job_id = self.client.post("/jobs/start", json={"repo_url": REPO}).json()["job_id"]

        first = self.client.post(f"/jobs/{job_id}/stop")
        second = self.client.get(f"/jobs/{job_id}/stop")

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.json(), {"acknowledged": True})
        self.assertEqual(self.backend.stop_calls, [job_id, job_id])

    def test_stop_by_body(self):
        job_id = self.client.post("/jobs/start", json={"repo_url": REPO}).json()["job_id"]

        response = self.client.post("/jobs/stop", json={"job_id": job_id})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.backend.stop_calls, [job_id])

    def test_stop_without_job_id_is_bad_request(self):
        for kwargs in ({"json": {}}, {}):
            response = self.client.post("/jobs/stop", **kwargs)
            self.assertEqual(response.status_code, 400)
        self.assertEqual(self.backend.stop_calls, [])


class TestVideoEndpoint(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.backend.videos["job-1"] = bytes(1000)

    def test_range_request_returns_partial_content(self):
        response = self.client.get("/jobs/job-1/video", headers={"Range": "bytes=100-199"})

        self.assertEqual(response.status_code, 206)
        self.assertEqual(response.headers["Content-Range"], "bytes 100-199/1000")
        self.assertEqual(len(response.content), 100)
        self.assertEqual(response.headers["Accept-Ranges"], "bytes")
        self.assertTrue(response.headers["Content-Type"].startswith("video/mp4"))

    def test_full_video(self):
        response = self.client.get("/jobs/job-1/video")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.content), 1000)
        self.assertIn("immutable", response.headers["Cache-Control"])

    def test_unsatisfiable_range_is_416(self):
        response = self.client.get("/jobs/job-1/video", headers={"Range": "bytes=2000-"})

        self.assertEqual(response.status_code, 416)
        self.assertEqual(response.headers["Content-Range"], "bytes */1000")
        self.assertEqual(response.json()["code"], "RANGE_NOT_SATISFIABLE")

    def test_missing_video_is_404(self):
        response = self.client.get("/jobs/job-9/video")

        self.assertEqual(response.status_code, 404)


class TestStatsAndHealth(ApiTestCase):
    def test_count_is_plain_text(self):
        self.client.post("/jobs/start", json={"repo_url": REPO})
        self.client.post("/jobs/start", json={"repo_url": REPO})

        response = self.client.get("/stats/count")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.text, "2")
        self.assertTrue(response.headers["Content-Type"].startswith("text/plain"))

    def test_health(self):
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "healthy")

    def test_store_health(self):
        self.assertEqual(self.client.get("/health/store").json()["store"], "connected")

        broken = MagicMock()
        broken.ping = AsyncMock(return_value=False)
        self.app.dependency_overrides[get_rate_limit_store] = lambda: broken

        body = self.client.get("/health/store").json()
        self.assertEqual(body["status"], "unhealthy")
        self.assertEqual(body["store"], "disconnected")


class TestStartup(unittest.TestCase):
    def test_missing_secret_key_refuses_to_start(self):
        app = create_app(Settings(SECRET_KEY=None))

        with self.assertRaises(ConfigurationError):
            with TestClient(app):
                pass


if __name__ == "__main__":
    unittest.main()
