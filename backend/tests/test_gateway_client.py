import unittest

import httpx
from fakes import TEST_SECRET, FakeRenderBackend, build_gateway

from repoviz.api.deps import get_gateway
from repoviz.client.gateway_client import JobGatewayClient
from repoviz.client.session import VisualizationSession
from repoviz.config import Settings
from repoviz.dtos.job import JobState, ProgressStep, VisualizationSettings
from repoviz.main import create_app
from repoviz.services.exceptions import (
    JobNotFoundError,
    JobValidationError,
    RateLimitExceededError,
    UpstreamError,
)

REPO = "https://github.com/acme/widgets"


class TestJobGatewayClient(unittest.IsolatedAsyncioTestCase):
    """Client against the real application over an in-process ASGI transport."""

    async def asyncSetUp(self):
        self.backend = FakeRenderBackend()
        self.gateway = build_gateway(self.backend, quota=2)
        self.app = create_app(Settings(SECRET_KEY=TEST_SECRET))
        self.app.dependency_overrides[get_gateway] = lambda: self.gateway
        self.client = JobGatewayClient(
            httpx.AsyncClient(transport=httpx.ASGITransport(app=self.app), base_url="http://gateway.test")
        )

    async def asyncTearDown(self):
        await self.client.aclose()
        await self.gateway.aclose()

    async def test_start_status_stop(self):
        settings = VisualizationSettings(show_usernames=False)

        job_id = await self.client.start(REPO, access_token="ghp_secret", settings=settings)
        view = await self.client.status(job_id)
        acknowledged = await self.client.stop(job_id)

        self.assertEqual(job_id, "job-1")
        self.assertEqual(view.step, ProgressStep.INITIALIZING_PROJECT)
        self.assertEqual(view.settings, settings)
        self.assertTrue(acknowledged)
        self.assertNotEqual(self.backend.start_payloads[0]["access_token"], "ghp_secret")

    async def test_stopped_job_reports_failure(self):
        job_id = await self.client.start(REPO)
        await self.client.stop(job_id)

        view = await self.client.status(job_id)

        self.assertEqual(view.state, JobState.FAILED)

    async def test_errors_map_back_to_exceptions(self):
        with self.assertRaises(JobNotFoundError):
            await self.client.status("nope")

        with self.assertRaises(JobValidationError):
            await self.client.start("not a url")

        await self.client.start(REPO)
        await self.client.start(REPO)
        with self.assertRaises(RateLimitExceededError) as ctx:
            await self.client.start(REPO)
        self.assertEqual(ctx.exception.decision.limit, 2)
        self.assertGreater(ctx.exception.retry_after, 0)

        self.backend.fail_with = 500
        with self.assertRaises(UpstreamError):
            await self.client.status("job-1")

    async def test_count(self):
        await self.client.start(REPO)

        self.assertEqual(await self.client.count(), 1)

    async def test_session_over_http(self):
        session = VisualizationSession(self.client, interval=0.001)

        job_id = await session.submit(REPO, settings=VisualizationSettings(dir_font_size=16))
        self.backend.jobs[job_id].update(step="GeneratingVisualization", video_url=f"/video/{job_id}")
        snapshot = await session.wait()

        self.assertEqual(snapshot.state, JobState.COMPLETED)
        self.assertEqual(session.settings.current.dir_font_size, 16)


if __name__ == "__main__":
    unittest.main()
