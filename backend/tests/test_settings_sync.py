import unittest

from fakes import FakeJobClient, status

from repoviz.client.session import VisualizationSession
from repoviz.client.settings_sync import SettingsSync
from repoviz.dtos.job import JobState, VisualizationSettings

REPO = "https://github.com/acme/widgets"
FAST = 0.001


class TestSettingsSync(unittest.TestCase):
    def test_draft_is_current_before_a_job_exists(self):
        sync = SettingsSync()
        edited = VisualizationSettings(show_dirnames=False)

        sync.edit(edited)

        self.assertEqual(sync.current, edited)
        self.assertEqual(sync.settings_for_start(), edited)

    def test_override_becomes_the_draft(self):
        sync = SettingsSync()
        chosen = VisualizationSettings(user_font_size=20)

        self.assertEqual(sync.settings_for_start(chosen), chosen)
        self.assertEqual(sync.draft, chosen)

    def test_echoed_settings_replace_current_whole(self):
        sync = SettingsSync(VisualizationSettings(dir_font_size=14, show_usernames=False))
        sync.bind_job("job-1")
        echoed = VisualizationSettings(file_font_size=9)

        self.assertTrue(sync.adopt("job-1", echoed))

        self.assertEqual(sync.current, echoed)
        self.assertEqual(sync.current.dir_font_size, 11)
        self.assertTrue(sync.current.show_usernames)
        self.assertEqual(sync.draft, echoed)
        self.assertFalse(sync.adopt("job-1", echoed))

    def test_settings_for_other_job_ignored(self):
        sync = SettingsSync()
        sync.bind_job("job-2")

        self.assertFalse(sync.adopt("job-1", VisualizationSettings(dir_font_size=3)))
        self.assertFalse(sync.adopt("job-2", None))
        self.assertEqual(sync.current, VisualizationSettings())

    def test_unbind_returns_to_draft(self):
        sync = SettingsSync()
        sync.bind_job("job-1", VisualizationSettings(dir_font_size=5))

        sync.unbind()

        self.assertIsNone(sync.job_id)
        self.assertEqual(sync.current, VisualizationSettings())


class TestVisualizationSession(unittest.IsolatedAsyncioTestCase):
    async def test_started_settings_come_back_through_status(self):
        client = FakeJobClient([status(step=1), status(step=2, video_url="/video/job-1")])
        session = VisualizationSession(client, interval=FAST)
        chosen = VisualizationSettings(show_usernames=False, dir_font_size=14)

        job_id = await session.submit(REPO, access_token="ghp_x", settings=chosen)
        snapshot = await session.wait()

        self.assertEqual(job_id, "job-1")
        self.assertEqual(client.started[0]["settings"], chosen)
        self.assertEqual(client.started[0]["access_token"], "ghp_x")
        self.assertEqual(snapshot.state, JobState.COMPLETED)
        self.assertEqual(snapshot.settings, chosen)
        self.assertEqual(session.settings.current, chosen)

    async def test_resume_after_reload_adopts_job_settings(self):
        stored = VisualizationSettings(dir_font_size=18, show_file_extension_key=True)
        client = FakeJobClient([status(step=3, settings=stored, video_url="/video/job-7")])
        session = VisualizationSession(client, interval=FAST)

        session.resume("job-7")
        snapshot = await session.wait()

        self.assertEqual(snapshot.state, JobState.COMPLETED)
        self.assertEqual(session.settings.current, stored)
        self.assertEqual(session.settings.draft, stored)
        self.assertEqual(client.started, [])

    async def test_new_submit_retires_previous_poller(self):
        client = FakeJobClient([status(step=1)])
        session = VisualizationSession(client, interval=10)
        seen = []
        session.subscribe(seen.append)

        first = await session.submit(REPO)
        second = await session.submit(REPO)

        self.assertEqual(session.job_id, second)
        self.assertTrue(session.generating)
        # The retired job's STOPPED update never reaches listeners
        self.assertNotIn(first, {snapshot.job_id for snapshot in seen})

        session.close()
        final = await session.wait()
        self.assertEqual(final.state, JobState.STOPPED)

    async def test_cancel_stops_job_on_backend(self):
        client = FakeJobClient([status(step=1)])
        session = VisualizationSession(client, interval=10)

        job_id = await session.submit(REPO)
        await session.cancel()
        snapshot = await session.wait()

        self.assertEqual(snapshot.state, JobState.STOPPED)
        self.assertEqual(client.stop_calls, [job_id])
        self.assertFalse(session.generating)


if __name__ == "__main__":
    unittest.main()
