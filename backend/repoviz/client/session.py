"""
Client session: one visible job at a time.

Submitting a new job or resuming another one retires the previous poller,
so a session never runs two loops. Settings flow through ``SettingsSync``.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Protocol

from repoviz.client.poller import (
    DEFAULT_INTERVAL_SECONDS,
    JobStatusPoller,
    PollerRegistry,
    PollerSnapshot,
    StatusSource,
)
from repoviz.client.settings_sync import SettingsSync
from repoviz.dtos.job import VisualizationSettings

logger = logging.getLogger(__name__)


class JobClient(StatusSource, Protocol):
    async def start(
        self,
        repo_url: str,
        access_token: Optional[str] = None,
        settings: Optional[VisualizationSettings] = None,
    ) -> str: ...


class VisualizationSession:
    def __init__(
        self,
        client: JobClient,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        settings_sync: Optional[SettingsSync] = None,
    ):
        self._client = client
        self.settings = settings_sync or SettingsSync()
        self._registry = PollerRegistry(client, interval=interval)
        self._poller: Optional[JobStatusPoller] = None
        self._listeners: List[Callable[[PollerSnapshot], None]] = []

    @property
    def job_id(self) -> Optional[str]:
        return self._poller.job_id if self._poller else None

    @property
    def snapshot(self) -> Optional[PollerSnapshot]:
        return self._poller.snapshot if self._poller else None

    @property
    def generating(self) -> bool:
        return self._poller is not None and not self._poller.finished

    def subscribe(self, callback: Callable[[PollerSnapshot], None]) -> None:
        self._listeners.append(callback)

    def _on_update(self, snapshot: PollerSnapshot) -> None:
        if snapshot.job_id != self.job_id:
            return
        if snapshot.settings is not None:
            self.settings.adopt(snapshot.job_id, snapshot.settings)
        for callback in list(self._listeners):
            callback(snapshot)

    def _follow(self, job_id: str, just_started: bool) -> JobStatusPoller:
        previous = self._poller
        if previous is not None and previous.job_id == job_id and not previous.finished:
            return previous

        self._poller = None
        if previous is not None:
            self._registry.cancel(previous.job_id)
        self._poller = self._registry.ensure(job_id, on_update=self._on_update, just_started=just_started)
        return self._poller

    async def submit(
        self,
        repo_url: str,
        access_token: Optional[str] = None,
        settings: Optional[VisualizationSettings] = None,
    ) -> str:
        """Start a job with the given (or drafted) settings and begin polling it."""
        chosen = self.settings.settings_for_start(settings)
        job_id = await self._client.start(repo_url, access_token=access_token, settings=chosen)
        logger.info(f"Submitted {repo_url} as job {job_id}")
        self.settings.bind_job(job_id, chosen)
        self._follow(job_id, just_started=True)
        return job_id

    def resume(self, job_id: str) -> JobStatusPoller:
        """Reattach to an existing job, e.g. after a reload. Settings come from its status."""
        if self.settings.job_id != job_id:
            self.settings.bind_job(job_id)
        return self._follow(job_id, just_started=False)

    async def cancel(self) -> None:
        """Stop the current job on the backend and stop polling it."""
        if self._poller is None:
            return
        await self._poller.stop()

    async def wait(self) -> Optional[PollerSnapshot]:
        if self._poller is None:
            return None
        return await self._poller.wait()

    def close(self) -> None:
        """Stop all polling without signalling the backend."""
        self._registry.cancel_all()
