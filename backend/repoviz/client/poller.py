"""
Job status polling.

A ``JobStatusPoller`` turns a noisy status feed into monotonic client state:

- responses reporting a lower step than already seen are dropped as stale
- a video or an error ends polling; an error wins if both are present
- transient fetch failures are kept as an advisory and polling continues
- after ``cancel``/``stop`` no response, including one already in flight,
  changes the visible state

One loop runs per poller; ``PollerRegistry`` keeps at most one live poller
per job id.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Protocol

from repoviz.config import settings as app_settings
from repoviz.core.tracing import TracingContext
from repoviz.dtos.job import JobState, JobStatusView, ProgressStep, VisualizationSettings
from repoviz.services.exceptions import GatewayError, JobNotFoundError, UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = app_settings.POLL_INTERVAL_SECONDS


class StatusSource(Protocol):
    async def status(self, job_id: str) -> JobStatusView: ...

    async def stop(self, job_id: str) -> object: ...


@dataclass(frozen=True)
class PollerSnapshot:
    """What a client shows for one job."""

    job_id: str
    state: JobState = JobState.SUBMITTED
    step: Optional[ProgressStep] = None
    video_url: Optional[str] = None
    error: Optional[str] = None
    repo_url: Optional[str] = None
    settings: Optional[VisualizationSettings] = None
    advisory: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.state.is_terminal


UpdateCallback = Callable[[PollerSnapshot], None]


@dataclass
class PollerStats:
    requests: int = 0
    accepted: int = 0
    discarded: int = 0
    failures: int = 0
    step_history: List[ProgressStep] = field(default_factory=list)


class JobStatusPoller:
    """Cancellable polling loop for a single job id."""

    def __init__(
        self,
        source: StatusSource,
        job_id: str,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        on_update: Optional[UpdateCallback] = None,
        just_started: bool = False,
    ):
        self._source = source
        self.job_id = job_id
        self.interval = interval
        self.just_started = just_started
        self._listeners: List[UpdateCallback] = [on_update] if on_update else []
        self._snapshot = PollerSnapshot(job_id=job_id)
        self._highest: Optional[ProgressStep] = None
        self._cancelled = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.stats = PollerStats()

    @property
    def snapshot(self) -> PollerSnapshot:
        return self._snapshot

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def finished(self) -> bool:
        return self._snapshot.terminal or self.cancelled

    def subscribe(self, callback: UpdateCallback) -> None:
        self._listeners.append(callback)

    def _publish(self, snapshot: PollerSnapshot) -> None:
        self._snapshot = snapshot
        for callback in list(self._listeners):
            try:
                callback(snapshot)
            except Exception:
                logger.exception(f"Status listener failed for job {self.job_id}")

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def apply(self, view: JobStatusView) -> bool:
        """
        Fold one status response into the visible state.

        Returns:
            True if the response was accepted, False if it was ignored
        """
        if self.finished:
            return False

        step = view.step
        if self._highest is not None and (step is None or step < self._highest):
            self.stats.discarded += 1
            logger.debug(
                f"Discarding stale status for job {self.job_id}: "
                f"step={step} < highest={self._highest}"
            )
            return False

        if step is not None and step != self._highest:
            self.stats.step_history.append(step)
            self._highest = step
        self.stats.accepted += 1

        current = self._snapshot
        # Settings are replaced whole, never merged field by field
        settings = view.settings if view.settings is not None else current.settings
        repo_url = view.repo_url if view.repo_url is not None else current.repo_url

        state = view.state
        if state == JobState.FAILED and view.video_url is not None:
            logger.warning(f"Job {self.job_id} reported both a video and an error; treating as failed")

        snapshot = replace(
            current,
            state=state,
            step=self._highest,
            video_url=view.video_url if state == JobState.COMPLETED else None,
            error=view.error,
            repo_url=repo_url,
            settings=settings,
            advisory=None,
        )
        self._publish(snapshot)

        if snapshot.terminal:
            logger.info(f"Job {self.job_id} reached {state.value}")
        return True

    def _fail(self, message: str) -> None:
        self._publish(replace(self._snapshot, state=JobState.FAILED, error=message, advisory=None))
        logger.info(f"Job {self.job_id} failed on lookup: {message}")

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll_once(self) -> bool:
        """Issue one status request. Returns True if the visible state changed."""
        if self.finished:
            return False

        self.stats.requests += 1
        fresh_lookup = self.just_started and self.stats.requests == 1

        try:
            view = await self._source.status(self.job_id)
        except (JobNotFoundError, UpstreamError) as exc:
            if self.finished:
                return False
            self.stats.failures += 1
            if fresh_lookup:
                self._fail(str(exc))
                return True
            logger.warning(f"Status fetch for job {self.job_id} failed, will retry: {exc}")
            self._publish(replace(self._snapshot, advisory=str(exc)))
            return True
        except GatewayError as exc:
            if self.finished:
                return False
            self.stats.failures += 1
            self._fail(str(exc))
            return True

        # Response arrived after cancellation
        if self.finished:
            return False
        return self.apply(view)

    async def run(self) -> PollerSnapshot:
        """Poll until a terminal state or cancellation, suspending between ticks."""
        TracingContext.set(job_id=self.job_id, operation="poll")
        while not self.finished:
            await self.poll_once()
            if self.finished:
                break
            try:
                await asyncio.wait_for(self._cancelled.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        return self._snapshot

    def start(self) -> asyncio.Task:
        """Run the loop as a task. Calling again while running returns the same task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name=f"poll-{self.job_id}")
        return self._task

    async def wait(self) -> PollerSnapshot:
        if self._task is None:
            return self._snapshot
        return await self._task

    def cancel(self) -> None:
        """
        Stop polling on this client. The job shows as stopped unless it had
        already finished; late responses are ignored.
        """
        if self.cancelled:
            return
        self._cancelled.set()
        if not self._snapshot.terminal:
            self._publish(replace(self._snapshot, state=JobState.STOPPED, advisory=None))
            logger.info(f"Polling for job {self.job_id} cancelled")

    async def stop(self) -> None:
        """Cancel locally, then ask the backend to stop the job (best effort)."""
        self.cancel()
        try:
            await self._source.stop(self.job_id)
        except GatewayError as exc:
            logger.warning(f"Stop request for job {self.job_id} failed: {exc}")
            self._publish(replace(self._snapshot, advisory=str(exc)))


class PollerRegistry:
    """At most one live poller per job id."""

    def __init__(self, source: StatusSource, interval: float = DEFAULT_INTERVAL_SECONDS):
        self._source = source
        self.interval = interval
        self._pollers: Dict[str, JobStatusPoller] = {}

    def get(self, job_id: str) -> Optional[JobStatusPoller]:
        return self._pollers.get(job_id)

    def ensure(
        self,
        job_id: str,
        on_update: Optional[UpdateCallback] = None,
        just_started: bool = False,
    ) -> JobStatusPoller:
        """Return the live poller for ``job_id``, creating and starting one if needed."""
        poller = self._pollers.get(job_id)
        if poller is not None and not poller.finished:
            if on_update is not None:
                poller.subscribe(on_update)
            return poller

        poller = JobStatusPoller(
            self._source,
            job_id,
            interval=self.interval,
            on_update=on_update,
            just_started=just_started,
        )
        self._pollers[job_id] = poller
        poller.start().add_done_callback(lambda _task: self._forget(job_id, poller))
        return poller

    def _forget(self, job_id: str, poller: JobStatusPoller) -> None:
        if self._pollers.get(job_id) is poller:
            del self._pollers[job_id]

    def cancel(self, job_id: str) -> None:
        poller = self._pollers.pop(job_id, None)
        if poller is not None:
            poller.cancel()

    def cancel_all(self) -> None:
        for job_id in list(self._pollers):
            self.cancel(job_id)
