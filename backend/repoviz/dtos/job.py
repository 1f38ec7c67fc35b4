"""Job DTOs shared by the gateway, its HTTP surface and the polling client."""

from __future__ import annotations

import math
from enum import Enum, IntEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from repoviz.utils.datetime import now_ts


class ProgressStep(IntEnum):
    """Coarse phase of a rendering job, ordered."""

    INITIALIZING_PROJECT = 1
    ANALYZING_HISTORY = 2
    GENERATING_VISUALIZATION = 3

    @classmethod
    def decode(cls, value: Any) -> Optional["ProgressStep"]:
        """
        Decode a step as it arrives from the network.

        Accepts the integer value, a numeric string, or the CamelCase name the
        rendering backend serializes (e.g. "AnalyzingHistory"). None means no
        step has been reported yet.
        """
        if value is None or isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid progress step: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            text = value.strip()
            if text.isdigit():
                return cls(int(text))
            key = text.replace("_", "").lower()
            for member in cls:
                if member.name.replace("_", "").lower() == key:
                    return member
        raise ValueError(f"Invalid progress step: {value!r}")


class JobState(str, Enum):
    """Job lifecycle as observed through status."""

    SUBMITTED = "submitted"
    INITIALIZING_PROJECT = "initializing_project"
    ANALYZING_HISTORY = "analyzing_history"
    GENERATING_VISUALIZATION = "generating_visualization"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED, JobState.STOPPED)


_STEP_STATES = {
    ProgressStep.INITIALIZING_PROJECT: JobState.INITIALIZING_PROJECT,
    ProgressStep.ANALYZING_HISTORY: JobState.ANALYZING_HISTORY,
    ProgressStep.GENERATING_VISUALIZATION: JobState.GENERATING_VISUALIZATION,
}


class VisualizationSettings(BaseModel):
    """Rendering options attached to a job. Omitted fields take the baseline."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    show_file_extension_key: bool = False
    show_usernames: bool = True
    show_dirnames: bool = True
    dir_font_size: int = Field(default=11, ge=1, le=20)
    file_font_size: int = Field(default=10, ge=1, le=20)
    user_font_size: int = Field(default=12, ge=1, le=20)


class JobStartRequest(BaseModel):
    repo_url: str
    access_token: Optional[str] = None
    settings: Optional[VisualizationSettings] = None


class JobStartResponse(BaseModel):
    job_id: str


class JobStopRequest(BaseModel):
    job_id: Optional[str] = None


class JobStopResponse(BaseModel):
    acknowledged: bool = True


class JobStatusView(BaseModel):
    """Status of one job as reported by the rendering backend."""

    model_config = ConfigDict(extra="ignore")

    step: Optional[ProgressStep] = None
    video_url: Optional[str] = None
    error: Optional[str] = None
    repo_url: Optional[str] = None
    settings: Optional[VisualizationSettings] = None

    @field_validator("step", mode="before")
    @classmethod
    def _decode_step(cls, value: Any) -> Optional[ProgressStep]:
        return ProgressStep.decode(value)

    @property
    def is_terminal(self) -> bool:
        return self.video_url is not None or self.error is not None

    @property
    def state(self) -> JobState:
        # Error wins when a backend reports both outcomes.
        if self.error is not None:
            return JobState.FAILED
        if self.video_url is not None:
            return JobState.COMPLETED
        if self.step is None:
            return JobState.SUBMITTED
        return _STEP_STATES[self.step]


class RateLimitDecision(BaseModel):
    """Outcome of one admission check."""

    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    @property
    def retry_after(self) -> int:
        """Whole seconds until the oldest counted attempt leaves the window."""
        return max(0, math.ceil(self.reset_at - now_ts()))

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }
