from .job import (
    JobStartRequest,
    JobStartResponse,
    JobState,
    JobStatusView,
    JobStopRequest,
    JobStopResponse,
    ProgressStep,
    RateLimitDecision,
    VisualizationSettings,
)

__all__ = [
    "JobStartRequest",
    "JobStartResponse",
    "JobState",
    "JobStatusView",
    "JobStopRequest",
    "JobStopResponse",
    "ProgressStep",
    "RateLimitDecision",
    "VisualizationSettings",
]
