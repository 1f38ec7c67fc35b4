"""Client-side job tracking: gateway client, status poller, settings sync."""

from .gateway_client import JobGatewayClient
from .poller import JobStatusPoller, PollerRegistry, PollerSnapshot
from .session import VisualizationSession
from .settings_sync import SettingsSync

__all__ = [
    "JobGatewayClient",
    "JobStatusPoller",
    "PollerRegistry",
    "PollerSnapshot",
    "SettingsSync",
    "VisualizationSession",
]
