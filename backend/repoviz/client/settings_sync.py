"""
Visualization settings reconciliation between a local editor and a job.

Before a job exists the locally edited settings are authoritative. Once a job
is bound, the settings the backend echoes in its status replace the current
value whole, so a reload reconstructs exactly what the job was started with.
"""

from __future__ import annotations

import logging
from typing import Optional

from repoviz.dtos.job import VisualizationSettings

logger = logging.getLogger(__name__)


class SettingsSync:
    def __init__(self, initial: Optional[VisualizationSettings] = None):
        self._draft = initial or VisualizationSettings()
        self._job_id: Optional[str] = None
        self._job_settings: Optional[VisualizationSettings] = None

    @property
    def job_id(self) -> Optional[str]:
        return self._job_id

    @property
    def draft(self) -> VisualizationSettings:
        """Locally edited settings, used for the next start."""
        return self._draft

    @property
    def current(self) -> VisualizationSettings:
        """Authoritative settings: the job's once known, otherwise the draft."""
        if self._job_id is not None and self._job_settings is not None:
            return self._job_settings
        return self._draft

    def edit(self, settings: VisualizationSettings) -> None:
        self._draft = settings

    def settings_for_start(self, override: Optional[VisualizationSettings] = None) -> VisualizationSettings:
        """Settings to attach to a start request; an override also becomes the draft."""
        if override is not None:
            self._draft = override
        return self._draft

    def bind_job(self, job_id: str, settings: Optional[VisualizationSettings] = None) -> None:
        """
        Attach to a job. ``settings`` are the ones sent with the start request,
        or None when resuming a job whose settings are not known yet.
        """
        self._job_id = job_id
        self._job_settings = settings

    def unbind(self) -> None:
        self._job_id = None
        self._job_settings = None

    def adopt(self, job_id: str, settings: Optional[VisualizationSettings]) -> bool:
        """
        Take the settings echoed by a status response for ``job_id``.

        Returns:
            True if the current value changed
        """
        if job_id != self._job_id:
            logger.debug(f"Ignoring settings for job {job_id}; bound to {self._job_id}")
            return False
        if settings is None:
            return False

        changed = settings != self._job_settings
        self._job_settings = settings
        # The editor reopens on what the job actually used
        self._draft = settings
        return changed
