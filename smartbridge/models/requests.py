"""Request bodies for the master-save and publish endpoints."""
from __future__ import annotations

from typing import Any, Optional

from pydantic import Field

from smartbridge.models.base import CamelModel
from smartbridge.models.project import SectionName


class MasterSaveRequest(CamelModel):
    """Body of ``POST /api/master-save``.

    ``project`` is accepted as a raw object and validated by the service so a
    malformed document maps to ``INVALID_PROJECT_DOCUMENT`` rather than a
    generic request validation error.
    """

    project_id: str = ""
    project: Optional[dict[str, Any]] = None
    section: Optional[SectionName] = Field(
        default=None,
        description="Section whose save triggered this snapshot; omit for a whole-project save",
    )


class SectionPatchRequest(CamelModel):
    """Body of ``POST /api/master-save/{projectId}/sections/{section}``."""

    patch: dict[str, Any] = Field(default_factory=dict)


class PublishRequest(CamelModel):
    """Body of ``POST /api/publish-minisite``."""

    project_id: str = ""
    snapshot_key: str = ""
