"""Wire models for the platform API.

The platform owns projects, namespaces and the billing data behind
eligibility. This service only consumes the resulting booleans.
"""

from __future__ import annotations

from collections.abc import Sequence

from code_index.schemas.base import StrictModel

__all__ = [
    'DuoDisabledRequest',
    'DuoDisabledResponse',
    'EligibilityRequest',
    'EligibilityResponse',
    'InstanceEligibility',
    'NamespacePage',
    'Project',
    'ProjectPage',
    'RootNamespace',
]


class Project(StrictModel):
    """Project as needed for indexing: git location and owning namespace."""

    id: int
    path_with_namespace: str
    root_namespace_id: int
    repository_storage: str
    disk_path: str


class ProjectPage(StrictModel):
    projects: Sequence[Project]


class RootNamespace(StrictModel):
    id: int
    full_path: str


class NamespacePage(StrictModel):
    namespaces: Sequence[RootNamespace]


class EligibilityRequest(StrictModel):
    namespace_ids: Sequence[int]


class EligibilityResponse(StrictModel):
    """Subset of requested namespaces that have a valid subscription and AI settings enabled."""

    eligible_namespace_ids: Sequence[int]


class DuoDisabledRequest(StrictModel):
    project_ids: Sequence[int]


class DuoDisabledResponse(StrictModel):
    """Subset of requested projects with AI features disabled at project or namespace level."""

    disabled_project_ids: Sequence[int]


class InstanceEligibility(StrictModel):
    eligible: bool
