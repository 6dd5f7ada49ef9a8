# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Assignment lookups.
Loads sprints, rotation lists and overrides fresh from storage and runs the
pure resolvers over them.
"""

from dataclasses import dataclass, field
from datetime import datetime, time, timezone, tzinfo
from typing import Mapping, Optional

from oncall_rotation.core.logging import get_logger
from oncall_rotation.models.domain import Override, RotationList, Sprint
from oncall_rotation.repositories.override_repository import OverrideRepository
from oncall_rotation.repositories.roster_repository import RosterRepository
from oncall_rotation.repositories.sprint_repository import SprintRepository
from oncall_rotation.services.rotation import find_duplicate_assignees, resolve_assignments
from oncall_rotation.services.sprint_windows import find_next_sprint, resolve_current_sprint

logger = get_logger(__name__)


@dataclass
class RotationData:
    """Everything a resolution needs, fetched within one logical run."""
    sprints: list[Sprint] = field(default_factory=list)
    rotation_lists: dict[str, RotationList] = field(default_factory=dict)
    overrides: list[Override] = field(default_factory=list)


class AssignmentService:

    def __init__(
        self,
        sprint_repo: SprintRepository,
        roster_repo: RosterRepository,
        override_repo: OverrideRepository,
        roles: list[str],
        fallback_users: Mapping[str, str],
        tz: tzinfo,
        cutover: time,
    ) -> None:
        self._sprints = sprint_repo
        self._roster = roster_repo
        self._overrides = override_repo
        self.roles = list(roles)
        self._fallback_users = dict(fallback_users)
        self.tz = tz
        self.cutover = cutover

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def load(self) -> RotationData:
        return RotationData(
            sprints=self._sprints.list_ordered(),
            rotation_lists=self._roster.get_rotation_lists(self.roles),
            overrides=self._overrides.list_approved(),
        )

    def current_sprint(self, now: Optional[datetime] = None, data: Optional[RotationData] = None) -> Optional[Sprint]:
        data = data or RotationData(sprints=self._sprints.list_ordered())
        return resolve_current_sprint(data.sprints, now or self.now(), self.tz, self.cutover)

    def next_sprint(self, current_index: int, data: Optional[RotationData] = None) -> Optional[Sprint]:
        if data is None:
            return self._sprints.get_next(current_index)
        return find_next_sprint(data.sprints, current_index)

    def assignments_for(self, sprint_index: int, data: Optional[RotationData] = None) -> dict[str, Optional[str]]:
        """role -> user_id for a sprint; duplicate assignees are logged, not rejected."""
        data = data or self.load()
        assignments = resolve_assignments(
            sprint_index,
            data.rotation_lists,
            data.overrides,
            fallback_users=self._fallback_users,
            roles=self.roles,
        )
        duplicates = find_duplicate_assignees(assignments)
        if duplicates:
            logger.warning(
                "Duplicate users assigned for sprint %d: %s", sprint_index, duplicates
            )
        return assignments
