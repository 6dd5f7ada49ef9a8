# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Coverage override workflow (request, approve, decline, remove).
"""

from typing import Any, Optional

from oncall_rotation.core.errors import OverrideNotFoundError, SprintNotFoundError
from oncall_rotation.core.logging import get_logger
from oncall_rotation.metrics.prometheus import APPROVED_OVERRIDES
from oncall_rotation.models.domain import Override
from oncall_rotation.repositories.override_repository import OverrideRepository
from oncall_rotation.repositories.sprint_repository import SprintRepository
from oncall_rotation.services.state_service import CurrentStateService

logger = get_logger(__name__)


class OverrideService:

    def __init__(
        self,
        override_repo: OverrideRepository,
        sprint_repo: SprintRepository,
        state_service: CurrentStateService,
        roles: list[str],
    ) -> None:
        self._overrides = override_repo
        self._sprints = sprint_repo
        self._state = state_service
        self._roles = list(roles)

    def list_overrides(self, sprint_index: Optional[int] = None) -> list[Override]:
        return self._overrides.list_all(sprint_index)

    def get_override(self, override_id: int) -> Override:
        return self._require(override_id)

    def request_override(self, data: dict[str, Any]) -> Override:
        """
        Store a pending request. Raises SprintNotFoundError for an unknown
        sprint and ValueError for an unknown role.
        """
        if self._sprints.get(data["sprint_index"]) is None:
            raise SprintNotFoundError(f"Sprint {data['sprint_index']} not found")
        if self._roles and data["role"] not in self._roles:
            raise ValueError(f"Unknown role '{data['role']}'; expected one of {self._roles}")

        override = self._overrides.create_request(Override(**data))
        logger.info(
            "Override %d requested: sprint=%d role=%s replacement=%s by=%s",
            override.id, override.sprint_index, override.role,
            override.replacement_user_id, override.requested_by,
        )
        return override

    def approve_override(self, override_id: int, approved_by: str, supersede: bool = False) -> dict[str, Any]:
        """Approve and, for the current sprint, apply immediately."""
        override = self._overrides.approve(override_id, approved_by, supersede=supersede)
        self._refresh_gauge()
        applied = self._state.apply_override(override)
        logger.info("Override %d approved by %s (applied=%s)", override_id, approved_by, applied)
        return {"override": override, "applied": applied}

    def decline_override(self, override_id: int, declined_by: str) -> Override:
        override = self._overrides.decline(override_id, declined_by)
        logger.info("Override %d declined by %s", override_id, declined_by)
        return override

    def remove_override(self, override_id: int, removed_by: str) -> dict[str, Any]:
        """Delete an override; removing a live one reverts the slot via reconcile."""
        override = self._overrides.remove(override_id, removed_by)
        self._refresh_gauge()
        reverted = False
        if override.approved and self._state.read().sprint_index == override.sprint_index:
            result = self._state.reconcile()
            reverted = result["changed"]
            if reverted:
                self._state.sync_external(result["state"].assignments)
        logger.info("Override %d removed by %s (reverted=%s)", override_id, removed_by, reverted)
        return {"override": override, "reverted": reverted}

    def _require(self, override_id: int) -> Override:
        override = self._overrides.get(override_id)
        if override is None:
            raise OverrideNotFoundError(f"Override {override_id} not found")
        return override

    def _refresh_gauge(self) -> None:
        APPROVED_OVERRIDES.set(self._overrides.count_approved())
