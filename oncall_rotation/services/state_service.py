# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: CurrentState store, reconciliation and override application.
Every write replaces the whole record and happens under the state lock.
"""

from datetime import datetime
from typing import Any, Optional

from oncall_rotation.core.config import settings
from oncall_rotation.core.locking import StateLock
from oncall_rotation.core.logging import get_logger
from oncall_rotation.metrics.prometheus import RECONCILE_WRITES, TRANSITIONS_TOTAL
from oncall_rotation.models.domain import CurrentState, Override
from oncall_rotation.repositories.state_repository import StateRepository
from oncall_rotation.services.assignment_service import AssignmentService
from oncall_rotation.services.rotation import assignees, diff_roles
from oncall_rotation.services.slack_dispatch import SlackDispatcher, mention

logger = get_logger(__name__)


class CurrentStateService:
    """Owns the single writer path to CurrentState."""

    def __init__(
        self,
        state_repo: StateRepository,
        assignment_service: AssignmentService,
        dispatcher: SlackDispatcher,
        lock: StateLock,
    ) -> None:
        self._state = state_repo
        self._assignments = assignment_service
        self._dispatcher = dispatcher
        self._lock = lock

    # ── Store ──

    def read(self) -> CurrentState:
        return self._state.read()

    def write(self, state: CurrentState, changed_by: str = "system", reason: str = "") -> CurrentState:
        with self._lock.hold("write current state"):
            return self._state.write(state, changed_by=changed_by, reason=reason)

    def sync_external(self, assignments: dict[str, Optional[str]]) -> None:
        """Push the on-call set to the user group and the triage channel topic."""
        users = assignees(assignments)
        self._dispatcher.sync_group_membership(users)
        self._dispatcher.sync_channel_topic(users)

    # ── Reconcile ──

    def reconcile(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """
        Recompute the current sprint and assignments and correct the stored
        state if it drifted. Running it twice in a row writes at most once.
        """
        now = now or self._assignments.now()
        with self._lock.hold("reconcile"):
            data = self._assignments.load()
            sprint = self._assignments.current_sprint(now, data)
            persisted = self._state.read()
            if sprint is None:
                logger.warning("Reconcile: no sprint covers %s; leaving state untouched", now.isoformat())
                return {
                    "changed": False,
                    "sprint_index": persisted.sprint_index,
                    "changed_roles": [],
                    "state": persisted,
                }

            computed = self._assignments.assignments_for(sprint.index, data)
            changes = diff_roles(persisted.assignments, computed)
            if persisted.sprint_index == sprint.index and not changes:
                return {
                    "changed": False,
                    "sprint_index": sprint.index,
                    "changed_roles": [],
                    "state": persisted,
                }

            stored = self._state.write(
                CurrentState(sprint_index=sprint.index, assignments=computed),
                reason="reconcile",
            )

        RECONCILE_WRITES.inc()
        TRANSITIONS_TOTAL.labels(trigger="reconcile").inc()
        changed_roles = [c["role"] for c in changes]
        logger.info(
            "Reconcile corrected state: sprint %s -> %d, roles=%s",
            persisted.sprint_index, sprint.index, changed_roles,
        )
        return {
            "changed": True,
            "sprint_index": sprint.index,
            "previous_sprint_index": persisted.sprint_index,
            "changed_roles": changed_roles,
            "state": stored,
        }

    # ── Overrides ──

    def apply_override(self, override: Override) -> bool:
        """
        Swap an approved override into the live state when it targets the
        current sprint. Returns True when the state changed.
        """
        with self._lock.hold(f"apply override {override.id}"):
            state = self._state.read()
            if state.sprint_index != override.sprint_index:
                logger.info(
                    "Override %s targets sprint %d; current is %s, nothing to apply",
                    override.id, override.sprint_index, state.sprint_index,
                )
                return False
            previous = state.assignments.get(override.role)
            if previous == override.replacement_user_id:
                return False
            assignments = {**state.assignments, override.role: override.replacement_user_id}
            self._state.write(
                CurrentState(sprint_index=state.sprint_index, assignments=assignments),
                changed_by=override.approved_by or "system",
                reason=f"override {override.id}",
            )

        TRANSITIONS_TOTAL.labels(trigger="override").inc()
        logger.info(
            "Override %s applied: %s %s -> %s",
            override.id, override.role, previous, override.replacement_user_id,
        )
        self.sync_external(assignments)
        channel = settings.TRIAGE_CHANNEL_NAME
        if previous:
            self._dispatcher.send_direct_message(
                previous,
                f"{mention(override.replacement_user_id)} is covering your {override.role} "
                f"{channel} duty for the rest of this sprint.",
            )
        self._dispatcher.send_direct_message(
            override.replacement_user_id,
            f"You are now covering {override.role} {channel} duty"
            + (f" for {mention(previous)}." if previous else "."),
        )
        return True
