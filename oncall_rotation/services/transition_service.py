# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Transition scheduler.

Two independent daily checks drive sprint-to-sprint handoffs:
  - end-of-day (late afternoon): warns outgoing/incoming users on the last
    day of a sprint, once per (date, role);
  - start-of-day (morning, after cutover): recomputes the current sprint and
    assignments and, if they differ from CurrentState, writes the new state
    and notifies the affected users.
A failed check reports to the operator channel and writes nothing partial.
"""

import threading
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any, Optional

from oncall_rotation.core.config import settings
from oncall_rotation.core.errors import SprintNotFoundError
from oncall_rotation.core.locking import StateLock
from oncall_rotation.core.logging import get_logger
from oncall_rotation.metrics.prometheus import CHECK_RUNS, HANDOFF_WARNINGS_SENT, TRANSITIONS_TOTAL
from oncall_rotation.models.domain import CurrentState
from oncall_rotation.repositories.history_repository import HistoryRepository
from oncall_rotation.services.assignment_service import AssignmentService
from oncall_rotation.services.rotation import diff_roles
from oncall_rotation.services.slack_dispatch import SlackDispatcher
from oncall_rotation.services.sprint_windows import hands_over_at_next_cutover, to_local
from oncall_rotation.services.state_service import CurrentStateService

logger = get_logger(__name__)

HANDOFF_EVENT = "handoff_warning"


class SchedulerState(str, Enum):
    IDLE = "idle"
    END_OF_DAY_CHECK_RUNNING = "end_of_day_check_running"
    START_OF_DAY_CHECK_RUNNING = "start_of_day_check_running"


def _format_hour(value: time) -> str:
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    if value.minute:
        return f"{hour}:{value.minute:02d}{suffix}"
    return f"{hour}{suffix}"


class TransitionScheduler:

    def __init__(
        self,
        assignment_service: AssignmentService,
        state_service: CurrentStateService,
        history_repo: HistoryRepository,
        dispatcher: SlackDispatcher,
        lock: StateLock,
        channel_name: str = "",
    ) -> None:
        self._assignments = assignment_service
        self._state = state_service
        self._history = history_repo
        self._dispatcher = dispatcher
        self._lock = lock
        self._channel = channel_name or settings.TRIAGE_CHANNEL_NAME
        self._running: set[SchedulerState] = set()
        self._guard = threading.Lock()

    @property
    def state(self) -> SchedulerState:
        with self._guard:
            if SchedulerState.START_OF_DAY_CHECK_RUNNING in self._running:
                return SchedulerState.START_OF_DAY_CHECK_RUNNING
            if SchedulerState.END_OF_DAY_CHECK_RUNNING in self._running:
                return SchedulerState.END_OF_DAY_CHECK_RUNNING
            return SchedulerState.IDLE

    def _enter(self, running: SchedulerState) -> bool:
        with self._guard:
            if running in self._running:
                return False
            self._running.add(running)
            return True

    def _leave(self, running: SchedulerState) -> None:
        with self._guard:
            self._running.discard(running)

    def _run_check(self, check: str, running: SchedulerState, body, *args) -> dict[str, Any]:
        if not self._enter(running):
            logger.warning("%s check already running; skipping this trigger", check)
            CHECK_RUNS.labels(check=check, outcome="already_running").inc()
            return {"check": check, "outcome": "already_running"}
        try:
            result = body(*args)
        except Exception as exc:
            logger.error("%s check failed: %s", check, exc, exc_info=True)
            self._dispatcher.notify_admins(f"Error in {check} check: {exc}")
            result = {"check": check, "outcome": "error", "error": str(exc)}
        finally:
            self._leave(running)
        CHECK_RUNS.labels(check=check, outcome=result["outcome"]).inc()
        return result

    # ── Start-of-day ──

    def run_start_of_day_check(self, now: Optional[datetime] = None) -> dict[str, Any]:
        return self._run_check(
            "start_of_day", SchedulerState.START_OF_DAY_CHECK_RUNNING,
            self._start_of_day, now or self._assignments.now(),
        )

    def _start_of_day(self, now: datetime) -> dict[str, Any]:
        # Resolve under the lock so an override applied meanwhile is not overwritten.
        with self._lock.hold("start-of-day check"):
            data = self._assignments.load()
            sprint = self._assignments.current_sprint(now, data)
            if sprint is None:
                logger.warning("Start-of-day check: no sprint covers %s", now.isoformat())
                return {"check": "start_of_day", "outcome": "no_current_sprint"}

            assignments = self._assignments.assignments_for(sprint.index, data)
            persisted = self._state.read()
            changes = diff_roles(persisted.assignments, assignments)
            if persisted.sprint_index == sprint.index and not changes:
                logger.info("Start-of-day check: sprint %d unchanged", sprint.index)
                return {"check": "start_of_day", "outcome": "unchanged", "sprint_index": sprint.index}
            self._state.write(
                CurrentState(sprint_index=sprint.index, assignments=assignments),
                reason="start-of-day check",
            )

        sprint_changed = persisted.sprint_index != sprint.index
        TRANSITIONS_TOTAL.labels(trigger="start_of_day").inc()
        logger.info(
            "Start-of-day transition: sprint %s -> %d, changed roles=%s",
            persisted.sprint_index, sprint.index, [c["role"] for c in changes],
        )
        notified = 0
        if changes:
            self._state.sync_external(assignments)
            notified = self._notify(changes, sprint_changed)
        return {
            "check": "start_of_day",
            "outcome": "transitioned",
            "sprint_index": sprint.index,
            "previous_sprint_index": persisted.sprint_index,
            "changed_roles": [c["role"] for c in changes],
            "notifications_sent": notified,
        }

    def _notify(self, changes: list[dict[str, Optional[str]]], sprint_changed: bool) -> int:
        """DM the users whose roles changed. Unchanged users hear nothing."""
        sent = 0
        for change in changes:
            role = change["role"]
            if sprint_changed:
                outgoing = f"Your {self._channel} rotation is now complete. Thank you!"
                incoming = f"You are now on {self._channel} duty ({role}). Good luck!"
            else:
                outgoing = f"You have been removed from {role} {self._channel} duty mid-sprint."
                incoming = f"You have been assigned to {role} {self._channel} duty mid-sprint."
            if change["old_user"] and self._dispatcher.send_direct_message(change["old_user"], outgoing):
                sent += 1
            if change["new_user"] and self._dispatcher.send_direct_message(change["new_user"], incoming):
                sent += 1
        return sent

    # ── End-of-day ──

    def run_end_of_day_check(self, now: Optional[datetime] = None, force: bool = False) -> dict[str, Any]:
        return self._run_check(
            "end_of_day", SchedulerState.END_OF_DAY_CHECK_RUNNING,
            self._end_of_day, now or self._assignments.now(), force,
        )

    def _end_of_day(self, now: datetime, force: bool) -> dict[str, Any]:
        tz = self._assignments.tz
        data = self._assignments.load()
        sprint = self._assignments.current_sprint(now, data)
        if sprint is None:
            return {"check": "end_of_day", "outcome": "no_current_sprint"}
        cutover = self._assignments.cutover
        if not hands_over_at_next_cutover(data.sprints, sprint, now, tz, cutover):
            return {"check": "end_of_day", "outcome": "not_last_day", "sprint_index": sprint.index}

        upcoming = self._assignments.next_sprint(sprint.index, data)
        if upcoming is None:
            logger.warning("End-of-day check: sprint %d ends with no next sprint", sprint.index)
            return {"check": "end_of_day", "outcome": "no_next_sprint", "sprint_index": sprint.index}

        outgoing = self._assignments.assignments_for(sprint.index, data)
        incoming = self._assignments.assignments_for(upcoming.index, data)
        today = to_local(now, tz).date()
        handoff_at = datetime.combine(today + timedelta(days=1), cutover, tzinfo=tz)
        when = f"{_format_hour(cutover)} {handoff_at.tzname()}"

        warned: list[str] = []
        skipped: list[str] = []
        for change in diff_roles(outgoing, incoming):
            role = change["role"]
            subject = f"{today.isoformat()}:{role}"
            if not force and self._history.has_event(HANDOFF_EVENT, subject):
                skipped.append(role)
                continue
            if change["old_user"]:
                self._dispatcher.send_direct_message(
                    change["old_user"],
                    f"Heads up: your {role} {self._channel} shift ends tomorrow at {when}.",
                )
            if change["new_user"]:
                self._dispatcher.send_direct_message(
                    change["new_user"],
                    f"Heads up: you start {role} {self._channel} duty tomorrow at {when}.",
                )
            self._history.record_event(HANDOFF_EVENT, subject, {
                "sprint_index": sprint.index,
                "next_sprint_index": upcoming.index,
                "outgoing": change["old_user"],
                "incoming": change["new_user"],
                "forced": force,
            })
            HANDOFF_WARNINGS_SENT.labels(role=role).inc()
            warned.append(role)

        logger.info(
            "End-of-day check: sprint %d -> %d warned=%s already_warned=%s",
            sprint.index, upcoming.index, warned, skipped,
        )
        return {
            "check": "end_of_day",
            "outcome": "warned" if warned else "nothing_to_warn",
            "sprint_index": sprint.index,
            "next_sprint_index": upcoming.index,
            "warned_roles": warned,
            "already_warned_roles": skipped,
        }

    # ── Administrative ──

    def force_transition(self, sprint_index: int, changed_by: str = "system") -> dict[str, Any]:
        """Write the assignments of ``sprint_index`` as current, ignoring the calendar."""
        with self._lock.hold("force transition"):
            data = self._assignments.load()
            if not any(s.index == sprint_index for s in data.sprints):
                raise SprintNotFoundError(f"Sprint {sprint_index} not found")

            assignments = self._assignments.assignments_for(sprint_index, data)
            persisted = self._state.read()
            changes = diff_roles(persisted.assignments, assignments)
            self._state.write(
                CurrentState(sprint_index=sprint_index, assignments=assignments),
                changed_by=changed_by,
                reason="forced transition",
            )

        TRANSITIONS_TOTAL.labels(trigger="forced").inc()
        logger.info("Forced transition to sprint %d by %s", sprint_index, changed_by)
        notified = 0
        if changes:
            self._state.sync_external(assignments)
            notified = self._notify(changes, persisted.sprint_index != sprint_index)
        return {
            "outcome": "transitioned",
            "sprint_index": sprint_index,
            "previous_sprint_index": persisted.sprint_index,
            "changed_roles": [c["role"] for c in changes],
            "notifications_sent": notified,
        }
