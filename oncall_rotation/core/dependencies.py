# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
FastAPI dependency injection: wire repositories and services.
"""

from datetime import time
from typing import Optional
from zoneinfo import ZoneInfo

from fastapi import Depends
from sqlalchemy.engine import Engine

from oncall_rotation.core.cache import RedisCache, build_cache
from oncall_rotation.core.config import settings
from oncall_rotation.core.database import engine as default_engine
from oncall_rotation.core.locking import StateLock
from oncall_rotation.repositories.history_repository import HistoryRepository
from oncall_rotation.repositories.notification_repository import NotificationRepository
from oncall_rotation.repositories.override_repository import OverrideRepository
from oncall_rotation.repositories.roster_repository import RosterRepository
from oncall_rotation.repositories.sprint_repository import SprintRepository
from oncall_rotation.repositories.state_repository import StateRepository
from oncall_rotation.services.assignment_service import AssignmentService
from oncall_rotation.services.delivery_service import NotificationPipeline
from oncall_rotation.services.override_service import OverrideService
from oncall_rotation.services.slack_dispatch import SlackDispatcher, build_dispatcher
from oncall_rotation.services.state_service import CurrentStateService
from oncall_rotation.services.transition_service import TransitionScheduler


class Container:
    """Every repository and service, built once per engine."""

    def __init__(
        self,
        engine: Engine,
        dispatcher: SlackDispatcher,
        cache: Optional[RedisCache] = None,
        lock: Optional[StateLock] = None,
    ) -> None:
        self.engine = engine
        self.dispatcher = dispatcher
        self.lock = lock or StateLock(settings.STATE_LOCK_TIMEOUT)

        # ── Repositories ──
        self.sprint_repo = SprintRepository(engine)
        self.roster_repo = RosterRepository(engine, cache=cache)
        self.override_repo = OverrideRepository(engine)
        self.state_repo = StateRepository(engine)
        self.history_repo = HistoryRepository(engine)
        self.notification_repo = NotificationRepository(engine)

        # ── Services ──
        self.assignment_service = AssignmentService(
            sprint_repo=self.sprint_repo,
            roster_repo=self.roster_repo,
            override_repo=self.override_repo,
            roles=settings.ROTATION_ROLES,
            fallback_users=settings.FALLBACK_USERS,
            tz=ZoneInfo(settings.ROTATION_TIMEZONE),
            cutover=time(settings.CUTOVER_HOUR, 0),
        )
        self.state_service = CurrentStateService(
            state_repo=self.state_repo,
            assignment_service=self.assignment_service,
            dispatcher=dispatcher,
            lock=self.lock,
        )
        self.override_service = OverrideService(
            override_repo=self.override_repo,
            sprint_repo=self.sprint_repo,
            state_service=self.state_service,
            roles=settings.ROTATION_ROLES,
        )
        self.scheduler = TransitionScheduler(
            assignment_service=self.assignment_service,
            state_service=self.state_service,
            history_repo=self.history_repo,
            dispatcher=dispatcher,
            lock=self.lock,
            channel_name=settings.TRIAGE_CHANNEL_NAME,
        )
        self.pipeline = NotificationPipeline(
            assignment_service=self.assignment_service,
            state_service=self.state_service,
            notification_repo=self.notification_repo,
            dispatcher=dispatcher,
            lock=self.lock,
            secret=settings.CRON_SECRET,
            delivery_hour=settings.NOTIFICATION_DELIVERY_HOUR,
        )


# ── Singleton container ──
_container = Container(default_engine, build_dispatcher(), cache=build_cache())


# ── FastAPI dependency functions ──
def get_container() -> Container:
    return _container


def get_assignment_service(container: Container = Depends(get_container)) -> AssignmentService:
    return container.assignment_service


def get_state_service(container: Container = Depends(get_container)) -> CurrentStateService:
    return container.state_service


def get_override_service(container: Container = Depends(get_container)) -> OverrideService:
    return container.override_service


def get_scheduler(container: Container = Depends(get_container)) -> TransitionScheduler:
    return container.scheduler


def get_pipeline(container: Container = Depends(get_container)) -> NotificationPipeline:
    return container.pipeline


def get_sprint_repo(container: Container = Depends(get_container)) -> SprintRepository:
    return container.sprint_repo


def get_roster_repo(container: Container = Depends(get_container)) -> RosterRepository:
    return container.roster_repo


def get_history_repo(container: Container = Depends(get_container)) -> HistoryRepository:
    return container.history_repo


def get_notification_repo(container: Container = Depends(get_container)) -> NotificationRepository:
    return container.notification_repo
