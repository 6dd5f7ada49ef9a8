# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Notification delivery pipeline (cron webhook).

Authenticates the trigger, reconciles CurrentState, hashes the assignment map
and decides between skipped / deferred / delivered. Every invocation leaves a
CronTriggerAudit row keyed by its trigger id; a trigger id that already
completed is answered from that row without re-running side effects.
"""

import hashlib
import hmac
import json
import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError

from oncall_rotation.core.locking import StateLock
from oncall_rotation.core.logging import get_logger
from oncall_rotation.metrics.prometheus import PIPELINE_RESULTS
from oncall_rotation.repositories.notification_repository import NotificationRepository
from oncall_rotation.schemas.rotation import CronTriggerPayload
from oncall_rotation.services.assignment_service import AssignmentService
from oncall_rotation.services.rotation import diff_roles
from oncall_rotation.services.slack_dispatch import SlackDispatcher, mention
from oncall_rotation.services.snapshots import compute_snapshot_hash
from oncall_rotation.services.state_service import CurrentStateService
from oncall_rotation.services.weekday_policy import next_business_day, should_defer

logger = get_logger(__name__)

# Audit results that may be retried under the same trigger id.
RETRYABLE_RESULTS = ("pending", "error")


class PayloadError(ValueError):
    """The webhook body is not a well-formed trigger payload."""


def verify_signature(secret: str, signature: Optional[str], raw_body: bytes) -> bool:
    """
    Accept either the shared secret itself or the hex HMAC-SHA256 of the raw
    body (optionally prefixed ``sha256=``). An empty secret rejects everything.
    """
    if not secret or not signature:
        return False
    signature = signature.strip()
    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]
    expected = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(signature, expected) or hmac.compare_digest(signature, secret)


def parse_payload(raw_body: bytes) -> CronTriggerPayload:
    """Empty bodies are allowed; anything else must be a JSON object."""
    if not raw_body or not raw_body.strip():
        return CronTriggerPayload()
    try:
        data = json.loads(raw_body)
    except (ValueError, UnicodeDecodeError) as exc:
        raise PayloadError(f"Body is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise PayloadError("Body must be a JSON object")
    try:
        return CronTriggerPayload(**data)
    except ValidationError as exc:
        raise PayloadError(f"Invalid trigger payload: {exc.errors()[0]['msg']}") from exc


class NotificationPipeline:

    def __init__(
        self,
        assignment_service: AssignmentService,
        state_service: CurrentStateService,
        notification_repo: NotificationRepository,
        dispatcher: SlackDispatcher,
        lock: StateLock,
        secret: str,
        delivery_hour: int,
    ) -> None:
        self._assignments = assignment_service
        self._state = state_service
        self._notifications = notification_repo
        self._dispatcher = dispatcher
        self._lock = lock
        self._secret = secret
        self._delivery_hour = delivery_hour

    def handle(
        self,
        signature: Optional[str],
        raw_body: bytes,
        now: Optional[datetime] = None,
    ) -> tuple[int, dict[str, Any]]:
        """Returns (http_status, body)."""
        if not verify_signature(self._secret, signature, raw_body):
            logger.warning("Rejected cron trigger: invalid or missing signature")
            PIPELINE_RESULTS.labels(result="unauthorized").inc()
            return 401, {"error": "Invalid or missing signature"}

        try:
            payload = parse_payload(raw_body)
        except PayloadError as exc:
            logger.warning("Rejected cron trigger: %s", exc)
            PIPELINE_RESULTS.labels(result="invalid").inc()
            return 400, {"error": str(exc)}

        trigger_id = payload.trigger_id or f"auto-{uuid.uuid4().hex}"
        when = payload.scheduled_at or now or self._assignments.now()

        try:
            with self._lock.hold(f"notification pipeline {trigger_id}"):
                existing = self._notifications.get_trigger_audit(trigger_id)
                if existing is not None and existing.result not in RETRYABLE_RESULTS:
                    logger.info("Trigger %s already handled (%s); replaying", trigger_id, existing.result)
                    PIPELINE_RESULTS.labels(result="replayed").inc()
                    return 202, {
                        **existing.details,
                        "status": "accepted",
                        "trigger_id": trigger_id,
                        "result": existing.result,
                        "replayed": True,
                    }
                if existing is None:
                    self._notifications.insert_trigger_audit(
                        trigger_id,
                        "pending",
                        scheduled_at=when.isoformat(),
                        details={"environment": payload.environment},
                    )
                result = self._run(trigger_id, when)
                self._notifications.update_trigger_result(trigger_id, result["result"], result)
        except Exception as exc:
            logger.error(
                "Notification pipeline failed for %s: %s", trigger_id, exc,
                exc_info=True, extra={"trigger_id": trigger_id},
            )
            PIPELINE_RESULTS.labels(result="error").inc()
            self._record_error(trigger_id, when, exc)
            self._dispatcher.notify_admins(f"Rotation notification run {trigger_id} failed: {exc}")
            return 500, {"error": f"Notification pipeline failed: {exc}", "trigger_id": trigger_id}

        PIPELINE_RESULTS.labels(result=result["result"]).inc()
        logger.info(
            "Trigger %s: %s (%s)", trigger_id, result["result"], result.get("reason"),
            extra={"trigger_id": trigger_id},
        )
        return 202, {**result, "status": "accepted", "trigger_id": trigger_id, "replayed": False}

    def _record_error(self, trigger_id: str, when: datetime, exc: Exception) -> None:
        details = {"error": str(exc), "error_type": type(exc).__name__}
        try:
            if self._notifications.get_trigger_audit(trigger_id) is None:
                self._notifications.insert_trigger_audit(
                    trigger_id, "error", scheduled_at=when.isoformat(), details=details,
                )
            else:
                self._notifications.update_trigger_result(trigger_id, "error", details)
        except Exception as audit_exc:
            logger.error("Could not record error audit for %s: %s", trigger_id, audit_exc)

    # ── Pipeline ──

    def _run(self, trigger_id: str, now: datetime) -> dict[str, Any]:
        tz = self._assignments.tz
        reconciled = self._state.reconcile(now)
        state = reconciled["state"]
        result: dict[str, Any] = {
            "sprint_index": state.sprint_index,
            "state_reconciled": reconciled["changed"],
            "notifications_sent": 0,
            "snapshot_id": None,
            "next_delivery": None,
            "carry_over": False,
        }
        if state.sprint_index is None:
            return {**result, "result": "skipped", "reason": "no current sprint"}

        assignments = self._assignments.assignments_for(state.sprint_index)
        snapshot_hash = compute_snapshot_hash(assignments)
        latest = self._notifications.latest_snapshot()
        deferring = should_defer(now, tz)
        result["hash"] = snapshot_hash

        unchanged = latest is not None and latest.hash == snapshot_hash
        if unchanged and latest.delivery_status != "deferred":
            snapshot = self._notifications.insert_snapshot(
                assignments, snapshot_hash, "skipped",
                delivery_reason="assignments unchanged", trigger_ref=trigger_id,
            )
            return {**result, "result": "skipped", "reason": "assignments unchanged", "snapshot_id": snapshot.id}

        if deferring:
            next_delivery = next_business_day(now, tz, self._delivery_hour).isoformat()
            reason = "announcement still pending" if unchanged else "non-business day"
            snapshot = self._notifications.insert_snapshot(
                assignments, snapshot_hash, "deferred",
                delivery_reason=reason, trigger_ref=trigger_id, next_delivery=next_delivery,
            )
            if reconciled["changed"]:
                self._state.sync_external(assignments)
            return {
                **result,
                "result": "deferred",
                "reason": reason,
                "snapshot_id": snapshot.id,
                "next_delivery": next_delivery,
            }

        return self._deliver(trigger_id, result, assignments, snapshot_hash, carry_over=unchanged)

    def _deliver(
        self,
        trigger_id: str,
        result: dict[str, Any],
        assignments: dict[str, Optional[str]],
        snapshot_hash: str,
        carry_over: bool,
    ) -> dict[str, Any]:
        last_delivered = self._notifications.latest_snapshot("delivered")
        baseline = last_delivered.discipline_assignments if last_delivered else {}
        reason = "deferred announcement carried over" if carry_over else "assignments changed"
        snapshot = self._notifications.insert_snapshot(
            assignments, snapshot_hash, "delivered", delivery_reason=reason, trigger_ref=trigger_id,
        )

        changes = diff_roles(baseline, assignments)
        self._state.sync_external(assignments)
        sent = self._dispatcher.notify_rotation_changes(changes)
        if carry_over:
            lines = [
                f"- {c['role']}: {mention(c['old_user']) if c['old_user'] else 'nobody'}"
                f" -> {mention(c['new_user']) if c['new_user'] else 'nobody'}"
                for c in changes
            ]
            self._dispatcher.notify_admins(
                "Delivered deferred rotation announcement:\n" + ("\n".join(lines) or "- no role changes"),
                severity="INFO",
            )
        return {
            **result,
            "result": "delivered",
            "reason": reason,
            "snapshot_id": snapshot.id,
            "notifications_sent": sent,
            "carry_over": carry_over,
            "changed_roles": [c["role"] for c in changes],
        }
