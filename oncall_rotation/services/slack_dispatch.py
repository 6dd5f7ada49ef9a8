# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Service: Notification dispatch via the chat-platform Web API client.
Every call is bounded (timeout + retry count) and best-effort: failures are
logged and reported to the operator channel, never raised to the caller.
"""

import time
from typing import Any, Iterable, Optional

import httpx

from oncall_rotation.core.config import settings
from oncall_rotation.core.logging import get_logger
from oncall_rotation.metrics.prometheus import DIRECT_MESSAGES_SENT, DISPATCH_FAILURES

logger = get_logger(__name__)

TOPIC_TEMPLATE = "Bug Link Only - keep conversations in threads.\nTriage Team: {mentions}"


class DispatchError(Exception):
    """A Web API call failed permanently or exhausted its retries."""


def mention(user_id: str) -> str:
    return f"<@{user_id}>"


def _decode(method: str, resp: httpx.Response) -> dict[str, Any]:
    """The JSON object body of a Web API reply; anything else is a failed call."""
    if not resp.content:
        return {}
    try:
        body = resp.json()
    except ValueError:
        raise DispatchError(
            f"{method}: HTTP {resp.status_code} with non-JSON body "
            f"({resp.headers.get('content-type', 'unknown')})"
        ) from None
    if not isinstance(body, dict):
        raise DispatchError(f"{method}: HTTP {resp.status_code} with unexpected {type(body).__name__} body")
    return body


class SlackDispatcher:
    """Direct messages, user-group membership and channel topic sync."""

    def __init__(
        self,
        token: str = "",
        base_url: str = "https://slack.com/api",
        admin_channel_id: str = "",
        triage_channel_id: str = "",
        usergroup_id: str = "",
        timeout: float = 3.0,
        max_retries: int = 3,
        backoff: float = 0.5,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._admin_channel_id = admin_channel_id
        self._triage_channel_id = triage_channel_id
        self._usergroup_id = usergroup_id
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._backoff = backoff
        self._transport = transport

    # ── Transport ──

    def _call(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not self._token:
            raise DispatchError(f"{method}: no bot token configured")

        last_error = ""
        for attempt in range(1, self._max_retries + 1):
            try:
                with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
                    resp = client.post(
                        f"{self._base_url}/{method}",
                        json=payload,
                        headers={"Authorization": f"Bearer {self._token}"},
                    )
            except httpx.HTTPError as exc:
                last_error = f"{type(exc).__name__}: {exc}"
            else:
                if resp.status_code == 429 or resp.status_code >= 500:
                    last_error = f"HTTP {resp.status_code}"
                else:
                    body = _decode(method, resp)
                    if body.get("ok"):
                        return body
                    error = body.get("error", f"HTTP {resp.status_code}")
                    if error != "ratelimited":
                        raise DispatchError(f"{method}: {error}")
                    last_error = error
            if attempt < self._max_retries:
                logger.warning(
                    "Dispatch %s attempt %d/%d failed: %s",
                    method, attempt, self._max_retries, last_error,
                )
                time.sleep(self._backoff * (2 ** (attempt - 1)))
        raise DispatchError(f"{method}: {last_error} after {self._max_retries} attempts")

    # ── Operator channel ──

    def notify_admins(self, text: str, severity: str = "ERROR") -> None:
        """Post to the operator channel. Never raises."""
        if not self._admin_channel_id:
            logger.error("No admin channel configured; dropping report: %s", text)
            return
        try:
            self._call("chat.postMessage", {
                "channel": self._admin_channel_id,
                "text": f"[{severity}] {text}",
            })
        except DispatchError as exc:
            DISPATCH_FAILURES.labels(operation="notify_admins").inc()
            logger.error("Failed to notify admins: %s", exc)

    # ── Collaborator interface ──

    def send_direct_message(self, user_id: Optional[str], text: str) -> bool:
        if not user_id:
            return False
        try:
            opened = self._call("conversations.open", {"users": user_id})
            self._call("chat.postMessage", {"channel": opened["channel"]["id"], "text": text})
        except (DispatchError, KeyError, TypeError) as exc:
            DISPATCH_FAILURES.labels(operation="direct_message").inc()
            logger.error("Failed to DM user %s: %s", user_id, exc)
            self.notify_admins(f"Failed to DM {mention(user_id)}: {exc}")
            return False
        DIRECT_MESSAGES_SENT.inc()
        logger.info("Direct message sent: user=%s", user_id)
        return True

    def sync_group_membership(self, user_ids: Iterable[str]) -> bool:
        users = [u for u in user_ids if u]
        if not self._usergroup_id:
            logger.warning("No on-call user group configured; skipping membership sync")
            return False
        if not users:
            logger.warning("Refusing to sync an empty on-call user group")
            return False
        try:
            self._call("usergroups.users.update", {
                "usergroup": self._usergroup_id,
                "users": ",".join(users),
            })
        except DispatchError as exc:
            DISPATCH_FAILURES.labels(operation="group_membership").inc()
            logger.error("Failed to update user group: %s", exc)
            self.notify_admins(f"Error updating on-call user group: {exc}")
            return False
        logger.info("On-call user group synced: %d members", len(users))
        return True

    def sync_channel_topic(self, user_ids: Iterable[str]) -> bool:
        if not self._triage_channel_id:
            logger.warning("No triage channel configured; skipping topic sync")
            return False
        topic = TOPIC_TEMPLATE.format(mentions=", ".join(mention(u) for u in user_ids if u))
        try:
            self._call("conversations.setTopic", {
                "channel": self._triage_channel_id,
                "topic": topic,
            })
        except DispatchError as exc:
            DISPATCH_FAILURES.labels(operation="channel_topic").inc()
            logger.error("Failed to update channel topic: %s", exc)
            self.notify_admins(f"Error updating channel topic for {self._triage_channel_id}: {exc}")
            return False
        logger.info("Channel topic synced for %s", self._triage_channel_id)
        return True

    def notify_rotation_changes(self, changes: Iterable[dict[str, Optional[str]]]) -> int:
        """DM every added and removed user; returns the number of messages delivered."""
        sent = 0
        for change in changes:
            role = change["role"]
            if change.get("new_user") and self.send_direct_message(
                change["new_user"], f"You have been assigned to {role} triage duty starting now."
            ):
                sent += 1
            if change.get("old_user") and self.send_direct_message(
                change["old_user"], f"You have been removed from {role} triage duty."
            ):
                sent += 1
        return sent


def build_dispatcher() -> SlackDispatcher:
    return SlackDispatcher(
        token=settings.SLACK_BOT_TOKEN,
        base_url=settings.SLACK_API_URL,
        admin_channel_id=settings.ADMIN_CHANNEL_ID,
        triage_channel_id=settings.TRIAGE_CHANNEL_ID,
        usergroup_id=settings.ONCALL_USERGROUP_ID,
        timeout=settings.DISPATCH_TIMEOUT,
        max_retries=settings.DISPATCH_MAX_RETRIES,
        backoff=settings.DISPATCH_RETRY_BACKOFF,
    )
