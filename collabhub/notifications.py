"""
collabhub/notifications.py

Post-commit notification delivery (transactional outbox).

Membership mutations never talk to the dispatcher directly. They write
outbox rows in the same transaction as the mutation (enqueue), and once that
transaction has committed the route hands the new rows to the dispatcher
(deliver). A failed delivery never rolls back the membership change: the row
stays undelivered for a later retry and the caller gets a warning string.

Retry undelivered rows:
    python -m collabhub.notifications
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

import requests
from sqlalchemy.exc import SQLAlchemyError

from collabhub.config import (
    IS_DEV,
    NOTIFY_CLAIM_TIMEOUT_SECONDS,
    NOTIFY_MAX_ATTEMPTS,
    NOTIFY_TIMEOUT_SECONDS,
    NOTIFY_WEBHOOK_URL,
)
from collabhub.db import execute_query, get_db_connection
from collabhub.users import now_iso

# Event names
EVENT_INVITE = "collaboration-invite"
EVENT_MEMBER_JOINED = "member-joined"
EVENT_ROLE_UPDATED = "member-role-updated"
EVENT_MEMBER_REMOVED = "member-removed"


@dataclass(frozen=True)
class NotificationScope:
    """Either a single user or everyone in one project."""
    kind: str  # "user" | "project"
    target_id: int

    @classmethod
    def user(cls, user_id: int) -> "NotificationScope":
        return cls("user", user_id)

    @classmethod
    def project(cls, project_id: int) -> "NotificationScope":
        return cls("project", project_id)


@dataclass
class Notification:
    scope: NotificationScope
    event: str
    payload: Dict[str, Any] = field(default_factory=dict)


class NotificationError(Exception):
    """Raised by dispatchers when a delivery attempt fails."""


# ============================================================================
# Dispatchers
# ============================================================================

class LoggingNotificationDispatcher:
    """Default dispatcher: prints the notification (dev / no transport configured)."""

    def notify(self, scope: NotificationScope, event: str, payload: Dict[str, Any]) -> None:
        print(f"[NOTIFY] {event} -> {scope.kind}:{scope.target_id} payload={payload}")


class WebhookNotificationDispatcher:
    """POSTs each notification as JSON to a push/socket gateway."""

    def __init__(self, url: str, timeout: float = NOTIFY_TIMEOUT_SECONDS):
        self.url = url
        self.timeout = timeout

    def notify(self, scope: NotificationScope, event: str, payload: Dict[str, Any]) -> None:
        body = {
            "scope": {"kind": scope.kind, "id": scope.target_id},
            "event": event,
            "payload": payload,
        }
        try:
            response = requests.post(self.url, json=body, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NotificationError(f"webhook delivery failed: {e}") from e


def get_notification_dispatcher():
    """FastAPI dependency returning the configured dispatcher."""
    if NOTIFY_WEBHOOK_URL:
        return WebhookNotificationDispatcher(NOTIFY_WEBHOOK_URL)
    return LoggingNotificationDispatcher()


# ============================================================================
# Outbox
# ============================================================================

def enqueue(conn, notification: Notification) -> int:
    """Write a notification to the outbox inside the caller's transaction."""
    return execute_query(
        conn,
        """
        INSERT INTO notification_outbox (scope_kind, scope_id, event, payload_json, created_at)
        VALUES (:scope_kind, :scope_id, :event, :payload_json, :created_at)
        RETURNING id
        """,
        {
            "scope_kind": notification.scope.kind,
            "scope_id": notification.scope.target_id,
            "event": notification.event,
            "payload_json": json.dumps(notification.payload),
            "created_at": now_iso(),
        },
    ).scalar_one()


def deliver(dispatcher, outbox_ids: Optional[Sequence[int]] = None) -> List[str]:
    """
    Deliver outbox rows (the given ids, or every undelivered row).

    Must be called after the enqueuing transaction has committed. Each row is
    claimed before it is handed to the dispatcher, so a retry pass running at
    the same time as a request never sends the same row twice. Rows that have
    failed NOTIFY_MAX_ATTEMPTS times are left for inspection.

    Never raises for store or dispatcher failures: the membership change has
    already committed.

    Returns:
        One warning string per failed delivery (empty when all succeeded)
    """
    if outbox_ids is not None and not outbox_ids:
        return []

    try:
        rows = _pending_rows(outbox_ids)
    except SQLAlchemyError as e:
        message = "pending notifications could not be loaded"
        print(f"[NOTIFY] WARNING: {message}: {e.__class__.__name__}")
        return [message]

    warnings: List[str] = []
    for row in rows:
        scope = NotificationScope(row.scope_kind, row.scope_id)
        message = f"notification '{row.event}' to {scope.kind} {scope.target_id} was not delivered"
        try:
            claimed = _claim(row.id)
        except SQLAlchemyError as e:
            print(f"[NOTIFY] WARNING: {message}: claim failed: {e.__class__.__name__}")
            warnings.append(message)
            continue
        if not claimed:
            if IS_DEV:
                print(f"[NOTIFY] Skipped outbox id={row.id}: claimed by another delivery")
            continue

        try:
            dispatcher.notify(scope, row.event, json.loads(row.payload_json))
        except Exception as e:
            print(f"[NOTIFY] WARNING: {message}: {e.__class__.__name__}: {e}")
            warnings.append(message)
            _record(_mark_failed, row.id, str(e))
            continue

        if not _record(_mark_delivered, row.id):
            # Sent, but still claimed; it is only retried once the claim goes stale
            warnings.append(f"notification '{row.event}' to {scope.kind} {scope.target_id} "
                            f"was sent but could not be marked delivered")
        elif IS_DEV:
            print(f"[NOTIFY] Delivered outbox id={row.id} event={row.event}")

    return warnings


def _pending_rows(outbox_ids: Optional[Sequence[int]]) -> list:
    query = """
        SELECT id, scope_kind, scope_id, event, payload_json
        FROM notification_outbox
        WHERE delivered_at IS NULL AND attempts < :max_attempts
    """
    params: Dict[str, Any] = {"max_attempts": NOTIFY_MAX_ATTEMPTS}
    if outbox_ids is not None:
        names = [f"id_{i}" for i in range(len(outbox_ids))]
        query += f" AND id IN ({', '.join(':' + n for n in names)})"
        params.update(zip(names, outbox_ids))
    query += " ORDER BY id"

    with get_db_connection() as conn:
        return execute_query(conn, query, params).fetchall()


def _claim(outbox_id: int) -> bool:
    """Take an undelivered row unless another delivery holds a live claim."""
    now = datetime.utcnow()
    stale_before = (now - timedelta(seconds=NOTIFY_CLAIM_TIMEOUT_SECONDS)).isoformat()
    with get_db_connection() as conn:
        result = execute_query(
            conn,
            """
            UPDATE notification_outbox SET claimed_at = :now
            WHERE id = :id AND delivered_at IS NULL
              AND (claimed_at IS NULL OR claimed_at < :stale_before)
            """,
            {"now": now.isoformat(), "id": outbox_id, "stale_before": stale_before},
        )
        return result.rowcount == 1


def _record(mark, *args) -> bool:
    """Run an outbox bookkeeping write; a store failure is printed, not raised."""
    try:
        mark(*args)
    except SQLAlchemyError as e:
        print(f"[NOTIFY] WARNING: outbox bookkeeping failed for id={args[0]}: {e.__class__.__name__}")
        return False
    return True


def _mark_delivered(outbox_id: int) -> None:
    with get_db_connection() as conn:
        execute_query(
            conn,
            """
            UPDATE notification_outbox
            SET delivered_at = :now, attempts = attempts + 1, last_error = NULL
            WHERE id = :id
            """,
            {"now": now_iso(), "id": outbox_id},
        )


def _mark_failed(outbox_id: int, error: str) -> None:
    """Count the attempt and release the claim so a later pass can retry."""
    with get_db_connection() as conn:
        execute_query(
            conn,
            """
            UPDATE notification_outbox
            SET attempts = attempts + 1, last_error = :error, claimed_at = NULL
            WHERE id = :id
            """,
            {"error": error[:500], "id": outbox_id},
        )


def pending_count() -> int:
    with get_db_connection() as conn:
        return execute_query(
            conn,
            "SELECT COUNT(*) FROM notification_outbox WHERE delivered_at IS NULL",
        ).scalar_one()


if __name__ == "__main__":
    failures = deliver(get_notification_dispatcher())
    print(f"[NOTIFY] Retry complete: {len(failures)} failed, {pending_count()} still pending")
