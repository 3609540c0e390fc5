"""
collabhub/test_notifications.py

Notification delivery must never undo a committed membership change.
A failed delivery shows up as a warning and stays in the outbox for retry.

Run:
    pytest collabhub/test_notifications.py -v
"""

from unittest.mock import MagicMock, patch

import pytest
import requests
from sqlalchemy.exc import OperationalError

from collabhub import store
from collabhub.config import NOTIFY_MAX_ATTEMPTS
from collabhub.db import execute_query, get_db_connection
from collabhub.main import app
from collabhub.models import MemberStatus, ProjectRole
from collabhub.notifications import (
    Notification,
    NotificationError,
    NotificationScope,
    WebhookNotificationDispatcher,
    deliver,
    enqueue,
    get_notification_dispatcher,
    pending_count,
)
from collabhub.users import now_iso


class FailingDispatcher:
    def notify(self, scope, event, payload):
        raise NotificationError("gateway unavailable")


@pytest.fixture
def failing_dispatcher(client):
    app.dependency_overrides[get_notification_dispatcher] = lambda: FailingDispatcher()
    yield
    app.dependency_overrides.pop(get_notification_dispatcher, None)


class TestPostCommitDelivery:

    def test_failed_invite_notification_keeps_membership(self, client, make_user, failing_dispatcher):
        u1 = make_user("u1@test.com")
        u2 = make_user("u2@test.com")
        project_id = client.post(
            "/projects", json={"name": "Alpha", "type": "software"}, headers=u1["headers"]
        ).json()["result"]["id"]

        response = client.post(
            f"/projects/{project_id}/members",
            json={"email": u2["email"], "role": "WRITE"},
            headers=u1["headers"],
        )

        assert response.status_code == 200
        warnings = response.json()["warnings"]
        assert len(warnings) == 1
        assert "collaboration-invite" in warnings[0]

        with get_db_connection() as conn:
            membership = store.get_membership(conn, project_id, u2["id"])
        assert membership.status == MemberStatus.PENDING
        assert membership.role == ProjectRole.WRITE
        assert pending_count() == 1

    def test_undelivered_rows_are_retried(self, database, dispatcher):
        with get_db_connection() as conn:
            outbox_id = enqueue(conn, Notification(
                scope=NotificationScope.project(7),
                event="member-joined",
                payload={"project_id": 7},
            ))

        assert deliver(FailingDispatcher(), [outbox_id]) != []
        assert pending_count() == 1

        recorder = dispatcher
        assert deliver(recorder) == []
        assert recorder.events() == ["member-joined"]
        assert recorder.sent[0][0] == NotificationScope("project", 7)
        assert pending_count() == 0

        # Delivered rows are not sent twice
        assert deliver(recorder) == []
        assert len(recorder.sent) == 1

    def test_empty_id_list_delivers_nothing(self, database, dispatcher):
        with get_db_connection() as conn:
            enqueue(conn, Notification(scope=NotificationScope.user(1), event="collaboration-invite"))
        recorder = dispatcher
        assert deliver(recorder, []) == []
        assert recorder.sent == []

    def test_overlapping_retry_pass_does_not_resend(self, database, dispatcher):
        with get_db_connection() as conn:
            outbox_id = enqueue(conn, Notification(scope=NotificationScope.user(2), event="collaboration-invite"))

        retry_warnings = []

        class RetryDuringSend:
            """Runs a full retry pass while the request's own delivery is in flight."""
            def __init__(self):
                self.sent = []

            def notify(self, scope, event, payload):
                retry_warnings.extend(deliver(dispatcher))
                self.sent.append(event)

        in_flight = RetryDuringSend()
        assert deliver(in_flight, [outbox_id]) == []

        assert in_flight.sent == ["collaboration-invite"]
        assert dispatcher.sent == []
        assert retry_warnings == []
        assert pending_count() == 0

    def test_abandoned_claim_is_taken_over(self, database, dispatcher):
        with get_db_connection() as conn:
            outbox_id = enqueue(conn, Notification(scope=NotificationScope.project(4), event="member-joined"))
            execute_query(
                conn,
                "UPDATE notification_outbox SET claimed_at = '2000-01-01T00:00:00' WHERE id = :id",
                {"id": outbox_id},
            )

        assert deliver(dispatcher) == []
        assert dispatcher.events() == ["member-joined"]

    def test_live_claim_is_skipped(self, database, dispatcher):
        with get_db_connection() as conn:
            outbox_id = enqueue(conn, Notification(scope=NotificationScope.project(4), event="member-joined"))
            execute_query(
                conn,
                "UPDATE notification_outbox SET claimed_at = :now WHERE id = :id",
                {"now": now_iso(), "id": outbox_id},
            )

        assert deliver(dispatcher, [outbox_id]) == []
        assert dispatcher.sent == []
        assert pending_count() == 1

    def test_rows_past_attempt_limit_are_not_retried(self, database, dispatcher):
        with get_db_connection() as conn:
            outbox_id = enqueue(conn, Notification(scope=NotificationScope.user(1), event="member-removed"))

        for _ in range(NOTIFY_MAX_ATTEMPTS):
            assert len(deliver(FailingDispatcher(), [outbox_id])) == 1

        assert deliver(dispatcher) == []
        assert dispatcher.sent == []
        assert pending_count() == 1

    def test_only_requested_ids_are_loaded(self, database, dispatcher):
        with get_db_connection() as conn:
            first = enqueue(conn, Notification(scope=NotificationScope.user(1), event="member-removed"))
            enqueue(conn, Notification(scope=NotificationScope.user(2), event="collaboration-invite"))

        assert deliver(dispatcher, [first]) == []
        assert dispatcher.events() == ["member-removed"]
        assert pending_count() == 1

    def test_bookkeeping_failure_after_send_is_a_warning(self, database, dispatcher):
        with get_db_connection() as conn:
            outbox_id = enqueue(conn, Notification(scope=NotificationScope.user(5), event="collaboration-invite"))

        failure = OperationalError("UPDATE notification_outbox", {}, Exception("disk I/O error"))
        with patch("collabhub.notifications._mark_delivered", side_effect=failure):
            warnings = deliver(dispatcher, [outbox_id])

        assert len(warnings) == 1
        assert "could not be marked delivered" in warnings[0]
        assert dispatcher.events() == ["collaboration-invite"]

        # Still claimed, so an immediate retry pass does not send it again
        assert deliver(dispatcher) == []
        assert len(dispatcher.sent) == 1

    def test_rolled_back_mutation_leaves_no_outbox_row(self, database):
        with pytest.raises(RuntimeError):
            with get_db_connection() as conn:
                enqueue(conn, Notification(scope=NotificationScope.user(1), event="collaboration-invite"))
                raise RuntimeError("mutation failed")
        assert pending_count() == 0


class TestWebhookDispatcher:

    def test_posts_json_body(self):
        dispatcher = WebhookNotificationDispatcher("http://gateway.local/notify", timeout=1.5)
        with patch("collabhub.notifications.requests.post") as post:
            post.return_value = MagicMock(status_code=200)
            dispatcher.notify(NotificationScope.user(3), "collaboration-invite", {"project_id": 1})

        post.assert_called_once_with(
            "http://gateway.local/notify",
            json={
                "scope": {"kind": "user", "id": 3},
                "event": "collaboration-invite",
                "payload": {"project_id": 1},
            },
            timeout=1.5,
        )

    def test_transport_errors_become_notification_errors(self):
        dispatcher = WebhookNotificationDispatcher("http://gateway.local/notify")
        with patch("collabhub.notifications.requests.post", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(NotificationError, match="webhook delivery failed"):
                dispatcher.notify(NotificationScope.project(1), "member-joined", {})
