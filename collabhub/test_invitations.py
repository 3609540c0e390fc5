"""
collabhub/test_invitations.py

Tests for the invitation lifecycle: add, respond, role update, remove, leave,
and the notifications each transition queues in the outbox.

Run:
    pytest collabhub/test_invitations.py -v
"""

from unittest.mock import patch

import pytest

from collabhub import invitations, store
from collabhub.db import execute_query, get_db_connection
from collabhub.errors import Conflict, Forbidden, InvalidInput, InvalidTransition, NotFound
from collabhub.models import MemberStatus, ProjectRole


def outbox_events(conn):
    rows = execute_query(
        conn, "SELECT scope_kind, scope_id, event FROM notification_outbox ORDER BY id"
    ).fetchall()
    return [(r.scope_kind, r.scope_id, r.event) for r in rows]


@pytest.fixture
def alpha(make_user):
    """Project Alpha owned by u1, plus an uninvited u2."""
    u1 = make_user("u1@test.com", first_name="Una")
    u2 = make_user("u2@test.com", first_name="Ben")
    with get_db_connection() as conn:
        project = store.create_project(conn, "Alpha", "software", u1["id"])
    return {"project": project, "u1": u1, "u2": u2}


def invite(alpha, role=ProjectRole.WRITE, email="u2@test.com", inviter_role=ProjectRole.OWNER):
    with get_db_connection() as conn:
        return invitations.add_member(
            conn,
            alpha["project"],
            inviter_id=alpha["u1"]["id"],
            inviter_name="Una",
            inviter_role=inviter_role,
            email=email,
            role=role,
        )


def respond(alpha, action, user_key="u2"):
    with get_db_connection() as conn:
        return invitations.respond_to_invitation(conn, alpha["project"], alpha[user_key]["id"], action)


class TestAddMember:

    def test_new_member_starts_pending_with_requested_role(self, alpha):
        result = invite(alpha, role=ProjectRole.ADMIN)
        assert result.membership.status == MemberStatus.PENDING
        assert result.membership.role == ProjectRole.ADMIN

        with get_db_connection() as conn:
            stored = store.get_membership(conn, alpha["project"].id, alpha["u2"]["id"])
            assert stored.status == MemberStatus.PENDING
            assert stored.invited_by == alpha["u1"]["id"]
            assert outbox_events(conn)[-1] == ("user", alpha["u2"]["id"], "collaboration-invite")

    def test_role_defaults_to_lowest_privilege(self, alpha):
        result = invite(alpha, role=None)
        assert result.membership.role == ProjectRole.READ

    def test_email_lookup_is_case_insensitive(self, alpha):
        result = invite(alpha, email="  U2@Test.com ")
        assert result.membership.user_id == alpha["u2"]["id"]

    def test_duplicate_member_is_rejected(self, alpha):
        invite(alpha)
        with pytest.raises(Conflict, match="already a member"):
            invite(alpha, role=ProjectRole.READ)

        with get_db_connection() as conn:
            members = store.list_members(conn, alpha["project"].id)
            # Failed add queued nothing
            assert [e for _, _, e in outbox_events(conn)] == ["collaboration-invite"]
        assert len(members) == 2

    def test_existing_owner_cannot_be_added_again(self, alpha):
        with pytest.raises(Conflict):
            invite(alpha, email="u1@test.com")

    def test_unknown_user_is_not_found(self, alpha):
        with pytest.raises(NotFound):
            invite(alpha, email="nobody@test.com")

    def test_cannot_grant_role_above_own(self, alpha):
        with pytest.raises(Forbidden, match="insufficient role"):
            invite(alpha, role=ProjectRole.OWNER, inviter_role=ProjectRole.ADMIN)


class TestRespondToInvitation:

    def test_accept_moves_pending_to_joined_and_notifies_project(self, alpha):
        invite(alpha)
        result = respond(alpha, "JOINED")
        assert result.membership.status == MemberStatus.JOINED
        assert len(result.outbox_ids) == 1

        with get_db_connection() as conn:
            assert outbox_events(conn)[-1] == ("project", alpha["project"].id, "member-joined")

    def test_accepted_is_an_alias_of_joined(self, alpha):
        invite(alpha)
        assert respond(alpha, "accepted").membership.status == MemberStatus.JOINED

    def test_decline_sends_no_notification(self, alpha):
        invite(alpha)
        result = respond(alpha, "DECLINED")
        assert result.membership.status == MemberStatus.DECLINED
        assert result.outbox_ids == []

    def test_answering_twice_fails(self, alpha):
        invite(alpha)
        respond(alpha, "JOINED")
        with pytest.raises(InvalidTransition):
            respond(alpha, "JOINED")

    def test_declined_invitation_cannot_be_accepted(self, alpha):
        invite(alpha)
        respond(alpha, "DECLINED")
        with pytest.raises(InvalidTransition) as exc:
            respond(alpha, "JOINED")
        assert exc.value.status_code == 409

    def test_owner_already_joined_cannot_respond(self, alpha):
        with pytest.raises(InvalidTransition):
            respond(alpha, "JOINED", user_key="u1")

    def test_unknown_action_is_invalid_input(self, alpha):
        invite(alpha)
        for action in ("PENDING", "maybe", ""):
            with pytest.raises(InvalidInput):
                respond(alpha, action)

    def test_non_member_cannot_respond(self, alpha):
        with pytest.raises(Forbidden):
            respond(alpha, "JOINED")


class TestUpdateMemberRole:

    def test_role_change_keeps_status(self, alpha):
        invite(alpha, role=ProjectRole.READ)
        respond(alpha, "JOINED")
        with get_db_connection() as conn:
            result = invitations.update_member_role(
                conn, alpha["project"], alpha["u1"]["id"], ProjectRole.OWNER,
                alpha["u2"]["id"], ProjectRole.WRITE,
            )
        assert result.membership.role == ProjectRole.WRITE
        assert result.membership.status == MemberStatus.JOINED

        with get_db_connection() as conn:
            stored = store.get_membership(conn, alpha["project"].id, alpha["u2"]["id"])
            assert (stored.role, stored.status) == (ProjectRole.WRITE, MemberStatus.JOINED)
            assert outbox_events(conn)[-1] == ("project", alpha["project"].id, "member-role-updated")

    def test_pending_member_role_change_stays_pending(self, alpha):
        invite(alpha, role=ProjectRole.READ)
        with get_db_connection() as conn:
            result = invitations.update_member_role(
                conn, alpha["project"], alpha["u1"]["id"], ProjectRole.OWNER,
                alpha["u2"]["id"], ProjectRole.ADMIN,
            )
        assert result.membership.status == MemberStatus.PENDING

    def test_unknown_member_is_not_found(self, alpha):
        with get_db_connection() as conn:
            with pytest.raises(NotFound):
                invitations.update_member_role(
                    conn, alpha["project"], alpha["u1"]["id"], ProjectRole.OWNER,
                    alpha["u2"]["id"], ProjectRole.WRITE,
                )

    def test_last_owner_cannot_be_downgraded(self, alpha):
        with get_db_connection() as conn:
            with pytest.raises(Conflict, match="at least one owner"):
                invitations.update_member_role(
                    conn, alpha["project"], alpha["u1"]["id"], ProjectRole.OWNER,
                    alpha["u1"]["id"], ProjectRole.ADMIN,
                )

    def test_admin_cannot_touch_owner(self, alpha):
        invite(alpha, role=ProjectRole.ADMIN)
        respond(alpha, "JOINED")
        with get_db_connection() as conn:
            with pytest.raises(Forbidden):
                invitations.update_member_role(
                    conn, alpha["project"], alpha["u2"]["id"], ProjectRole.ADMIN,
                    alpha["u1"]["id"], ProjectRole.READ,
                )


class TestRemoveAndLeave:

    def test_remove_member_in_any_status(self, alpha):
        invite(alpha)
        with get_db_connection() as conn:
            result = invitations.remove_member(
                conn, alpha["project"], alpha["u1"]["id"], ProjectRole.OWNER, alpha["u2"]["id"]
            )
            assert store.get_membership(conn, alpha["project"].id, alpha["u2"]["id"]) is None
        assert len(result.outbox_ids) == 1

    def test_remove_unknown_member_is_not_found(self, alpha):
        with get_db_connection() as conn:
            with pytest.raises(NotFound):
                invitations.remove_member(
                    conn, alpha["project"], alpha["u1"]["id"], ProjectRole.OWNER, alpha["u2"]["id"]
                )

    def test_last_owner_cannot_leave(self, alpha):
        with get_db_connection() as conn:
            with pytest.raises(Conflict, match="at least one owner"):
                invitations.leave_project(conn, alpha["project"], alpha["u1"]["id"])

    def test_owner_can_leave_once_another_owner_joined(self, alpha):
        invite(alpha, role=ProjectRole.OWNER)
        respond(alpha, "JOINED")
        with get_db_connection() as conn:
            invitations.leave_project(conn, alpha["project"], alpha["u1"]["id"])
            members = store.list_members(conn, alpha["project"].id)
        assert [(m.user_id, m.role) for m in members] == [(alpha["u2"]["id"], ProjectRole.OWNER)]

    def test_pending_owner_does_not_count_as_replacement(self, alpha):
        invite(alpha, role=ProjectRole.OWNER)
        with get_db_connection() as conn:
            with pytest.raises(Conflict):
                invitations.leave_project(conn, alpha["project"], alpha["u1"]["id"])

    def test_entry_deleted_concurrently_is_not_found(self, alpha):
        invite(alpha)
        with get_db_connection() as conn:
            stale = store.get_membership(conn, alpha["project"].id, alpha["u2"]["id"])
            store.delete_member(conn, alpha["project"].id, alpha["u2"]["id"])

        # First lookup still sees the entry, the re-check after the DELETE does not
        with patch("collabhub.store.get_membership", side_effect=[stale, None]):
            with get_db_connection() as conn:
                with pytest.raises(NotFound):
                    invitations.remove_member(
                        conn, alpha["project"], alpha["u1"]["id"], ProjectRole.OWNER, alpha["u2"]["id"]
                    )

    def test_role_update_on_vanished_entry_is_not_found(self, alpha):
        invite(alpha)
        with get_db_connection() as conn:
            stale = store.get_membership(conn, alpha["project"].id, alpha["u2"]["id"])
            store.delete_member(conn, alpha["project"].id, alpha["u2"]["id"])

        with patch("collabhub.store.get_membership", side_effect=[stale, None]):
            with get_db_connection() as conn:
                with pytest.raises(NotFound):
                    invitations.update_member_role(
                        conn, alpha["project"], alpha["u1"]["id"], ProjectRole.OWNER,
                        alpha["u2"]["id"], ProjectRole.READ,
                    )

    def test_failed_removal_rolls_back_nothing_else(self, alpha):
        invite(alpha)
        with pytest.raises(Conflict):
            with get_db_connection() as conn:
                invitations.remove_member(
                    conn, alpha["project"], alpha["u1"]["id"], ProjectRole.OWNER, alpha["u1"]["id"]
                )
        with get_db_connection() as conn:
            assert len(store.list_members(conn, alpha["project"].id)) == 2
