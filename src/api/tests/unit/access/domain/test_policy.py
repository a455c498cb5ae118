"""Unit tests for access-control policy rules."""

import pytest

from access.domain.policy import (
    Action,
    aggregate_request_status,
    can_act_on,
    is_auto_approved,
    is_partially_approved,
)
from access.domain.value_objects import ItemStatus, RequestStatus, UserId, UserRole
from access.ports.catalog import CatalogUser


def _user(user_id: str, role: UserRole, manager_id: str | None = None) -> CatalogUser:
    return CatalogUser(
        id=UserId(user_id),
        name=user_id,
        email=f"{user_id}@example.com",
        role=role,
        manager_id=UserId(manager_id) if manager_id else None,
    )


ADMIN = _user("admin", UserRole.ADMIN)
OWNER = _user("owner", UserRole.OWNER)
MANAGER = _user("manager", UserRole.MANAGER)
OTHER_MANAGER = _user("other-manager", UserRole.MANAGER)
ALICE = _user("alice", UserRole.MEMBER, manager_id="manager")
BOB = _user("bob", UserRole.MEMBER, manager_id="manager")


class TestCanActOn:
    """Tests for the capability check."""

    @pytest.mark.parametrize("actor", [ADMIN, OWNER])
    @pytest.mark.parametrize("action", list(Action))
    def test_privileged_roles_pass_every_check(self, actor, action):
        assert can_act_on(actor, ALICE, action)
        assert can_act_on(actor, None, action)

    def test_user_may_request_for_self(self):
        assert can_act_on(ALICE, ALICE, Action.REQUEST)

    def test_peer_may_not_request(self):
        assert not can_act_on(BOB, ALICE, Action.REQUEST)

    def test_manager_may_request_for_report(self):
        assert can_act_on(MANAGER, ALICE, Action.REQUEST)

    def test_other_manager_may_not_request(self):
        assert not can_act_on(OTHER_MANAGER, ALICE, Action.REQUEST)

    @pytest.mark.parametrize("action", [Action.DECIDE, Action.COPY_GRANTS])
    def test_only_direct_manager_decides_or_copies(self, action):
        assert can_act_on(MANAGER, ALICE, action)
        assert not can_act_on(ALICE, ALICE, action)
        assert not can_act_on(OTHER_MANAGER, ALICE, action)

    @pytest.mark.parametrize("action", [Action.PROVISION, Action.MANAGE_GRANT])
    def test_managers_may_not_provision_or_manage(self, action):
        assert not can_act_on(MANAGER, ALICE, action)

    def test_missing_target_denies_non_privileged(self):
        assert not can_act_on(MANAGER, None, Action.DECIDE)

    def test_self_managed_user_is_not_own_manager(self):
        loop = _user("loop", UserRole.MANAGER, manager_id="loop")

        assert not can_act_on(loop, loop, Action.DECIDE)


class TestIsAutoApproved:
    """Tests for the auto-approval policy."""

    def test_manager_request_for_report(self):
        assert is_auto_approved(MANAGER, ALICE, tier_self_approvable=False)

    def test_privileged_requester(self):
        assert is_auto_approved(ADMIN, ALICE, tier_self_approvable=False)

    def test_self_request_on_self_approvable_tier(self):
        assert is_auto_approved(ALICE, ALICE, tier_self_approvable=True)

    def test_self_request_on_regular_tier(self):
        assert not is_auto_approved(ALICE, ALICE, tier_self_approvable=False)

    def test_self_approvable_applies_only_to_self(self):
        assert not is_auto_approved(BOB, ALICE, tier_self_approvable=True)


class TestAggregateRequestStatus:
    """Tests for deriving a request status from its items."""

    R = ItemStatus.REQUESTED
    A = ItemStatus.APPROVED
    X = ItemStatus.REJECTED
    P = ItemStatus.PROVISIONED

    @pytest.mark.parametrize(
        ("statuses", "expected"),
        [
            ([R], RequestStatus.REQUESTED),
            ([R, A], RequestStatus.REQUESTED),
            ([A, A], RequestStatus.APPROVED),
            ([A, P], RequestStatus.APPROVED),
            ([X, A], RequestStatus.APPROVED),
            ([X, P], RequestStatus.APPROVED),
            ([X, X], RequestStatus.REJECTED),
            ([X, R], RequestStatus.REQUESTED),
        ],
    )
    def test_derivation(self, statuses, expected):
        assert aggregate_request_status(statuses) == expected

    def test_partially_approved(self):
        assert is_partially_approved([self.R, self.A])
        assert is_partially_approved([self.R, self.P])
        assert not is_partially_approved([self.R, self.X])
        assert not is_partially_approved([self.A, self.P])
