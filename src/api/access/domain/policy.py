"""Access-control policy rules.

Pure functions shared by every application service:

- ``aggregate_request_status`` derives a request's status from its items.
- ``can_act_on`` is the single capability check for role and hierarchy.
- ``is_auto_approved`` decides whether a submitted item skips manual sign-off.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from enum import StrEnum
from typing import Protocol

from access.domain.value_objects import ItemStatus, RequestStatus, UserId, UserRole

_PRIVILEGED_ROLES = frozenset({UserRole.OWNER, UserRole.ADMIN})
_APPROVED_STATES = frozenset({ItemStatus.APPROVED, ItemStatus.PROVISIONED})


class Principal(Protocol):
    """Minimal view of a catalog user needed for policy decisions."""

    @property
    def id(self) -> UserId: ...

    @property
    def role(self) -> UserRole: ...

    @property
    def manager_id(self) -> UserId | None: ...


class Action(StrEnum):
    """Actions guarded by the capability check."""

    REQUEST = "request"
    DECIDE = "decide"
    COPY_GRANTS = "copy_grants"
    PROVISION = "provision"
    MANAGE_GRANT = "manage_grant"


def is_privileged(actor: Principal) -> bool:
    """Owners and admins may act on anyone."""
    return actor.role in _PRIVILEGED_ROLES


def manages(actor: Principal, target: Principal) -> bool:
    """Check whether actor is the direct manager of target."""
    return (
        target.manager_id is not None
        and target.manager_id == actor.id
        and actor.id != target.id
    )


def _is_self_or_manager(actor: Principal, target: Principal) -> bool:
    return actor.id == target.id or manages(actor, target)


def _privileged_only(actor: Principal, target: Principal) -> bool:
    return False


_RULES: dict[Action, Callable[[Principal, Principal], bool]] = {
    Action.REQUEST: _is_self_or_manager,
    Action.DECIDE: manages,
    Action.COPY_GRANTS: manages,
    Action.PROVISION: _privileged_only,
    Action.MANAGE_GRANT: _privileged_only,
}


def can_act_on(actor: Principal, target: Principal | None, action: Action) -> bool:
    """Check whether ``actor`` may perform ``action`` for ``target``.

    Owners and admins pass every check. Everyone else is judged by the rule
    registered for the action:

    - REQUEST: the target themselves or their direct manager
    - DECIDE, COPY_GRANTS: the target's direct manager
    - PROVISION, MANAGE_GRANT: nobody below owner

    Args:
        actor: The user attempting the action
        target: The user the action is about (grant holder, request target).
            None when that user is no longer in the catalog, in which case
            only owners and admins may act.
        action: The guarded action

    Returns:
        True if the action is permitted
    """
    if is_privileged(actor):
        return True
    if target is None:
        return False
    return _RULES[action](actor, target)


def is_auto_approved(
    requester: Principal,
    target: Principal,
    tier_self_approvable: bool,
) -> bool:
    """Decide whether a submitted item is approved without manual sign-off.

    An item is auto-approved when the requester is the target's direct
    manager, when the requester holds the owner or admin role, or when a
    user requests a tier flagged self-approvable for themselves.
    """
    if is_privileged(requester) or manages(requester, target):
        return True
    return requester.id == target.id and tier_self_approvable


def aggregate_request_status(statuses: Iterable[ItemStatus]) -> RequestStatus:
    """Derive the request status from the multiset of its item statuses.

    - ``rejected`` when every item is rejected
    - ``approved`` when every non-rejected item is approved or provisioned
    - ``requested`` otherwise, including mixed approved/requested sets
    """
    remaining = [s for s in statuses if s != ItemStatus.REJECTED]
    if not remaining:
        return RequestStatus.REJECTED
    if all(s in _APPROVED_STATES for s in remaining):
        return RequestStatus.APPROVED
    return RequestStatus.REQUESTED


def is_partially_approved(statuses: Iterable[ItemStatus]) -> bool:
    """True when some items are approved while others still await a decision."""
    seen = set(statuses)
    return ItemStatus.REQUESTED in seen and bool(seen & _APPROVED_STATES)
