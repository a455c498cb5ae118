"""Request application service for the access-control bounded context.

Orchestrates submission of access requests, the auto-approval policy and
manual approve/reject decisions. Every mutation runs in one transaction
together with its audit entries; notifications go out after commit.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from access.application.catalog_lookup import require_user, resolve_pair
from access.application.observability import (
    DefaultRequestServiceProbe,
    RequestServiceProbe,
)
from access.application.services.audit_recorder import AuditRecorder
from access.domain.aggregates import AccessRequest, AccessRequestItem
from access.domain.audit import AuditEntry
from access.domain.policy import Action, can_act_on, is_auto_approved
from access.domain.value_objects import (
    AccessPair,
    AccessRequestId,
    AccessRequestItemId,
    CopyOrigin,
    ItemStatus,
    UserId,
)
from access.ports.catalog import CatalogUser, ICatalogStore
from access.ports.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from access.ports.repositories import IAccessRequestRepository


class RequestService:
    """Application service for the request and approval lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        request_repository: IAccessRequestRepository,
        catalog: ICatalogStore,
        audit_recorder: AuditRecorder,
        reject_reason_max_length: int = 500,
        probe: RequestServiceProbe | None = None,
    ):
        """Initialize RequestService with dependencies.

        Args:
            session: Database session for transaction management
            request_repository: Repository for request persistence
            catalog: Read access to users, instances and tiers
            audit_recorder: Publishes committed audit entries
            reject_reason_max_length: Upper bound for rejection reasons
            probe: Optional domain probe for observability
        """
        self._session = session
        self._request_repository = request_repository
        self._catalog = catalog
        self._audit_recorder = audit_recorder
        self._reject_reason_max_length = reject_reason_max_length
        self._probe = probe or DefaultRequestServiceProbe()

    async def submit_request(
        self,
        requester_id: UserId,
        target_user_id: UserId,
        items: Sequence[AccessPair],
        note: str | None = None,
        copy_origin: CopyOrigin | None = None,
    ) -> AccessRequest:
        """Submit a request for one or more (instance, tier) pairs.

        Each item is checked against the auto-approval policy. Approved
        items are stamped with the requester as decider and audited as
        ``item_approved`` with ``decision: "auto"``.

        Args:
            requester_id: The user submitting the request
            target_user_id: The user who would receive the access
            items: The pairs being requested, in submission order
            note: Optional free text
            copy_origin: Set when the request mirrors another user's grants

        Returns:
            The persisted AccessRequest

        Raises:
            InvalidRequestError: If items is empty, holds duplicates, or pairs
                a tier with an instance of another system
            NotFoundError: If a user, instance or tier does not exist
            ForbiddenError: If the requester may not request for the target
        """
        try:
            async with self._session.begin():
                request, entries = await self.create_request(
                    requester_id=requester_id,
                    target_user_id=target_user_id,
                    items=items,
                    note=note,
                    copy_origin=copy_origin,
                )
        except Exception as e:
            self._probe.request_submission_failed(
                requester_id=requester_id.value,
                target_user_id=target_user_id.value,
                error=str(e),
            )
            raise

        await self._audit_recorder.publish(entries)
        return request

    async def create_request(
        self,
        requester_id: UserId,
        target_user_id: UserId,
        items: Sequence[AccessPair],
        note: str | None = None,
        copy_origin: CopyOrigin | None = None,
    ) -> tuple[AccessRequest, list[AuditEntry]]:
        """Validate and store a request inside the caller's open transaction.

        Same rules as ``submit_request``, but nothing is committed or
        published here. Used by grant copy so the diff against the target's
        grants and the insert share one transaction.

        Returns:
            The stored request and the audit entries written for it
        """
        _check_pairs(items)
        requester = await require_user(self._catalog, requester_id)
        target = await require_user(self._catalog, target_user_id)
        if not can_act_on(requester, target, Action.REQUEST):
            raise ForbiddenError(
                f"User {requester_id.value} may not request access "
                f"for user {target_user_id.value}"
            )

        auto_approved: list[AccessPair] = []
        for pair in items:
            _, tier = await resolve_pair(self._catalog, pair)
            if is_auto_approved(requester, target, tier.self_approvable):
                auto_approved.append(pair)

        request = AccessRequest.submit(
            requester_id=requester.id,
            target_user_id=target.id,
            pairs=items,
            auto_approved=auto_approved,
            note=note,
            copy_origin=copy_origin,
        )
        entries = await self._request_repository.save(request)

        self._probe.request_submitted(
            request_id=request.id.value,
            requester_id=requester_id.value,
            target_user_id=target_user_id.value,
            item_count=len(request.items),
            auto_approved_count=len(auto_approved),
        )
        return request, entries

    async def approve_item(
        self,
        item_id: AccessRequestItemId,
        actor_id: UserId,
    ) -> AccessRequestItem:
        """Approve a requested item.

        Raises:
            NotFoundError: If the item or actor does not exist
            ForbiddenError: If the actor is neither the target's manager
                nor an owner or admin
            ConflictError: If the item is not in requested state
        """
        try:
            actor = await require_user(self._catalog, actor_id)
            async with self._session.begin():
                request = await self._load_for_decision(item_id, actor)
                item = request.approve_item(item_id, actor.id)
                entries = await self._request_repository.save(request)

            self._probe.item_decided(
                request_id=request.id.value,
                item_id=item_id.value,
                actor_id=actor_id.value,
                decision="approved",
            )
        except Exception as e:
            self._probe.item_decision_failed(
                item_id=item_id.value,
                actor_id=actor_id.value,
                decision="approved",
                error=str(e),
            )
            raise

        await self._audit_recorder.publish(entries)
        return item

    async def reject_item(
        self,
        item_id: AccessRequestItemId,
        actor_id: UserId,
        reason: str,
    ) -> AccessRequestItem:
        """Reject a requested item with a reason.

        Raises:
            InvalidRequestError: If the reason is blank or too long
            NotFoundError: If the item or actor does not exist
            ForbiddenError: If the actor may not decide for the target
            ConflictError: If the item is not in requested state
        """
        try:
            reason = self._normalize_reason(reason)
            actor = await require_user(self._catalog, actor_id)
            async with self._session.begin():
                request = await self._load_for_decision(item_id, actor)
                item = request.reject_item(item_id, actor.id, reason)
                entries = await self._request_repository.save(request)

            self._probe.item_decided(
                request_id=request.id.value,
                item_id=item_id.value,
                actor_id=actor_id.value,
                decision="rejected",
            )
        except Exception as e:
            self._probe.item_decision_failed(
                item_id=item_id.value,
                actor_id=actor_id.value,
                decision="rejected",
                error=str(e),
            )
            raise

        await self._audit_recorder.publish(entries)
        return item

    async def approve_request(
        self,
        request_id: AccessRequestId,
        actor_id: UserId,
    ) -> AccessRequest:
        """Approve every item of a request that still awaits a decision.

        Raises:
            NotFoundError: If the request or actor does not exist
            ForbiddenError: If the actor may not decide for the target
            ConflictError: If no item is in requested state
        """
        try:
            actor = await require_user(self._catalog, actor_id)
            async with self._session.begin():
                request = await self._load_request_for_decision(request_id, actor)
                pending = self._require_pending(request)
                for item in pending:
                    request.approve_item(item.id, actor.id)
                entries = await self._request_repository.save(request)

            self._probe.request_decided(
                request_id=request_id.value,
                actor_id=actor_id.value,
                decision="approved",
                item_count=len(pending),
            )
        except Exception as e:
            self._probe.request_decision_failed(
                request_id=request_id.value,
                actor_id=actor_id.value,
                decision="approved",
                error=str(e),
            )
            raise

        await self._audit_recorder.publish(entries)
        return request

    async def reject_request(
        self,
        request_id: AccessRequestId,
        actor_id: UserId,
        reason: str,
    ) -> AccessRequest:
        """Reject every item of a request that still awaits a decision.

        Raises:
            InvalidRequestError: If the reason is blank or too long
            NotFoundError: If the request or actor does not exist
            ForbiddenError: If the actor may not decide for the target
            ConflictError: If no item is in requested state
        """
        try:
            reason = self._normalize_reason(reason)
            actor = await require_user(self._catalog, actor_id)
            async with self._session.begin():
                request = await self._load_request_for_decision(request_id, actor)
                pending = self._require_pending(request)
                for item in pending:
                    request.reject_item(item.id, actor.id, reason)
                entries = await self._request_repository.save(request)

            self._probe.request_decided(
                request_id=request_id.value,
                actor_id=actor_id.value,
                decision="rejected",
                item_count=len(pending),
            )
        except Exception as e:
            self._probe.request_decision_failed(
                request_id=request_id.value,
                actor_id=actor_id.value,
                decision="rejected",
                error=str(e),
            )
            raise

        await self._audit_recorder.publish(entries)
        return request

    async def get_request(self, request_id: AccessRequestId) -> AccessRequest:
        """Fetch a request with its items.

        Raises:
            NotFoundError: If the request does not exist
        """
        async with self._session.begin():
            request = await self._request_repository.get_by_id(request_id)
        if request is None:
            raise NotFoundError(f"Access request {request_id.value} not found")
        return request

    async def list_pending(self, manager_id: UserId) -> AsyncIterator[AccessRequest]:
        """Yield requests awaiting a decision from a manager, oldest first.

        Only requests whose target reports directly to ``manager_id`` and
        that still hold at least one requested item are produced. The
        iterator is finite and cannot be restarted.

        Raises:
            NotFoundError: If the manager does not exist
        """
        manager = await require_user(self._catalog, manager_id)
        reports = await self._catalog.list_direct_reports(manager.id)
        if not reports:
            return

        async with self._session.begin():
            requests = await self._request_repository.list_pending_for_targets(
                [report.id for report in reports]
            )
        for request in requests:
            if request.pending_items:
                yield request

    async def list_for_user(self, user_id: UserId) -> list[AccessRequest]:
        """List requests the user submitted or is the target of, newest first."""
        async with self._session.begin():
            return await self._request_repository.list_for_user(user_id)

    async def list_pending_provisioning(self) -> list[AccessRequestItem]:
        """List approved items that have no grant yet, oldest request first."""
        async with self._session.begin():
            requests = await self._request_repository.list_with_item_status(
                ItemStatus.APPROVED
            )
        return [
            item
            for request in requests
            for item in request.items
            if item.status == ItemStatus.APPROVED
        ]

    async def _load_for_decision(
        self, item_id: AccessRequestItemId, actor: CatalogUser
    ) -> AccessRequest:
        request = await self._request_repository.get_by_item_id(item_id)
        if request is None:
            raise NotFoundError(f"Access request item {item_id.value} not found")
        await self._check_can_decide(request, actor)
        return request

    async def _load_request_for_decision(
        self, request_id: AccessRequestId, actor: CatalogUser
    ) -> AccessRequest:
        request = await self._request_repository.get_by_id(request_id)
        if request is None:
            raise NotFoundError(f"Access request {request_id.value} not found")
        await self._check_can_decide(request, actor)
        return request

    async def _check_can_decide(
        self, request: AccessRequest, actor: CatalogUser
    ) -> None:
        target = await self._catalog.get_user(request.target_user_id)
        if not can_act_on(actor, target, Action.DECIDE):
            raise ForbiddenError(
                f"User {actor.id.value} may not decide on requests for "
                f"user {request.target_user_id.value}"
            )

    def _require_pending(self, request: AccessRequest) -> list[AccessRequestItem]:
        pending = request.pending_items
        if not pending:
            raise ConflictError(
                f"Access request {request.id.value} has no items awaiting a decision"
            )
        return pending

    def _normalize_reason(self, reason: str | None) -> str:
        reason = (reason or "").strip()
        if not reason:
            raise InvalidRequestError("A rejection reason is required")
        if len(reason) > self._reject_reason_max_length:
            raise InvalidRequestError(
                "Rejection reason must be at most "
                f"{self._reject_reason_max_length} characters"
            )
        return reason


def _check_pairs(items: Sequence[AccessPair]) -> None:
    if not items:
        raise InvalidRequestError("An access request needs at least one item")
    if len(set(items)) != len(items):
        raise InvalidRequestError("An access request cannot list the same item twice")
