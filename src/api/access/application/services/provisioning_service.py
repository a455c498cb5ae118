"""Provisioning application services for the access-control bounded context.

Provisioning turns an approved request item into a live grant. The single
item path changes the item, the grant and both audit trails in one
transaction. The bulk path fans items out concurrently, each in its own
session and transaction.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager

from sqlalchemy.ext.asyncio import AsyncSession

from access.application.catalog_lookup import require_user
from access.application.observability import (
    DefaultProvisioningServiceProbe,
    ProvisioningServiceProbe,
)
from access.application.services.audit_recorder import AuditRecorder
from access.application.services.grant_service import GrantService
from access.application.value_objects import (
    BulkProvisionResult,
    ProvisionedItem,
    ProvisionFailure,
)
from access.domain.aggregates import AccessGrant
from access.domain.policy import Action, can_act_on
from access.domain.value_objects import AccessRequestItemId, ItemStatus, UserId
from access.ports.catalog import ICatalogStore
from access.ports.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from access.ports.repositories import IAccessRequestRepository

_PROVISIONABLE = frozenset({ItemStatus.REQUESTED, ItemStatus.APPROVED})


class ProvisioningService:
    """Application service that provisions single request items."""

    def __init__(
        self,
        session: AsyncSession,
        request_repository: IAccessRequestRepository,
        grant_service: GrantService,
        catalog: ICatalogStore,
        audit_recorder: AuditRecorder,
        probe: ProvisioningServiceProbe | None = None,
    ):
        """Initialize ProvisioningService with dependencies.

        ``grant_service`` must be bound to the same session so the item
        and grant writes share a transaction.

        Args:
            session: Database session for transaction management
            request_repository: Repository for request persistence
            grant_service: Grant lifecycle service on the same session
            catalog: Read access to users
            audit_recorder: Publishes committed audit entries
            probe: Optional domain probe for observability
        """
        self._session = session
        self._request_repository = request_repository
        self._grant_service = grant_service
        self._catalog = catalog
        self._audit_recorder = audit_recorder
        self._probe = probe or DefaultProvisioningServiceProbe()

    async def provision_item(
        self,
        item_id: AccessRequestItemId,
        actor_id: UserId,
    ) -> AccessGrant:
        """Provision one item and return the grant it now points at.

        A requested item is approved by the provisioning actor first, so
        its audit trail still shows an approval.

        Raises:
            NotFoundError: If the item or actor does not exist
            ForbiddenError: If the actor is not an owner or admin
            ConflictError: If the item is rejected or already provisioned,
                or the target's grant is flagged for removal
        """
        try:
            actor = await require_user(self._catalog, actor_id)
            async with self._session.begin():
                request = await self._request_repository.get_by_item_id(item_id)
                if request is None:
                    raise NotFoundError(
                        f"Access request item {item_id.value} not found"
                    )
                target = await self._catalog.get_user(request.target_user_id)
                if not can_act_on(actor, target, Action.PROVISION):
                    raise ForbiddenError(
                        f"User {actor_id.value} may not provision access"
                    )

                item = request.get_item(item_id)
                if item.status not in _PROVISIONABLE:
                    raise ConflictError(
                        f"Item {item_id.value} is {item.status.value} "
                        "and cannot be provisioned"
                    )
                auto_approved = item.status == ItemStatus.REQUESTED
                if auto_approved:
                    request.approve_item(item_id, actor.id, auto=True)

                grant, grant_entries = await self._grant_service.ensure_active(
                    request.target_user_id, item.pair, actor.id
                )
                request.mark_item_provisioned(item_id, actor.id, grant.id)
                request_entries = await self._request_repository.save(request)

            self._probe.item_provisioned(
                item_id=item_id.value,
                grant_id=grant.id.value,
                actor_id=actor_id.value,
                auto_approved=auto_approved,
            )
        except Exception as e:
            self._probe.provisioning_failed(
                item_id=item_id.value,
                actor_id=actor_id.value,
                error=str(e),
            )
            raise

        await self._audit_recorder.publish([*request_entries, *grant_entries])
        return grant


ProvisioningScopeFactory = Callable[
    [], AbstractAsyncContextManager[ProvisioningService]
]
"""Opens a ProvisioningService bound to a fresh session, closed on exit."""


class BulkProvisioningService:
    """Provisions a batch of items concurrently.

    Items never share a session. A conflict or missing item is reported per
    item. Any other error cancels the items still in flight and stops queued
    ones from starting; items already committed stay committed.
    """

    def __init__(
        self,
        scope_factory: ProvisioningScopeFactory,
        bulk_limit: int = 100,
        concurrency: int = 8,
        probe: ProvisioningServiceProbe | None = None,
    ):
        """Initialize BulkProvisioningService.

        Args:
            scope_factory: Opens one ProvisioningService per item
            bulk_limit: Maximum number of distinct item ids per call
            concurrency: Maximum number of items in flight
            probe: Optional domain probe for observability
        """
        self._scope_factory = scope_factory
        self._bulk_limit = bulk_limit
        self._concurrency = concurrency
        self._probe = probe or DefaultProvisioningServiceProbe()

    async def provision_bulk(
        self,
        item_ids: Sequence[AccessRequestItemId],
        actor_id: UserId,
    ) -> BulkProvisionResult:
        """Provision several items.

        Duplicate ids are processed once. Results keep the order of first
        appearance.

        Raises:
            InvalidRequestError: If no ids or more than the bulk limit are
                given; nothing is processed in that case
        """
        unique_ids = list(dict.fromkeys(item_ids))
        if not unique_ids:
            raise InvalidRequestError("At least one item id is required")
        if len(unique_ids) > self._bulk_limit:
            raise InvalidRequestError(
                f"At most {self._bulk_limit} items can be provisioned at once"
            )

        self._probe.bulk_provisioning_started(
            actor_id=actor_id.value, item_count=len(unique_ids)
        )
        semaphore = asyncio.Semaphore(self._concurrency)
        aborted = asyncio.Event()

        async def provision_one(
            item_id: AccessRequestItemId,
        ) -> ProvisionedItem | ProvisionFailure | None:
            async with semaphore:
                if aborted.is_set():
                    return None
                try:
                    async with self._scope_factory() as service:
                        try:
                            grant = await service.provision_item(item_id, actor_id)
                        except (ConflictError, NotFoundError) as e:
                            return ProvisionFailure(
                                item_id=item_id,
                                reason=str(e),
                                error=type(e).__name__,
                            )
                        return ProvisionedItem(
                            item_id=item_id, access_grant_id=grant.id
                        )
                except Exception:
                    # Still holding the semaphore, so queued items see it
                    aborted.set()
                    raise

        try:
            async with asyncio.TaskGroup() as group:
                tasks = [
                    group.create_task(provision_one(item_id))
                    for item_id in unique_ids
                ]
        except ExceptionGroup as group_error:
            error = group_error.exceptions[0]
            self._probe.bulk_provisioning_aborted(
                actor_id=actor_id.value, error=str(error)
            )
            raise error from None

        result = BulkProvisionResult()
        for outcome in (task.result() for task in tasks):
            if isinstance(outcome, ProvisionFailure):
                result.failed.append(outcome)
            else:
                result.succeeded.append(outcome)

        self._probe.bulk_provisioning_completed(
            actor_id=actor_id.value,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
        )
        return result
