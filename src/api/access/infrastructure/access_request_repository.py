"""PostgreSQL implementation of IAccessRequestRepository.

A request is stored as one access_requests row plus one
access_request_items row per item. Requests are inserted whole; after
that only item rows change, each through a conditional update on the
status it was loaded with.

Domain events collected from the aggregate are converted into audit
entries and appended in the same transaction.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence

from sqlalchemy import and_, exists, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from access.domain.aggregates import AccessRequest, AccessRequestItem
from access.domain.audit import AuditEntry
from access.domain.value_objects import (
    AccessGrantId,
    AccessRequestId,
    AccessRequestItemId,
    AccessTierId,
    ItemStatus,
    SystemInstanceId,
    UserId,
)
from access.infrastructure.audit import AuditEventSerializer
from access.infrastructure.models import AccessRequestItemModel, AccessRequestModel
from access.infrastructure.observability import (
    AccessRequestRepositoryProbe,
    DefaultAccessRequestRepositoryProbe,
)
from access.ports.exceptions import ConcurrentModificationError, ConflictError
from access.ports.repositories import IAccessRequestRepository, IAuditLogRepository


class AccessRequestRepository(IAccessRequestRepository):
    """Repository for AccessRequest aggregate persistence to PostgreSQL."""

    def __init__(
        self,
        session: AsyncSession,
        audit_log: IAuditLogRepository,
        probe: AccessRequestRepositoryProbe | None = None,
        serializer: AuditEventSerializer | None = None,
    ) -> None:
        """Initialize repository with database session and audit log.

        Args:
            session: AsyncSession shared with the calling service
            audit_log: Audit log written in the same transaction
            probe: Optional domain probe for observability
            serializer: Optional event serializer for testability
        """
        self._session = session
        self._audit_log = audit_log
        self._probe = probe or DefaultAccessRequestRepositoryProbe()
        self._serializer = serializer or AuditEventSerializer()

    async def save(self, request: AccessRequest) -> list[AuditEntry]:
        """Persist a request, then append the audit entries for its events.

        Raises:
            ConflictError: If the insert violates a uniqueness constraint
            ConcurrentModificationError: If an item's stored status no longer
                matches the status it was loaded with
            AuditWriteError: If the audit entries could not be appended
        """
        if request.is_new:
            await self._insert(request)
        else:
            for item in request.dirty_items:
                await self._update_item(request, item)

        events = request.collect_events()
        entries = self._serializer.to_entries(events)
        await self._audit_log.append(entries)
        request.mark_persisted()

        self._probe.request_saved(request.id.value, len(request.items), len(events))
        return entries

    async def get_by_id(self, request_id: AccessRequestId) -> AccessRequest | None:
        """Retrieve a request with its items.

        Returns:
            The AccessRequest aggregate, or None if not found
        """
        stmt = select(AccessRequestModel).where(
            AccessRequestModel.id == request_id.value
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()

        if model is None:
            self._probe.request_not_found("id", request_id.value)
            return None

        (request,) = await self._hydrate([model])
        self._probe.request_retrieved(request.id.value)
        return request

    async def get_by_item_id(
        self, item_id: AccessRequestItemId
    ) -> AccessRequest | None:
        """Retrieve the request that owns an item."""
        stmt = select(AccessRequestItemModel.access_request_id).where(
            AccessRequestItemModel.id == item_id.value
        )
        result = await self._session.execute(stmt)
        request_id = result.scalar_one_or_none()

        if request_id is None:
            self._probe.request_not_found("item_id", item_id.value)
            return None

        return await self.get_by_id(AccessRequestId(value=request_id))

    async def list_pending_for_targets(
        self, target_user_ids: Sequence[UserId]
    ) -> list[AccessRequest]:
        """List requests with a requested item for the given targets, oldest first."""
        if not target_user_ids:
            return []

        stmt = (
            select(AccessRequestModel)
            .where(
                and_(
                    AccessRequestModel.target_user_id.in_(
                        [user_id.value for user_id in target_user_ids]
                    ),
                    self._has_item_in(ItemStatus.REQUESTED),
                )
            )
            .order_by(AccessRequestModel.created_at, AccessRequestModel.id)
        )
        return await self._fetch(stmt)

    async def list_for_user(self, user_id: UserId) -> list[AccessRequest]:
        """List requests where the user is requester or target, newest first."""
        stmt = (
            select(AccessRequestModel)
            .where(
                or_(
                    AccessRequestModel.requester_id == user_id.value,
                    AccessRequestModel.target_user_id == user_id.value,
                )
            )
            .order_by(AccessRequestModel.created_at.desc(), AccessRequestModel.id.desc())
        )
        return await self._fetch(stmt)

    async def list_with_item_status(self, status: ItemStatus) -> list[AccessRequest]:
        """List requests holding an item in ``status``, oldest first."""
        stmt = (
            select(AccessRequestModel)
            .where(self._has_item_in(status))
            .order_by(AccessRequestModel.created_at, AccessRequestModel.id)
        )
        return await self._fetch(stmt)

    async def _insert(self, request: AccessRequest) -> None:
        self._session.add(
            AccessRequestModel(
                id=request.id.value,
                requester_id=request.requester_id.value,
                target_user_id=request.target_user_id.value,
                note=request.note,
                copied_from_user_id=(
                    request.copied_from_user_id.value
                    if request.copied_from_user_id
                    else None
                ),
                created_at=request.created_at,
            )
        )
        for item in request.items:
            self._session.add(
                AccessRequestItemModel(
                    id=item.id.value,
                    access_request_id=request.id.value,
                    position=item.position,
                    system_instance_id=item.system_instance_id.value,
                    access_tier_id=item.access_tier_id.value,
                    status=item.status.value,
                    rejection_reason=item.rejection_reason,
                    decided_by=item.decided_by.value if item.decided_by else None,
                    decided_at=item.decided_at,
                    access_grant_id=(
                        item.access_grant_id.value if item.access_grant_id else None
                    ),
                )
            )

        # Flush to catch integrity errors before audit writes
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise ConflictError(
                f"Access request {request.id.value} could not be stored"
            ) from e

    async def _update_item(
        self, request: AccessRequest, item: AccessRequestItem
    ) -> None:
        expected = item.persisted_status
        stmt = (
            update(AccessRequestItemModel)
            .where(
                and_(
                    AccessRequestItemModel.id == item.id.value,
                    AccessRequestItemModel.status == expected.value,
                )
            )
            .values(
                status=item.status.value,
                rejection_reason=item.rejection_reason,
                decided_by=item.decided_by.value if item.decided_by else None,
                decided_at=item.decided_at,
                access_grant_id=(
                    item.access_grant_id.value if item.access_grant_id else None
                ),
            )
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            self._probe.concurrent_item_update(
                request.id.value, item.id.value, expected.value
            )
            raise ConcurrentModificationError(
                f"Item {item.id.value} is no longer {expected.value}"
            )

    def _has_item_in(self, status: ItemStatus):
        return exists().where(
            and_(
                AccessRequestItemModel.access_request_id == AccessRequestModel.id,
                AccessRequestItemModel.status == status.value,
            )
        )

    async def _fetch(self, stmt) -> list[AccessRequest]:
        result = await self._session.execute(stmt)
        models = result.scalars().all()
        if not models:
            return []
        return await self._hydrate(models)

    async def _hydrate(
        self, models: Sequence[AccessRequestModel]
    ) -> list[AccessRequest]:
        """Load items for the given request rows and build aggregates.

        One query fetches the items of every request; order follows ``models``.
        """
        stmt = (
            select(AccessRequestItemModel)
            .where(
                AccessRequestItemModel.access_request_id.in_([m.id for m in models])
            )
            .order_by(
                AccessRequestItemModel.access_request_id,
                AccessRequestItemModel.position,
            )
        )
        result = await self._session.execute(stmt)
        items_by_request: dict[str, list[AccessRequestItemModel]] = defaultdict(list)
        for item_model in result.scalars().all():
            items_by_request[item_model.access_request_id].append(item_model)

        return [
            self._to_aggregate(model, items_by_request[model.id]) for model in models
        ]

    def _to_aggregate(
        self,
        model: AccessRequestModel,
        item_models: Sequence[AccessRequestItemModel],
    ) -> AccessRequest:
        """Convert SQLAlchemy models to domain aggregate.

        Args:
            model: The AccessRequestModel to convert
            item_models: The request's item rows

        Returns:
            The AccessRequest domain aggregate
        """
        request_id = AccessRequestId(value=model.id)
        return AccessRequest(
            id=request_id,
            requester_id=UserId(value=model.requester_id),
            target_user_id=UserId(value=model.target_user_id),
            created_at=model.created_at,
            note=model.note,
            copied_from_user_id=(
                UserId(value=model.copied_from_user_id)
                if model.copied_from_user_id
                else None
            ),
            items=[
                self._to_item(request_id, item_model)
                for item_model in sorted(item_models, key=lambda m: m.position)
            ],
        )

    def _to_item(
        self, request_id: AccessRequestId, model: AccessRequestItemModel
    ) -> AccessRequestItem:
        status = ItemStatus(model.status)
        return AccessRequestItem(
            id=AccessRequestItemId(value=model.id),
            access_request_id=request_id,
            position=model.position,
            system_instance_id=SystemInstanceId(value=model.system_instance_id),
            access_tier_id=AccessTierId(value=model.access_tier_id),
            status=status,
            rejection_reason=model.rejection_reason,
            decided_by=UserId(value=model.decided_by) if model.decided_by else None,
            decided_at=model.decided_at,
            access_grant_id=(
                AccessGrantId(value=model.access_grant_id)
                if model.access_grant_id
                else None
            ),
            _persisted_status=status,
        )
