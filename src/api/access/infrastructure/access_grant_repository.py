"""PostgreSQL implementation of IAccessGrantRepository.

Grant inserts rely on a partial unique index to keep at most one
non-removed grant per (user, instance, tier). Status changes are written
with a conditional update on the status the grant was loaded with.

Domain events collected from the aggregate are converted into audit
entries and appended in the same transaction.
"""

from __future__ import annotations

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from access.domain.aggregates import AccessGrant
from access.domain.audit import AuditEntry
from access.domain.grant_query import GrantQuery
from access.domain.value_objects import (
    AccessGrantId,
    AccessPair,
    AccessTierId,
    GrantStatus,
    SystemInstanceId,
    UserId,
)
from access.infrastructure.audit import AuditEventSerializer
from access.infrastructure.models import AccessGrantModel
from access.infrastructure.observability import (
    AccessGrantRepositoryProbe,
    DefaultAccessGrantRepositoryProbe,
)
from access.ports.exceptions import ConcurrentModificationError, ConflictError
from access.ports.repositories import IAccessGrantRepository, IAuditLogRepository


class AccessGrantRepository(IAccessGrantRepository):
    """Repository for AccessGrant aggregate persistence to PostgreSQL."""

    def __init__(
        self,
        session: AsyncSession,
        audit_log: IAuditLogRepository,
        probe: AccessGrantRepositoryProbe | None = None,
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
        self._probe = probe or DefaultAccessGrantRepositoryProbe()
        self._serializer = serializer or AuditEventSerializer()

    async def save(self, grant: AccessGrant) -> list[AuditEntry]:
        """Insert or conditionally update a grant, then append its audit entries.

        Raises:
            ConflictError: If the insert violates the one-current-grant index
            ConcurrentModificationError: If the stored status no longer
                matches the status the grant was loaded with
            AuditWriteError: If the audit entries could not be appended
        """
        if grant.is_new:
            self._session.add(
                AccessGrantModel(
                    id=grant.id.value,
                    user_id=grant.user_id.value,
                    system_instance_id=grant.system_instance_id.value,
                    access_tier_id=grant.access_tier_id.value,
                    status=grant.status.value,
                    granted_by=grant.granted_by.value if grant.granted_by else None,
                    granted_at=grant.granted_at,
                    removed_at=grant.removed_at,
                )
            )
            # Flush to catch integrity errors before audit writes
            try:
                await self._session.flush()
            except IntegrityError as e:
                self._probe.duplicate_current_grant(
                    grant.user_id.value, str(grant.pair)
                )
                raise ConflictError(
                    f"User {grant.user_id.value} already holds a current grant "
                    f"on {grant.pair}"
                ) from e
        elif grant.status != grant.persisted_status:
            expected = grant.persisted_status
            stmt = (
                update(AccessGrantModel)
                .where(
                    and_(
                        AccessGrantModel.id == grant.id.value,
                        AccessGrantModel.status == expected.value,
                    )
                )
                .values(status=grant.status.value, removed_at=grant.removed_at)
            )
            result = await self._session.execute(stmt)
            if result.rowcount != 1:
                self._probe.concurrent_grant_update(grant.id.value, expected.value)
                raise ConcurrentModificationError(
                    f"Grant {grant.id.value} is no longer {expected.value}"
                )

        events = grant.collect_events()
        entries = self._serializer.to_entries(events)
        await self._audit_log.append(entries)
        grant.mark_persisted()

        self._probe.grant_saved(grant.id.value, grant.status.value, len(events))
        return entries

    async def get_by_id(self, grant_id: AccessGrantId) -> AccessGrant | None:
        """Retrieve a grant by ID.

        Returns:
            The AccessGrant aggregate, or None if not found
        """
        stmt = select(AccessGrantModel).where(AccessGrantModel.id == grant_id.value)
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()

        if model is None:
            self._probe.grant_not_found(grant_id.value)
            return None

        self._probe.grant_retrieved(grant_id.value)
        return self._to_aggregate(model)

    async def get_current(
        self, user_id: UserId, pair: AccessPair
    ) -> AccessGrant | None:
        """Retrieve the non-removed grant for a (user, instance, tier)."""
        stmt = select(AccessGrantModel).where(
            and_(
                *self._triple(user_id, pair),
                AccessGrantModel.status != GrantStatus.REMOVED.value,
            )
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_aggregate(model) if model is not None else None

    async def get_latest_removed(
        self, user_id: UserId, pair: AccessPair
    ) -> AccessGrant | None:
        """Retrieve the most recently removed grant for a (user, instance, tier)."""
        stmt = (
            select(AccessGrantModel)
            .where(
                and_(
                    *self._triple(user_id, pair),
                    AccessGrantModel.status == GrantStatus.REMOVED.value,
                )
            )
            .order_by(
                AccessGrantModel.removed_at.desc().nulls_last(),
                AccessGrantModel.granted_at.desc(),
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalars().first()
        return self._to_aggregate(model) if model is not None else None

    async def list_for_user(
        self, user_id: UserId, status: GrantStatus | None = None
    ) -> list[AccessGrant]:
        """List a user's grants, optionally filtered by status, oldest first."""
        conditions = [AccessGrantModel.user_id == user_id.value]
        if status is not None:
            conditions.append(AccessGrantModel.status == status.value)

        stmt = (
            select(AccessGrantModel)
            .where(and_(*conditions))
            .order_by(AccessGrantModel.granted_at, AccessGrantModel.id)
        )
        result = await self._session.execute(stmt)
        return [self._to_aggregate(model) for model in result.scalars().all()]

    async def list_by_status(self, status: GrantStatus) -> list[AccessGrant]:
        """List every grant in ``status``, oldest first."""
        stmt = (
            select(AccessGrantModel)
            .where(AccessGrantModel.status == status.value)
            .order_by(AccessGrantModel.granted_at, AccessGrantModel.id)
        )
        result = await self._session.execute(stmt)
        return [self._to_aggregate(model) for model in result.scalars().all()]

    async def search(self, query: GrantQuery) -> tuple[list[AccessGrant], int]:
        """Return one page of grants matching ``query`` and the total count."""
        conditions = []
        if query.user_id is not None:
            conditions.append(AccessGrantModel.user_id == query.user_id.value)
        if query.system_instance_ids is not None:
            conditions.append(
                AccessGrantModel.system_instance_id.in_(
                    [instance_id.value for instance_id in query.system_instance_ids]
                )
            )
        if query.access_tier_id is not None:
            conditions.append(
                AccessGrantModel.access_tier_id == query.access_tier_id.value
            )
        if query.status is not None:
            conditions.append(AccessGrantModel.status == query.status.value)

        count_stmt = (
            select(func.count()).select_from(AccessGrantModel).where(*conditions)
        )
        total = (await self._session.execute(count_stmt)).scalar_one()

        if query.newest_first:
            ordering = (AccessGrantModel.granted_at.desc(), AccessGrantModel.id.desc())
        else:
            ordering = (AccessGrantModel.granted_at, AccessGrantModel.id)
        stmt = (
            select(AccessGrantModel)
            .where(*conditions)
            .order_by(*ordering)
            .limit(query.limit)
            .offset(query.offset)
        )
        result = await self._session.execute(stmt)
        grants = [self._to_aggregate(model) for model in result.scalars().all()]
        return grants, total

    def _triple(self, user_id: UserId, pair: AccessPair) -> list:
        return [
            AccessGrantModel.user_id == user_id.value,
            AccessGrantModel.system_instance_id == pair.system_instance_id.value,
            AccessGrantModel.access_tier_id == pair.access_tier_id.value,
        ]

    def _to_aggregate(self, model: AccessGrantModel) -> AccessGrant:
        """Convert SQLAlchemy model to domain aggregate.

        Args:
            model: The AccessGrantModel to convert

        Returns:
            The AccessGrant domain aggregate
        """
        status = GrantStatus(model.status)
        return AccessGrant(
            id=AccessGrantId(value=model.id),
            user_id=UserId(value=model.user_id),
            system_instance_id=SystemInstanceId(value=model.system_instance_id),
            access_tier_id=AccessTierId(value=model.access_tier_id),
            status=status,
            granted_at=model.granted_at,
            granted_by=UserId(value=model.granted_by) if model.granted_by else None,
            removed_at=model.removed_at,
            _persisted_status=status,
        )
