"""PostgreSQL implementation of IAuditLogRepository.

The repository shares the calling service's session and never commits, so
audit rows land in the same transaction as the change they describe.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from access.domain.audit import AuditEntry, AuditQuery
from access.domain.value_objects import (
    AuditAction,
    AuditEntryId,
    ResourceType,
    UserId,
)
from access.infrastructure.models import AuditLogModel
from access.infrastructure.observability import (
    AuditLogRepositoryProbe,
    DefaultAuditLogRepositoryProbe,
)
from access.ports.exceptions import AuditWriteError
from access.ports.repositories import IAuditLogRepository


class AuditLogRepository(IAuditLogRepository):
    """Append-only audit log stored in PostgreSQL."""

    def __init__(
        self,
        session: AsyncSession,
        probe: AuditLogRepositoryProbe | None = None,
    ) -> None:
        """Initialize repository with database session.

        Args:
            session: AsyncSession shared with the calling service
            probe: Optional domain probe for observability
        """
        self._session = session
        self._probe = probe or DefaultAuditLogRepositoryProbe()

    async def append(self, entries: Sequence[AuditEntry]) -> None:
        """Append entries and flush them within the current transaction.

        Raises:
            AuditWriteError: If the database rejects the rows
        """
        if not entries:
            return

        for entry in entries:
            self._session.add(
                AuditLogModel(
                    id=entry.id.value,
                    action=entry.action.value,
                    actor_id=entry.actor_id.value,
                    target_user_id=(
                        entry.target_user_id.value if entry.target_user_id else None
                    ),
                    resource_type=entry.resource_type.value,
                    resource_id=entry.resource_id,
                    details=dict(entry.details),
                    reason=entry.reason,
                    created_at=entry.created_at,
                )
            )

        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            self._probe.append_failed(count=len(entries), error=str(e))
            raise AuditWriteError(f"Failed to append {len(entries)} audit entries") from e

        self._probe.entries_appended(count=len(entries))

    async def list_entries(self, query: AuditQuery) -> tuple[list[AuditEntry], int]:
        """Return one page of matching entries, newest first, and the total count.

        Args:
            query: Filters and paging

        Returns:
            Tuple of (entries on the page, total matching entries)
        """
        conditions = []
        if query.action is not None:
            conditions.append(AuditLogModel.action == query.action.value)
        if query.actor_id is not None:
            conditions.append(AuditLogModel.actor_id == query.actor_id.value)
        if query.target_user_id is not None:
            conditions.append(
                AuditLogModel.target_user_id == query.target_user_id.value
            )
        if query.resource_type is not None:
            conditions.append(
                AuditLogModel.resource_type == query.resource_type.value
            )
        if query.resource_id is not None:
            conditions.append(AuditLogModel.resource_id == query.resource_id)

        where = and_(*conditions) if conditions else None

        count_stmt = select(func.count()).select_from(AuditLogModel)
        page_stmt = select(AuditLogModel)
        if where is not None:
            count_stmt = count_stmt.where(where)
            page_stmt = page_stmt.where(where)
        page_stmt = (
            page_stmt.order_by(AuditLogModel.created_at.desc(), AuditLogModel.id.desc())
            .limit(query.limit)
            .offset(query.offset)
        )

        total = (await self._session.execute(count_stmt)).scalar_one()
        result = await self._session.execute(page_stmt)
        models = result.scalars().all()
        return [self._to_entry(model) for model in models], total

    def _to_entry(self, model: AuditLogModel) -> AuditEntry:
        """Convert SQLAlchemy model to an audit entry."""
        return AuditEntry(
            id=AuditEntryId(value=model.id),
            action=AuditAction(model.action),
            actor_id=UserId(value=model.actor_id),
            target_user_id=(
                UserId(value=model.target_user_id) if model.target_user_id else None
            ),
            resource_type=ResourceType(model.resource_type),
            resource_id=model.resource_id,
            details=dict(model.details or {}),
            reason=model.reason,
            created_at=model.created_at,
        )
