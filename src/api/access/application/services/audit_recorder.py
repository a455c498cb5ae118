"""Audit recorder application service.

Audit entries are appended by the repositories inside each use case's
transaction. This service covers the two things that happen outside of it:
publishing committed entries to the event sink, and reading the log back
in a short read transaction of its own.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from access.application.observability import (
    AuditRecorderProbe,
    DefaultAuditRecorderProbe,
)
from access.domain.audit import AuditEntry, AuditQuery
from access.domain.value_objects import AuditAction, ResourceType, UserId
from access.ports.events import IEventSink
from access.ports.exceptions import InvalidRequestError
from access.ports.repositories import IAuditLogRepository

_RESOURCE_HISTORY_LIMIT = 500


class AuditRecorder:
    """Publishes committed audit entries and serves audit queries."""

    def __init__(
        self,
        session: AsyncSession,
        audit_log_repository: IAuditLogRepository,
        event_sink: IEventSink,
        probe: AuditRecorderProbe | None = None,
    ):
        """Initialize AuditRecorder with dependencies.

        Args:
            session: Database session for audit reads
            audit_log_repository: Append-only audit store
            event_sink: Receiver of post-commit notifications
            probe: Optional domain probe for observability
        """
        self._session = session
        self._audit_log_repository = audit_log_repository
        self._event_sink = event_sink
        self._probe = probe or DefaultAuditRecorderProbe()

    async def publish(self, entries: Iterable[AuditEntry]) -> None:
        """Hand committed entries to the event sink, in order.

        Delivery is best effort: a failing sink is logged and the remaining
        entries are still offered. Nothing is raised to the caller, whose
        transaction has already committed.
        """
        for entry in entries:
            try:
                await self._event_sink.publish(entry.action.value, entry.to_payload())
            except Exception as e:
                self._probe.event_publish_failed(
                    action=entry.action.value,
                    resource_id=entry.resource_id,
                    error=str(e),
                )
                continue
            self._probe.event_published(
                action=entry.action.value, resource_id=entry.resource_id
            )

    async def list_entries(
        self,
        action: AuditAction | None = None,
        actor_id: UserId | None = None,
        target_user_id: UserId | None = None,
        resource_type: ResourceType | None = None,
        resource_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AuditEntry], int]:
        """Return one page of the audit log, newest first, with the total count.

        Raises:
            InvalidRequestError: If limit or offset is out of range
        """
        try:
            query = AuditQuery(
                action=action,
                actor_id=actor_id,
                target_user_id=target_user_id,
                resource_type=resource_type,
                resource_id=resource_id,
                limit=limit,
                offset=offset,
            )
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e
        async with self._session.begin():
            return await self._audit_log_repository.list_entries(query)

    async def entries_for_resource(
        self, resource_type: ResourceType, resource_id: str
    ) -> list[AuditEntry]:
        """Return the history of one request, item or grant, newest first."""
        query = AuditQuery(
            resource_type=resource_type,
            resource_id=resource_id,
            limit=_RESOURCE_HISTORY_LIMIT,
        )
        async with self._session.begin():
            entries, _ = await self._audit_log_repository.list_entries(query)
        return entries
