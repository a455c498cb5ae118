"""Composition of the access-control services.

Builds repositories and services around one session. Every service that
takes part in a use case shares that session, so the item, grant and audit
writes of one operation commit or roll back together.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from access.application.services import (
    AuditRecorder,
    BulkProvisioningService,
    GrantCopyService,
    GrantService,
    ProvisioningScopeFactory,
    ProvisioningService,
    RequestService,
)
from access.infrastructure.access_grant_repository import AccessGrantRepository
from access.infrastructure.access_request_repository import AccessRequestRepository
from access.infrastructure.audit_log_repository import AuditLogRepository
from access.infrastructure.event_sink import LoggingEventSink
from access.ports.catalog import ICatalogStore
from access.ports.events import IEventSink
from infrastructure.database.dependencies import write_session
from infrastructure.settings import AccessSettings, get_access_settings

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


@dataclass(frozen=True)
class AccessServices:
    """The access-control services bound to one session."""

    session: AsyncSession
    audit: AuditRecorder
    requests: RequestService
    grants: GrantService
    provisioning: ProvisioningService
    copies: GrantCopyService


def build_access_services(
    session: AsyncSession,
    catalog: ICatalogStore,
    event_sink: IEventSink | None = None,
    settings: AccessSettings | None = None,
) -> AccessServices:
    """Wire repositories and services around ``session``.

    Args:
        session: Session shared by every repository and service
        catalog: Read access to users, instances and tiers
        event_sink: Receiver of post-commit notifications; logs by default
        settings: Access settings; read from the environment by default

    Returns:
        AccessServices bound to the session
    """
    settings = settings or get_access_settings()
    sink = event_sink or LoggingEventSink()

    audit_log = AuditLogRepository(session=session)
    request_repository = AccessRequestRepository(session=session, audit_log=audit_log)
    grant_repository = AccessGrantRepository(session=session, audit_log=audit_log)
    audit = AuditRecorder(
        session=session, audit_log_repository=audit_log, event_sink=sink
    )

    requests = RequestService(
        session=session,
        request_repository=request_repository,
        catalog=catalog,
        audit_recorder=audit,
        reject_reason_max_length=settings.reject_reason_max_length,
    )
    grants = GrantService(
        session=session,
        grant_repository=grant_repository,
        catalog=catalog,
        audit_recorder=audit,
        bulk_limit=settings.bulk_limit,
    )
    provisioning = ProvisioningService(
        session=session,
        request_repository=request_repository,
        grant_service=grants,
        catalog=catalog,
        audit_recorder=audit,
    )
    copies = GrantCopyService(
        session=session,
        grant_repository=grant_repository,
        request_service=requests,
        catalog=catalog,
        audit_recorder=audit,
    )
    return AccessServices(
        session=session,
        audit=audit,
        requests=requests,
        grants=grants,
        provisioning=provisioning,
        copies=copies,
    )


@asynccontextmanager
async def access_services(
    catalog: ICatalogStore,
    event_sink: IEventSink | None = None,
    settings: AccessSettings | None = None,
    session_factory: SessionFactory = write_session,
) -> AsyncIterator[AccessServices]:
    """Open a session and yield the services bound to it.

    The session is closed on exit. Each service method, reads included,
    opens and closes its own transaction on it.
    """
    async with session_factory() as session:
        yield build_access_services(session, catalog, event_sink, settings)


def provisioning_scope_factory(
    catalog: ICatalogStore,
    event_sink: IEventSink | None = None,
    settings: AccessSettings | None = None,
    session_factory: SessionFactory = write_session,
) -> ProvisioningScopeFactory:
    """Build the per-item scope used by bulk provisioning.

    Each call of the returned factory opens a new session and yields a
    ProvisioningService bound to it.
    """

    @asynccontextmanager
    async def scope() -> AsyncIterator[ProvisioningService]:
        async with access_services(
            catalog, event_sink, settings, session_factory
        ) as services:
            yield services.provisioning

    return scope


def build_bulk_provisioning_service(
    catalog: ICatalogStore,
    event_sink: IEventSink | None = None,
    settings: AccessSettings | None = None,
    session_factory: SessionFactory = write_session,
) -> BulkProvisioningService:
    """Build a BulkProvisioningService with limits from settings."""
    settings = settings or get_access_settings()
    return BulkProvisioningService(
        scope_factory=provisioning_scope_factory(
            catalog, event_sink, settings, session_factory
        ),
        bulk_limit=settings.bulk_limit,
        concurrency=settings.bulk_concurrency,
    )
