"""Fixtures for access-control unit tests.

Service tests run against in-memory implementations of the ports. The
fakes persist copies of aggregates, apply the same conditional-update and
one-current-grant rules as the PostgreSQL repositories, and write audit
entries through the real AuditEventSerializer. FakeSession restores the
store when a transaction block raises, so rollback behaviour is observable.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

import pytest
from sqlalchemy.exc import InvalidRequestError

from access.application.services import (
    AuditRecorder,
    BulkProvisioningService,
    GrantCopyService,
    GrantService,
    ProvisioningService,
    RequestService,
)
from access.domain.aggregates import AccessGrant, AccessRequest
from access.domain.audit import AuditEntry, AuditQuery
from access.domain.grant_query import GrantQuery
from access.domain.value_objects import (
    AccessGrantId,
    AccessPair,
    AccessRequestId,
    AccessRequestItemId,
    AccessTierId,
    GrantStatus,
    ItemStatus,
    SystemId,
    SystemInstanceId,
    UserId,
    UserRole,
)
from access.infrastructure.audit import AuditEventSerializer
from access.ports.catalog import (
    CatalogAccessTier,
    CatalogSystemInstance,
    CatalogUser,
)
from access.ports.exceptions import (
    AuditWriteError,
    ConcurrentModificationError,
    ConflictError,
)


@dataclass
class InMemoryStore:
    """Backing state shared by the in-memory repositories."""

    requests: dict[str, AccessRequest] = field(default_factory=dict)
    grants: dict[str, AccessGrant] = field(default_factory=dict)
    audit: list[AuditEntry] = field(default_factory=list)
    fail_audit: bool = False

    def snapshot(self) -> tuple:
        return copy.deepcopy((self.requests, self.grants, self.audit))

    def restore(self, snapshot: tuple) -> None:
        self.requests, self.grants, self.audit = snapshot

    def audit_actions(self) -> list[str]:
        return [entry.action.value for entry in self.audit]


class _FakeTransaction:
    def __init__(self, session: FakeSession):
        self._session = session
        self._snapshot: tuple | None = None

    async def __aenter__(self) -> _FakeTransaction:
        if self._session.in_transaction:
            raise InvalidRequestError("A transaction is already begun on this Session.")
        self._session.in_transaction = True
        self._snapshot = self._session.store.snapshot()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self._session.in_transaction = False
        if exc_type is not None:
            self._session.store.restore(self._snapshot)
            self._session.rollbacks += 1
        else:
            self._session.commits += 1
        return False


class FakeSession:
    """Stands in for AsyncSession; only ``begin()`` is used by services.

    Like AsyncSession, a second ``begin()`` while a transaction is open raises.
    """

    def __init__(self, store: InMemoryStore):
        self.store = store
        self.commits = 0
        self.rollbacks = 0
        self.in_transaction = False

    def begin(self) -> _FakeTransaction:
        return _FakeTransaction(self)


class InMemoryAuditLog:
    def __init__(self, store: InMemoryStore):
        self._store = store

    async def append(self, entries) -> None:
        if not entries:
            return
        if self._store.fail_audit:
            raise AuditWriteError("audit log unavailable")
        self._store.audit.extend(entries)

    async def list_entries(self, query: AuditQuery) -> tuple[list[AuditEntry], int]:
        matching = [e for e in reversed(self._store.audit) if query.matches(e)]
        matching.sort(key=lambda e: e.created_at, reverse=True)
        return matching[query.offset : query.offset + query.limit], len(matching)


class InMemoryAccessRequestRepository:
    def __init__(self, store: InMemoryStore, audit_log: InMemoryAuditLog):
        self._store = store
        self._audit_log = audit_log
        self._serializer = AuditEventSerializer()

    async def save(self, request: AccessRequest) -> list[AuditEntry]:
        if not request.is_new:
            stored = self._store.requests[request.id.value]
            for item in request.dirty_items:
                if stored.get_item(item.id).status != item.persisted_status:
                    raise ConcurrentModificationError(
                        f"Item {item.id.value} is no longer {item.persisted_status}"
                    )
        entries = self._serializer.to_entries(request.collect_events())
        await self._audit_log.append(entries)
        request.mark_persisted()
        self._store.requests[request.id.value] = copy.deepcopy(request)
        return entries

    async def get_by_id(self, request_id: AccessRequestId) -> AccessRequest | None:
        request = self._store.requests.get(request_id.value)
        return copy.deepcopy(request) if request is not None else None

    async def get_by_item_id(self, item_id: AccessRequestItemId):
        for request in self._store.requests.values():
            if any(item.id == item_id for item in request.items):
                return copy.deepcopy(request)
        return None

    async def list_pending_for_targets(self, target_user_ids):
        targets = set(target_user_ids)
        return self._sorted(
            r
            for r in self._store.requests.values()
            if r.target_user_id in targets
            and any(i.status == ItemStatus.REQUESTED for i in r.items)
        )

    async def list_for_user(self, user_id: UserId):
        matching = [
            r
            for r in self._store.requests.values()
            if user_id in (r.requester_id, r.target_user_id)
        ]
        return list(reversed(self._sorted(matching)))

    async def list_with_item_status(self, status: ItemStatus):
        return self._sorted(
            r
            for r in self._store.requests.values()
            if any(i.status == status for i in r.items)
        )

    def _sorted(self, requests) -> list[AccessRequest]:
        return [
            copy.deepcopy(r) for r in sorted(requests, key=lambda r: r.created_at)
        ]


class InMemoryAccessGrantRepository:
    def __init__(self, store: InMemoryStore, audit_log: InMemoryAuditLog):
        self._store = store
        self._audit_log = audit_log
        self._serializer = AuditEventSerializer()

    async def save(self, grant: AccessGrant) -> list[AuditEntry]:
        if grant.is_new:
            if await self.get_current(grant.user_id, grant.pair) is not None:
                raise ConflictError(f"User already holds a current grant on {grant.pair}")
        elif grant.status != grant.persisted_status:
            stored = self._store.grants[grant.id.value]
            if stored.status != grant.persisted_status:
                raise ConcurrentModificationError(
                    f"Grant {grant.id.value} is no longer {grant.persisted_status}"
                )
        entries = self._serializer.to_entries(grant.collect_events())
        await self._audit_log.append(entries)
        grant.mark_persisted()
        self._store.grants[grant.id.value] = copy.deepcopy(grant)
        return entries

    async def get_by_id(self, grant_id: AccessGrantId) -> AccessGrant | None:
        grant = self._store.grants.get(grant_id.value)
        return copy.deepcopy(grant) if grant is not None else None

    async def get_current(self, user_id: UserId, pair: AccessPair):
        for grant in self._store.grants.values():
            if (
                grant.user_id == user_id
                and grant.pair == pair
                and grant.status != GrantStatus.REMOVED
            ):
                return copy.deepcopy(grant)
        return None

    async def get_latest_removed(self, user_id: UserId, pair: AccessPair):
        removed = [
            g
            for g in self._store.grants.values()
            if g.user_id == user_id
            and g.pair == pair
            and g.status == GrantStatus.REMOVED
        ]
        if not removed:
            return None
        return copy.deepcopy(max(removed, key=lambda g: g.removed_at))

    async def list_for_user(self, user_id: UserId, status: GrantStatus | None = None):
        return [
            copy.deepcopy(g)
            for g in sorted(self._store.grants.values(), key=lambda g: g.granted_at)
            if g.user_id == user_id and (status is None or g.status == status)
        ]

    async def list_by_status(self, status: GrantStatus):
        return [
            copy.deepcopy(g)
            for g in sorted(self._store.grants.values(), key=lambda g: g.granted_at)
            if g.status == status
        ]

    async def search(self, query: GrantQuery):
        matching = sorted(
            (g for g in self._store.grants.values() if query.matches(g)),
            key=lambda g: (g.granted_at, g.id.value),
            reverse=query.newest_first,
        )
        page = matching[query.offset : query.offset + query.limit]
        return [copy.deepcopy(g) for g in page], len(matching)


class InMemoryCatalog:
    def __init__(self):
        self.users: dict[UserId, CatalogUser] = {}
        self.instances: dict[SystemInstanceId, CatalogSystemInstance] = {}
        self.tiers: dict[AccessTierId, CatalogAccessTier] = {}

    def add_user(
        self, user_id: str, role: UserRole, manager_id: str | None = None
    ) -> CatalogUser:
        user = CatalogUser(
            id=UserId(user_id),
            name=user_id.removeprefix("u-").title(),
            email=f"{user_id}@example.com",
            role=role,
            manager_id=UserId(manager_id) if manager_id else None,
        )
        self.users[user.id] = user
        return user

    def add_instance(self, instance_id: str, system_id: str) -> None:
        self.instances[SystemInstanceId(instance_id)] = CatalogSystemInstance(
            id=SystemInstanceId(instance_id),
            system_id=SystemId(system_id),
            name=instance_id,
        )

    def add_tier(self, tier_id: str, system_id: str, self_approvable: bool = False):
        self.tiers[AccessTierId(tier_id)] = CatalogAccessTier(
            id=AccessTierId(tier_id),
            system_id=SystemId(system_id),
            name=tier_id,
            self_approvable=self_approvable,
        )

    async def get_user(self, user_id: UserId) -> CatalogUser | None:
        return self.users.get(user_id)

    async def get_system_instance(self, instance_id: SystemInstanceId):
        return self.instances.get(instance_id)

    async def get_access_tier(self, tier_id: AccessTierId):
        return self.tiers.get(tier_id)

    async def get_manager_of(self, user_id: UserId) -> CatalogUser | None:
        user = self.users.get(user_id)
        if user is None or user.manager_id is None:
            return None
        return self.users.get(user.manager_id)

    async def list_direct_reports(self, manager_id: UserId) -> list[CatalogUser]:
        return [u for u in self.users.values() if u.manager_id == manager_id]

    async def list_system_instances(self, system_id: SystemId):
        return [i for i in self.instances.values() if i.system_id == system_id]


class RecordingEventSink:
    def __init__(self):
        self.published: list[tuple[str, dict[str, Any]]] = []
        self.fail = False

    async def publish(self, event_kind: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("sink down")
        self.published.append((event_kind, payload))

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.published]


@dataclass
class Services:
    session: FakeSession
    audit: AuditRecorder
    requests: RequestService
    grants: GrantService
    provisioning: ProvisioningService
    copies: GrantCopyService
    request_repository: InMemoryAccessRequestRepository
    grant_repository: InMemoryAccessGrantRepository


def build_services(
    store: InMemoryStore, catalog: InMemoryCatalog, sink: RecordingEventSink
) -> Services:
    session = FakeSession(store)
    audit_log = InMemoryAuditLog(store)
    request_repository = InMemoryAccessRequestRepository(store, audit_log)
    grant_repository = InMemoryAccessGrantRepository(store, audit_log)
    audit = AuditRecorder(
        session=session, audit_log_repository=audit_log, event_sink=sink
    )
    requests = RequestService(
        session=session,
        request_repository=request_repository,
        catalog=catalog,
        audit_recorder=audit,
    )
    grants = GrantService(
        session=session,
        grant_repository=grant_repository,
        catalog=catalog,
        audit_recorder=audit,
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
    return Services(
        session=session,
        audit=audit,
        requests=requests,
        grants=grants,
        provisioning=provisioning,
        copies=copies,
        request_repository=request_repository,
        grant_repository=grant_repository,
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def catalog() -> InMemoryCatalog:
    """Catalog with a small org tree and two systems.

    - manager manages alice and bob; other-manager manages carol
    - sys-x: instances inst-x-prod and inst-x-stage, tiers tier-x-read
      (self-approvable) and tier-x-admin
    - sys-y: instance inst-y-prod, tier tier-y-read
    """
    catalog = InMemoryCatalog()
    catalog.add_user("u-admin", UserRole.ADMIN)
    catalog.add_user("u-owner", UserRole.OWNER)
    catalog.add_user("u-manager", UserRole.MANAGER)
    catalog.add_user("u-other-manager", UserRole.MANAGER)
    catalog.add_user("u-alice", UserRole.MEMBER, manager_id="u-manager")
    catalog.add_user("u-bob", UserRole.MEMBER, manager_id="u-manager")
    catalog.add_user("u-carol", UserRole.MEMBER, manager_id="u-other-manager")

    catalog.add_instance("inst-x-prod", "sys-x")
    catalog.add_instance("inst-x-stage", "sys-x")
    catalog.add_instance("inst-y-prod", "sys-y")
    catalog.add_tier("tier-x-read", "sys-x", self_approvable=True)
    catalog.add_tier("tier-x-admin", "sys-x")
    catalog.add_tier("tier-y-read", "sys-y")
    return catalog


@pytest.fixture
def sink() -> RecordingEventSink:
    return RecordingEventSink()


@pytest.fixture
def services(store, catalog, sink) -> Services:
    return build_services(store, catalog, sink)


@pytest.fixture
def bulk_provisioning(store, catalog, sink) -> BulkProvisioningService:
    """Bulk service whose per-item scope builds fresh services on the shared store."""
    from contextlib import asynccontextmanager

    @asynccontextmanager
    async def scope():
        yield build_services(store, catalog, sink).provisioning

    return BulkProvisioningService(scope_factory=scope, bulk_limit=100, concurrency=4)


def make_pair(instance: str, tier: str) -> AccessPair:
    return AccessPair(SystemInstanceId(instance), AccessTierId(tier))


@pytest.fixture
def pair():
    """Build an AccessPair from instance and tier id strings."""
    return make_pair


@pytest.fixture
def uid():
    """Build a UserId from a string."""
    return UserId
