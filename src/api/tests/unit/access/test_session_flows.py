"""Service flows on a real AsyncSession.

The services run against an in-memory SQLite database through aiosqlite,
so reads followed by writes on one session exercise SQLAlchemy's own
transaction handling rather than the FakeSession used elsewhere.
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import access.infrastructure.models  # noqa: F401
from access.application.value_objects import GrantRow, RowOutcome
from access.dependencies import build_access_services
from access.domain.value_objects import (
    GrantStatus,
    ItemStatus,
    RequestStatus,
    ResourceType,
)
from access.ports.exceptions import ConflictError
from infrastructure.database.models import Base
from infrastructure.settings import AccessSettings


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def access(engine, catalog, sink):
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield build_access_services(session, catalog, sink, AccessSettings())


class TestRequestFlows:
    """Request reads followed by decisions on the same session."""

    @pytest.mark.asyncio
    async def test_submit_read_then_approve(self, access, pair, uid):
        request = await access.requests.submit_request(
            uid("u-alice"), uid("u-alice"), [pair("inst-x-prod", "tier-x-admin")]
        )

        loaded = await access.requests.get_request(request.id)
        item = await access.requests.approve_item(loaded.items[0].id, uid("u-manager"))

        assert item.status == ItemStatus.APPROVED
        reloaded = await access.requests.get_request(request.id)
        assert reloaded.status == RequestStatus.APPROVED
        _, total = await access.audit.list_entries()
        assert total == 2
        assert access.session.in_transaction() is False

    @pytest.mark.asyncio
    async def test_failed_decision_leaves_session_usable(self, access, pair, uid):
        request = await access.requests.submit_request(
            uid("u-alice"), uid("u-alice"), [pair("inst-x-prod", "tier-x-admin")]
        )
        item_id = request.items[0].id
        await access.requests.reject_item(item_id, uid("u-manager"), "not needed")

        with pytest.raises(ConflictError):
            await access.requests.approve_item(item_id, uid("u-manager"))

        pending = [r async for r in access.requests.list_pending(uid("u-manager"))]
        assert pending == []
        reloaded = await access.requests.get_request(request.id)
        assert reloaded.items[0].status == ItemStatus.REJECTED

    @pytest.mark.asyncio
    async def test_list_then_provision(self, access, pair, uid):
        request = await access.requests.submit_request(
            uid("u-manager"), uid("u-alice"), [pair("inst-x-prod", "tier-x-admin")]
        )

        waiting = await access.requests.list_pending_provisioning()
        grant = await access.provisioning.provision_item(waiting[0].id, uid("u-admin"))

        assert waiting[0].id == request.items[0].id
        assert (await access.grants.get_grant(grant.id)).status == GrantStatus.ACTIVE
        mine = await access.requests.list_for_user(uid("u-alice"))
        assert mine[0].items[0].status == ItemStatus.PROVISIONED


class TestGrantFlows:
    """Grant reads followed by writes on the same session."""

    @pytest.mark.asyncio
    async def test_read_then_remove(self, access, pair, uid):
        grant = await access.grants.log_grant(
            uid("u-admin"), uid("u-alice"), pair("inst-x-prod", "tier-x-read")
        )

        await access.grants.get_grant(grant.id)
        await access.grants.mark_for_removal(grant.id, uid("u-admin"))
        flagged = await access.grants.list_pending_removal()
        await access.grants.remove(flagged[0].id, uid("u-admin"))

        page = await access.grants.search_grants(status=GrantStatus.REMOVED)
        assert [g.id for g in page.items] == [grant.id]
        history = await access.audit.entries_for_resource(
            ResourceType.ACCESS_GRANT, grant.id.value
        )
        assert len(history) == 3

    @pytest.mark.asyncio
    async def test_bulk_log_then_search(self, access, pair, uid):
        read = pair("inst-x-prod", "tier-x-read")
        await access.grants.log_grant(uid("u-admin"), uid("u-bob"), read)

        result = await access.grants.bulk_log_grants(
            uid("u-owner"),
            [
                GrantRow(uid("u-alice"), read),
                GrantRow(uid("u-bob"), read),
                GrantRow(uid("u-carol"), pair("inst-y-prod", "tier-y-read")),
            ],
        )

        assert [r.outcome for r in result.rows] == [
            RowOutcome.CREATED,
            RowOutcome.SKIPPED,
            RowOutcome.CREATED,
        ]
        page = await access.grants.search_grants(
            system_instance_id=read.system_instance_id, limit=1
        )
        assert page.total == 2
        assert page.total_pages == 2
        assert len(page.items) == 1

    @pytest.mark.asyncio
    async def test_copy_after_reading_grants(self, access, pair, uid):
        await access.grants.log_grant(
            uid("u-admin"), uid("u-bob"), pair("inst-x-prod", "tier-x-read")
        )
        await access.grants.list_for_user(uid("u-bob"))

        result = await access.copies.copy_from_user(
            uid("u-manager"), uid("u-bob"), uid("u-alice")
        )

        assert result.summary.created == 1
        stored = await access.requests.get_request(result.created.id)
        assert stored.copied_from_user_id == uid("u-bob")
