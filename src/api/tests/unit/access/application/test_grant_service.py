"""Unit tests for GrantService."""

from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio

from access.application.value_objects import GrantRow, RowOutcome
from access.domain.value_objects import (
    AccessGrantId,
    AccessTierId,
    GrantStatus,
    SystemId,
    SystemInstanceId,
)
from access.ports.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)


@pytest.fixture
def read_pair(pair):
    return pair("inst-x-prod", "tier-x-read")


class TestCreateOrActivate:
    """Tests for the idempotent grant entry point."""

    @pytest.mark.asyncio
    async def test_creates_grant_once(self, services, store, read_pair, uid):
        first = await services.grants.create_or_activate(
            uid("u-alice"), read_pair, uid("u-admin")
        )
        second = await services.grants.create_or_activate(
            uid("u-alice"), read_pair, uid("u-admin")
        )

        assert first.id == second.id
        assert first.status == GrantStatus.ACTIVE
        assert len(store.grants) == 1
        assert store.audit_actions() == ["grant_created"]

    @pytest.mark.asyncio
    async def test_removed_grant_is_superseded(self, services, store, read_pair, uid):
        first = await services.grants.create_or_activate(
            uid("u-alice"), read_pair, uid("u-admin")
        )
        await services.grants.remove(first.id, uid("u-admin"))

        second = await services.grants.create_or_activate(
            uid("u-alice"), read_pair, uid("u-admin")
        )

        assert second.id != first.id
        assert second.status == GrantStatus.ACTIVE
        assert (await services.grants.get_grant(first.id)).status == GrantStatus.REMOVED
        activated = store.audit[-1]
        assert activated.action.value == "grant_activated"
        assert activated.details["superseded_grant_id"] == first.id.value

    @pytest.mark.asyncio
    async def test_grant_flagged_for_removal_conflicts(
        self, services, read_pair, uid
    ):
        grant = await services.grants.create_or_activate(
            uid("u-alice"), read_pair, uid("u-admin")
        )
        await services.grants.mark_for_removal(grant.id, uid("u-admin"))

        with pytest.raises(ConflictError):
            await services.grants.create_or_activate(
                uid("u-alice"), read_pair, uid("u-admin")
            )


class TestLogGrant:
    """Tests for recording access granted outside the request flow."""

    @pytest.mark.asyncio
    async def test_admin_logs_grant(self, services, store, read_pair, uid):
        grant = await services.grants.log_grant(uid("u-admin"), uid("u-alice"), read_pair)

        assert grant.granted_by == uid("u-admin")
        assert store.audit_actions() == ["grant_created"]

    @pytest.mark.asyncio
    async def test_manager_may_not_log_grant(self, services, read_pair, uid):
        with pytest.raises(ForbiddenError):
            await services.grants.log_grant(uid("u-manager"), uid("u-alice"), read_pair)

    @pytest.mark.asyncio
    async def test_existing_grant_conflicts(self, services, read_pair, uid):
        await services.grants.log_grant(uid("u-admin"), uid("u-alice"), read_pair)

        with pytest.raises(ConflictError):
            await services.grants.log_grant(uid("u-owner"), uid("u-alice"), read_pair)

    @pytest.mark.asyncio
    async def test_mismatched_tier_is_invalid(self, services, pair, uid):
        with pytest.raises(InvalidRequestError):
            await services.grants.log_grant(
                uid("u-admin"), uid("u-alice"), pair("inst-y-prod", "tier-x-read")
            )


class TestTransitions:
    """Tests for mark_for_removal and remove."""

    @pytest.fixture
    def logged(self, services, read_pair, uid):
        async def _logged():
            return await services.grants.log_grant(
                uid("u-admin"), uid("u-alice"), read_pair
            )

        return _logged

    @pytest.mark.asyncio
    async def test_mark_for_removal_then_remove(self, services, store, logged, uid):
        grant = await logged()

        flagged = await services.grants.mark_for_removal(grant.id, uid("u-admin"))
        pending = await services.grants.list_pending_removal()
        removed = await services.grants.remove(grant.id, uid("u-owner"))

        assert flagged.status == GrantStatus.TO_REMOVE
        assert [g.id for g in pending] == [grant.id]
        assert removed.status == GrantStatus.REMOVED
        assert removed.removed_at is not None
        assert store.audit_actions() == [
            "grant_created",
            "grant_marked_for_removal",
            "grant_removed",
        ]
        assert store.audit[-1].details["previous_status"] == "to_remove"

    @pytest.mark.asyncio
    async def test_remove_twice_conflicts(self, services, logged, uid):
        grant = await logged()
        await services.grants.remove(grant.id, uid("u-admin"))

        with pytest.raises(ConflictError):
            await services.grants.remove(grant.id, uid("u-admin"))

    @pytest.mark.asyncio
    async def test_member_may_not_remove(self, services, store, logged, uid):
        grant = await logged()

        with pytest.raises(ForbiddenError):
            await services.grants.remove(grant.id, uid("u-manager"))

        assert store.grants[grant.id.value].status == GrantStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_unknown_grant_not_found(self, services, uid):
        with pytest.raises(NotFoundError):
            await services.grants.remove(AccessGrantId.generate(), uid("u-admin"))

    @pytest.mark.asyncio
    async def test_list_for_user_filters_by_status(self, services, pair, uid):
        kept = await services.grants.log_grant(
            uid("u-admin"), uid("u-alice"), pair("inst-x-prod", "tier-x-read")
        )
        dropped = await services.grants.log_grant(
            uid("u-admin"), uid("u-alice"), pair("inst-y-prod", "tier-y-read")
        )
        await services.grants.remove(dropped.id, uid("u-admin"))

        active = await services.grants.list_for_user(uid("u-alice"), GrantStatus.ACTIVE)
        every = await services.grants.list_for_user(uid("u-alice"))

        assert [g.id for g in active] == [kept.id]
        assert {g.id for g in every} == {kept.id, dropped.id}


class TestBulkOperations:
    """Tests for bulk mark-for-removal and removal."""

    @pytest.mark.asyncio
    async def test_bulk_remove_reports_per_grant(self, services, store, pair, uid):
        first = await services.grants.log_grant(
            uid("u-admin"), uid("u-alice"), pair("inst-x-prod", "tier-x-read")
        )
        second = await services.grants.log_grant(
            uid("u-admin"), uid("u-bob"), pair("inst-x-prod", "tier-x-read")
        )
        await services.grants.remove(second.id, uid("u-admin"))
        missing = AccessGrantId.generate()

        result = await services.grants.bulk_remove(
            [first.id, second.id, missing, first.id], uid("u-admin")
        )

        assert [g.id for g in result.succeeded] == [first.id]
        assert [(f.grant_id, f.error) for f in result.failed] == [
            (second.id, "ConflictError"),
            (missing, "NotFoundError"),
        ]
        assert store.grants[first.id.value].status == GrantStatus.REMOVED

    @pytest.mark.asyncio
    async def test_bulk_mark_for_removal(self, services, pair, uid):
        grant = await services.grants.log_grant(
            uid("u-admin"), uid("u-alice"), pair("inst-x-prod", "tier-x-read")
        )

        result = await services.grants.bulk_mark_for_removal([grant.id], uid("u-owner"))

        assert result.failed == []
        assert result.succeeded[0].status == GrantStatus.TO_REMOVE

    @pytest.mark.asyncio
    async def test_bulk_requires_ids(self, services, uid):
        with pytest.raises(InvalidRequestError):
            await services.grants.bulk_remove([], uid("u-admin"))

    @pytest.mark.asyncio
    async def test_bulk_limit(self, services, uid):
        ids = [AccessGrantId.generate() for _ in range(101)]

        with pytest.raises(InvalidRequestError):
            await services.grants.bulk_remove(ids, uid("u-admin"))

    @pytest.mark.asyncio
    async def test_bulk_by_non_privileged_actor_is_forbidden(self, services, uid):
        with pytest.raises(ForbiddenError):
            await services.grants.bulk_remove([AccessGrantId.generate()], uid("u-manager"))


class TestBulkLogGrants:
    """Tests for logging a batch of externally granted access."""

    @pytest.mark.asyncio
    async def test_rows_are_created_skipped_or_failed(
        self, services, store, sink, pair, uid
    ):
        held = await services.grants.log_grant(
            uid("u-admin"), uid("u-bob"), pair("inst-x-prod", "tier-x-read")
        )
        flagged = await services.grants.log_grant(
            uid("u-admin"), uid("u-carol"), pair("inst-y-prod", "tier-y-read")
        )
        await services.grants.mark_for_removal(flagged.id, uid("u-admin"))
        audit_before = len(store.audit)
        rows = [
            GrantRow(uid("u-alice"), pair("inst-x-prod", "tier-x-read")),
            GrantRow(uid("u-bob"), pair("inst-x-prod", "tier-x-read")),
            GrantRow(uid("u-ghost"), pair("inst-x-prod", "tier-x-read")),
            GrantRow(uid("u-alice"), pair("inst-x-prod", "tier-y-read")),
            GrantRow(uid("u-carol"), pair("inst-y-prod", "tier-y-read")),
            GrantRow(uid("u-alice"), pair("inst-y-prod", "tier-y-read")),
        ]

        result = await services.grants.bulk_log_grants(uid("u-owner"), rows)

        assert [(r.row_number, r.outcome, r.error) for r in result.rows] == [
            (1, RowOutcome.CREATED, None),
            (2, RowOutcome.SKIPPED, None),
            (3, RowOutcome.FAILED, "NotFoundError"),
            (4, RowOutcome.FAILED, "InvalidRequestError"),
            (5, RowOutcome.FAILED, "ConflictError"),
            (6, RowOutcome.CREATED, None),
        ]
        assert (result.created, result.skipped, result.failed) == (2, 1, 3)
        assert result.rows[1].grant.id == held.id
        assert result.rows[1].reason == "Duplicate active grant already exists"
        assert store.audit_actions()[audit_before:] == [
            "grant_created",
            "grant_created",
        ]
        assert all(e.actor_id == uid("u-owner") for e in store.audit[audit_before:])
        assert sink.kinds()[-2:] == ["grant_created", "grant_created"]

    @pytest.mark.asyncio
    async def test_repeated_row_is_skipped_the_second_time(
        self, services, read_pair, uid
    ):
        row = GrantRow(uid("u-alice"), read_pair)

        result = await services.grants.bulk_log_grants(uid("u-admin"), [row, row])

        assert [r.outcome for r in result.rows] == [
            RowOutcome.CREATED,
            RowOutcome.SKIPPED,
        ]
        assert result.rows[0].grant.id == result.rows[1].grant.id

    @pytest.mark.asyncio
    async def test_failed_row_leaves_no_trace(self, services, store, read_pair, uid):
        store.fail_audit = True

        result = await services.grants.bulk_log_grants(
            uid("u-admin"), [GrantRow(uid("u-alice"), read_pair)]
        )

        assert result.rows[0].error == "AuditWriteError"
        assert store.grants == {}

    @pytest.mark.asyncio
    async def test_requires_rows(self, services, uid):
        with pytest.raises(InvalidRequestError):
            await services.grants.bulk_log_grants(uid("u-admin"), [])

    @pytest.mark.asyncio
    async def test_row_limit(self, services, read_pair, uid):
        rows = [GrantRow(uid("u-alice"), read_pair)] * 101

        with pytest.raises(InvalidRequestError):
            await services.grants.bulk_log_grants(uid("u-admin"), rows)

    @pytest.mark.asyncio
    async def test_non_privileged_actor_is_forbidden(
        self, services, store, read_pair, uid
    ):
        with pytest.raises(ForbiddenError):
            await services.grants.bulk_log_grants(
                uid("u-manager"), [GrantRow(uid("u-alice"), read_pair)]
            )

        assert store.grants == {}


class TestSearchGrants:
    """Tests for the filtered, paged grant listing."""

    @pytest_asyncio.fixture
    async def grants(self, services, store, pair, uid):
        logged = [
            await services.grants.log_grant(uid("u-admin"), uid(user), pair(*p))
            for user, p in [
                ("u-alice", ("inst-x-prod", "tier-x-read")),
                ("u-alice", ("inst-y-prod", "tier-y-read")),
                ("u-bob", ("inst-x-stage", "tier-x-admin")),
                ("u-carol", ("inst-x-prod", "tier-x-read")),
            ]
        ]
        base = datetime(2024, 1, 1, tzinfo=UTC)
        for minutes, grant in enumerate(logged):
            store.grants[grant.id.value].granted_at = base + timedelta(minutes=minutes)
        return logged

    @pytest.mark.asyncio
    async def test_newest_first_by_default(self, services, grants):
        page = await services.grants.search_grants()

        assert [g.id for g in page.items] == [g.id for g in reversed(grants)]
        assert (page.total, page.page, page.total_pages) == (4, 1, 1)

    @pytest.mark.asyncio
    async def test_oldest_first(self, services, grants):
        page = await services.grants.search_grants(newest_first=False)

        assert [g.id for g in page.items] == [g.id for g in grants]

    @pytest.mark.asyncio
    async def test_paging(self, services, grants):
        page = await services.grants.search_grants(page=2, limit=3)

        assert [g.id for g in page.items] == [grants[0].id]
        assert page.total == 4
        assert page.total_pages == 2

    @pytest.mark.asyncio
    async def test_system_filter_covers_every_instance(self, services, grants):
        page = await services.grants.search_grants(system_id=SystemId("sys-x"))

        assert {g.id for g in page.items} == {grants[0].id, grants[2].id, grants[3].id}

    @pytest.mark.asyncio
    async def test_instance_outside_system_matches_nothing(self, services, grants):
        page = await services.grants.search_grants(
            system_id=SystemId("sys-y"),
            system_instance_id=SystemInstanceId("inst-x-prod"),
        )

        assert page.items == []
        assert page.total == 0
        assert page.total_pages == 0

    @pytest.mark.asyncio
    async def test_filters_combine(self, services, grants, uid):
        await services.grants.remove(grants[3].id, uid("u-admin"))

        page = await services.grants.search_grants(
            system_instance_id=SystemInstanceId("inst-x-prod"),
            access_tier_id=AccessTierId("tier-x-read"),
            status=GrantStatus.ACTIVE,
        )

        assert [g.id for g in page.items] == [grants[0].id]

    @pytest.mark.asyncio
    async def test_user_filter(self, services, grants, uid):
        page = await services.grants.search_grants(user_id=uid("u-alice"))

        assert {g.id for g in page.items} == {grants[0].id, grants[1].id}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("page", "limit"), [(0, 50), (1, 0), (1, 201)])
    async def test_out_of_range_paging_is_invalid(self, services, page, limit):
        with pytest.raises(InvalidRequestError):
            await services.grants.search_grants(page=page, limit=limit)


class TestReadTransactions:
    """Reads run inside a transaction of their own."""

    @pytest.mark.asyncio
    async def test_get_grant_then_transition(
        self, services, monkeypatch, read_pair, uid
    ):
        grant = await services.grants.log_grant(
            uid("u-admin"), uid("u-alice"), read_pair
        )
        seen_open: list[bool] = []
        get_by_id = services.grant_repository.get_by_id

        async def recording(grant_id):
            seen_open.append(services.session.in_transaction)
            return await get_by_id(grant_id)

        monkeypatch.setattr(services.grant_repository, "get_by_id", recording)

        await services.grants.get_grant(grant.id)
        removed = await services.grants.mark_for_removal(grant.id, uid("u-admin"))

        assert seen_open == [True, True]
        assert removed.status == GrantStatus.TO_REMOVE
        assert not services.session.in_transaction
