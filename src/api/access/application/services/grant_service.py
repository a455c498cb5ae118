"""Grant application service for the access-control bounded context.

Owns every mutation of access grants: creating or re-activating a grant
for a (user, instance, tier), flagging it for removal and removing it.
Also serves the paged grant listing used by the access overview.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from access.application.catalog_lookup import require_user, resolve_pair
from access.application.observability import (
    DefaultGrantServiceProbe,
    GrantServiceProbe,
)
from access.application.services.audit_recorder import AuditRecorder
from access.application.value_objects import (
    BulkGrantResult,
    BulkLogResult,
    GrantFailure,
    GrantPage,
    GrantRow,
    LoggedRow,
    RowOutcome,
)
from access.domain.aggregates import AccessGrant
from access.domain.audit import AuditEntry
from access.domain.grant_query import GrantQuery
from access.domain.policy import Action, can_act_on
from access.domain.value_objects import (
    AccessGrantId,
    AccessPair,
    AccessTierId,
    GrantStatus,
    SystemId,
    SystemInstanceId,
    UserId,
)
from access.ports.catalog import CatalogUser, ICatalogStore
from access.ports.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from access.ports.repositories import IAccessGrantRepository


class GrantService:
    """Application service for the grant lifecycle.

    ``ensure_active`` runs inside a transaction opened by its caller so the
    provisioning flow can change an item and its grant atomically. Every
    other mutating method opens its own transaction.
    """

    def __init__(
        self,
        session: AsyncSession,
        grant_repository: IAccessGrantRepository,
        catalog: ICatalogStore,
        audit_recorder: AuditRecorder,
        bulk_limit: int = 100,
        probe: GrantServiceProbe | None = None,
    ):
        """Initialize GrantService with dependencies.

        Args:
            session: Database session for transaction management
            grant_repository: Repository for grant persistence
            catalog: Read access to users, instances and tiers
            audit_recorder: Publishes committed audit entries
            bulk_limit: Maximum number of grant ids per bulk call
            probe: Optional domain probe for observability
        """
        self._session = session
        self._grant_repository = grant_repository
        self._catalog = catalog
        self._audit_recorder = audit_recorder
        self._bulk_limit = bulk_limit
        self._probe = probe or DefaultGrantServiceProbe()

    async def ensure_active(
        self,
        user_id: UserId,
        pair: AccessPair,
        actor_id: UserId,
    ) -> tuple[AccessGrant, list[AuditEntry]]:
        """Return the active grant for a triple, creating one if needed.

        Must be called inside an open transaction. An existing active grant
        is returned unchanged with no audit entries. Otherwise a fresh active
        grant is inserted, superseding the latest removed grant if one exists.

        Returns:
            The active grant and the audit entries written for it

        Raises:
            ConflictError: If the triple's grant is flagged for removal
        """
        current = await self._grant_repository.get_current(user_id, pair)
        if current is not None:
            if current.status == GrantStatus.ACTIVE:
                self._probe.grant_ensured(
                    grant_id=current.id.value,
                    user_id=user_id.value,
                    pair=str(pair),
                    created=False,
                )
                return current, []
            raise ConflictError(
                f"Grant {current.id.value} for user {user_id.value} on {pair} "
                f"is {current.status.value}"
            )

        removed = await self._grant_repository.get_latest_removed(user_id, pair)
        grant = AccessGrant.create(
            user_id=user_id, pair=pair, actor_id=actor_id, supersedes=removed
        )
        entries = await self._grant_repository.save(grant)
        self._probe.grant_ensured(
            grant_id=grant.id.value,
            user_id=user_id.value,
            pair=str(pair),
            created=True,
        )
        return grant, entries

    async def create_or_activate(
        self,
        user_id: UserId,
        pair: AccessPair,
        actor_id: UserId,
    ) -> AccessGrant:
        """Idempotently make sure a triple has an active grant.

        Calling this twice with no removal in between returns the same grant.
        Authorization is the caller's concern; see ``log_grant`` for the
        guarded entry point.

        Raises:
            ConflictError: If the triple's grant is flagged for removal
        """
        try:
            async with self._session.begin():
                grant, entries = await self.ensure_active(user_id, pair, actor_id)
        except Exception as e:
            self._probe.grant_operation_failed(
                operation="create_or_activate",
                actor_id=actor_id.value,
                error=str(e),
            )
            raise

        await self._audit_recorder.publish(entries)
        return grant

    async def log_grant(
        self,
        actor_id: UserId,
        user_id: UserId,
        pair: AccessPair,
    ) -> AccessGrant:
        """Record access that was granted outside the request flow.

        Raises:
            NotFoundError: If the actor, user, instance or tier does not exist
            InvalidRequestError: If the tier belongs to another system
            ForbiddenError: If the actor is not an owner or admin
            ConflictError: If the user already holds a non-removed grant
                for the pair
        """
        try:
            actor = await require_user(self._catalog, actor_id)
            holder = await require_user(self._catalog, user_id)
            self._check_can_manage(actor, holder)
            await resolve_pair(self._catalog, pair)

            async with self._session.begin():
                current = await self._grant_repository.get_current(user_id, pair)
                if current is not None:
                    raise ConflictError(
                        f"User {user_id.value} already holds grant "
                        f"{current.id.value} on {pair}"
                    )
                grant, entries = await self.ensure_active(user_id, pair, actor.id)
        except Exception as e:
            self._probe.grant_operation_failed(
                operation="log_grant",
                actor_id=actor_id.value,
                error=str(e),
            )
            raise

        await self._audit_recorder.publish(entries)
        return grant

    async def mark_for_removal(
        self,
        grant_id: AccessGrantId,
        actor_id: UserId,
    ) -> AccessGrant:
        """Flag an active grant for removal.

        Raises:
            NotFoundError: If the grant or actor does not exist
            ForbiddenError: If the actor is not an owner or admin
            ConflictError: If the grant is not active
        """
        actor = await self._require_actor("mark_for_removal", actor_id)
        return await self._transition(
            "mark_for_removal",
            grant_id,
            actor,
            lambda grant: grant.mark_for_removal(actor.id),
        )

    async def remove(
        self,
        grant_id: AccessGrantId,
        actor_id: UserId,
    ) -> AccessGrant:
        """Remove a grant that is active or flagged for removal.

        Raises:
            NotFoundError: If the grant or actor does not exist
            ForbiddenError: If the actor is not an owner or admin
            ConflictError: If the grant is already removed
        """
        actor = await self._require_actor("remove", actor_id)
        return await self._transition(
            "remove",
            grant_id,
            actor,
            lambda grant: grant.remove(actor.id),
        )

    async def bulk_mark_for_removal(
        self,
        grant_ids: Sequence[AccessGrantId],
        actor_id: UserId,
    ) -> BulkGrantResult:
        """Flag several grants for removal, one transaction per grant.

        Raises:
            InvalidRequestError: If no ids or more than the bulk limit are given
            NotFoundError: If the actor does not exist
        """
        actor = await self._require_actor("bulk_mark_for_removal", actor_id)
        return await self._bulk(
            "mark_for_removal",
            grant_ids,
            actor,
            lambda grant: grant.mark_for_removal(actor.id),
        )

    async def bulk_remove(
        self,
        grant_ids: Sequence[AccessGrantId],
        actor_id: UserId,
    ) -> BulkGrantResult:
        """Remove several grants, one transaction per grant.

        Raises:
            InvalidRequestError: If no ids or more than the bulk limit are given
            NotFoundError: If the actor does not exist
        """
        actor = await self._require_actor("bulk_remove", actor_id)
        return await self._bulk(
            "remove",
            grant_ids,
            actor,
            lambda grant: grant.remove(actor.id),
        )

    async def bulk_log_grants(
        self,
        actor_id: UserId,
        rows: Sequence[GrantRow],
    ) -> BulkLogResult:
        """Record a batch of externally granted access, one transaction per row.

        A row whose user already holds an active grant on the pair is
        skipped. A row naming an unknown user, instance or tier, a tier of
        another system, or a pair whose grant is flagged for removal fails
        without affecting the other rows.

        Raises:
            InvalidRequestError: If no rows or more than the bulk limit are given
            NotFoundError: If the actor does not exist
            ForbiddenError: If the actor is not an owner or admin
        """
        actor = await self._require_actor("bulk_log_grants", actor_id)
        if not rows:
            raise InvalidRequestError("At least one row is required")
        if len(rows) > self._bulk_limit:
            raise InvalidRequestError(
                f"At most {self._bulk_limit} grants can be logged at once"
            )
        self._check_can_manage(actor, None)

        result = BulkLogResult()
        for row_number, row in enumerate(rows, start=1):
            result.rows.append(await self._log_row(row_number, row, actor))

        self._probe.grants_bulk_logged(
            actor_id=actor.id.value,
            created=result.created,
            skipped=result.skipped,
            failed=result.failed,
        )
        return result

    async def get_grant(self, grant_id: AccessGrantId) -> AccessGrant:
        """Fetch a grant.

        Raises:
            NotFoundError: If the grant does not exist
        """
        async with self._session.begin():
            grant = await self._grant_repository.get_by_id(grant_id)
        if grant is None:
            raise NotFoundError(f"Access grant {grant_id.value} not found")
        return grant

    async def list_for_user(
        self, user_id: UserId, status: GrantStatus | None = None
    ) -> list[AccessGrant]:
        """List a user's grants, optionally only those in ``status``."""
        async with self._session.begin():
            return await self._grant_repository.list_for_user(user_id, status)

    async def list_pending_removal(self) -> list[AccessGrant]:
        """List grants flagged for removal, oldest first."""
        async with self._session.begin():
            return await self._grant_repository.list_by_status(GrantStatus.TO_REMOVE)

    async def search_grants(
        self,
        user_id: UserId | None = None,
        system_id: SystemId | None = None,
        system_instance_id: SystemInstanceId | None = None,
        access_tier_id: AccessTierId | None = None,
        status: GrantStatus | None = None,
        newest_first: bool = True,
        page: int = 1,
        limit: int = 50,
    ) -> GrantPage:
        """List grants across users, filtered and paged.

        A system filter covers every instance of that system; combined with
        ``system_instance_id`` it only matches when the instance belongs to
        the system. Grants are ordered by grant time, then id.

        Raises:
            InvalidRequestError: If page or limit is out of range
        """
        if page < 1:
            raise InvalidRequestError("page must be at least 1")

        instance_ids: frozenset[SystemInstanceId] | None = None
        if system_id is not None:
            instances = await self._catalog.list_system_instances(system_id)
            instance_ids = frozenset(instance.id for instance in instances)
        if system_instance_id is not None:
            wanted = frozenset({system_instance_id})
            instance_ids = wanted if instance_ids is None else instance_ids & wanted

        try:
            query = GrantQuery(
                user_id=user_id,
                system_instance_ids=instance_ids,
                access_tier_id=access_tier_id,
                status=status,
                newest_first=newest_first,
                limit=limit,
                offset=(page - 1) * limit,
            )
        except ValueError as e:
            raise InvalidRequestError(str(e)) from e

        async with self._session.begin():
            grants, total = await self._grant_repository.search(query)
        return GrantPage(items=grants, total=total, page=page, limit=limit)

    async def _require_actor(self, operation: str, actor_id: UserId) -> CatalogUser:
        try:
            return await require_user(self._catalog, actor_id)
        except NotFoundError as e:
            self._probe.grant_operation_failed(
                operation=operation, actor_id=actor_id.value, error=str(e)
            )
            raise

    def _check_can_manage(
        self, actor: CatalogUser, holder: CatalogUser | None
    ) -> None:
        if not can_act_on(actor, holder, Action.MANAGE_GRANT):
            raise ForbiddenError(
                f"User {actor.id.value} may not manage access grants"
            )

    async def _transition(
        self,
        operation: str,
        grant_id: AccessGrantId,
        actor: CatalogUser,
        apply: Callable[[AccessGrant], None],
    ) -> AccessGrant:
        try:
            async with self._session.begin():
                grant = await self._grant_repository.get_by_id(grant_id)
                if grant is None:
                    raise NotFoundError(f"Access grant {grant_id.value} not found")
                holder = await self._catalog.get_user(grant.user_id)
                self._check_can_manage(actor, holder)
                apply(grant)
                entries = await self._grant_repository.save(grant)
        except Exception as e:
            self._probe.grant_operation_failed(
                operation=operation,
                actor_id=actor.id.value,
                grant_id=grant_id.value,
                error=str(e),
            )
            raise

        self._probe.grant_transitioned(
            grant_id=grant.id.value,
            actor_id=actor.id.value,
            status=grant.status.value,
        )
        await self._audit_recorder.publish(entries)
        return grant

    async def _log_row(
        self, row_number: int, row: GrantRow, actor: CatalogUser
    ) -> LoggedRow:
        try:
            await require_user(self._catalog, row.user_id)
            await resolve_pair(self._catalog, row.pair)
            async with self._session.begin():
                current = await self._grant_repository.get_current(
                    row.user_id, row.pair
                )
                if current is not None and current.status == GrantStatus.ACTIVE:
                    return LoggedRow(
                        row_number=row_number,
                        row=row,
                        outcome=RowOutcome.SKIPPED,
                        grant=current,
                        reason="Duplicate active grant already exists",
                    )
                grant, entries = await self.ensure_active(
                    row.user_id, row.pair, actor.id
                )
        except (ConflictError, InvalidRequestError, NotFoundError) as e:
            self._probe.grant_operation_failed(
                operation="bulk_log_grants", actor_id=actor.id.value, error=str(e)
            )
            return LoggedRow(
                row_number=row_number,
                row=row,
                outcome=RowOutcome.FAILED,
                reason=str(e),
                error=type(e).__name__,
            )

        await self._audit_recorder.publish(entries)
        return LoggedRow(
            row_number=row_number, row=row, outcome=RowOutcome.CREATED, grant=grant
        )

    async def _bulk(
        self,
        operation: str,
        grant_ids: Sequence[AccessGrantId],
        actor: CatalogUser,
        apply: Callable[[AccessGrant], None],
    ) -> BulkGrantResult:
        unique_ids = list(dict.fromkeys(grant_ids))
        if not unique_ids:
            raise InvalidRequestError("At least one grant id is required")
        if len(unique_ids) > self._bulk_limit:
            raise InvalidRequestError(
                f"At most {self._bulk_limit} grants can be processed at once"
            )
        self._check_can_manage(actor, None)

        result = BulkGrantResult()
        for grant_id in unique_ids:
            try:
                grant = await self._transition(operation, grant_id, actor, apply)
            except (ConflictError, NotFoundError) as e:
                result.failed.append(
                    GrantFailure(
                        grant_id=grant_id, reason=str(e), error=type(e).__name__
                    )
                )
            else:
                result.succeeded.append(grant)

        self._probe.bulk_grant_operation_completed(
            operation=operation,
            actor_id=actor.id.value,
            succeeded=len(result.succeeded),
            failed=len(result.failed),
        )
        return result
