"""Grant-copy application service for the access-control bounded context.

Mirrors one user's active grants onto another user by submitting a single
access request for every pair the target does not already hold. The grant
diff and the request insert share one transaction.
"""

from __future__ import annotations

from collections.abc import Collection

from sqlalchemy.ext.asyncio import AsyncSession

from access.application.catalog_lookup import require_user
from access.application.observability import (
    DefaultGrantCopyServiceProbe,
    GrantCopyServiceProbe,
)
from access.application.services.audit_recorder import AuditRecorder
from access.application.services.request_service import RequestService
from access.application.value_objects import (
    CopyResult,
    CopySummary,
    SkippedPair,
    SkipReason,
)
from access.domain.audit import AuditEntry
from access.domain.policy import Action, can_act_on
from access.domain.value_objects import (
    AccessPair,
    CopyOrigin,
    GrantStatus,
    ItemStatus,
    SystemId,
    UserId,
)
from access.ports.catalog import ICatalogStore
from access.ports.exceptions import ForbiddenError, InvalidRequestError
from access.ports.repositories import IAccessGrantRepository


class GrantCopyService:
    """Application service for copying access between users."""

    def __init__(
        self,
        session: AsyncSession,
        grant_repository: IAccessGrantRepository,
        request_service: RequestService,
        catalog: ICatalogStore,
        audit_recorder: AuditRecorder,
        probe: GrantCopyServiceProbe | None = None,
    ):
        """Initialize GrantCopyService with dependencies.

        Args:
            session: Database session for transaction management
            grant_repository: Repository for grant reads
            request_service: Stores the resulting request
            catalog: Read access to users and instances
            audit_recorder: Publishes committed audit entries
            probe: Optional domain probe for observability
        """
        self._session = session
        self._grant_repository = grant_repository
        self._request_service = request_service
        self._catalog = catalog
        self._audit_recorder = audit_recorder
        self._probe = probe or DefaultGrantCopyServiceProbe()

    async def copy_from_user(
        self,
        requester_id: UserId,
        source_user_id: UserId,
        target_user_id: UserId,
        system_ids: Collection[SystemId] | None = None,
        exclude_system_ids: Collection[SystemId] | None = None,
    ) -> CopyResult:
        """Request the source user's active access for the target user.

        Source grants are narrowed to ``system_ids`` when given, then any in
        ``exclude_system_ids`` are dropped; exclusion wins over inclusion.
        Filtered-out grants appear nowhere in the result. A grant on an
        instance missing from the catalog is skipped as ``unknown_instance``
        unless ``system_ids`` is given, in which case it cannot match and is
        dropped like any other filtered-out grant. Pairs the target
        already holds as active grants are skipped as ``already_granted``;
        items pending on other requests do not count as held.

        Args:
            requester_id: The user asking for the copy
            source_user_id: The user whose grants are mirrored
            target_user_id: The user who would receive the access
            system_ids: Only consider grants on these systems
            exclude_system_ids: Never consider grants on these systems

        Returns:
            CopyResult; ``created`` is None when nothing was eligible

        Raises:
            InvalidRequestError: If source and target are the same user
            NotFoundError: If any of the three users does not exist
            ForbiddenError: If the requester is neither the target's manager
                nor an owner or admin
        """
        try:
            if source_user_id == target_user_id:
                raise InvalidRequestError("Cannot copy access from a user to themselves")

            requester = await require_user(self._catalog, requester_id)
            source = await require_user(self._catalog, source_user_id)
            target = await require_user(self._catalog, target_user_id)
            if not can_act_on(requester, target, Action.COPY_GRANTS):
                raise ForbiddenError(
                    f"User {requester_id.value} may not copy access "
                    f"to user {target_user_id.value}"
                )

            include = set(system_ids) if system_ids is not None else None
            exclude = set(exclude_system_ids or ())
            considered = 0
            eligible: list[AccessPair] = []
            skipped: list[SkippedPair] = []
            created = None
            entries: list[AuditEntry] = []

            async with self._session.begin():
                source_grants = await self._grant_repository.list_for_user(
                    source.id, GrantStatus.ACTIVE
                )
                target_grants = await self._grant_repository.list_for_user(
                    target.id, GrantStatus.ACTIVE
                )
                held = {grant.pair for grant in target_grants}

                for grant in source_grants:
                    instance = await self._catalog.get_system_instance(
                        grant.system_instance_id
                    )
                    if instance is None:
                        if include is not None:
                            continue
                        considered += 1
                        skipped.append(
                            SkippedPair(grant.pair, SkipReason.UNKNOWN_INSTANCE)
                        )
                        continue
                    if include is not None and instance.system_id not in include:
                        continue
                    if instance.system_id in exclude:
                        continue

                    considered += 1
                    if grant.pair in held:
                        skipped.append(
                            SkippedPair(grant.pair, SkipReason.ALREADY_GRANTED)
                        )
                    else:
                        eligible.append(grant.pair)

                if eligible:
                    created, entries = await self._request_service.create_request(
                        requester_id=requester.id,
                        target_user_id=target.id,
                        items=eligible,
                        note=f"Copied from {source.name}",
                        copy_origin=CopyOrigin(
                            source_user_id=source.id, skipped_count=len(skipped)
                        ),
                    )

            auto_approved = 0
            if created is not None:
                auto_approved = sum(
                    1 for item in created.items if item.status == ItemStatus.APPROVED
                )

            self._probe.grants_copied(
                source_user_id=source_user_id.value,
                target_user_id=target_user_id.value,
                request_id=created.id.value if created is not None else None,
                created=len(eligible),
                skipped=len(skipped),
            )
        except Exception as e:
            self._probe.grant_copy_failed(
                source_user_id=source_user_id.value,
                target_user_id=target_user_id.value,
                error=str(e),
            )
            raise

        await self._audit_recorder.publish(entries)
        return CopyResult(
            created=created,
            skipped=skipped,
            summary=CopySummary(
                total=considered,
                created=len(eligible),
                skipped=len(skipped),
                auto_approved=auto_approved,
            ),
        )
