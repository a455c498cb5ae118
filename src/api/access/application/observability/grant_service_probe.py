"""Protocol for grant application service observability."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class GrantServiceProbe(Protocol):
    """Domain probe for access grant service operations."""

    def grant_ensured(
        self,
        grant_id: str,
        user_id: str,
        pair: str,
        created: bool,
    ) -> None:
        """Record that an active grant exists for a triple, new or reused."""
        ...

    def grant_transitioned(
        self,
        grant_id: str,
        actor_id: str,
        status: str,
    ) -> None:
        """Record that a grant moved to a new status."""
        ...

    def grant_operation_failed(
        self,
        operation: str,
        actor_id: str,
        error: str,
        grant_id: str | None = None,
    ) -> None:
        """Record that a grant operation failed."""
        ...

    def bulk_grant_operation_completed(
        self,
        operation: str,
        actor_id: str,
        succeeded: int,
        failed: int,
    ) -> None:
        """Record the outcome of a bulk grant operation."""
        ...

    def grants_bulk_logged(
        self,
        actor_id: str,
        created: int,
        skipped: int,
        failed: int,
    ) -> None:
        """Record the outcome of logging a batch of external grants."""
        ...

    def with_context(self, context: ObservationContext) -> GrantServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultGrantServiceProbe:
    """Default implementation of GrantServiceProbe using structlog."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        context: ObservationContext | None = None,
    ):
        self._logger = logger or structlog.get_logger()
        self._context = context

    def _get_context_kwargs(self) -> dict[str, Any]:
        """Get context metadata as kwargs for logging."""
        if self._context is None:
            return {}
        return self._context.as_dict()

    def with_context(self, context: ObservationContext) -> DefaultGrantServiceProbe:
        """Create a new probe with observation context bound."""
        return DefaultGrantServiceProbe(logger=self._logger, context=context)

    def grant_ensured(
        self,
        grant_id: str,
        user_id: str,
        pair: str,
        created: bool,
    ) -> None:
        self._logger.info(
            "access_grant_ensured",
            grant_id=grant_id,
            user_id=user_id,
            pair=pair,
            created=created,
            **self._get_context_kwargs(),
        )

    def grant_transitioned(
        self,
        grant_id: str,
        actor_id: str,
        status: str,
    ) -> None:
        self._logger.info(
            "access_grant_transitioned",
            grant_id=grant_id,
            actor_id=actor_id,
            status=status,
            **self._get_context_kwargs(),
        )

    def grant_operation_failed(
        self,
        operation: str,
        actor_id: str,
        error: str,
        grant_id: str | None = None,
    ) -> None:
        self._logger.error(
            "access_grant_operation_failed",
            operation=operation,
            actor_id=actor_id,
            grant_id=grant_id,
            error=error,
            **self._get_context_kwargs(),
        )

    def bulk_grant_operation_completed(
        self,
        operation: str,
        actor_id: str,
        succeeded: int,
        failed: int,
    ) -> None:
        self._logger.info(
            "access_grant_bulk_operation_completed",
            operation=operation,
            actor_id=actor_id,
            succeeded=succeeded,
            failed=failed,
            **self._get_context_kwargs(),
        )

    def grants_bulk_logged(
        self,
        actor_id: str,
        created: int,
        skipped: int,
        failed: int,
    ) -> None:
        self._logger.info(
            "access_grants_bulk_logged",
            actor_id=actor_id,
            created=created,
            skipped=skipped,
            failed=failed,
            **self._get_context_kwargs(),
        )
