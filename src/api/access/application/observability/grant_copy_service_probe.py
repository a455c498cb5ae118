"""Protocol for grant-copy service observability."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class GrantCopyServiceProbe(Protocol):
    """Domain probe for copying grants between users."""

    def grants_copied(
        self,
        source_user_id: str,
        target_user_id: str,
        request_id: str | None,
        created: int,
        skipped: int,
    ) -> None:
        """Record the outcome of a copy."""
        ...

    def grant_copy_failed(
        self,
        source_user_id: str,
        target_user_id: str,
        error: str,
    ) -> None:
        """Record that a copy failed."""
        ...

    def with_context(self, context: ObservationContext) -> GrantCopyServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultGrantCopyServiceProbe:
    """Default implementation of GrantCopyServiceProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultGrantCopyServiceProbe:
        """Create a new probe with observation context bound."""
        return DefaultGrantCopyServiceProbe(logger=self._logger, context=context)

    def grants_copied(
        self,
        source_user_id: str,
        target_user_id: str,
        request_id: str | None,
        created: int,
        skipped: int,
    ) -> None:
        """Record the outcome of a copy."""
        self._logger.info(
            "access_grants_copied",
            source_user_id=source_user_id,
            target_user_id=target_user_id,
            request_id=request_id,
            created=created,
            skipped=skipped,
            **self._get_context_kwargs(),
        )

    def grant_copy_failed(
        self,
        source_user_id: str,
        target_user_id: str,
        error: str,
    ) -> None:
        """Record that a copy failed."""
        self._logger.error(
            "access_grant_copy_failed",
            source_user_id=source_user_id,
            target_user_id=target_user_id,
            error=error,
            **self._get_context_kwargs(),
        )
