"""Domain probe for access repository operations.

Following Domain-Oriented Observability patterns, this probe captures
domain-significant events related to request, grant and audit log persistence.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class AccessRequestRepositoryProbe(Protocol):
    """Domain probe for access request repository operations."""

    def request_saved(self, request_id: str, item_count: int, event_count: int) -> None:
        """Record that a request and its changed items were written."""
        ...

    def request_retrieved(self, request_id: str) -> None:
        """Record that a request was loaded."""
        ...

    def request_not_found(self, lookup: str, value: str) -> None:
        """Record that a request lookup found nothing."""
        ...

    def concurrent_item_update(
        self, request_id: str, item_id: str, expected_status: str
    ) -> None:
        """Record that a conditional item update affected no rows."""
        ...

    def with_context(self, context: ObservationContext) -> AccessRequestRepositoryProbe:
        """Create a new probe with observation context bound."""
        ...


class AccessGrantRepositoryProbe(Protocol):
    """Domain probe for access grant repository operations."""

    def grant_saved(self, grant_id: str, status: str, event_count: int) -> None:
        """Record that a grant was written."""
        ...

    def grant_retrieved(self, grant_id: str) -> None:
        """Record that a grant was loaded."""
        ...

    def grant_not_found(self, grant_id: str) -> None:
        """Record that a grant was not found."""
        ...

    def concurrent_grant_update(self, grant_id: str, expected_status: str) -> None:
        """Record that a conditional grant update affected no rows."""
        ...

    def duplicate_current_grant(self, user_id: str, pair: str) -> None:
        """Record that an insert hit the one-current-grant index."""
        ...

    def with_context(self, context: ObservationContext) -> AccessGrantRepositoryProbe:
        """Create a new probe with observation context bound."""
        ...


class AuditLogRepositoryProbe(Protocol):
    """Domain probe for audit log repository operations."""

    def entries_appended(self, count: int) -> None:
        """Record that audit entries were appended."""
        ...

    def append_failed(self, count: int, error: str) -> None:
        """Record that appending audit entries failed."""
        ...

    def with_context(self, context: ObservationContext) -> AuditLogRepositoryProbe:
        """Create a new probe with observation context bound."""
        ...


class _ContextualProbe:
    """Shared structlog wiring for the repository probes."""

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


class DefaultAccessRequestRepositoryProbe(_ContextualProbe):
    """Default implementation of AccessRequestRepositoryProbe using structlog."""

    def with_context(
        self, context: ObservationContext
    ) -> DefaultAccessRequestRepositoryProbe:
        """Create a new probe with observation context bound."""
        return DefaultAccessRequestRepositoryProbe(logger=self._logger, context=context)

    def request_saved(self, request_id: str, item_count: int, event_count: int) -> None:
        self._logger.debug(
            "access_request_saved",
            request_id=request_id,
            item_count=item_count,
            event_count=event_count,
            **self._get_context_kwargs(),
        )

    def request_retrieved(self, request_id: str) -> None:
        self._logger.debug(
            "access_request_retrieved",
            request_id=request_id,
            **self._get_context_kwargs(),
        )

    def request_not_found(self, lookup: str, value: str) -> None:
        self._logger.debug(
            "access_request_not_found",
            lookup=lookup,
            value=value,
            **self._get_context_kwargs(),
        )

    def concurrent_item_update(
        self, request_id: str, item_id: str, expected_status: str
    ) -> None:
        self._logger.warning(
            "access_request_item_concurrent_update",
            request_id=request_id,
            item_id=item_id,
            expected_status=expected_status,
            **self._get_context_kwargs(),
        )


class DefaultAccessGrantRepositoryProbe(_ContextualProbe):
    """Default implementation of AccessGrantRepositoryProbe using structlog."""

    def with_context(
        self, context: ObservationContext
    ) -> DefaultAccessGrantRepositoryProbe:
        """Create a new probe with observation context bound."""
        return DefaultAccessGrantRepositoryProbe(logger=self._logger, context=context)

    def grant_saved(self, grant_id: str, status: str, event_count: int) -> None:
        self._logger.debug(
            "access_grant_saved",
            grant_id=grant_id,
            status=status,
            event_count=event_count,
            **self._get_context_kwargs(),
        )

    def grant_retrieved(self, grant_id: str) -> None:
        self._logger.debug(
            "access_grant_retrieved",
            grant_id=grant_id,
            **self._get_context_kwargs(),
        )

    def grant_not_found(self, grant_id: str) -> None:
        self._logger.debug(
            "access_grant_not_found",
            grant_id=grant_id,
            **self._get_context_kwargs(),
        )

    def concurrent_grant_update(self, grant_id: str, expected_status: str) -> None:
        self._logger.warning(
            "access_grant_concurrent_update",
            grant_id=grant_id,
            expected_status=expected_status,
            **self._get_context_kwargs(),
        )

    def duplicate_current_grant(self, user_id: str, pair: str) -> None:
        self._logger.warning(
            "access_grant_duplicate_current",
            user_id=user_id,
            pair=pair,
            **self._get_context_kwargs(),
        )


class DefaultAuditLogRepositoryProbe(_ContextualProbe):
    """Default implementation of AuditLogRepositoryProbe using structlog."""

    def with_context(self, context: ObservationContext) -> DefaultAuditLogRepositoryProbe:
        """Create a new probe with observation context bound."""
        return DefaultAuditLogRepositoryProbe(logger=self._logger, context=context)

    def entries_appended(self, count: int) -> None:
        self._logger.debug(
            "audit_entries_appended",
            count=count,
            **self._get_context_kwargs(),
        )

    def append_failed(self, count: int, error: str) -> None:
        self._logger.error(
            "audit_append_failed",
            count=count,
            error=error,
            **self._get_context_kwargs(),
        )
