"""Protocol for audit recorder observability.

Event publication is best effort, so its failures only surface here.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class AuditRecorderProbe(Protocol):
    """Domain probe for audit publication."""

    def event_published(self, action: str, resource_id: str) -> None:
        """Record that an audit entry was handed to the event sink."""
        ...

    def event_publish_failed(
        self,
        action: str,
        resource_id: str,
        error: str,
    ) -> None:
        """Record that the event sink rejected an entry."""
        ...

    def with_context(self, context: ObservationContext) -> AuditRecorderProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultAuditRecorderProbe:
    """Default implementation of AuditRecorderProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultAuditRecorderProbe:
        """Create a new probe with observation context bound."""
        return DefaultAuditRecorderProbe(logger=self._logger, context=context)

    def event_published(self, action: str, resource_id: str) -> None:
        self._logger.debug(
            "audit_event_published",
            action=action,
            resource_id=resource_id,
            **self._get_context_kwargs(),
        )

    def event_publish_failed(
        self,
        action: str,
        resource_id: str,
        error: str,
    ) -> None:
        self._logger.warning(
            "audit_event_publish_failed",
            action=action,
            resource_id=resource_id,
            error=error,
            **self._get_context_kwargs(),
        )
