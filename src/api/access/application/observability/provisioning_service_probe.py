"""Protocol for provisioning service observability.

Covers both single-item provisioning and the concurrent bulk path.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class ProvisioningServiceProbe(Protocol):
    """Domain probe for provisioning operations."""

    def item_provisioned(
        self,
        item_id: str,
        grant_id: str,
        actor_id: str,
        auto_approved: bool,
    ) -> None:
        """Record that an item was provisioned."""
        ...

    def provisioning_failed(
        self,
        item_id: str,
        actor_id: str,
        error: str,
    ) -> None:
        """Record that provisioning an item failed."""
        ...

    def bulk_provisioning_started(self, actor_id: str, item_count: int) -> None:
        """Record the start of a bulk provisioning batch."""
        ...

    def bulk_provisioning_completed(
        self,
        actor_id: str,
        succeeded: int,
        failed: int,
    ) -> None:
        """Record the outcome of a bulk provisioning batch."""
        ...

    def bulk_provisioning_aborted(self, actor_id: str, error: str) -> None:
        """Record that an unexpected error stopped a batch."""
        ...

    def with_context(self, context: ObservationContext) -> ProvisioningServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultProvisioningServiceProbe:
    """Default implementation of ProvisioningServiceProbe using structlog."""

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

    def with_context(
        self, context: ObservationContext
    ) -> DefaultProvisioningServiceProbe:
        """Create a new probe with observation context bound."""
        return DefaultProvisioningServiceProbe(logger=self._logger, context=context)

    def item_provisioned(
        self,
        item_id: str,
        grant_id: str,
        actor_id: str,
        auto_approved: bool,
    ) -> None:
        """Record that an item was provisioned."""
        self._logger.info(
            "access_item_provisioned",
            item_id=item_id,
            grant_id=grant_id,
            actor_id=actor_id,
            auto_approved=auto_approved,
            **self._get_context_kwargs(),
        )

    def provisioning_failed(
        self,
        item_id: str,
        actor_id: str,
        error: str,
    ) -> None:
        """Record that provisioning an item failed."""
        self._logger.error(
            "access_item_provisioning_failed",
            item_id=item_id,
            actor_id=actor_id,
            error=error,
            **self._get_context_kwargs(),
        )

    def bulk_provisioning_started(self, actor_id: str, item_count: int) -> None:
        self._logger.info(
            "access_bulk_provisioning_started",
            actor_id=actor_id,
            item_count=item_count,
            **self._get_context_kwargs(),
        )

    def bulk_provisioning_completed(
        self,
        actor_id: str,
        succeeded: int,
        failed: int,
    ) -> None:
        self._logger.info(
            "access_bulk_provisioning_completed",
            actor_id=actor_id,
            succeeded=succeeded,
            failed=failed,
            **self._get_context_kwargs(),
        )

    def bulk_provisioning_aborted(self, actor_id: str, error: str) -> None:
        self._logger.error(
            "access_bulk_provisioning_aborted",
            actor_id=actor_id,
            error=error,
            **self._get_context_kwargs(),
        )
