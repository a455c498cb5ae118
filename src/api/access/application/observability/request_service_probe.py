"""Protocol for request application service observability.

Defines the interface for domain probes that capture application-level
domain events for access request operations.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

import structlog

if TYPE_CHECKING:
    from infrastructure.observability.context import ObservationContext


class RequestServiceProbe(Protocol):
    """Domain probe for access request service operations."""

    def request_submitted(
        self,
        request_id: str,
        requester_id: str,
        target_user_id: str,
        item_count: int,
        auto_approved_count: int,
    ) -> None:
        """Record that an access request was submitted."""
        ...

    def request_submission_failed(
        self,
        requester_id: str,
        target_user_id: str,
        error: str,
    ) -> None:
        """Record that submitting an access request failed."""
        ...

    def item_decided(
        self,
        request_id: str,
        item_id: str,
        actor_id: str,
        decision: str,
    ) -> None:
        """Record that an item was approved or rejected."""
        ...

    def item_decision_failed(
        self,
        item_id: str,
        actor_id: str,
        decision: str,
        error: str,
    ) -> None:
        """Record that approving or rejecting an item failed."""
        ...

    def request_decided(
        self,
        request_id: str,
        actor_id: str,
        decision: str,
        item_count: int,
    ) -> None:
        """Record that every pending item of a request was decided."""
        ...

    def request_decision_failed(
        self,
        request_id: str,
        actor_id: str,
        decision: str,
        error: str,
    ) -> None:
        """Record that deciding a whole request failed."""
        ...

    def with_context(self, context: ObservationContext) -> RequestServiceProbe:
        """Create a new probe with observation context bound."""
        ...


class DefaultRequestServiceProbe:
    """Default implementation of RequestServiceProbe using structlog."""

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

    def with_context(self, context: ObservationContext) -> DefaultRequestServiceProbe:
        """Create a new probe with observation context bound."""
        return DefaultRequestServiceProbe(logger=self._logger, context=context)

    def request_submitted(
        self,
        request_id: str,
        requester_id: str,
        target_user_id: str,
        item_count: int,
        auto_approved_count: int,
    ) -> None:
        """Record that an access request was submitted."""
        self._logger.info(
            "access_request_submitted",
            request_id=request_id,
            requester_id=requester_id,
            target_user_id=target_user_id,
            item_count=item_count,
            auto_approved_count=auto_approved_count,
            **self._get_context_kwargs(),
        )

    def request_submission_failed(
        self,
        requester_id: str,
        target_user_id: str,
        error: str,
    ) -> None:
        """Record that submitting an access request failed."""
        self._logger.error(
            "access_request_submission_failed",
            requester_id=requester_id,
            target_user_id=target_user_id,
            error=error,
            **self._get_context_kwargs(),
        )

    def item_decided(
        self,
        request_id: str,
        item_id: str,
        actor_id: str,
        decision: str,
    ) -> None:
        """Record that an item was approved or rejected."""
        self._logger.info(
            "access_request_item_decided",
            request_id=request_id,
            item_id=item_id,
            actor_id=actor_id,
            decision=decision,
            **self._get_context_kwargs(),
        )

    def item_decision_failed(
        self,
        item_id: str,
        actor_id: str,
        decision: str,
        error: str,
    ) -> None:
        """Record that approving or rejecting an item failed."""
        self._logger.error(
            "access_request_item_decision_failed",
            item_id=item_id,
            actor_id=actor_id,
            decision=decision,
            error=error,
            **self._get_context_kwargs(),
        )

    def request_decided(
        self,
        request_id: str,
        actor_id: str,
        decision: str,
        item_count: int,
    ) -> None:
        """Record that every pending item of a request was decided."""
        self._logger.info(
            "access_request_decided",
            request_id=request_id,
            actor_id=actor_id,
            decision=decision,
            item_count=item_count,
            **self._get_context_kwargs(),
        )

    def request_decision_failed(
        self,
        request_id: str,
        actor_id: str,
        decision: str,
        error: str,
    ) -> None:
        """Record that deciding a whole request failed."""
        self._logger.error(
            "access_request_decision_failed",
            request_id=request_id,
            actor_id=actor_id,
            decision=decision,
            error=error,
            **self._get_context_kwargs(),
        )
