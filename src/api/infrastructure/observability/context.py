"""Observation context for domain-oriented observability.

Observation contexts collect and manage contextual metadata for instrumentation,
following the Domain Oriented Observability pattern.

See: https://martinfowler.com/articles/domain-oriented-observability.html
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class ObservationContext:
    """Immutable context containing metadata for observability.

    Captures call-scoped metadata that should be included with all
    instrumentation events, so a submit, its audit writes and the
    notifications it triggers can be correlated in the logs.

    Field names are distinct from the keys probes log on their own
    (``request_id`` is an access request, ``actor_id`` a decider).

    Attributes:
        correlation_id: Id of the inbound call or job (if known).
        principal_id: Catalog id of the authenticated caller.
        extra: Additional contextual metadata.

    Example:
        context = ObservationContext(correlation_id="call-123", principal_id="u-42")
        probe = DefaultRequestServiceProbe().with_context(context)
    """

    correlation_id: str | None = None
    principal_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        """Convert context to a dictionary for logging.

        Only includes non-None values to keep logs clean.
        """
        result: dict[str, Any] = {}
        if self.correlation_id is not None:
            result["correlation_id"] = self.correlation_id
        if self.principal_id is not None:
            result["principal_id"] = self.principal_id
        result.update(self.extra)
        return result

    def with_extra(self, **kwargs: Any) -> ObservationContext:
        """Create a new context with additional metadata."""
        return ObservationContext(
            correlation_id=self.correlation_id,
            principal_id=self.principal_id,
            extra={**self.extra, **kwargs},
        )
