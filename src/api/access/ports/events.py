"""Event sink port.

Notification delivery (chat, email) lives outside this context. The core
hands every committed audit entry to an injected sink and never waits on
or fails because of delivery.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class IEventSink(Protocol):
    """Receives lifecycle notifications after their transaction commits."""

    async def publish(self, event_kind: str, payload: dict[str, Any]) -> None:
        """Publish one notification.

        Args:
            event_kind: The audit action name, e.g. ``request_created``
            payload: JSON-serializable event data
        """
        ...
