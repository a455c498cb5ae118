"""Default event sink that records lifecycle notifications in the log.

Chat and email delivery live outside this service. Deployments that want
them plug in their own IEventSink; this one keeps every notification
visible in the structured log stream.
"""

from __future__ import annotations

from typing import Any

import structlog

from access.ports.events import IEventSink


class LoggingEventSink(IEventSink):
    """Publishes each notification as a structured log event."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or structlog.get_logger()

    async def publish(self, event_kind: str, payload: dict[str, Any]) -> None:
        self._logger.info(
            "access_notification",
            event_kind=event_kind,
            **payload,
        )
