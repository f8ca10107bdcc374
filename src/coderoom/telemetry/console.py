"""Telemetry provider that writes one log line per span or metric."""

from __future__ import annotations

import logging
from typing import Any

from coderoom.telemetry.base import Metric, Span, SpanRecorder

logger = logging.getLogger("coderoom.telemetry")


def _describe(attributes: dict[str, Any]) -> str:
    if not attributes:
        return ""
    return " [" + ", ".join(f"{k}={v}" for k, v in attributes.items()) + "]"


class ConsoleTelemetryProvider(SpanRecorder):
    """Logs finished spans and metrics to the ``coderoom.telemetry`` logger.

    Useful during development::

        logging.basicConfig(level=logging.INFO)
        manager = RoomManager(telemetry=ConsoleTelemetryProvider())
    """

    def __init__(self, *, level: int = logging.INFO) -> None:
        super().__init__()
        self._level = level

    @property
    def name(self) -> str:
        return "console"

    def finished(self, span: Span) -> None:
        room = f" room={span.room_id}" if span.room_id else ""
        line = f"{span.kind}{room} {span.duration_ms or 0.0:.1f}ms{_describe(span.attributes)}"
        if span.status == "error":
            logger.log(self._level, "[SPAN ERROR] %s error=%s", line, span.error_message)
        else:
            logger.log(self._level, "[SPAN] %s", line)

    def measured(self, metric: Metric) -> None:
        unit = f" {metric.unit}" if metric.unit else ""
        logger.log(
            self._level,
            "[METRIC] %s = %.2f%s%s",
            metric.name,
            metric.value,
            unit,
            _describe(metric.attributes),
        )

    def close(self) -> None:
        if self.open_spans:
            logger.warning("Closing telemetry with %d span(s) still open", self.open_spans)
