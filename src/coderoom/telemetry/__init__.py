"""Span and metric hooks for rooms and the execution layer."""

from coderoom.telemetry.base import Attr, Metric, Span, SpanKind, SpanRecorder, TelemetryProvider
from coderoom.telemetry.console import ConsoleTelemetryProvider
from coderoom.telemetry.mock import MockTelemetryProvider
from coderoom.telemetry.noop import NoopTelemetryProvider

__all__ = [
    "Attr",
    "ConsoleTelemetryProvider",
    "Metric",
    "MockTelemetryProvider",
    "NoopTelemetryProvider",
    "Span",
    "SpanKind",
    "SpanRecorder",
    "TelemetryProvider",
]
