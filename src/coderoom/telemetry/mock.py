"""Telemetry provider that records spans and metrics for assertions."""

from __future__ import annotations

from coderoom.telemetry.base import Metric, Span, SpanKind, SpanRecorder


class MockTelemetryProvider(SpanRecorder):
    """Keeps every finished span and metric in a list.

    Example::

        telemetry = MockTelemetryProvider()
        dispatcher = ExecutionDispatcher(telemetry=telemetry)
        await dispatcher.run("r1", "Python", "main-", "print(1)")
        [run] = telemetry.get_spans(SpanKind.EXECUTION_RUN)
        assert run.attributes[Attr.EXEC_EXIT_CODE] == 0
    """

    def __init__(self) -> None:
        super().__init__()
        self.spans: list[Span] = []
        self.metrics: list[Metric] = []

    @property
    def name(self) -> str:
        return "mock"

    def finished(self, span: Span) -> None:
        self.spans.append(span)

    def measured(self, metric: Metric) -> None:
        self.metrics.append(metric)

    def get_spans(self, kind: SpanKind) -> list[Span]:
        return [s for s in self.spans if s.kind is kind]

    def get_metrics(self, name: str) -> list[Metric]:
        return [m for m in self.metrics if m.name == name]

    def reset(self) -> None:
        self.spans.clear()
        self.metrics.clear()
