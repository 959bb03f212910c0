"""
Tracers handed to the migration components.

Orchestrator, migrators, stores and the auditor each take an optional
``tracer`` and otherwise build one with ``create_tracer(__name__,
enable_tracing)``. Span names follow ``ledgermigrate.<component>.<operation>``.
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from opentelemetry import trace

if TYPE_CHECKING:
    from opentelemetry.trace import Span, TracerProvider


@runtime_checkable
class Tracer(Protocol):
    """What a migration component needs from a tracer."""

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]: ...

    @property
    def enabled(self) -> bool:
        """False when spans are discarded, so callers can skip computing attributes."""
        ...


class NullTracer:
    """Used when a component is built with ``enable_tracing=False``."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Opens spans through the OpenTelemetry API.

    Without an SDK provider installed by the host application the API hands
    out non-recording spans, so a migration run never requires an exporter.

    Args:
        tracer_name: Instrumentation scope, normally the component's module.
        tracer_provider: Provider to use instead of the global one.
    """

    def __init__(self, tracer_name: str, tracer_provider: TracerProvider | None = None) -> None:
        self._tracer = trace.get_tracer(tracer_name, tracer_provider=tracer_provider)

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self._tracer.start_as_current_span(name, attributes=attributes or {})

    @property
    def enabled(self) -> bool:
        return True


class MockTracer:
    """
    Records ``(name, attributes)`` pairs so tests can assert on spans.

    Reports itself as enabled so components still compute their attributes.
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, dict[str, Any] | None]] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        self.spans.append((name, attributes))
        yield None

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def attributes_of(self, name: str) -> dict[str, Any]:
        """Attributes of the first span called ``name``; KeyError if none was opened."""
        for span_name, attributes in self.spans:
            if span_name == name:
                return attributes or {}
        raise KeyError(name)

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(name: str, enable_tracing: bool = True) -> Tracer:
    """Return an OpenTelemetryTracer, or a NullTracer when tracing is off."""
    if enable_tracing:
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
]
