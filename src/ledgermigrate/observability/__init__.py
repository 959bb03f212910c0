"""
Observability utilities for ledgermigrate.

Tracing is composition-based: every component accepts an optional
``tracer`` and an ``enable_tracing`` flag, and builds its own tracer with
``create_tracer`` when none is injected.

Example:
    >>> from ledgermigrate.observability import create_tracer
    >>>
    >>> class MyStore:
    ...     def __init__(self, enable_tracing: bool = True):
    ...         self._tracer = create_tracer(__name__, enable_tracing)
"""

from ledgermigrate.observability.attributes import (
    ATTR_BALANCE_MODE,
    ATTR_COVERAGE_PERCENT,
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_ENTITY_TYPE,
    ATTR_MAX_CONCURRENCY,
    ATTR_RECORD_COUNT,
    ATTR_REFERENCE_TIME,
    ATTR_RUN_ID,
    ATTR_RUN_STATE,
    ATTR_SOURCE_ID,
    ATTR_TARGET_ID,
)
from ledgermigrate.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)

__all__ = [
    # Tracers
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Attributes
    "ATTR_BALANCE_MODE",
    "ATTR_COVERAGE_PERCENT",
    "ATTR_DB_NAME",
    "ATTR_DB_OPERATION",
    "ATTR_DB_SYSTEM",
    "ATTR_ENTITY_TYPE",
    "ATTR_MAX_CONCURRENCY",
    "ATTR_RECORD_COUNT",
    "ATTR_REFERENCE_TIME",
    "ATTR_RUN_ID",
    "ATTR_RUN_STATE",
    "ATTR_SOURCE_ID",
    "ATTR_TARGET_ID",
]
