"""Stage timing for the paste pipeline.

``@timed_node`` wraps a stage function (sync or async) and, while a
``collect_metrics()`` block is active, appends a ``StageMetrics`` entry
for every call.  Outside such a block the stage runs untimed, which is
how the nodes are exercised from unit tests.

Usage::

    @timed_node("normalizer", "rules")
    def split_lines(text: str) -> list[str]:
        ...

    with collect_metrics() as metrics:
        lines = normalizer.split_lines(text)
        memory = await _load_memory(...)
"""

from __future__ import annotations

import contextvars
import functools
import inspect
import logging
import time

from .models import StageMetrics

log = logging.getLogger(__name__)

_active_metrics: contextvars.ContextVar[list[StageMetrics] | None] = (
    contextvars.ContextVar("_active_metrics", default=None)
)


class collect_metrics:
    """Context manager that turns on metric collection for ``@timed_node``."""

    def __enter__(self) -> list[StageMetrics]:
        self._metrics: list[StageMetrics] = []
        self._token = _active_metrics.set(self._metrics)
        return self._metrics

    def __exit__(self, *exc) -> None:
        _active_metrics.reset(self._token)


def timed_node(name: str, stage_type: str):
    """Record the wall-clock duration of a pipeline stage."""

    def decorator(fn):
        if inspect.iscoroutinefunction(fn):

            @functools.wraps(fn)
            async def wrapper(*args, **kwargs):
                metrics = _active_metrics.get(None)
                t0 = time.monotonic_ns()
                try:
                    return await fn(*args, **kwargs)
                finally:
                    _record(metrics, name, stage_type, t0)

        else:

            @functools.wraps(fn)
            def wrapper(*args, **kwargs):
                metrics = _active_metrics.get(None)
                t0 = time.monotonic_ns()
                try:
                    return fn(*args, **kwargs)
                finally:
                    _record(metrics, name, stage_type, t0)

        return wrapper

    return decorator


def _record(
    metrics: list[StageMetrics] | None,
    name: str,
    stage_type: str,
    t0: int,
) -> None:
    if metrics is None:
        return
    duration_ms = (time.monotonic_ns() - t0) // 1_000_000
    log.debug("%s: %d ms", name, duration_ms)
    metrics.append(StageMetrics(name, stage_type, duration_ms))
