"""
Structured logging for the candidate sync engine.

Every inbound webhook is handled inside a logging context carrying its
trace id, event type tag and (once extracted) the external opportunity id.
The ``add_context_info`` processor stamps those onto each log entry, so a
single delivery can be followed from route to store write.

Output is JSON when LOG_JSON is set, pretty console otherwise.
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Generator

import structlog
from structlog.types import Processor

from .config import config

_event_context: ContextVar[dict[str, str] | None] = ContextVar('event_context', default=None)


def _current() -> dict[str, str]:
    return _event_context.get() or {}


def get_trace_id() -> str | None:
    return _current().get('trace_id')


def get_event_type() -> str | None:
    return _current().get('event_type')


def get_opportunity_id() -> str | None:
    return _current().get('opportunity_id')


def add_context_info(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Processor that merges the current event context into a log entry."""
    for key, value in _current().items():
        event_dict.setdefault(key, value)
    return event_dict


def configure_logging(
    json_output: bool | None = None,
    log_level: str | None = None,
) -> None:
    """
    Configure structlog for the engine.

    Args:
        json_output: Emit JSON lines. Defaults to config.LOG_JSON.
        log_level: Override log level (defaults to config.LOG_LEVEL)
    """
    if json_output is None:
        json_output = config.LOG_JSON
    level_num = getattr(logging, (log_level or config.LOG_LEVEL).upper(), logging.INFO)

    logging.basicConfig(format='%(message)s', stream=sys.stdout, level=level_num)

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_context_info,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt='iso'),
    ]
    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def logging_context(
    trace_id: str | None = None,
    event_type: str | None = None,
    opportunity_id: str | None = None,
) -> Generator[None, None, None]:
    """
    Layer event fields over the current logging context.

    Fields passed as None keep their outer value; the outer context is
    restored on exit.

    Usage:
        with logging_context(trace_id=trace_id, event_type="stage-changed"):
            ...
            with logging_context(opportunity_id="OPP-1"):
                logger.info("stage.reconciled")  # carries all three
    """
    fields = {
        'trace_id': trace_id,
        'event_type': event_type,
        'opportunity_id': opportunity_id,
    }
    merged = {**_current(), **{k: v for k, v in fields.items() if v is not None}}
    token = _event_context.set(merged)
    try:
        yield
    finally:
        _event_context.reset(token)


class PipelineTimer:
    """
    Millisecond timings for the phases of handling one event.

    Usage:
        timer = PipelineTimer()
        with timer.stage("resolve"):
            ...
        with timer.stage("apply"):
            ...
        logger.info("event.handled", **timer.summary())
    """

    def __init__(self):
        self.stages: dict[str, float] = {}
        self.start_time: float = time.perf_counter()

    @contextmanager
    def stage(self, name: str) -> Generator[None, None, None]:
        started = time.perf_counter()
        try:
            yield
        finally:
            self.record(name, (time.perf_counter() - started) * 1000)

    def record(self, name: str, duration_ms: float) -> None:
        self.stages[name] = duration_ms

    @property
    def total_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000

    def summary(self) -> dict[str, Any]:
        return {
            'total_ms': round(self.total_ms, 2),
            'stages': {k: round(v, 2) for k, v in self.stages.items()},
        }


configure_logging()
