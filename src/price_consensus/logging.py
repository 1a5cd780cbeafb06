"""
Structured logging for the price consensus pipeline.

structlog is configured once at import. Every event logged during a
pipeline run carries that run's ``analysis_id`` (and ``trace_id`` when the
caller supplies one) plus the stage currently executing, so interleaved
runs and the background stragglers of the Identify race stay attributable.

Provider keys travel through client constructors and error contexts; the
``redact_secrets`` processor keeps them out of log output.
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Generator

import structlog
from structlog.types import Processor

from .config import get_settings

_trace_id: ContextVar[str | None] = ContextVar('trace_id', default=None)
_analysis_id: ContextVar[str | None] = ContextVar('analysis_id', default=None)
_stage: ContextVar[str | None] = ContextVar('stage', default=None)

SECRET_KEYS = frozenset({
    'api_key',
    'authorization',
    'client_secret',
    'access_token',
    'x-api-key',
    'x-goog-api-key',
})

# SDK loggers that log every request at INFO
NOISY_LOGGERS = ('httpx', 'httpcore', 'openai', 'asyncpg')


def get_trace_id() -> str | None:
    return _trace_id.get()


def get_analysis_id() -> str | None:
    return _analysis_id.get()


def get_stage() -> str | None:
    """Name of the pipeline stage currently being timed, if any."""
    return _stage.get()


def add_context_info(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Processor: attach run and stage identifiers."""
    for key, var in (('trace_id', _trace_id), ('analysis_id', _analysis_id), ('stage', _stage)):
        value = var.get()
        if value and key not in event_dict:
            event_dict[key] = value
    return event_dict


def redact_secrets(
    logger: structlog.types.WrappedLogger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Processor: mask credential values, including inside nested context dicts."""
    return _redact(event_dict)


def _redact(data: dict[str, Any]) -> dict[str, Any]:
    for key, value in data.items():
        if key.lower() in SECRET_KEYS and value:
            data[key] = '***'
        elif isinstance(value, dict):
            data[key] = _redact(dict(value))
    return data


def configure_logging(
    json_output: bool = False,
    log_level: str | None = None,
) -> None:
    """
    Configure structlog.

    Args:
        json_output: JSON lines (deployments) instead of the colored console
            renderer (local runs)
        log_level: Override for the LOG_LEVEL setting
    """
    level_name = (log_level or get_settings().LOG_LEVEL).upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(format='%(message)s', stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_context_info,
        redact_secrets,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt='iso'),
    ]
    if json_output:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def logging_context(
    trace_id: str | None = None,
    analysis_id: str | None = None,
) -> Generator[None, None, None]:
    """
    Scope run identifiers to a block.

    Previous values are restored on exit, even when the block raises, so a
    finished run never leaks its IDs into the next one.

    Usage:
        with logging_context(analysis_id=analysis_id):
            logger.info('pipeline.started')
    """
    tokens = []
    if trace_id is not None:
        tokens.append((_trace_id, _trace_id.set(trace_id)))
    if analysis_id is not None:
        tokens.append((_analysis_id, _analysis_id.set(analysis_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


class PipelineTimer:
    """
    Wall-clock timing of pipeline stages.

    While a stage block runs, its name is bound into the logging context.

    Usage:
        timer = PipelineTimer()
        with timer.stage('identify'):
            ...
        result.timing_ms = timer.timing_ms()
    """

    def __init__(self):
        self.stages: dict[str, float] = {}
        self.start_time = time.perf_counter()

    @contextmanager
    def stage(self, name: str) -> Generator[None, None, None]:
        token = _stage.set(name)
        started = time.perf_counter()
        try:
            yield
        finally:
            self.stages[name] = (time.perf_counter() - started) * 1000
            _stage.reset(token)

    def record(self, name: str, duration_ms: float) -> None:
        self.stages[name] = duration_ms

    @property
    def total_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000

    def timing_ms(self) -> dict[str, int]:
        """Whole-millisecond stage timings plus ``total``."""
        timing = {name: int(ms) for name, ms in self.stages.items()}
        timing['total'] = int(self.total_ms)
        return timing

    def summary(self) -> dict[str, Any]:
        return {
            'total_ms': round(self.total_ms, 2),
            'stages': {name: round(ms, 2) for name, ms in self.stages.items()},
        }


configure_logging(json_output=get_settings().LOG_JSON)
