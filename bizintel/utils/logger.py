"""
Logging for scrape runs.

Every line reads `asctime,ms | LEVEL | phase | file:line | message [k=v ...]`.
PipelineLogger keeps the warnings, errors and strategy attempts of a run so
the CLI can print a summary at the end.
"""

import logging
import sys
from contextlib import contextmanager
from datetime import datetime
from typing import Optional

DEFAULT_LOGGER_NAME = "bizintel"

# Third-party loggers routed through the unified format
EXTERNAL_LOGGERS = ["httpx", "httpcore", "urllib3", "LiteLLM"]

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class MillisecondsFormatter(logging.Formatter):
    """Formatter whose timestamps carry milliseconds (`2026-01-01 12:00:00,042`)."""

    def formatTime(self, record, datefmt=None):  # noqa: N802 - must match parent class method name
        stamp = datetime.fromtimestamp(record.created).strftime(datefmt or DATE_FORMAT)
        return f"{stamp},{int(record.msecs):03d}"


def build_formatter(phase: Optional[str] = None) -> MillisecondsFormatter:
    phase_part = f" | {phase}" if phase else ""
    return MillisecondsFormatter(f"%(asctime)s | %(levelname)-8s{phase_part} | %(filename)s:%(lineno)d | %(message)s")


def _with_fields(message: str, fields: dict) -> str:
    if not fields:
        return message
    rendered = " ".join(f"{key}={value}" for key, value in fields.items())
    return f"{message} [{rendered}]"


def _level(name: str) -> int:
    return getattr(logging, name.upper())


class PipelineLogger:
    """
    Structured logger for one scrape run.

    Args:
        name: Logger name
        log_level: DEBUG, INFO, WARNING or ERROR
        phase: Optional phase label shown on every line ("scrape", "merge")
        stream: Output stream; stderr by default so stdout stays machine-readable
    """

    def __init__(
        self,
        name: str = DEFAULT_LOGGER_NAME,
        log_level: str = "INFO",
        phase: Optional[str] = None,
        stream=None,
    ):
        self.phase = phase
        self.logger = logging.getLogger(name)
        self.logger.setLevel(_level(log_level))
        self.logger.propagate = False
        self.logger.handlers.clear()

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setLevel(_level(log_level))
        handler.setFormatter(build_formatter(phase))
        self.logger.addHandler(handler)

        self.warnings: list = []
        self.errors: list = []
        self.strategy_attempts: list = []

    def _track(self, bucket: list, message: str, fields: dict, **extra) -> None:
        bucket.append({"message": message, "data": fields, "timestamp": datetime.now().isoformat(), **extra})

    def debug(self, message: str, **fields):
        self.logger.debug(_with_fields(message, fields), stacklevel=2)

    def info(self, message: str, **fields):
        self.logger.info(_with_fields(message, fields), stacklevel=2)

    def warning(self, message: str, **fields):
        """Log a warning and keep it for the run summary."""
        line = _with_fields(message, fields)
        self.logger.warning(line, stacklevel=2)
        self._track(self.warnings, line, fields)

    def error(self, message: str, exception: Optional[Exception] = None, **fields):
        """Log an error (with traceback when an exception is given) and keep it for the run summary."""
        if exception is not None:
            message = f"{message} | Exception: {exception}"
        line = _with_fields(message, fields)
        self.logger.error(line, exc_info=exception is not None, stacklevel=2)
        self._track(self.errors, line, fields, exception=str(exception) if exception is not None else None)

    def log_strategy_attempt(self, url: str, strategy: str, success: bool, chars: int = 0, reason: Optional[str] = None):
        """Record the outcome of one acquisition strategy."""
        self.strategy_attempts.append(
            {"url": url, "strategy": strategy, "success": success, "chars": chars, "reason": reason}
        )
        if success:
            self.logger.info(_with_fields(f"Strategy {strategy} succeeded", {"url": url, "chars": chars}), stacklevel=2)
        else:
            self.logger.info(_with_fields(f"Strategy {strategy} failed", {"url": url, "reason": reason}), stacklevel=2)

    def log_llm_call(self, mode: str, model: str, attempt: int, cost_usd: float = 0.0):
        fields = {"mode": mode, "model": model, "attempt": attempt, "cost_usd": round(cost_usd, 4)}
        self.logger.debug(_with_fields("Extraction call", fields), stacklevel=2)

    @contextmanager
    def time_operation(self, operation: str, **context):
        """
        Log the start, end and duration of one pipeline operation.

            with logger.time_operation("scrape", url=url):
                ...
        """
        started = datetime.now()
        self.info(f"Starting {operation}", **context)
        try:
            yield
        except Exception as e:
            elapsed = round((datetime.now() - started).total_seconds(), 2)
            self.error(f"Failed {operation}", exception=e, duration_seconds=elapsed, **context)
            raise
        elapsed = round((datetime.now() - started).total_seconds(), 2)
        self.info(f"Completed {operation}", duration_seconds=elapsed, **context)

    def generate_summary(self) -> dict:
        """Per-strategy attempt counts plus the tracked warnings and errors."""
        by_strategy: dict = {}
        for attempt in self.strategy_attempts:
            stats = by_strategy.setdefault(attempt["strategy"], {"attempts": 0, "succeeded": 0})
            stats["attempts"] += 1
            stats["succeeded"] += int(attempt["success"])

        return {
            "strategies": by_strategy,
            "warnings": {"total": len(self.warnings), "details": self.warnings},
            "errors": {"total": len(self.errors), "details": self.errors},
            "timestamp": datetime.now().isoformat(),
        }


_default_logger: Optional[PipelineLogger] = None


def get_logger(name: str = DEFAULT_LOGGER_NAME, log_level: str = "INFO", phase: Optional[str] = None) -> PipelineLogger:
    """Return the process-wide PipelineLogger, creating it on first use."""
    global _default_logger

    if _default_logger is None:
        _default_logger = PipelineLogger(name=name, log_level=log_level, phase=phase)
    return _default_logger


def configure_global_logging(log_level: str = "INFO", phase: Optional[str] = None):
    """
    Route the root logger and third-party loggers through the unified format.

    The CLI calls this before anything else so httpx and LiteLLM output lines
    up with pipeline output.
    """
    root = logging.getLogger()
    root.setLevel(_level(log_level))
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(_level(log_level))
    handler.setFormatter(build_formatter(phase))
    root.addHandler(handler)

    # Request-level chatter from HTTP clients is only useful when debugging
    library_level = logging.DEBUG if log_level.upper() == "DEBUG" else logging.WARNING
    for lib_name in EXTERNAL_LOGGERS:
        lib_logger = logging.getLogger(lib_name)
        lib_logger.handlers.clear()
        lib_logger.propagate = True
        lib_logger.setLevel(library_level)
