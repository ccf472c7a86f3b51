"""
Structured logging (structlog over the stdlib ``logging`` module)

Every line carries a correlation id, so the cancel that triggered a
suspension and the audit record it produced can be tied together. Buyer
and seller identities, free-text reasons and money amounts never reach the
log output; the redaction processor masks them on every line, not just
inside LogOperation.

Production mode (``ENVIRONMENT=production``) renders JSON and drops stack
traces from operation failures.
"""

import contextvars
import logging
import os
import secrets
import sys
import time
from typing import Any

import structlog

from order_lifecycle.kernel.errors import OrderLifecycleError

REDACTED = "***REDACTED***"

# Identities, free text and money - masked wherever they appear as log keys
REDACTED_FIELDS = frozenset(
    {
        "actor_id",
        "seller_id",
        "supplier_id",
        "counterpart_id",
        "operator_id",
        "reason",
        "target_price",
        "price",
        "quoted_price",
        "compensation_required",
        "cost_savings",
    }
)

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "order_lifecycle_correlation_id", default=None
)


def is_production() -> bool:
    return os.getenv("ENVIRONMENT", "development").lower() == "production"


def get_correlation_id() -> str:
    """Correlation id of the current context; one is minted on first use"""
    cid = _correlation_id.get()
    if cid is None:
        cid = secrets.token_hex(8)
        _correlation_id.set(cid)
    return cid


def set_correlation_id(correlation_id: str) -> None:
    """Pin the id, e.g. to a scheduler run or an upstream request id"""
    _correlation_id.set(correlation_id)


def _redact_value(value: Any) -> Any:
    if isinstance(value, dict):
        return redact_context(value)
    if isinstance(value, (list, tuple)):
        return [_redact_value(item) for item in value]
    return value


def redact_context(context: dict[str, Any]) -> dict[str, Any]:
    """
    Copy of ``context`` with sensitive keys masked at any depth

    Audit details and event payloads arrive as nested dicts, so masking
    descends into dicts and lists.

    Example:
        >>> redact_context({"actor_id": "buyer-1", "details": {"reason": "late", "round_id": "r-1"}})
        {'actor_id': '***REDACTED***', 'details': {'reason': '***REDACTED***', 'round_id': 'r-1'}}
    """
    return {
        key: REDACTED if key in REDACTED_FIELDS else _redact_value(value)
        for key, value in context.items()
    }


def _stamp_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    event_dict.setdefault("correlation_id", get_correlation_id())
    return event_dict


def _redact_sensitive_fields(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    return redact_context(event_dict)


def configure_logging(
    *,
    json_output: bool | None = None,
    log_level: str = "INFO",
) -> None:
    """
    Route structlog through stdlib logging on stderr

    stdout stays free for command output (the CLI prints JSON there).

    Args:
        json_output: JSON lines instead of console output; defaults to
            is_production()
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
    """
    if json_output is None:
        json_output = is_production()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level.upper()),
        force=True,
    )

    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _stamp_correlation_id,
        _redact_sensitive_fields,
        structlog.processors.StackInfoRenderer(),
    ]
    if json_output:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors += [structlog.dev.ConsoleRenderer(colors=False)]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


class LogOperation:
    """
    Time one engine operation and log how it ended

    The context is bound onto the logger for the duration, so lines logged
    inside the block carry it too. A domain refusal (any OrderLifecycleError,
    e.g. a suspended actor or an unknown offer) is a warning without a stack
    trace; anything else is an error.

    Example:
        with LogOperation(logger, "cancel", commitment_id=cid) as op:
            op.logger.info("Cancellation declined", hours_to_deadline=20)
    """

    def __init__(self, logger: structlog.stdlib.BoundLogger, operation: str, **context: Any):
        self.operation = operation
        self.logger = logger.bind(operation=operation, **context)
        self._started = 0.0

    def _elapsed_ms(self) -> float:
        return round((time.perf_counter() - self._started) * 1000, 2)

    def __enter__(self) -> "LogOperation":
        self._started = time.perf_counter()
        self.logger.debug(f"{self.operation} started")
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if exc_type is None:
            self.logger.info(f"{self.operation} completed", duration_ms=self._elapsed_ms())
        elif issubclass(exc_type, OrderLifecycleError):
            self.logger.warning(
                f"{self.operation} refused",
                duration_ms=self._elapsed_ms(),
                error_type=exc_type.__name__,
            )
        else:
            self.logger.error(
                f"{self.operation} failed",
                duration_ms=self._elapsed_ms(),
                error_type=exc_type.__name__,
                exc_info=not is_production(),
            )
