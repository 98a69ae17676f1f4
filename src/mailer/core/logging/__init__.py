from .setup import (
    CorrelationIdFilter,
    DatabaseLogHandler,
    EventLoggerAdapter,
    configure_logging,
    get_logger,
)

__all__ = [
    "CorrelationIdFilter",
    "DatabaseLogHandler",
    "EventLoggerAdapter",
    "configure_logging",
    "get_logger",
]
