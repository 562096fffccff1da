"""
Logging utilities with correlation ID support for better tracing

Each pipeline run gets its own correlation ID so that the log lines of
overlapping invocations can be told apart.
"""
import sys
import uuid
from typing import Optional
from contextvars import ContextVar
from functools import wraps
from loguru import logger

# Context variable to store correlation ID across async calls
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


def generate_correlation_id() -> str:
    """Generate a new correlation ID"""
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID"""
    return correlation_id.get()


def set_correlation_id(cid: str) -> None:
    """Set the correlation ID for the current context"""
    correlation_id.set(cid)


def with_correlation_id(func):
    """
    Decorator for coroutines: generate a correlation ID when none is set

    Usage:
        @with_correlation_id
        async def run():
            logger.info("This will include correlation ID")
    """
    @wraps(func)
    async def wrapper(*args, **kwargs):
        if not get_correlation_id():
            set_correlation_id(generate_correlation_id())

        bound = logger.bind(correlation_id=get_correlation_id())
        bound.debug(f"Entering {func.__name__}")
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            bound.error(f"Error in {func.__name__}: {str(e)}")
            raise
        finally:
            bound.debug(f"Exiting {func.__name__}")

    return wrapper


def log_with_context(level: str, message: str, **kwargs):
    """
    Log a message with correlation ID automatically included

    Args:
        level: Log level (info, debug, warning, error, etc.)
        message: Log message
        **kwargs: Additional context to include in the log
    """
    cid = get_correlation_id()
    log_method = getattr(logger.bind(correlation_id=cid, **kwargs), level)
    log_method(message)


class LogContext:
    """Context manager opening a fresh correlation ID for one operation"""

    def __init__(self, operation: str):
        self.operation = operation
        self.cid = None

    def __enter__(self):
        self.cid = generate_correlation_id()
        set_correlation_id(self.cid)
        logger.bind(correlation_id=self.cid).info(f"Starting operation: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.bind(correlation_id=self.cid).error(
                f"Operation {self.operation} failed: {exc_val}"
            )
        else:
            logger.bind(correlation_id=self.cid).info(
                f"Operation {self.operation} completed successfully"
            )
        return False


def _inject_correlation_id(record):
    if not record["extra"].get("correlation_id"):
        record["extra"]["correlation_id"] = get_correlation_id() or "-"


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[correlation_id]}</cyan> | <level>{message}</level>"
)


def configure_logging_with_correlation(level: str = "INFO", log_file_path: str = ""):
    """
    Configure loguru to include the correlation ID in every message

    Call this once at application startup.
    """
    logger.remove()
    logger.configure(patcher=_inject_correlation_id)
    logger.add(sys.stderr, format=LOG_FORMAT, level=level)
    if log_file_path:
        logger.add(log_file_path, format=LOG_FORMAT, level=level, rotation="10 MB", retention=5)
