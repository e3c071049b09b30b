"""
Exception logging helpers.

Errors raised inside streaming handlers and asyncio task groups often arrive
wrapped in exception groups, and backend failures carry diagnostic context.
These helpers flatten both into readable log lines and never raise themselves.
"""

import logging

from support_agent.errors import BackendError


def _safe_str(obj) -> str:
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def format_exception_message(exception: Exception) -> str:
    """Format an exception, including its sub-exceptions and backend context."""
    if exception is None:
        return "None"
    message = _safe_str(exception)
    if isinstance(exception, BackendError):
        context = ", ".join(
            f"{key}={value}" for key, value in exception.diagnostics().items()
        )
        message = f"{message} ({context})"
    subs = _sub_exceptions(exception)
    if subs:
        joined = "; ".join(
            f"{type(sub).__name__}: {_safe_str(sub)}" for sub in subs
        )
        message = f"{message} (Sub-exceptions: {joined})"
    return message


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: Exception,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with detailed information.

    Exception groups are logged once for the group and once per
    sub-exception. Backend errors include their diagnostics and the chained
    original cause is attached through ``exc_info``.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[ChatRoute]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        subs = _sub_exceptions(exception)
        if subs:
            logger.log(
                level,
                f"{prefix} Exception with {len(subs)} sub-exceptions: {_safe_str(exception)}",
            )
            for i, sub_exc in enumerate(subs):
                logger.log(
                    level,
                    f"{prefix} Sub-exception {i + 1}: {type(sub_exc).__name__}: {_safe_str(sub_exc)}",
                    exc_info=sub_exc,
                )
            return
        logger.log(
            level,
            f"{prefix} Exception: {format_exception_message(exception)}",
            exc_info=exception if exception is not None else False,
        )
    except Exception:
        try:
            logger.log(level, f"{prefix} Exception (logging failed)")
        except Exception:
            pass
