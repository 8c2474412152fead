"""
Utility functions for exception logging that never raise themselves.
"""

import logging


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.
    """
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


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its traceback, and each sub-exception of an exception
    group on its own line (threadpool and task-group failures arrive wrapped).

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Interceptor]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        sub_exceptions = _sub_exceptions(exception)
        message = _safe_str(exception)
        if sub_exceptions:
            logger.log(
                level,
                f"{prefix} Exception with {len(sub_exceptions)} sub-exceptions: {message}",
            )
            for i, sub_exc in enumerate(sub_exceptions):
                logger.log(
                    level,
                    f"{prefix} Sub-exception {i+1}: {type(sub_exc).__name__}: {_safe_str(sub_exc)}",
                    exc_info=sub_exc,
                )
        else:
            logger.log(level, f"{prefix} Exception: {message}", exc_info=exception)
    except Exception:
        try:
            logger.log(logging.ERROR, f"{prefix} Exception logging failed")
        except Exception:
            pass


def format_exception_message(exception: BaseException) -> str:
    """
    Format an exception message for an error body, including sub-exceptions.
    """
    sub_exceptions = _sub_exceptions(exception)
    main_str = _safe_str(exception)
    if not sub_exceptions:
        return main_str or type(exception).__name__
    joined = "; ".join(
        f"{type(sub_exc).__name__}: {_safe_str(sub_exc)}" for sub_exc in sub_exceptions
    )
    return f"{main_str} (Sub-exceptions: {joined})"
