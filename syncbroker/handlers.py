"""
Exception handling utilities for the sync dispatcher.

Provides exception handler functions and type definitions for managing errors
raised by bucket listeners and by middleware that answers a request twice.
Includes built-in listener handlers for the common patterns: logging and
continuing to the next listener (the default), stopping with logging, silently
continuing, and collecting exceptions for batch processing.
"""

import inspect
import logging
import sys
from typing import Callable

from syncbroker import errors
from syncbroker import listener
from syncbroker import request


logger = logging.getLogger(__name__)


LISTENER_EXCEPTION_HANDLER = Callable[[listener.LISTENER, str, Exception], bool]
"""
Signature for listener exception handlers.

Exception handlers receive the failing listener, the event name, and the
exception, then return True to stop delivery to the remaining listeners or
False to continue.
"""

DOUBLE_RESPONSE_HANDLER = Callable[[request.Request, errors.DoubleResponseError], None]
"""
Signature for double response handlers.

Called whenever a layer answers or continues a request that has already been
answered or continued. The handler may re-raise into the offending layer.
"""

STOP = True
CONTINUE = False


def get_callable_name(callable_: Callable) -> str:
    """
    Returns the name of the callable, using class name for items with __self__,
    __name__ for anything with __name__, or str(callback) if neither are found.
    """
    if hasattr(callable_, "__self__"):
        return f"{callable_.__self__.__class__.__name__}.{callable_.__name__}"
    elif hasattr(callable_, "__name__"):
        return callable_.__name__
    else:
        return str(callable_)


def is_coroutine_callable(callable_: Callable) -> bool:
    """Check for a coroutine function, or an object with an async __call__."""
    return inspect.iscoroutinefunction(callable_) or inspect.iscoroutinefunction(
        getattr(callable_, "__call__", None)
    )


# -----Listener Exception Handlers---------------------------------------------


def log_and_continue_listener_exception(
    callback: listener.LISTENER, event: str, exception: Exception
) -> bool:
    """Log listener errors but keep delivering to the remaining listeners."""
    logger.warning(
        f"Listener error (continuing): "
        f"{get_callable_name(callback)} on '{event}': "
        f"{exception.__class__.__name__}: {exception}",
        exc_info=True,
    )
    return CONTINUE


def stop_and_log_listener_exception(
    callback: listener.LISTENER, event: str, exception: Exception
) -> bool:
    """
    Handler that stops delivery to the remaining listeners of the event and
    logs the raised exception.
    """
    logger.error(
        f"Exception in bucket listener:\n"
        f"  Event:     {event}\n"
        f"  Listener:  {get_callable_name(callback)}\n"
        f"  Exception: {exception.__class__.__name__}: {exception}",
        exc_info=True,
    )
    return STOP


def silent_listener_exception(_: listener.LISTENER, __: str, ___: Exception) -> bool:
    """Silently ignore all exceptions."""
    return CONTINUE


exceptions_caught = []


def collect_listener_exception(
    callback: listener.LISTENER, event: str, exception: Exception
) -> bool:
    """
    Collect exceptions for batch processing.
    This appends exceptions caught to syncbroker.handlers.exceptions_caught
    which is a list.
    Either manage the list manually or use this function as an example to
    create a more robust exception collector.
    """
    exceptions_caught.append(
        {
            "callback": get_callable_name(callback),
            "event": event,
            "exception": f"{exception.__class__.__name__}: {exception}",
            "exc_info": sys.exc_info(),
        }
    )
    return CONTINUE


# -----Double Response Handlers------------------------------------------------


def raise_double_response(
    request_: request.Request, exception: errors.DoubleResponseError
) -> None:
    """Log the fault and re-raise it into the layer that caused it."""
    logger.error(
        f"Request answered twice:\n"
        f"  Bucket: {request_.bucket.name}\n"
        f"  Action: {request_.action}\n"
        f"  Fault:  {exception}"
    )
    raise exception


def log_double_response(
    request_: request.Request, exception: errors.DoubleResponseError
) -> None:
    """Log the fault and ignore the offending call."""
    logger.error(
        f"Ignoring repeated response for '{request_.action}' "
        f"on bucket '{request_.bucket.name}': {exception}"
    )
