"""
Reminder Error Handling

Error taxonomy for the reminder engine plus the process-wide handlers:
- Delivery failures are recovered per recipient
- Subscription failures degrade to reminders without acknowledgment tracking
- Anything else reaches the global handlers installed at process start
"""

import os
import sys
import asyncio
import threading
import logging
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ReminderError(Exception):
    """Base class for reminder errors"""
    pass


class DeliveryError(ReminderError):
    """A single notification could not be delivered to a recipient"""

    def __init__(self, user_id: str, reason: str):
        super().__init__(f"Failed to deliver reminder to {user_id}: {reason}")
        self.user_id = user_id
        self.reason = reason


class SubscriptionError(ReminderError):
    """Acknowledgment watching could not be established for a message"""

    def __init__(self, message_id: str, reason: str):
        super().__init__(f"Failed to watch message {message_id}: {reason}")
        self.message_id = message_id
        self.reason = reason


class ConfigError(ReminderError):
    """Invalid reminder configuration"""
    pass


def _handle_uncaught_exception(exc_type, exc_value, exc_traceback):
    """Log an uncaught synchronous exception; the interpreter exits with status 1"""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    logger.critical(
        "Uncaught exception, terminating process",
        exc_info=(exc_type, exc_value, exc_traceback)
    )


def _handle_uncaught_thread_exception(args):
    """Log an uncaught exception from a worker thread and terminate the process"""
    if args.exc_type is SystemExit:
        return

    logger.critical(
        f"Uncaught exception in thread {getattr(args.thread, 'name', '?')}, terminating process",
        exc_info=(args.exc_type, args.exc_value, args.exc_traceback)
    )
    logging.shutdown()
    os._exit(1)


def _handle_async_exception(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]):
    """Log unhandled asynchronous failures; the process keeps running"""
    exception = context.get("exception")
    message = context.get("message", "Unhandled exception in event loop")
    if exception is not None:
        logger.error(
            f"Unhandled async failure: {message}",
            exc_info=(type(exception), exception, exception.__traceback__)
        )
    else:
        logger.error(f"Unhandled async failure: {message}")


def install_global_error_handlers(loop: Optional[asyncio.AbstractEventLoop] = None):
    """
    Install the process-wide error handlers.

    Synchronous faults are logged and end the process with status 1.
    Asynchronous faults (tasks, callbacks) are logged only.
    """
    sys.excepthook = _handle_uncaught_exception
    threading.excepthook = _handle_uncaught_thread_exception
    if loop is None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
    if loop is not None:
        loop.set_exception_handler(_handle_async_exception)
    logger.info("Global error handlers installed")
