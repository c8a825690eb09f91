"""
Explicit success/failure values for collaborator calls.

Service operations never let a collaborator exception decide their outcome.
Every repository, provider and audit call goes through ``attempt`` and the
caller branches on ``Outcome.ok``.
"""
import functools
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from compliance.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class Outcome(Generic[T]):
    """Result of a collaborator call: a value or the error that replaced it."""

    __slots__ = ("value", "error")

    def __init__(self, value: Optional[T] = None, error: Optional[Exception] = None):
        self.value = value
        self.error = error

    @property
    def ok(self) -> bool:
        """True when the call completed without raising."""
        return self.error is None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: Exception) -> "Outcome[T]":
        return cls(error=error)

    def __repr__(self) -> str:
        if self.ok:
            return f"<Outcome ok value={self.value!r}>"
        return f"<Outcome failed error={self.error!r}>"


async def attempt(awaitable: Awaitable[T], operation: str, **context: Any) -> Outcome[T]:
    """
    Await a collaborator call and capture its result as an ``Outcome``.

    Cancellation is not captured: ``asyncio.CancelledError`` derives from
    ``BaseException`` and propagates to the caller.

    Args:
        awaitable: Pending collaborator call
        operation: Name of the call, used in the error log
        **context: Extra fields for the error log

    Returns:
        Outcome holding the value or the raised exception
    """
    try:
        return Outcome.success(await awaitable)
    except Exception as e:
        logger.error(
            "Collaborator call failed",
            operation=operation,
            error=str(e),
            error_type=type(e).__name__,
            **context,
        )
        return Outcome.failure(e)


def fail_safe(default: Callable[[], Any], operation: str):
    """
    Decorate a public async operation so no exception escapes it.

    Any exception is logged and replaced with ``default()``. Cancellation
    still propagates.

    Args:
        default: Builds the safe result returned on failure
        operation: Operation name for the error log
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    "Compliance operation failed",
                    operation=operation,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                return default()
        return wrapper
    return decorator
