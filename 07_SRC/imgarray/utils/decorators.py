# ==================================================
# ========  MODULE: decorators & timing utils  =====
# ==================================================
from __future__ import annotations

import time
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from imgarray.core.config import get_global_config
from imgarray.utils.logger import get_debug_logger, get_error_logger

# Public API
__all__ = ["log_errors", "timed"]

F = TypeVar("F", bound=Callable[..., Any])

_LOGGED_FLAG = "_imgarray_logged"


# ====[ Error policy decorator ]====
def log_errors(name: Optional[str] = None, raise_exception: Optional[bool] = None) -> Callable[[F], F]:
    """
    Log exceptions raised by the wrapped operation and apply the error policy.

    Parameters
    ----------
    name : str, optional
        Label used in the log record (defaults to the function's qualified name).
    raise_exception : bool, optional
        Force re-raising (True) or the None sentinel (False). If None, the
        active `GlobalConfig.raise_errors` decides at call time.

    Returns
    -------
    Callable
        A decorator preserving the original signature.

    Notes
    -----
    An exception is logged once, by the innermost decorated call it crosses.
    """
    def decorator(func: F) -> F:
        label = name or func.__qualname__

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if not getattr(e, _LOGGED_FLAG, False):
                    get_error_logger().error(f"Exception in '{label}': {type(e).__name__}: {e}")
                    setattr(e, _LOGGED_FLAG, True)
                should_raise = get_global_config().raise_errors if raise_exception is None else raise_exception
                if should_raise:
                    raise
                return None
        return wrapper  # type: ignore[return-value]
    return decorator


# ====[ Debug timer ]====
def timed(name: Optional[str] = None) -> Callable[[F], F]:
    """Log the elapsed time of the wrapped call on the debug logger."""
    def decorator(func: F) -> F:
        label = name or func.__qualname__

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed = time.perf_counter() - start
            get_debug_logger().debug(f"Execution time for '{label}': {elapsed:.3f} seconds")
            return result
        return wrapper  # type: ignore[return-value]
    return decorator

