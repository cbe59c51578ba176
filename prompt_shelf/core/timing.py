"""
Timing helpers for debugging codec and index hot paths.

Set PS_DEBUG=1 before start-up to have decorated functions print their
execution time together with the number of rows, records or groups they
produced.
"""

import functools
import os
import time
from typing import Any, Callable, Optional, ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")

DEBUG_ENABLED = os.getenv("PS_DEBUG") == "1"


def result_size(result: Any) -> Optional[int]:
    """Rows in a decode result, characters in encoded text, else len() if sized."""
    rows = getattr(result, "rows", None)
    if rows is not None:
        return len(rows)
    try:
        return len(result)
    except TypeError:
        return None


def format_timing(name: str, elapsed_ms: float, size: Optional[int] = None) -> str:
    line = f"[PS_DEBUG] {name}: {elapsed_ms:.2f}ms"
    if size is not None:
        line += f" ({size} items)"
    return line


def timer(func: Callable[P, R]) -> Callable[P, R]:
    """
    Decorator that prints the execution time of func when PS_DEBUG=1.

    With debugging off the function is returned unchanged.
    """
    if not DEBUG_ENABLED:
        return func

    @functools.wraps(func)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        start_time = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        print(format_timing(func.__name__, elapsed_ms, result_size(result)))
        return result

    return wrapper
