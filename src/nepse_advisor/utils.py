"""Utility functions for the NEPSE advisor."""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal, ROUND_HALF_UP
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Optional

from rich.logging import RichHandler

from nepse_advisor.config import LOG_FILE

def setup_logging(log_level: int = logging.INFO, log_file: Optional[Path] = LOG_FILE) -> None:
    """Set up logging configuration.
    
    Args:
        log_level: Logging level to use (default: INFO)
        log_file: Rotating log file, or None to log to the terminal only
    """
    handlers = []

    # Terminal handler (RichHandler for pretty output)
    console_handler = RichHandler(rich_tracebacks=True)
    console_handler.setLevel(log_level)
    handlers.append(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        # File handler with rotation
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        handlers.append(file_handler)

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True
    )

def clamp(value: float, lower: float = -1.0, upper: float = 1.0) -> float:
    """Clamp a value into [lower, upper].

    Raises:
        ValueError: If the value is NaN
    """
    if math.isnan(value):
        raise ValueError("Cannot clamp NaN")
    return max(lower, min(upper, value))

def to_fixed(value: float, digits: int) -> str:
    """Render a float with a fixed number of decimals.

    Ties on the exact binary value round away from zero, and negative values
    that round to zero keep their sign (``-0.001`` renders as ``-0.00``), so
    the text matches what the dashboard has always stored.

    Args:
        value: Number to render
        digits: Number of decimals

    Returns:
        Fixed-point string
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        value = 0.0  # drop the sign of negative zero
    quantum = Decimal(1).scaleb(-digits)
    return str(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))

def round_fixed(value: float, digits: int) -> float:
    """Round a float the same way ``to_fixed`` renders it."""
    return float(to_fixed(value, digits))

def call_with_timeout(func: Callable[..., Any], timeout: Optional[float], *args, **kwargs) -> Any:
    """Run ``func`` and give up waiting after ``timeout`` seconds.

    The call runs on a worker thread that is abandoned, not stopped, when the
    timeout expires. It may still finish and apply its side effects after
    the caller has seen the timeout.

    Raises:
        concurrent.futures.TimeoutError: If the call does not finish in time
    """
    if timeout is None:
        return func(*args, **kwargs)

    executor = ThreadPoolExecutor(max_workers=1)
    try:
        future = executor.submit(func, *args, **kwargs)
        return future.result(timeout=timeout)
    finally:
        # A timed-out worker is abandoned, not joined
        executor.shutdown(wait=False)
