"""
Engine Logging
==============

Logging with console/file output and performance tracking for solver runs.
"""

import logging
import os
import sys
import threading
import time
from contextlib import contextmanager
from datetime import datetime
from functools import wraps
from typing import Any, Callable, Dict, List, Optional


LOGGER_NAME = 'thermal_engine'


def _safe_isatty(stream) -> bool:
    """Return True if stream looks like a tty."""
    isatty = getattr(stream, "isatty", None)
    if isatty is None:
        return False
    try:
        return bool(isatty())
    except ValueError:
        # closed stream
        return False


class ThermalEngineFormatter(logging.Formatter):
    """Formatter with optional colors and thread tagging."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
        'RESET': '\033[0m',
    }

    def __init__(self, use_colors: bool = True, stream=None):
        super().__init__()
        self.use_colors = bool(use_colors and stream is not None and _safe_isatty(stream))

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
        level = record.levelname
        location = f"[{record.module}.{record.funcName}:{record.lineno}]"

        # Worker threads (view-factor jobs) are tagged
        thread_name = record.threadName
        thread_info = f"[{thread_name}]" if thread_name and thread_name != 'MainThread' else ""

        if self.use_colors:
            color = self.COLORS.get(level, '')
            reset = self.COLORS['RESET']
            formatted = f"{timestamp} {color}{level:8s}{reset} {thread_info}{location} {record.getMessage()}"
        else:
            formatted = f"{timestamp} {level:8s} {thread_info}{location} {record.getMessage()}"

        if record.exc_info:
            formatted += '\n' + self.formatException(record.exc_info)

        return formatted


class PerformanceTracker:
    """Thread-safe timing statistics per operation."""

    def __init__(self):
        self.timings: Dict[str, List[float]] = {}
        self.lock = threading.Lock()

    def record_timing(self, operation: str, duration_s: float):
        """Record timing for an operation."""
        with self.lock:
            self.timings.setdefault(operation, []).append(duration_s)

    def get_stats(self, operation: str) -> Dict[str, float]:
        """Get statistics for an operation."""
        with self.lock:
            times = self.timings.get(operation)
            if not times:
                return {'count': 0, 'total': 0.0, 'mean': 0.0, 'min': 0.0, 'max': 0.0}
            return {
                'count': len(times),
                'total': sum(times),
                'mean': sum(times) / len(times),
                'min': min(times),
                'max': max(times),
            }

    def get_all_stats(self) -> Dict[str, Dict[str, float]]:
        """Get statistics for all operations."""
        with self.lock:
            operations = list(self.timings)
        return {op: self.get_stats(op) for op in operations}

    def clear(self):
        """Clear all recorded data."""
        with self.lock:
            self.timings.clear()


class ThermalEngineLogger:
    """
    Process-wide logger for the thermal engine.

    Wraps a stdlib ``logging.Logger`` named ``thermal_engine``. Console output
    goes to stderr; file output is opt-in through ``log_dir``.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls, *args, **kwargs):
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self,
                 log_dir: Optional[str] = None,
                 log_level: int = logging.DEBUG,
                 console_level: int = logging.WARNING,
                 enable_performance_tracking: bool = True):
        """
        Initialize the logger.

        Args:
            log_dir: Directory for a timestamped log file (None disables file output)
            log_level: Level of the underlying logger
            console_level: Level of the console handler
            enable_performance_tracking: Collect timings from ``timed_function``
        """
        if self._initialized:
            return
        self._initialized = True
        self.log_dir = log_dir
        self.current_log_file: Optional[str] = None

        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.setLevel(log_level)
        self.logger.handlers = []
        self.logger.propagate = True

        stream = sys.stderr
        console_handler = logging.StreamHandler(stream)
        console_handler.setLevel(console_level)
        console_handler.setFormatter(ThermalEngineFormatter(use_colors=True, stream=stream))
        self.logger.addHandler(console_handler)

        if log_dir:
            self._setup_file_handler(log_dir, log_level)

        self.performance = PerformanceTracker() if enable_performance_tracking else None

    def _setup_file_handler(self, log_dir: str, level: int):
        os.makedirs(log_dir, exist_ok=True)
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        log_file = os.path.join(log_dir, f'thermal_engine_{timestamp}.log')

        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(ThermalEngineFormatter(use_colors=False))
        self.logger.addHandler(file_handler)

        self.current_log_file = log_file
        self.logger.info(f"Log file created: {log_file}")

    def set_console_level(self, level: int):
        """Change console log level at runtime."""
        for handler in self.logger.handlers:
            if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
                handler.setLevel(level)

    def debug(self, message: str, *args, **kwargs):
        kwargs.setdefault('stacklevel', 2)
        self.logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs):
        kwargs.setdefault('stacklevel', 2)
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs):
        kwargs.setdefault('stacklevel', 2)
        self.logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args, **kwargs):
        kwargs.setdefault('stacklevel', 2)
        self.logger.error(message, *args, **kwargs)

    def exception(self, message: str, *args, **kwargs):
        kwargs.setdefault('stacklevel', 2)
        self.logger.exception(message, *args, **kwargs)

    def start_run(self, run_id: str, params: Dict[str, Any]):
        """Log run start with its parameters."""
        self.logger.info(f"RUN STARTED: {run_id}", stacklevel=2)
        for key, value in params.items():
            self.logger.debug(f"  {key}: {value}", stacklevel=2)

    def end_run(self, run_id: str, success: bool, duration_s: float, message: str = ""):
        """Log run end with a short summary."""
        status = "COMPLETED" if success else "FAILED"
        suffix = f" ({message})" if message else ""
        self.logger.info(f"RUN {status}: {run_id} in {duration_s:.3f}s{suffix}", stacklevel=2)

    def log_progress(self, current: int, total: int, stage: str = ""):
        """Log batch progress."""
        percent = (current / total * 100) if total > 0 else 0
        self.logger.debug(f"Progress: {current}/{total} ({percent:.1f}%) {stage}", stacklevel=2)

    def log_convergence(self, iteration: int, residual: float, target: float):
        """Log solver convergence progress."""
        self.logger.debug(f"Iteration {iteration}: max dT={residual:.3e}, target={target:.3e}",
                          stacklevel=2)


_logger: Optional[ThermalEngineLogger] = None


def get_logger() -> ThermalEngineLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = ThermalEngineLogger()
    return _logger


def initialize_logger(log_dir: Optional[str] = None,
                      log_level: int = logging.DEBUG,
                      console_level: int = logging.WARNING) -> ThermalEngineLogger:
    """Re-initialize the global logger with custom settings."""
    global _logger
    with ThermalEngineLogger._lock:
        ThermalEngineLogger._instance = None
    _logger = ThermalEngineLogger(
        log_dir=log_dir,
        log_level=log_level,
        console_level=console_level,
    )
    return _logger


def timed_function(operation_name: Optional[str] = None):
    """Decorator to time function execution."""
    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger()
            op_name = operation_name or func.__name__
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.debug(f"{op_name} failed after {time.perf_counter() - start:.3f}s: {e}")
                raise
            duration = time.perf_counter() - start
            if logger.performance:
                logger.performance.record_timing(op_name, duration)
            logger.debug(f"{op_name} completed in {duration:.3f}s")
            return result
        return wrapper
    return decorator


@contextmanager
def log_section(section_name: str):
    """Context manager for logging a section of code."""
    logger = get_logger()
    logger.info(f"--- {section_name} ---")
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        logger.error(f"--- {section_name} failed after {time.perf_counter() - start:.3f}s: {e} ---")
        raise
    logger.info(f"--- {section_name} completed in {time.perf_counter() - start:.3f}s ---")


__all__ = [
    'ThermalEngineLogger',
    'ThermalEngineFormatter',
    'PerformanceTracker',
    'get_logger',
    'initialize_logger',
    'timed_function',
    'log_section',
]
