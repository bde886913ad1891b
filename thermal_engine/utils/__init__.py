"""
Utilities Module
================

Logging and performance tracking shared by the engine.
"""

from .logger import (
    ThermalEngineLogger,
    PerformanceTracker,
    get_logger,
    initialize_logger,
    timed_function,
    log_section,
)

__all__ = [
    'ThermalEngineLogger',
    'PerformanceTracker',
    'get_logger',
    'initialize_logger',
    'timed_function',
    'log_section',
]
