"""
Utilities package - Helper functions and classes.

Contains implementations for:
- Protocol metrics
- Diagnostic logging and protocol traces
"""

from .metrics import MetricsCollector
from .logger import NodeLogger, LogLevel, get_logger, set_logger

__all__ = [
    'MetricsCollector',
    'NodeLogger',
    'LogLevel',
    'get_logger',
    'set_logger'
]
