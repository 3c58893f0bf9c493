"""
Node Logger

This module provides the diagnostic logger and the protocol trace
writer used by the node and the simulator.

Diagnostics carry a level, a name and a category and go to stderr.
Trace lines follow the fixed one-event-per-line format and go to
stdout, so traces stay comparable across implementations.
"""

from typing import Optional, TextIO, Callable
from datetime import datetime
from enum import IntEnum
import os
import sys
import threading
import time

from config import DEFAULT_LOG_LEVEL


class LogLevel(IntEnum):
    """Log level enumeration."""
    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3
    CRITICAL = 4


def wall_clock_ms() -> int:
    """Milliseconds since the epoch."""
    return int(time.time() * 1000)


class NodeLogger:
    """
    Logger for node events.

    Attributes:
        name: Logger name
        level: Minimum diagnostic log level
        trace_enabled: Whether protocol trace lines are written
        file: Optional file mirroring traces and diagnostics
    """

    # Color codes for terminal output
    COLORS = {
        LogLevel.DEBUG: '\033[36m',     # Cyan
        LogLevel.INFO: '\033[32m',      # Green
        LogLevel.WARNING: '\033[33m',   # Yellow
        LogLevel.ERROR: '\033[31m',     # Red
        LogLevel.CRITICAL: '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(
        self,
        name: str = "SRNode",
        level: int = DEFAULT_LOG_LEVEL,
        log_file: Optional[str] = None,
        use_colors: bool = True,
        trace_enabled: bool = True,
        trace_stream: Optional[TextIO] = None,
        diag_stream: Optional[TextIO] = None,
        clock: Optional[Callable[[], int]] = None
    ):
        """
        Initialize logger.

        Args:
            name: Logger name
            level: Minimum diagnostic log level
            log_file: Optional file path for logging
            use_colors: Use ANSI colors in diagnostics
            trace_enabled: Write protocol trace lines
            trace_stream: Where trace lines go (default stdout)
            diag_stream: Where diagnostics go (default stderr)
            clock: Millisecond clock used to stamp trace lines
        """
        self.name = name
        self.level = level
        self.use_colors = use_colors
        self.trace_enabled = trace_enabled
        self.trace_stream = trace_stream
        self.diag_stream = diag_stream
        self.clock = clock or wall_clock_ms

        self.file: Optional[TextIO] = None
        if log_file:
            directory = os.path.dirname(log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            self.file = open(log_file, 'w')

        # Simulation time tracking (seconds)
        self.sim_time: Optional[float] = None

        # Several threads write through one logger
        self._lock = threading.Lock()

        # Message counts
        self.message_counts = {level: 0 for level in LogLevel}
        self.trace_count = 0

    def set_sim_time(self, time: float):
        """Set current simulation time; trace stamps follow it."""
        self.sim_time = time

    def set_level(self, level: int):
        """Set minimum log level."""
        self.level = level

    def timestamp(self) -> int:
        """Timestamp for the next trace line, in milliseconds."""
        if self.sim_time is not None:
            return int(round(self.sim_time * 1000))
        return self.clock()

    def _format_message(
        self,
        level: LogLevel,
        message: str,
        category: Optional[str] = None
    ) -> str:
        """Format a diagnostic message."""
        parts = []

        if self.sim_time is not None:
            parts.append(f"[{self.sim_time:10.6f}s]")
        else:
            parts.append(f"[{datetime.now().strftime('%H:%M:%S.%f')[:-3]}]")

        level_str = level.name.ljust(8)
        if self.use_colors:
            level_str = f"{self.COLORS[level]}{level_str}{self.RESET}"
        parts.append(level_str)

        parts.append(f"[{self.name}]")

        if category:
            parts.append(f"[{category}]")

        parts.append(message)

        return " ".join(parts)

    def _write_file(self, line: str):
        if self.file:
            self.file.write(line + '\n')
            self.file.flush()

    def _log(
        self,
        level: LogLevel,
        message: str,
        category: Optional[str] = None
    ):
        """Log a diagnostic message."""
        if level < self.level:
            return

        formatted = self._format_message(level, message, category)

        with self._lock:
            self.message_counts[level] += 1
            print(formatted, file=self.diag_stream or sys.stderr)

            if self.file:
                # Strip color codes for file
                clean = formatted
                for color in self.COLORS.values():
                    clean = clean.replace(color, '')
                self._write_file(clean.replace(self.RESET, ''))

    def debug(self, message: str, category: Optional[str] = None):
        """Log debug message."""
        self._log(LogLevel.DEBUG, message, category)

    def info(self, message: str, category: Optional[str] = None):
        """Log info message."""
        self._log(LogLevel.INFO, message, category)

    def warning(self, message: str, category: Optional[str] = None):
        """Log warning message."""
        self._log(LogLevel.WARNING, message, category)

    def error(self, message: str, category: Optional[str] = None):
        """Log error message."""
        self._log(LogLevel.ERROR, message, category)

    def critical(self, message: str, category: Optional[str] = None):
        """Log critical message."""
        self._log(LogLevel.CRITICAL, message, category)

    # Protocol trace lines
    def _trace(self, event: str):
        if not self.trace_enabled:
            return
        with self._lock:
            # Stamped under the lock so lines print in time order
            line = f"{self.timestamp()} {event}"
            self.trace_count += 1
            print(line, file=self.trace_stream or sys.stdout, flush=True)
            self._write_file(line)

    def packet_sent(self, seq_num: int, data: str):
        self._trace(f"packet-{seq_num} {data} sent")

    def ack_received(self, ack_num: int, window: Optional[tuple] = None):
        """ACK received; the window bounds are included when it advanced."""
        if window is None:
            self._trace(f"ACK-{ack_num} received")
        else:
            start, end = window
            self._trace(f"ACK-{ack_num} received; window = [{start},{end}]")

    def timeout(self, seq_num: int):
        self._trace(f"packet-{seq_num} timeout")

    def packet_received(self, seq_num: int, data: str, window: Optional[tuple] = None):
        """DATA accepted; the window bounds are included when it advanced."""
        if window is None:
            self._trace(f"packet-{seq_num} {data} received")
        else:
            start, end = window
            self._trace(f"packet-{seq_num} {data} received; window = [{start},{end}]")

    def ack_sent(self, ack_num: int):
        self._trace(f"ACK-{ack_num} sent")

    def packet_discarded(self, seq_num: int, data: str):
        self._trace(f"packet-{seq_num} {data} discarded")

    def data_delivered(self, seq_num: int, data: str):
        self.debug(f"Delivered packet {seq_num}: {data!r}", "DELIVER")

    def get_summary(self) -> dict:
        """Get logging summary."""
        return {
            'message_counts': dict(self.message_counts),
            'total_messages': sum(self.message_counts.values()),
            'trace_lines': self.trace_count
        }

    def close(self):
        """Close log file if open."""
        if self.file:
            self.file.close()
            self.file = None

    def __del__(self):
        """Cleanup on deletion."""
        self.close()


# Global logger instance
_global_logger: Optional[NodeLogger] = None


def get_logger() -> NodeLogger:
    """Get global logger instance."""
    global _global_logger
    if _global_logger is None:
        _global_logger = NodeLogger()
    return _global_logger


def set_logger(logger: NodeLogger):
    """Set global logger instance."""
    global _global_logger
    _global_logger = logger
