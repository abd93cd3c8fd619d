"""
Unified Logging Configuration for the judgment analysis pipeline.

Combines:
- Console output with timestamps (DEBUG_MODE only)
- A line-oriented trace file, debug_flow.txt, in the logs directory
- A standard processing.log for info, warnings and errors
- Performance timing via the Timer context manager

All modules import their logging functions from here:
    from judgment_analysis.logging_config import debug_log, info, warning, error, Timer

Messages should carry a bracketed component prefix such as [EXTRACTOR],
[CHUNKER] or [ORCHESTRATOR].
"""

import logging
import sys
import threading
import time
from datetime import datetime

from judgment_analysis.config import DEBUG_FLOW_FILE, DEBUG_MODE, LOG_DATE_FORMAT, LOG_FILE, LOG_FORMAT


class _DebugFileLogger:
    """
    Owns debug_flow.txt, the full trace written regardless of DEBUG_MODE.

    The file is opened lazily on first write so importing the package has no
    side effects beyond directory creation. Writes are serialized because
    pipeline runs happen on background worker threads.
    """

    def __init__(self, path):
        self._path = path
        self._log_file = None
        self._lock = threading.Lock()

    def _open(self):
        self._log_file = open(self._path, 'a', encoding='utf-8')
        self._log_file.write("=== Judgment Analysis Debug Log ===\n")
        self._log_file.write(f"Started: {datetime.now().isoformat()}\n")
        self._log_file.write(f"DEBUG_MODE: {DEBUG_MODE}\n")
        self._log_file.write("=" * 60 + "\n\n")

    def write(self, message: str):
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        with self._lock:
            try:
                if self._log_file is None:
                    self._open()
                self._log_file.write(f"[{timestamp}] {message}\n")
                self._log_file.flush()
            except OSError:
                # Trace file is best-effort; the standard logger still receives warnings/errors
                self._log_file = None

    def close(self):
        with self._lock:
            if self._log_file:
                self._log_file.write(f"\n{'=' * 60}\n")
                self._log_file.write(f"Ended: {datetime.now().isoformat()}\n")
                self._log_file.close()
                self._log_file = None


_debug_file_logger = _DebugFileLogger(DEBUG_FLOW_FILE)


def _setup_standard_logging() -> logging.Logger:
    """
    Configure the named stdlib logger used for info/warning/error output.

    Returns:
        The 'JudgmentAnalysis' logger
    """
    logger = logging.getLogger('JudgmentAnalysis')
    logger.setLevel(logging.DEBUG if DEBUG_MODE else logging.INFO)

    # Prevent duplicate handlers on re-import
    if logger.handlers:
        return logger

    try:
        file_handler = logging.FileHandler(LOG_FILE, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        logger.addHandler(file_handler)
    except OSError:
        logger.addHandler(logging.NullHandler())

    if DEBUG_MODE:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        logger.addHandler(console_handler)

    return logger


_logger = _setup_standard_logging()


class Timer:
    """
    Context manager for timing code blocks with automatic logging.

    Usage:
        with Timer("OCR page 3"):
            ...

    Output (debug_flow.txt):
        [14:32:01.120] Starting OCR page 3...
        [14:32:02.962] OCR page 3 took 1.8 seconds
    """

    def __init__(self, operation_name: str, auto_log: bool = True):
        self.operation_name = operation_name
        self.auto_log = auto_log
        self.start_time: float | None = None
        self.end_time: float | None = None
        self.duration_ms: float | None = None

    def __enter__(self):
        if self.auto_log:
            debug_log(f"Starting {self.operation_name}...")
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = time.time()
        self.duration_ms = (self.end_time - self.start_time) * 1000

        if self.auto_log:
            if self.duration_ms < 1000:
                duration_str = f"{self.duration_ms:.0f} ms"
            else:
                duration_str = f"{self.duration_ms / 1000:.1f} seconds"
            suffix = " (failed)" if exc_type else ""
            debug_log(f"{self.operation_name} took {duration_str}{suffix}")

        return False

    def get_duration_ms(self) -> float:
        """
        Raises:
            ValueError: If the timer has not completed yet
        """
        if self.duration_ms is None:
            raise ValueError("Timer has not been completed yet")
        return self.duration_ms


def debug_log(message: str):
    """
    Log a debug message to debug_flow.txt, and to the console in DEBUG_MODE.

    Example:
        debug_log("[CHUNKER] Page 2 produced 4 chunks")
    """
    _debug_file_logger.write(message)

    if DEBUG_MODE:
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        formatted = f"[{timestamp}] {message}"
        try:
            print(formatted)
            sys.stdout.flush()
        except UnicodeEncodeError:
            sys.stdout.buffer.write((formatted + "\n").encode('utf-8', errors='replace'))
            sys.stdout.buffer.flush()


def debug(message: str):
    """Alias for debug_log."""
    debug_log(message)


def info(message: str):
    _debug_file_logger.write(f"[INFO] {message}")
    _logger.info(message)


def warning(message: str):
    """Warnings are always written to both the trace file and processing.log."""
    _debug_file_logger.write(f"[WARNING] {message}")
    _logger.warning(message)


def error(message: str, exc_info: bool = False):
    """
    Log an error message.

    Args:
        message: The error message to log
        exc_info: If True, include the active exception's traceback (DEBUG_MODE only)
    """
    _debug_file_logger.write(f"[ERROR] {message}")
    _logger.error(message, exc_info=exc_info and DEBUG_MODE)


def critical(message: str, exc_info: bool = True):
    _debug_file_logger.write(f"[CRITICAL] {message}")
    _logger.critical(message, exc_info=exc_info and DEBUG_MODE)


def debug_timing(operation: str, elapsed_seconds: float):
    """
    Log a manually measured duration in human-readable units.

    For automatic start/end logging use Timer instead.
    """
    if elapsed_seconds < 1:
        time_str = f"{elapsed_seconds*1000:.0f} ms"
    elif elapsed_seconds < 60:
        time_str = f"{elapsed_seconds:.2f}s"
    else:
        time_str = f"{elapsed_seconds/60:.1f}m"
    debug_log(f"{operation} took {time_str}")


def close_debug_log():
    """Flush and close debug_flow.txt. Call at process shutdown."""
    _debug_file_logger.close()


__all__ = [
    'debug_log',
    'debug',
    'debug_timing',
    'info',
    'warning',
    'error',
    'critical',
    'close_debug_log',
    'Timer',
    'DEBUG_MODE',
]
