"""Per-shot debug log capture.

A ShotDebugLogger is a logging handler that the owner attaches for the
duration of one shot. Nothing is installed globally: the handler is added
to the integration's logger on ``start_capture()`` and removed again on
``stop_capture()``, so the capture window is exactly the shot window.
Records the logging configuration would have filtered out are captured but
not passed on to the handlers above the integration's logger.
"""
from __future__ import annotations

import logging
import threading
from datetime import datetime

_LOGGER = logging.getLogger(__name__)

PACKAGE_LOGGER = __name__.rpartition(".")[0]


class ShotDebugFormatter(logging.Formatter):
    """Render records as ``[HH:MM:SS.mmm] LEVEL message``."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a captured record."""
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        return f"[{stamp}] {record.levelname} {record.getMessage()}"


class _PropagationGate(logging.Handler):
    """Hand records at or above a level on to the parent logger."""

    def __init__(self, parent: logging.Logger, level: int) -> None:
        super().__init__(level)
        self._parent = parent

    def emit(self, record: logging.LogRecord) -> None:
        self._parent.handle(record)


class ShotDebugLogger(logging.Handler):
    """Capture log output of the integration while a shot is running."""

    def __init__(
        self, logger_name: str = PACKAGE_LOGGER, level: int = logging.DEBUG
    ) -> None:
        """Initialize the capture handler."""
        super().__init__(level)
        self.setFormatter(ShotDebugFormatter())
        self._target = logging.getLogger(logger_name)
        self._previous_level: int | None = None
        self._gate: _PropagationGate | None = None
        self._lines: list[str] = []
        self._capturing = False
        self._guard = threading.Lock()

    @property
    def is_capturing(self) -> bool:
        """Return True while a capture is running."""
        return self._capturing

    @property
    def captured_log(self) -> str:
        """Return the captured lines."""
        with self._guard:
            return "\n".join(self._lines)

    def start_capture(self) -> None:
        """Start capturing; restarting clears the previous capture."""
        with self._guard:
            self._lines.clear()
            if self._capturing:
                self._lines.append(
                    f"[{self._now()}] START Shot capture restarted - {datetime.now().isoformat()}"
                )
                return

            self._capturing = True
            self._lines.append(
                f"[{self._now()}] START Shot capture started - {datetime.now().isoformat()}"
            )

        self._target.addHandler(self)
        effective_level = self._target.getEffectiveLevel()
        if effective_level <= self.level:
            return

        self._previous_level = self._target.level
        self._target.setLevel(self.level)
        if self._target.propagate and self._target.parent is not None:
            # Records below the configured level stay inside the capture
            self._gate = _PropagationGate(self._target.parent, effective_level)
            self._target.addHandler(self._gate)
            self._target.propagate = False

    def stop_capture(self) -> None:
        """Stop capturing and detach from the logger."""
        with self._guard:
            if not self._capturing:
                return
            self._lines.append(f"[{self._now()}] STOP Shot capture stopped")
            self._capturing = False

        self._target.removeHandler(self)
        if self._gate is not None:
            self._target.removeHandler(self._gate)
            self._target.propagate = True
            self._gate = None
        if self._previous_level is not None:
            self._target.setLevel(self._previous_level)
            self._previous_level = None

    def clear(self) -> None:
        """Drop the captured lines."""
        with self._guard:
            self._lines.clear()

    def log_info(self, message: str) -> None:
        """Append an INFO line without going through a logger."""
        self._append("INFO", message)

    def emit(self, record: logging.LogRecord) -> None:
        """Store a record emitted while capturing."""
        try:
            line = self.format(record)
        except Exception:  # noqa: BLE001
            self.handleError(record)
            return
        with self._guard:
            if self._capturing:
                self._lines.append(line)

    def _append(self, category: str, message: str) -> None:
        with self._guard:
            if self._capturing:
                self._lines.append(f"[{self._now()}] {category} {message}")

    @staticmethod
    def _now() -> str:
        return datetime.now().strftime("%H:%M:%S.%f")[:-3]
