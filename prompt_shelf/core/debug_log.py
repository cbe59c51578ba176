"""
Debug logging for store and session operations.

When PS_DEBUG=1 every logged event is written as a JSON document into
{home}/debug/session_<timestamp>/, one file per event, so a misbehaving load
or import can be inspected afterwards.
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union


class DebugLogger:
    """
    Writes per-event JSON debug logs for a single session.

    Args:
        home: Data directory; logs go to home/debug/
        enabled: Override the PS_DEBUG environment flag
    """

    def __init__(self, home: Union[str, Path] = ".", enabled: Optional[bool] = None):
        self.home = Path(home)
        self.enabled = enabled if enabled is not None else is_debug_enabled()
        self.session_id = datetime.now().strftime("%Y%m%d_%H%M%S")

        if self.enabled:
            self._setup_log_directory()

    def _setup_log_directory(self) -> None:
        self.log_dir = self.home / "debug"
        self.session_dir = self.log_dir / f"session_{self.session_id}"
        self.session_dir.mkdir(parents=True, exist_ok=True)

    def is_enabled(self) -> bool:
        return self.enabled

    def _write(self, step: str, payload: Dict[str, Any]) -> None:
        timestamp = datetime.now().isoformat()
        log_data = {"timestamp": timestamp, "session_id": self.session_id, "step": step, **payload}

        filename = f"{step}_{timestamp.replace(':', '-').replace('.', '_')}.json"
        with open(self.session_dir / filename, "w", encoding="utf-8") as f:
            json.dump(log_data, f, indent=2, ensure_ascii=False, default=str)

    def log_load(self, source: str, kept: int, skipped: int, reinitialized: bool) -> None:
        """
        Log the outcome of loading the prompt file.

        Args:
            source: Path of the file that was loaded
            kept: Records loaded
            skipped: Rows dropped as unusable
            reinitialized: Whether the file was reset to header-only first
        """
        if not self.enabled:
            return
        self._write("load", {"source": source, "kept": kept, "skipped": skipped, "reinitialized": reinitialized})

    def log_mutation(self, operation: str, record_id: Optional[str], details: Optional[Dict[str, Any]] = None) -> None:
        if not self.enabled:
            return
        self._write(f"mutation_{operation}", {"operation": operation, "record_id": record_id, "details": details or {}})

    def log_import(self, policy: str, decoded: int, added: int, rejected_reason: Optional[str] = None) -> None:
        if not self.enabled:
            return
        self._write("import", {"policy": policy, "decoded_rows": decoded, "added": added, "rejected_reason": rejected_reason})

    def log_failure(self, context: str, error: Exception) -> None:
        """Log an error that was surfaced to the caller (validation or persistence)."""
        if not self.enabled:
            return
        self._write(f"{context}_failure", {"error": str(error), "error_type": type(error).__name__})


# Global debug logger instance
_debug_logger: Optional[DebugLogger] = None


def get_debug_logger(home: Union[str, Path] = ".") -> DebugLogger:
    """Get or create the global debug logger for home."""
    global _debug_logger
    if _debug_logger is None or _debug_logger.home != Path(home):
        _debug_logger = DebugLogger(home)
    return _debug_logger


def is_debug_enabled() -> bool:
    return os.getenv("PS_DEBUG", "0") == "1"
