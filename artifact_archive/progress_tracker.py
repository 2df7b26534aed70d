"""Writes build progress updates to a JSON lines file."""

import logging
import os
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, ValidationError


class Status(Enum):
    """Represents the status of a build phase."""

    PENDING = auto()
    IN_PROGRESS = auto()
    COMPLETED = auto()
    FAILED = auto()
    SKIPPED = auto()


class ProgressEntry(BaseModel):
    """Pydantic model for a progress entry."""

    phase: str
    status: Status
    details: Optional[str] = None
    percentage: Optional[int] = Field(default=None, ge=0, le=100)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ProgressTracker:
    """Tracks progress by appending JSON lines to ``log_file_path``.

    :meth:`update_progress` matches the builder's ``on_progress`` callback.
    """

    def __init__(self, log_file_path: str = "progress_log.jsonl", log: Optional[logging.Logger] = None):
        if log_file_path.endswith(".json"):
            log_file_path = log_file_path[:-len(".json")] + ".jsonl"
        self.log_file_path = os.path.abspath(log_file_path)
        self.logger = log or logging.getLogger(__name__)
        os.makedirs(os.path.dirname(self.log_file_path) or ".", exist_ok=True)

    def update_progress(self, update: Dict[str, Any]) -> bool:
        """Log a builder progress update.

        Args:
            update: Mapping with ``phase`` and optionally ``current``/``total``,
                ``current_file``, ``status`` and ``details``.

        Returns:
            bool: True if the entry was logged successfully, False otherwise.
        """
        phase = str(update.get("phase", "unknown"))

        status_val = update.get("status", Status.IN_PROGRESS)
        if isinstance(status_val, str):
            try:
                status = Status[status_val.upper()]
            except KeyError:
                status = Status.IN_PROGRESS
        elif isinstance(status_val, Status):
            status = status_val
        else:
            status = Status.IN_PROGRESS

        percentage = update.get("percentage")
        current, total = update.get("current"), update.get("total")
        if percentage is None and current is not None and total:
            percentage = int(current * 100 / total)

        details = update.get("details") or update.get("current_file")
        if details is None:
            extras = {k: v for k, v in update.items() if k not in ("phase", "status")}
            details = ", ".join(f"{k}={v}" for k, v in extras.items()) or None

        entry = ProgressEntry(
            phase=phase,
            status=status,
            details=details,
            percentage=percentage,
        )
        return self.log_entry(entry)

    def log_entry(self, entry: ProgressEntry) -> bool:
        """Validate and append a progress entry."""
        try:
            validated_entry = ProgressEntry.model_validate(entry.model_dump())
            json_line = validated_entry.model_dump_json()

            with open(self.log_file_path, "a", encoding="utf-8") as f:
                f.write(json_line + "\n")

            self.logger.debug(
                "Progress: %s - %s - %s", entry.phase, entry.status.name, entry.details or ""
            )
            return True

        except ValidationError as e:
            self.logger.error("Invalid progress entry: %s", e)
            return False
        except OSError as e:
            self.logger.error("Failed to log progress entry: %s", e)
            return False
