"""Structured JSON audit trail for arbitration events."""

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from .config import Config

MAX_CONTENT_LENGTH = 1000  # Truncate large content to prevent log bloat


class AuditEvent(str, Enum):
    """Audit event types for arbitration decisions."""

    REQUEST_QUEUED = "request_queued"
    REQUEST_DEFERRED = "request_deferred"
    REQUEST_COVERED = "request_covered"
    REQUEST_RELEASED = "request_released"
    GROUP_SUPPRESSED = "group_suppressed"
    GROUP_GRANTED = "group_granted"
    GROUP_DENIED = "group_denied"
    GROUP_DISMISSED = "group_dismissed"
    GROUP_GRACE_EXPIRED = "group_grace_expired"
    PERMISSION_GRANTED = "permission_granted"
    PERMISSION_DENIED = "permission_denied"
    RUNTIME_CALL_FAILED = "runtime_call_failed"


class AuditLogger:
    """
    JSON Lines audit logger for arbitration events.

    Features:
    - One JSON object per line with ISO 8601 UTC timestamps
    - Automatic content truncation
    - Append-only file mode
    - Size-based rotation with timestamped backups
    - Disabled (no file I/O at all) when no path is configured
    """

    def __init__(self, log_path: Optional[str] = None, rotation_bytes: Optional[int] = None):
        """
        Initialize audit logger.

        Args:
            log_path: Path to audit log file (defaults to Config.AUDIT_LOG_PATH;
                auditing is disabled when neither is set)
            rotation_bytes: Rotate when the file reaches this size
        """
        if log_path is None:
            log_path = Config.AUDIT_LOG_PATH
        self.log_path: Optional[Path] = Path(log_path) if log_path else None
        self.rotation_bytes = rotation_bytes or Config.AUDIT_ROTATION_BYTES
        if self.log_path is not None:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def enabled(self) -> bool:
        return self.log_path is not None

    def _rotate_if_needed(self) -> None:
        """Rotate the audit log if it exceeds the configured size."""
        if not self.log_path.exists():
            return
        if self.log_path.stat().st_size < self.rotation_bytes:
            return

        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        rotated_path = self.log_path.with_name(f"{self.log_path.name}.{timestamp}")
        counter = 1
        while rotated_path.exists():
            rotated_path = self.log_path.with_name(
                f"{self.log_path.name}.{timestamp}.{counter}"
            )
            counter += 1
        self.log_path.replace(rotated_path)

    @staticmethod
    def _truncate_content(value: Any, max_length: int = MAX_CONTENT_LENGTH) -> Any:
        """Truncate large string values, recursing into dicts and lists."""
        if isinstance(value, str) and len(value) > max_length:
            return value[:max_length] + f"... [truncated, {len(value)} total chars]"
        elif isinstance(value, dict):
            return {k: AuditLogger._truncate_content(v, max_length) for k, v in value.items()}
        elif isinstance(value, (list, tuple, set, frozenset)):
            return [AuditLogger._truncate_content(item, max_length) for item in value]
        return value

    def log(
        self,
        event: AuditEvent,
        request_id: Optional[str] = None,
        kind: Optional[str] = None,
        **kwargs,
    ) -> None:
        """
        Write one audit record.

        Args:
            event: Audit event type
            request_id: Request identifier for correlation
            kind: Request kind (queue name)
            **kwargs: Additional fields to include in the record
        """
        if self.log_path is None:
            return

        audit_record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event.value,
            "request_id": request_id,
            "kind": kind,
            **self._truncate_content(kwargs),
        }
        json_line = json.dumps(audit_record, ensure_ascii=False, default=str)

        self._rotate_if_needed()
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json_line + "\n")
