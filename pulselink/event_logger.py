"""
Event logger for session lifecycle decisions.

Logs state transitions and authentication/stream failures.
Tokens are never written to the log.
"""

import json
import time
from pathlib import Path
from typing import Any, Dict, List, Optional
from datetime import datetime

from .session_events import StateTransitionEvent


class EventLogger:
    """
    Logger for session events.

    Logs to JSONL format (one JSON object per line).
    """

    def __init__(self, log_path: Optional[str] = None):
        """
        Initialize event logger.

        Args:
            log_path: Path to log file (default: storage/pulse_events.jsonl)
        """
        if log_path is None:
            log_path = "storage/pulse_events.jsonl"

        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log_event(
        self,
        event_type: str,
        state: str,
        reason: str,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """
        Log a session event.

        Args:
            event_type: Type of event (transition, auth_error, stream_error, ...)
            state: Session state at time of event
            reason: Brief reason string
            metadata: Additional metadata
        """
        event = {
            "timestamp": datetime.now().isoformat(),
            "unix_time": time.time(),
            "event_type": event_type,
            "state": state,
            "reason": reason,
            "metadata": metadata or {}
        }

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(event, ensure_ascii=False) + "\n")

    def log_transition(self, event: StateTransitionEvent):
        """Log a session state transition."""
        data = event.to_dict()
        details = data.pop("details")
        self.log_event(
            event_type="transition",
            state=data.pop("to_state"),
            reason=data.pop("reason"),
            metadata={**data, **details}
        )

    def log_error(self, kind: str, state: str, message: str):
        """Log an authentication or stream failure."""
        self.log_event(
            event_type=f"{kind}_error",
            state=state,
            reason=message
        )

    def read_events(self, limit: Optional[int] = None, errors_only: bool = False) -> List[Dict[str, Any]]:
        """
        Read logged events back, oldest first.

        Args:
            limit: Keep only the newest N events (None = all)
            errors_only: Only auth/stream/session failures

        Returns:
            List of event dictionaries (malformed lines are skipped)
        """
        if not self.log_path.exists():
            return []

        events = []
        with open(self.log_path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    print(f"[EVENT_LOG] Skipping malformed line {line_no} in {self.log_path}")
                    continue
                if errors_only and not str(event.get("event_type", "")).endswith("_error"):
                    continue
                events.append(event)

        return events if limit is None else events[-limit:]
