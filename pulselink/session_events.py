"""
Session lifecycle states and transition events.
"""

from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Dict, Any


class SessionState(Enum):
    """Monitoring session states."""
    STOPPED = "stopped"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    FAULTED = "faulted"


@dataclass
class StateTransitionEvent:
    """
    Event emitted when the session state changes.

    Carries enough context for logging and for the UI status line.
    """
    timestamp: str  # ISO format
    from_state: str
    to_state: str
    reason: str
    time_in_previous_state: float  # seconds
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)
