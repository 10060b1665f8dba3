"""
Shared observable state between the pipeline and the UI layer.

The UI writes configuration (toggles, thresholds, token) and reads outputs
(heart rate, trend, icon, error flag). The pipeline does the opposite.
Writes are serialized under one lock; change callbacks fire after the lock
is released so a callback may write back without deadlocking.
"""

import threading
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional


DEFAULT_HEART_ICONS = ["❤️", "💖", "💗", "💙", "💚", "💛", "💜"]


@dataclass
class PulseSettings:
    """
    Default values for every field on PulseState.

    Inputs are owned by the UI layer; outputs are written by the pipeline.
    """
    # Inputs: session triggers
    integration_enabled: bool = False
    is_vr_running: bool = False
    enabled_in_vr: bool = True
    enabled_on_desktop: bool = True
    access_token: str = ""

    # Inputs: processing
    scan_interval_sec: float = 1.0
    smooth_heart_rate: bool = False
    smooth_span_sec: float = 4.0
    show_trend_indicator: bool = True
    trend_sample_rate: int = 4
    trend_sensitivity: float = 0.65
    selected_trend_symbol: str = ""  # combined "<up> - <down>" text
    magic_heart_icons: bool = False
    heart_icons: List[str] = field(default_factory=lambda: list(DEFAULT_HEART_ICONS))
    show_threshold_text: bool = False
    low_threshold: int = 60
    high_threshold: int = 100
    low_heart_rate_text: str = "sleepy"
    high_heart_rate_text: str = "hot"
    apply_heart_rate_adjustment: bool = False
    heart_rate_adjustment: int = 0

    # Outputs
    session_state: str = "stopped"
    device_online: bool = False
    heart_rate: int = 0
    heart_rate_last_update: Optional[datetime] = None
    trend_indicator: str = ""
    heart_rate_icon: str = DEFAULT_HEART_ICONS[0]
    formatted_low_text: str = ""
    formatted_high_text: str = ""
    access_error: bool = False
    access_error_text: str = ""


ChangeCallback = Callable[[str, Any], None]


class PulseState:
    """
    Thread-safe observable key/value surface.

    Read fields as attributes (``state.heart_rate``); write through
    ``update()`` so subscribers are notified of actual changes only.
    """

    def __init__(self, settings: Optional[PulseSettings] = None, **overrides):
        values = asdict(settings or PulseSettings())
        unknown = set(overrides) - set(values)
        if unknown:
            raise AttributeError(f"Unknown state fields: {sorted(unknown)}")
        values.update(overrides)

        object.__setattr__(self, "_values", values)
        object.__setattr__(self, "_lock", threading.RLock())
        object.__setattr__(self, "_subscribers", [])

    def __getattr__(self, name: str) -> Any:
        values = object.__getattribute__(self, "_values")
        try:
            return values[name]
        except KeyError:
            raise AttributeError(name) from None

    def __setattr__(self, name: str, value: Any):
        self.update(**{name: value})

    def update(self, **changes) -> List[str]:
        """
        Apply changes atomically and notify subscribers.

        Returns:
            Names of fields whose value actually changed
        """
        notifications = []
        with self._lock:
            for name, value in changes.items():
                if name not in self._values:
                    raise AttributeError(f"Unknown state field: {name}")
                if self._values[name] != value:
                    self._values[name] = value
                    notifications.append((name, value))
            subscribers = list(self._subscribers)

        for name, value in notifications:
            for callback in subscribers:
                try:
                    callback(name, value)
                except Exception as e:
                    print(f"[STATE] Subscriber error on '{name}': {e}")
        return [name for name, _ in notifications]

    def subscribe(self, callback: ChangeCallback):
        """Register callback(name, value) for every field change."""
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: ChangeCallback):
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def snapshot(self) -> Dict[str, Any]:
        """Consistent copy of all fields."""
        with self._lock:
            return dict(self._values)
