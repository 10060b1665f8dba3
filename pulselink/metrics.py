"""
Heart-rate sample containers and trend math.
Implements the latest-sample slot, the time-bounded smoothing window and the
fixed-size trend window with least-squares slope detection.
"""

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, List, Optional, Sequence, Tuple
import numpy as np


class Trend(Enum):
    """Direction of the recent heart-rate trend."""
    UP = "up"
    DOWN = "down"
    FLAT = "flat"


@dataclass(frozen=True)
class RawSample:
    """Single heart-rate value as delivered by the stream."""
    received_at: float  # unix timestamp
    heart_rate: int


class SampleSlot:
    """
    Holds the one current RawSample.

    The receive loop writes, the tick reads. Publishing replaces a single
    reference, so a reader never sees a half-written sample.
    """

    def __init__(self):
        self._sample: Optional[RawSample] = None

    def publish(self, sample: RawSample):
        self._sample = sample

    def latest(self) -> Optional[RawSample]:
        return self._sample

    def clear(self):
        self._sample = None


class SmoothingWindow:
    """
    Rolling buffer of (timestamp, value) pairs within a time span.
    Used for the moving-average heart rate.
    """

    def __init__(self, span_seconds: float = 4.0):
        """
        Initialize smoothing window.

        Args:
            span_seconds: Maximum age of retained entries (seconds)
        """
        self.span_seconds = span_seconds
        self.buffer: List[Tuple[float, float]] = []

    def add(self, timestamp: float, value: float):
        """Append a value and drop entries older than the span."""
        self.buffer.append((timestamp, value))
        self._prune(timestamp)

    def _prune(self, current_time: float):
        cutoff = current_time - self.span_seconds
        self.buffer = [(t, v) for t, v in self.buffer if t >= cutoff]

    def get_values(self) -> list:
        return [v for _, v in self.buffer]

    def mean(self) -> Optional[float]:
        """Arithmetic mean of values in the window."""
        values = self.get_values()
        return float(np.mean(values)) if values else None

    def size(self) -> int:
        return len(self.buffer)

    def clear(self):
        self.buffer = []


class TrendWindow:
    """
    Last N values, oldest evicted first.
    """

    def __init__(self, capacity: int = 4):
        self._values: Deque[float] = deque()
        self.capacity = capacity

    @property
    def capacity(self) -> int:
        return self._capacity

    @capacity.setter
    def capacity(self, capacity: int):
        self._capacity = max(1, int(capacity))
        while len(self._values) > self._capacity:
            self._values.popleft()

    def push(self, value: float):
        if len(self._values) >= self._capacity:
            self._values.popleft()
        self._values.append(value)

    def get_values(self) -> list:
        return list(self._values)

    def slope(self) -> Optional[float]:
        """Least-squares slope, or None with fewer than two values."""
        if len(self._values) < 2:
            return None
        return compute_slope(self._values)

    def size(self) -> int:
        return len(self._values)

    def clear(self):
        self._values.clear()


def compute_slope(values: Sequence[float]) -> float:
    """
    Ordinary least-squares slope of value against index.

    slope = sum((i - mean_i) * (v - mean_v)) / sum((i - mean_i)^2)
    """
    v = np.asarray(values, dtype=float)
    if v.size < 2:
        return 0.0
    i = np.arange(v.size, dtype=float)
    di = i - i.mean()
    return float(np.sum(di * (v - v.mean())) / np.sum(di * di))


def classify_trend(slope: Optional[float], sensitivity: float) -> Trend:
    """UP above +sensitivity, DOWN below -sensitivity, otherwise FLAT."""
    if slope is None:
        return Trend.FLAT
    if slope > sensitivity:
        return Trend.UP
    if slope < -sensitivity:
        return Trend.DOWN
    return Trend.FLAT
