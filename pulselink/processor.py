"""
Per-tick heart-rate processing.
Turns the latest raw sample into the published heart rate, trend indicator
and icon text. Settings are re-read from PulseState on every tick.
"""

import time
from typing import Optional, Sequence

from .config import PulseConfig
from .metrics import SampleSlot, SmoothingWindow, TrendWindow, Trend, classify_trend
from .state import PulseState
from .symbols import TREND_SYMBOL_SETS, TrendSymbolSet, select_trend_symbol_set, to_superscript


class SignalProcessor:
    """
    Smoothing, trend detection and icon selection.

    Only the tick timer calls tick(); the receive loop only touches the
    SampleSlot. All outputs go through PulseState.update().
    """

    def __init__(
        self,
        state: PulseState,
        slot: SampleSlot,
        config: Optional[PulseConfig] = None,
        symbol_sets: Optional[Sequence[TrendSymbolSet]] = None
    ):
        """
        Initialize processor.

        Args:
            state: Shared state (settings in, display values out)
            slot: Latest-sample slot written by the streaming client
            config: Static config (staleness limit)
            symbol_sets: Trend symbol catalog (default: TREND_SYMBOL_SETS)
        """
        self.state = state
        self.slot = slot
        self.config = config or PulseConfig()
        self.symbol_sets = list(symbol_sets or TREND_SYMBOL_SETS)

        self.smoothing_window = SmoothingWindow(span_seconds=state.smooth_span_sec)
        self.trend_window = TrendWindow(capacity=state.trend_sample_rate)
        self.icon_index = 0
        self.last_slope: Optional[float] = None

    def reset(self):
        """Forget history from a previous session."""
        self.smoothing_window.clear()
        self.trend_window.clear()
        self.icon_index = 0
        self.last_slope = None

    def publish_annotation_text(self):
        """Precompute superscript low/high annotations from the current text."""
        self.state.update(
            formatted_low_text=to_superscript(self.state.low_heart_rate_text),
            formatted_high_text=to_superscript(self.state.high_heart_rate_text)
        )

    def publish_trend_symbol(self):
        """Write the resolved symbol selection back, replacing one missing from the catalog."""
        resolved = select_trend_symbol_set(self.state.selected_trend_symbol, self.symbol_sets)
        self.state.update(selected_trend_symbol=resolved.combined)

    def tick(self, now: Optional[float] = None):
        """
        Process the latest sample once.

        Args:
            now: Current unix time (defaults to time.time())
        """
        now = time.time() if now is None else now
        settings = self.state.snapshot()

        sample = self.slot.latest()
        if (sample is None or sample.heart_rate <= 0
                or now - sample.received_at > self.config.sample_stale_sec):
            self.state.update(device_online=False)
            return

        updates = {"device_online": True}
        value: float = sample.heart_rate

        if settings["smooth_heart_rate"]:
            self.smoothing_window.span_seconds = settings["smooth_span_sec"]
            self.smoothing_window.add(now, value)
            value = self.smoothing_window.mean()

        if settings["show_trend_indicator"]:
            self.trend_window.capacity = settings["trend_sample_rate"]
            self.trend_window.push(value)
            slope = self.trend_window.slope()
            if slope is not None:
                self.last_slope = slope
                updates["trend_indicator"] = self._trend_symbol(
                    classify_trend(slope, settings["trend_sensitivity"]),
                    settings["selected_trend_symbol"]
                )

        heart_rate = int(round(value))
        updates["heart_rate_icon"] = self._compose_icon(heart_rate, settings)
        if heart_rate != settings["heart_rate"]:
            updates["heart_rate"] = heart_rate

        self.state.update(**updates)

    def _trend_symbol(self, trend: Trend, selected: str) -> str:
        symbols = select_trend_symbol_set(selected, self.symbol_sets)
        if trend == Trend.UP:
            return symbols.upward
        if trend == Trend.DOWN:
            return symbols.downward
        return ""

    def _compose_icon(self, heart_rate: int, settings: dict) -> str:
        icons = settings["heart_icons"] or [""]
        if self.icon_index >= len(icons):
            self.icon_index = 0

        icon = icons[self.icon_index]
        if settings["magic_heart_icons"]:
            self.icon_index = (self.icon_index + 1) % len(icons)

        if settings["show_threshold_text"]:
            if heart_rate < settings["low_threshold"]:
                return icon + settings["formatted_low_text"]
            if heart_rate >= settings["high_threshold"]:
                return icon + settings["formatted_high_text"]
        return icon
