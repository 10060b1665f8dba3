"""
PulseLink Core Module
Live Pulsoid heart-rate ingestion, smoothing and trend display.
"""

from .config import PulseConfig
from .state import PulseState, PulseSettings, DEFAULT_HEART_ICONS
from .errors import (
    PulseLinkError,
    AuthError,
    ListenerBindError,
    ListenersNotStarted,
    ExchangeTimeout,
    ExchangeCancelled,
    ValidationRequestFailed,
    StreamError,
    StreamConnectError,
    ConnectionDropped,
    MessageParseError
)
from .metrics import (
    RawSample,
    SampleSlot,
    SmoothingWindow,
    TrendWindow,
    Trend,
    compute_slope,
    classify_trend
)
from .symbols import TrendSymbolSet, TREND_SYMBOL_SETS, select_trend_symbol_set, to_superscript
from .oauth import TokenBroker, TokenValidity, OAuthExchange
from .stream import StreamingClient, HeartRateMessage
from .processor import SignalProcessor
from .ticker import TickTimer
from .session_events import SessionState, StateTransitionEvent
from .event_logger import EventLogger
from .session import SessionController, NO_TOKEN_MESSAGE, INVALID_TOKEN_MESSAGE, TRIGGER_FIELDS

__all__ = [
    "PulseConfig",
    "PulseState",
    "PulseSettings",
    "DEFAULT_HEART_ICONS",
    "PulseLinkError",
    "AuthError",
    "ListenerBindError",
    "ListenersNotStarted",
    "ExchangeTimeout",
    "ExchangeCancelled",
    "ValidationRequestFailed",
    "StreamError",
    "StreamConnectError",
    "ConnectionDropped",
    "MessageParseError",
    "RawSample",
    "SampleSlot",
    "SmoothingWindow",
    "TrendWindow",
    "Trend",
    "compute_slope",
    "classify_trend",
    "TrendSymbolSet",
    "TREND_SYMBOL_SETS",
    "select_trend_symbol_set",
    "to_superscript",
    "TokenBroker",
    "TokenValidity",
    "OAuthExchange",
    "StreamingClient",
    "HeartRateMessage",
    "SignalProcessor",
    "TickTimer",
    "SessionState",
    "StateTransitionEvent",
    "EventLogger",
    "SessionController",
    "NO_TOKEN_MESSAGE",
    "INVALID_TOKEN_MESSAGE",
    "TRIGGER_FIELDS",
    "build_session"
]


def build_session(state=None, config=None):
    """
    Wire up a complete pipeline around one PulseState.

    Returns:
        SessionController (attached to state change notifications)
    """
    config = config or PulseConfig.from_env()
    state = state or PulseState()
    slot = SampleSlot()
    broker = TokenBroker(config)
    stream = StreamingClient(state, slot, config)
    processor = SignalProcessor(state, slot, config)
    event_logger = EventLogger(config.event_log_path) if config.event_log_path else None
    controller = SessionController(state, broker, stream, processor, event_logger=event_logger)
    controller.attach()
    return controller
