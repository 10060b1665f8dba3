"""
Session controller: decides when heart-rate monitoring runs.

Watches the trigger fields on PulseState, validates the token, opens the
stream, starts the tick timer, and tears everything down again on stop or
connection loss.

States: STOPPED -> CONNECTING -> STREAMING -> STOPPED
        CONNECTING -> (FAULTED ->) STOPPED on any failure
        STREAMING -> (FAULTED ->) STOPPED on connection loss
"""

import time
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Any, List, Optional

from .errors import ConnectionDropped, StreamConnectError
from .event_logger import EventLogger
from .oauth import TokenBroker, TokenValidity
from .processor import SignalProcessor
from .session_events import SessionState, StateTransitionEvent
from .state import PulseState
from .stream import StreamingClient
from .ticker import TickTimer


NO_TOKEN_MESSAGE = "No Pulsoid connection found. Please connect with the Pulsoid Authentication server"
INVALID_TOKEN_MESSAGE = "Invalid access token. Please reconnect with the Pulsoid Authentication server"

# PulseState fields whose change may start or stop a session
TRIGGER_FIELDS = frozenset({
    "integration_enabled",
    "is_vr_running",
    "enabled_in_vr",
    "enabled_on_desktop",
    "access_token",
})


class SessionController:
    """
    Owns the monitoring session lifecycle.

    start()/stop() are mutually exclusive and idempotent. Change
    notifications are handled on a single worker thread so transitions run
    one at a time and never block the writer of PulseState.
    """

    def __init__(
        self,
        state: PulseState,
        broker: TokenBroker,
        stream: StreamingClient,
        processor: SignalProcessor,
        ticker: Optional[TickTimer] = None,
        event_logger: Optional[EventLogger] = None
    ):
        self.state = state
        self.broker = broker
        self.stream = stream
        self.processor = processor
        self.ticker = ticker or TickTimer(processor.tick, lambda: state.scan_interval_sec)
        self.event_logger = event_logger

        self.current_state = SessionState.STOPPED
        self.state_entered_at = time.time()
        self.transition_events: List[StateTransitionEvent] = []

        self._lock = threading.Lock()
        self._cancel: Optional[threading.Event] = None
        self._generation = 0
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pulse-session")
        self._attached = False

    # ------------------------------------------------------------------
    # Change notifications

    def attach(self):
        """Start reacting to PulseState changes."""
        if not self._attached:
            self.state.subscribe(self._on_state_change)
            self._attached = True

    def detach(self):
        if self._attached:
            self.state.unsubscribe(self._on_state_change)
            self._attached = False

    def _on_state_change(self, name: str, value: Any):
        self.handle_change(name)

    def handle_change(self, name: str) -> Optional[Future]:
        """
        Queue a reconcile if the field is a session trigger.

        Returns:
            Future of the reconcile, or None for unrelated fields
        """
        if name not in TRIGGER_FIELDS:
            return None
        return self._executor.submit(self.reconcile)

    def should_run(self) -> bool:
        """Integration enabled and enabled for the current context (VR or desktop)."""
        if not self.state.integration_enabled:
            return False
        if self.state.is_vr_running:
            return bool(self.state.enabled_in_vr)
        return bool(self.state.enabled_on_desktop)

    def reconcile(self) -> SessionState:
        """Start or stop so the session matches should_run()."""
        if self.should_run():
            self.start()
        else:
            self.stop("Monitoring disabled")
        return self.current_state

    # ------------------------------------------------------------------
    # Transitions

    def start(self) -> bool:
        """
        Start a monitoring session.

        No-op unless STOPPED.

        Returns:
            True if the session reached STREAMING
        """
        with self._lock:
            if self.current_state != SessionState.STOPPED:
                return False

            token = self.state.access_token
            if not token:
                self._set_error("auth", NO_TOKEN_MESSAGE)
                return False

            self._transition(SessionState.CONNECTING, "Start requested")
            try:
                return self._connect(token)
            except Exception as e:
                print(f"[SESSION] Unexpected error during start: {e}")
                if self.current_state != SessionState.STOPPED:
                    self._transition(SessionState.FAULTED, "Start failed", error=str(e))
                    self._teardown()
                    self._transition(SessionState.STOPPED, "Start failed")
                self._set_error("session", f"Start failed: {e}")
                return False

    def _connect(self, token: str) -> bool:
        """Validate, open the stream and start the timer (called under the lock)."""
        validity = self.broker.check(token)
        if validity != TokenValidity.VALID:
            details = {"validity": validity.value}
            if self.broker.last_validation_error is not None:
                details["error"] = str(self.broker.last_validation_error)
            self._transition(SessionState.STOPPED, "Token validation failed", **details)
            self._set_error("auth", INVALID_TOKEN_MESSAGE)
            return False

        self._generation += 1
        generation = self._generation
        cancel = threading.Event()
        self._cancel = cancel
        self.stream.on_closed = lambda error: self._on_stream_closed(generation, cancel, error)

        self.processor.reset()
        self.processor.publish_annotation_text()
        self.processor.publish_trend_symbol()

        try:
            self.stream.connect(token, cancel)
        except StreamConnectError as e:
            self._transition(SessionState.FAULTED, "Connect failed", error=str(e))
            self._teardown()
            self._transition(SessionState.STOPPED, "Connect failed")
            self._set_error("stream", str(e))
            return False

        self.ticker.start()
        self._transition(SessionState.STREAMING, "Connected")
        return True

    def stop(self, reason: str = "Stop requested"):
        """
        Stop the session and release the connection and timer.

        Blocks until the receive loop and tick timer have exited. No-op when
        already STOPPED.
        """
        with self._lock:
            if self.current_state == SessionState.STOPPED:
                return
            self._teardown()
            self._transition(SessionState.STOPPED, reason)

    def shutdown(self):
        """Stop the session and release all resources (application exit)."""
        self.detach()
        self._executor.shutdown(wait=True)
        self.stop("Shutdown")
        self.broker.stop_listeners()

    def _teardown(self):
        if self._cancel is not None:
            self._cancel.set()
            self._cancel = None
        self.stream.disconnect()
        self.ticker.stop()
        self.processor.slot.clear()
        self.state.update(access_error=False, access_error_text="", device_online=False)

    def _on_stream_closed(self, generation: int, cancel: threading.Event,
                          error: Optional[ConnectionDropped]):
        """Called from the receive loop thread when it exits."""
        if cancel.is_set():
            return
        try:
            self._executor.submit(self._handle_stream_lost, generation, error)
        except RuntimeError:
            # Executor already shut down; shutdown() stops the session itself
            pass

    def _handle_stream_lost(self, generation: int, error: Optional[ConnectionDropped]):
        with self._lock:
            if generation != self._generation or self.current_state != SessionState.STREAMING:
                return
            if error is None:
                self._teardown()
                self._transition(SessionState.STOPPED, "Connection closed by remote")
                return

            self._transition(SessionState.FAULTED, "Connection dropped", error=str(error))
            self._teardown()
            self._transition(SessionState.STOPPED, "Connection dropped")
            self._set_error("stream", f"Connection lost: {error}")

    def _set_error(self, kind: str, message: str):
        print(f"[SESSION] {message}")
        self.state.update(access_error=True, access_error_text=message)
        if self.event_logger:
            self.event_logger.log_error(kind, self.current_state.value, message)

    def _transition(self, new_state: SessionState, reason: str, **details):
        now = time.time()
        event = StateTransitionEvent(
            timestamp=datetime.now().isoformat(),
            from_state=self.current_state.value,
            to_state=new_state.value,
            reason=reason,
            time_in_previous_state=now - self.state_entered_at,
            details=details
        )
        self.current_state = new_state
        self.state_entered_at = now
        self.transition_events.append(event)

        print(f"[SESSION] {event.from_state.upper()} → {event.to_state.upper()} ({reason})")
        self.state.update(session_state=new_state.value)
        if self.event_logger:
            self.event_logger.log_transition(event)

    def get_state_summary(self):
        """Current state and how long it has been held."""
        return {
            "state": self.current_state.value,
            "time_in_state": time.time() - self.state_entered_at,
            "transitions": len(self.transition_events),
            "ticks": self.ticker.tick_count,
            "frames_received": self.stream.frames_received,
            "frames_discarded": self.stream.frames_discarded,
        }
