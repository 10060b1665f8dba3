"""
Streaming client for the Pulsoid real-time heart-rate websocket.

Owns one authenticated connection and a receive loop thread that writes
each decoded value into the shared SampleSlot.
"""

import json
import time
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from websockets.exceptions import ConnectionClosed, ConnectionClosedOK, WebSocketException
from websockets.sync.client import connect as ws_connect

from .config import PulseConfig
from .errors import ConnectionDropped, MessageParseError, StreamConnectError
from .metrics import RawSample, SampleSlot
from .state import PulseState


@dataclass(frozen=True)
class HeartRateMessage:
    """
    Decoded real-time frame.

    Wire shape: {"measured_at": 1625310655000, "data": {"heart_rate": 72}}
    """
    heart_rate: int
    measured_at: Optional[int] = None

    @classmethod
    def from_json(cls, text: str) -> 'HeartRateMessage':
        """
        Decode a frame.

        Raises:
            MessageParseError: Not JSON, or data.heart_rate missing/non-numeric
        """
        try:
            payload = json.loads(text)
        except (TypeError, ValueError) as e:
            raise MessageParseError(f"Invalid JSON frame: {e}") from e

        if not isinstance(payload, dict):
            raise MessageParseError("Frame is not a JSON object")
        data = payload.get("data")
        if not isinstance(data, dict):
            raise MessageParseError("Frame has no 'data' object")

        heart_rate = _as_int(data.get("heart_rate"))
        if heart_rate is None:
            raise MessageParseError(f"Frame has no numeric heart_rate: {data.get('heart_rate')!r}")

        return cls(heart_rate=heart_rate, measured_at=_as_int(payload.get("measured_at")))


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


class StreamingClient:
    """
    One websocket connection plus its receive loop.

    No automatic reconnect: when the loop ends, on_closed is called and the
    session controller decides what happens next.
    """

    def __init__(
        self,
        state: PulseState,
        slot: SampleSlot,
        config: Optional[PulseConfig] = None,
        connector: Optional[Callable[..., Any]] = None
    ):
        """
        Initialize streaming client.

        Args:
            state: Shared state (adjustment settings in, error/last-update out)
            slot: Latest-sample slot read by the signal processor
            config: Endpoint and timeout configuration
            connector: Websocket connect function (default: websockets sync client)
        """
        self.state = state
        self.slot = slot
        self.config = config or PulseConfig()
        self._connector = connector or ws_connect

        self._connection = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

        self.on_closed: Optional[Callable[[Optional[ConnectionDropped]], None]] = None

        # Stats
        self.frames_received = 0
        self.frames_discarded = 0

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def is_receiving(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def connect(self, token: str, cancel: threading.Event):
        """
        Open the connection and start the receive loop.

        Args:
            token: Pulsoid access token (sent as a bearer credential)
            cancel: Set by the caller to end the receive loop

        Raises:
            StreamConnectError: Handshake or transport failure
        """
        with self._lock:
            if self._connection is not None:
                raise StreamConnectError("Already connected")
            try:
                connection = self._connector(
                    self.config.realtime_url,
                    additional_headers={"Authorization": f"Bearer {token}"},
                    open_timeout=self.config.connect_timeout_sec
                )
            except (WebSocketException, OSError, TimeoutError) as e:
                print(f"[STREAM] Connect failed: {e}")
                raise StreamConnectError(str(e)) from e

            self._connection = connection
            self.frames_received = 0
            self.frames_discarded = 0
            self.state.update(access_error=False, access_error_text="")

            self._thread = threading.Thread(
                target=self._receive_loop,
                args=(connection, cancel),
                name="pulse-receive",
                daemon=True
            )
            self._thread.start()
        print(f"[STREAM] Connected to {self.config.realtime_url}")

    def disconnect(self, timeout: Optional[float] = None):
        """
        Close the connection and wait for the receive loop to finish.

        Safe to call repeatedly and with no connection.
        """
        timeout = self.config.disconnect_timeout_sec if timeout is None else timeout
        with self._lock:
            connection, self._connection = self._connection, None
            thread, self._thread = self._thread, None

        if connection is not None:
            try:
                connection.close()
            except (WebSocketException, OSError) as e:
                print(f"[STREAM] Error while closing: {e}")

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                print(f"[STREAM] Receive loop did not exit within {timeout:.1f}s")

    def _receive_loop(self, connection, cancel: threading.Event):
        """Main receive loop (runs in background thread)."""
        error: Optional[ConnectionDropped] = None
        try:
            while not cancel.is_set():
                try:
                    message = connection.recv(timeout=self.config.receive_poll_sec)
                except TimeoutError:
                    continue
                except ConnectionClosedOK:
                    if not cancel.is_set():
                        print("[STREAM] Connection closed by remote")
                    break
                except ConnectionClosed as e:
                    if not cancel.is_set():
                        print(f"[STREAM] Connection dropped: {e}")
                        error = ConnectionDropped(str(e))
                    break

                self._handle_message(message)
        except Exception as e:
            if not cancel.is_set():
                print(f"[STREAM] Receive loop error: {e}")
                error = ConnectionDropped(str(e))
        finally:
            callback = self.on_closed
            if callback is not None:
                callback(error)

    def _handle_message(self, message):
        self.frames_received += 1
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")

        try:
            decoded = HeartRateMessage.from_json(message)
        except MessageParseError as e:
            self.frames_discarded += 1
            print(f"[STREAM] Discarding frame: {e}")
            return

        heart_rate = decoded.heart_rate
        if self.state.apply_heart_rate_adjustment:
            heart_rate += int(self.state.heart_rate_adjustment)

        self.slot.publish(RawSample(received_at=time.time(), heart_rate=heart_rate))
        self.state.update(heart_rate_last_update=datetime.now())
