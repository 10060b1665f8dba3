import threading
import time

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close

from pulselink.config import PulseConfig
from pulselink.errors import ConnectionDropped, MessageParseError, StreamConnectError
from pulselink.metrics import SampleSlot
from pulselink.state import PulseState
from pulselink.stream import HeartRateMessage, StreamingClient


class FakeConnection:
    """Stands in for a websockets ClientConnection."""

    def __init__(self, frames=None):
        self.frames = list(frames or [])
        self.closed = threading.Event()
        self.close_calls = 0

    def recv(self, timeout=None):
        if self.closed.is_set():
            raise ConnectionClosedOK(Close(1000, ""), Close(1000, ""), True)
        if self.frames:
            item = self.frames.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        time.sleep(min(timeout or 0.01, 0.01))
        raise TimeoutError()

    def close(self):
        self.close_calls += 1
        self.closed.set()


class Harness:
    def __init__(self, frames=None, **settings):
        self.state = PulseState(**settings)
        self.slot = SampleSlot()
        self.connection = FakeConnection(frames)
        self.connect_calls = []
        self.client = StreamingClient(
            self.state, self.slot,
            PulseConfig(receive_poll_sec=0.01, disconnect_timeout_sec=2.0),
            connector=self._connect
        )
        self.closed = threading.Event()
        self.close_errors = []
        self.client.on_closed = self._on_closed

    def _connect(self, url, additional_headers=None, open_timeout=None):
        self.connect_calls.append((url, additional_headers, open_timeout))
        return self.connection

    def _on_closed(self, error):
        self.close_errors.append(error)
        self.closed.set()


def remote_close():
    return ConnectionClosedOK(Close(1000, "bye"), Close(1000, "bye"), True)


def test_decode_valid_frame():
    message = HeartRateMessage.from_json('{"measured_at": 1625310655000, "data": {"heart_rate": 72}}')
    assert message.heart_rate == 72
    assert message.measured_at == 1625310655000


def test_decode_accepts_integral_float():
    assert HeartRateMessage.from_json('{"data": {"heart_rate": 72.0}}').heart_rate == 72


@pytest.mark.parametrize("text", [
    "not json",
    "[1, 2, 3]",
    '{"heart_rate": 72}',
    '{"data": {}}',
    '{"data": {"heart_rate": "72"}}',
    '{"data": {"heart_rate": true}}',
    '{"data": {"heart_rate": 72.5}}',
    '{"data": "72"}',
])
def test_decode_rejects_other_shapes(text):
    with pytest.raises(MessageParseError):
        HeartRateMessage.from_json(text)


def test_connect_sends_bearer_header_and_clears_error():
    h = Harness(frames=[remote_close()], access_error=True, access_error_text="old")
    h.client.connect("secret", threading.Event())

    url, headers, _ = h.connect_calls[0]
    assert url == PulseConfig().realtime_url
    assert headers == {"Authorization": "Bearer secret"}
    assert h.state.access_error is False
    assert h.state.access_error_text == ""
    assert h.closed.wait(2.0)
    h.client.disconnect()


def test_receive_loop_publishes_latest_sample_and_skips_bad_frames():
    h = Harness(frames=[
        '{"data": {"heart_rate": 70}}',
        "garbage",
        b'{"data": {"heart_rate": 71}}',
        remote_close(),
    ])
    h.client.connect("token", threading.Event())

    assert h.closed.wait(2.0)
    assert h.close_errors == [None]
    assert h.slot.latest().heart_rate == 71
    assert h.client.frames_received == 3
    assert h.client.frames_discarded == 1
    assert h.state.heart_rate_last_update is not None
    h.client.disconnect()


def test_adjustment_is_added_when_enabled():
    h = Harness(
        frames=['{"data": {"heart_rate": 70}}', remote_close()],
        apply_heart_rate_adjustment=True, heart_rate_adjustment=5
    )
    h.client.connect("token", threading.Event())
    assert h.closed.wait(2.0)
    assert h.slot.latest().heart_rate == 75
    h.client.disconnect()


def test_abnormal_close_reports_connection_dropped():
    h = Harness(frames=[ConnectionClosedError(Close(1011, "server error"), None)])
    h.client.connect("token", threading.Event())

    assert h.closed.wait(2.0)
    assert len(h.close_errors) == 1
    assert isinstance(h.close_errors[0], ConnectionDropped)
    h.client.disconnect()


def test_cancellation_ends_loop_without_error():
    h = Harness()
    cancel = threading.Event()
    h.client.connect("token", cancel)
    assert h.client.is_receiving

    cancel.set()
    h.client.disconnect()

    assert h.closed.is_set()
    assert h.close_errors == [None]
    assert h.connection.close_calls == 1
    assert not h.client.is_receiving
    assert not h.client.is_connected


def test_disconnect_is_idempotent():
    h = Harness()
    h.client.disconnect()
    h.client.connect("token", threading.Event())
    h.client.disconnect()
    h.client.disconnect()
    assert h.connection.close_calls == 1


def test_connect_failure_raises_stream_connect_error():
    state = PulseState()

    def refuse(url, additional_headers=None, open_timeout=None):
        raise OSError("connection refused")

    client = StreamingClient(state, SampleSlot(), PulseConfig(), connector=refuse)
    with pytest.raises(StreamConnectError, match="connection refused"):
        client.connect("token", threading.Event())
    assert not client.is_connected
