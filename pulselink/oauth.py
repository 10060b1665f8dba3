"""
Token broker: loopback OAuth exchange and token validation.

Pulsoid's implicit grant returns the token in the URL fragment, which never
reaches a server. The redirect listener therefore answers with a tiny page
whose script POSTs the fragment to a second (relay) listener.
"""

import queue
import secrets
import threading
import time
import webbrowser
from dataclasses import dataclass, field
from enum import Enum
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Dict, Optional
from urllib.parse import parse_qsl, urlencode

import httpx

from .config import PulseConfig
from .errors import (
    ExchangeCancelled,
    ExchangeTimeout,
    ListenerBindError,
    ListenersNotStarted,
    ValidationRequestFailed,
)


RELAY_PAGE_TEMPLATE = """<html>
    <head>
        <script type='text/javascript'>
            var fragment = window.location.hash.substring(1);
            var xhttp = new XMLHttpRequest();
            xhttp.open('POST', '{relay_url}', true);
            xhttp.send(fragment);
            window.location.replace('{integrations_url}');
        </script>
    </head>
    <body></body>
</html>"""

# Poll granularity while waiting so cancellation is noticed promptly
_WAIT_SLICE_SEC = 0.25


class TokenValidity(Enum):
    VALID = "valid"
    INVALID = "invalid"
    UNKNOWN = "unknown"  # validation request failed


@dataclass
class OAuthExchange:
    """State of one authentication attempt."""
    authorization_url: str
    started_at: float = field(default_factory=time.time)
    redirect_received: threading.Event = field(default_factory=threading.Event)
    payloads: "queue.Queue[str]" = field(default_factory=lambda: queue.Queue(maxsize=1))


class _RedirectHandler(BaseHTTPRequestHandler):
    """Serves the relay page for the first request of an exchange."""

    def do_GET(self):
        broker: 'TokenBroker' = self.server.broker
        if self.path.startswith("/favicon"):
            self._reply(404, b"")
            return

        exchange = broker.current_exchange
        if exchange is None or exchange.redirect_received.is_set():
            self._reply(409, b"No authentication in progress")
            return

        exchange.redirect_received.set()
        self._reply(200, broker.relay_page().encode("utf-8"), "text/html; charset=utf-8")

    def _reply(self, status: int, body: bytes, content_type: str = "text/plain; charset=utf-8"):
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        print(f"[OAUTH] redirect listener: {format % args}")


class _RelayHandler(BaseHTTPRequestHandler):
    """Receives the fragment POSTed by the relay page."""

    def do_OPTIONS(self):
        self.send_response(204)
        self._cors_headers()
        self.send_header("Content-Length", "0")
        self.end_headers()

    def do_POST(self):
        broker: 'TokenBroker' = self.server.broker
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length).decode("utf-8", errors="replace") if length else ""

        exchange = broker.current_exchange
        accepted = False
        if exchange is not None:
            try:
                exchange.payloads.put_nowait(body)
                accepted = True
            except queue.Full:
                pass

        self.send_response(200 if accepted else 409)
        self._cors_headers()
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _cors_headers(self):
        self.send_header("Access-Control-Allow-Origin", "*")
        self.send_header("Access-Control-Allow-Methods", "POST, OPTIONS")
        self.send_header("Access-Control-Allow-Headers", "Content-Type")

    def log_message(self, format, *args):
        print(f"[OAUTH] relay listener: {format % args}")


class TokenBroker:
    """
    Obtains and validates Pulsoid access tokens.

    Listeners must be started before authenticate(); validation works
    without them.
    """

    def __init__(
        self,
        config: Optional[PulseConfig] = None,
        http_client: Optional[httpx.Client] = None,
        opener: Optional[Callable[[str], object]] = None
    ):
        """
        Initialize token broker.

        Args:
            config: Endpoints, ports and timeouts
            http_client: Client used for validation (created on demand if None)
            opener: Opens the authorization URL (default: webbrowser.open)
        """
        self.config = config or PulseConfig()
        self._http_client = http_client
        self._opener = opener or webbrowser.open

        self._redirect_server: Optional[ThreadingHTTPServer] = None
        self._relay_server: Optional[ThreadingHTTPServer] = None
        self._threads = []
        self._lock = threading.Lock()

        self.current_exchange: Optional[OAuthExchange] = None
        self.last_validation_error: Optional[ValidationRequestFailed] = None

    # ------------------------------------------------------------------
    # Listeners

    @property
    def listeners_started(self) -> bool:
        return self._redirect_server is not None and self._relay_server is not None

    @property
    def redirect_port(self) -> int:
        if self._redirect_server is not None:
            return self._redirect_server.server_address[1]
        return self.config.redirect_port

    @property
    def relay_port(self) -> int:
        if self._relay_server is not None:
            return self._relay_server.server_address[1]
        return self.config.relay_port

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.config.loopback_host}:{self.redirect_port}/"

    @property
    def relay_url(self) -> str:
        return f"http://{self.config.loopback_host}:{self.relay_port}/"

    def start_listeners(self):
        """
        Bind both loopback listeners. No-op if already started.

        Raises:
            ListenerBindError: Either port is unavailable
        """
        with self._lock:
            if self.listeners_started:
                return
            try:
                if self._redirect_server is None:
                    self._redirect_server = self._bind(self.config.redirect_port, _RedirectHandler)
                if self._relay_server is None:
                    self._relay_server = self._bind(self.config.relay_port, _RelayHandler)
            except OSError as e:
                self._close_servers()
                raise ListenerBindError(f"Cannot bind loopback listener: {e}") from e

            for server in (self._redirect_server, self._relay_server):
                thread = threading.Thread(target=server.serve_forever, name="pulse-oauth", daemon=True)
                thread.start()
                self._threads.append(thread)

        print(f"[OAUTH] Listening on ports {self.redirect_port} (redirect) and {self.relay_port} (relay)")

    def stop_listeners(self):
        """Shut down both listeners. Safe when not started."""
        with self._lock:
            self._close_servers()

    def _bind(self, port: int, handler) -> ThreadingHTTPServer:
        server = ThreadingHTTPServer((self.config.bind_address, port), handler)
        server.daemon_threads = True
        server.broker = self
        return server

    def _close_servers(self):
        for server in (self._redirect_server, self._relay_server):
            if server is None:
                continue
            if any(t.is_alive() for t in self._threads):
                server.shutdown()
            server.server_close()
        for thread in self._threads:
            thread.join(timeout=2.0)
        self._threads = []
        self._redirect_server = None
        self._relay_server = None

    # ------------------------------------------------------------------
    # Authentication

    def build_authorization_url(self, client_id: str, state: Optional[str] = None) -> str:
        """Implicit-grant authorization URL pointing back at the redirect listener."""
        params = {
            "response_type": "token",
            "client_id": client_id,
            "redirect_uri": self.redirect_uri,
            "scope": self.config.oauth_scope,
            "state": state or secrets.token_urlsafe(16),
        }
        return f"{self.config.authorize_url}?{urlencode(params)}"

    def relay_page(self) -> str:
        return RELAY_PAGE_TEMPLATE.format(
            relay_url=self.relay_url,
            integrations_url=self.config.integrations_url
        )

    def authenticate(
        self,
        authorization_url: str,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None
    ) -> str:
        """
        Run one loopback exchange and return the relayed fragment verbatim.

        Args:
            authorization_url: Provider authorization URL to open in the browser
            timeout: Overall deadline in seconds (default: config.auth_timeout_sec)
            cancel: Optional event that aborts the wait when set

        Raises:
            ListenersNotStarted: start_listeners() has not succeeded
            ExchangeTimeout: The browser did not complete the flow in time
            ExchangeCancelled: cancel was set
        """
        if not self.listeners_started:
            raise ListenersNotStarted("Listeners are not started")

        timeout = self.config.auth_timeout_sec if timeout is None else timeout
        deadline = time.monotonic() + timeout
        exchange = OAuthExchange(authorization_url=authorization_url)
        self.current_exchange = exchange

        try:
            print("[OAUTH] Opening authorization page in browser")
            self._opener(authorization_url)

            self._wait(lambda: exchange.redirect_received.wait(_WAIT_SLICE_SEC),
                       deadline, cancel, "redirect")
            payload = []

            def _take() -> bool:
                try:
                    payload.append(exchange.payloads.get(timeout=_WAIT_SLICE_SEC))
                    return True
                except queue.Empty:
                    return False

            self._wait(_take, deadline, cancel, "token relay")
            print("[OAUTH] Token received")
            return payload[0]
        finally:
            self.current_exchange = None

    def _wait(self, step: Callable[[], bool], deadline: float,
              cancel: Optional[threading.Event], what: str):
        while not step():
            if cancel is not None and cancel.is_set():
                raise ExchangeCancelled(f"Authentication cancelled while waiting for {what}")
            if not self.listeners_started:
                raise ExchangeCancelled(f"Listeners stopped while waiting for {what}")
            if time.monotonic() >= deadline:
                raise ExchangeTimeout(f"Timed out waiting for {what}")

    def obtain_token(
        self,
        client_id: str,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None
    ) -> str:
        """
        Full browser flow: start listeners, authenticate, extract access_token.

        Raises:
            AuthError subclasses from start_listeners()/authenticate(), or
            ExchangeCancelled if the relayed fragment carries no token
        """
        self.start_listeners()
        payload = self.authenticate(self.build_authorization_url(client_id), timeout=timeout, cancel=cancel)
        token = self.parse_fragment(payload).get("access_token", "")
        if not token:
            raise ExchangeCancelled(f"Authorization returned no token: {payload!r}")
        return token

    @staticmethod
    def parse_fragment(payload: str) -> Dict[str, str]:
        """Split a relayed fragment ('access_token=...&token_type=bearer') into a dict."""
        return dict(parse_qsl((payload or "").lstrip("#"), keep_blank_values=True))

    # ------------------------------------------------------------------
    # Validation

    def check(self, token: str) -> TokenValidity:
        """
        Ask the provider whether the token is valid.

        Never raises; a failed request yields UNKNOWN and is stored on
        last_validation_error.
        """
        self.last_validation_error = None
        headers = {"Authorization": f"Bearer {token}"}
        try:
            if self._http_client is not None:
                response = self._http_client.get(self.config.validate_url, headers=headers)
            else:
                with httpx.Client(timeout=self.config.validate_timeout_sec) as client:
                    response = client.get(self.config.validate_url, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            # ValueError covers tokens httpx cannot encode into a header
            self.last_validation_error = ValidationRequestFailed(str(e))
            print(f"[OAUTH] Token validation request failed: {e}")
            return TokenValidity.UNKNOWN

        if response.is_success:
            return TokenValidity.VALID
        print(f"[OAUTH] Token rejected (HTTP {response.status_code})")
        return TokenValidity.INVALID

    def validate(self, token: str) -> bool:
        return self.check(token) == TokenValidity.VALID

    def close(self):
        self.stop_listeners()
        if self._http_client is not None:
            self._http_client.close()
