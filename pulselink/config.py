"""
Static configuration: endpoints, loopback ports, timeouts.

User-tunable values (toggles, thresholds, intervals) live on PulseState;
this is the part that stays fixed for the lifetime of the process.
"""

import os
from dataclasses import dataclass, fields
from typing import Optional


@dataclass
class PulseConfig:
    """
    Endpoint and timing configuration.

    All durations in seconds.
    """
    # Pulsoid endpoints
    realtime_url: str = "wss://dev.pulsoid.net/api/v1/data/real_time"
    validate_url: str = "https://dev.pulsoid.net/api/v1/token/validate"
    authorize_url: str = "https://pulsoid.net/oauth2/authorize"
    integrations_url: str = "https://pulsoid.net/ui/integrations"
    oauth_scope: str = "data:heart_rate:read"

    # Loopback listeners (redirect receives the browser, relay receives the fragment)
    loopback_host: str = "localhost"
    bind_address: str = "127.0.0.1"
    redirect_port: int = 7384
    relay_port: int = 7385

    # Timeouts
    auth_timeout_sec: float = 300.0  # 5 min for the user to finish the browser flow
    validate_timeout_sec: float = 10.0
    connect_timeout_sec: float = 10.0
    receive_poll_sec: float = 0.5  # max time between cancellation checks
    disconnect_timeout_sec: float = 5.0

    # A sample older than this counts as "device offline"
    sample_stale_sec: float = 10.0

    # JSONL event log (None = disabled)
    event_log_path: Optional[str] = None

    @classmethod
    def from_env(cls, prefix: str = "PULSELINK_") -> 'PulseConfig':
        """
        Build a config with overrides from the environment.

        Each field maps to PREFIX + upper-cased field name, e.g.
        PULSELINK_REDIRECT_PORT=8000 or PULSELINK_AUTH_TIMEOUT_SEC=60.
        """
        config = cls()
        for f in fields(cls):
            raw = os.environ.get(prefix + f.name.upper())
            if raw is None:
                continue
            current = getattr(config, f.name)
            if isinstance(current, bool):
                value = raw.strip().lower() in ("1", "true", "yes", "on")
            elif isinstance(current, int):
                value = int(raw)
            elif isinstance(current, float):
                value = float(raw)
            else:
                value = raw
            setattr(config, f.name, value)
        return config

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.loopback_host}:{self.redirect_port}/"
