#!/usr/bin/env python3
"""
PulseLink Development Runner
Connects to Pulsoid and prints heart-rate updates for manual verification.

Usage:
    python dev_runner.py --token TOKEN [--smooth 4] [--interval 1.0]
    python dev_runner.py --authenticate --client-id CLIENT_ID
"""

import os
import argparse
import time
import sys

from pulselink import (PulseConfig, PulseState, TokenBroker, AuthError, SessionState,
                       TREND_SYMBOL_SETS, build_session)


def format_status_line(state: PulseState) -> str:
    """Format a single line of status output."""
    if state.access_error:
        return f"[{state.session_state.upper()}] Error: {state.access_error_text}"
    if not state.device_online:
        return f"[{state.session_state.upper()}] Device offline"

    line = (
        f"[{state.session_state.upper()}] "
        f"{state.heart_rate_icon} {state.heart_rate} BPM {state.trend_indicator}"
    )
    if state.heart_rate_last_update:
        line += f" | Last sample: {state.heart_rate_last_update:%H:%M:%S}"
    return line


def run_authentication(config: PulseConfig, client_id: str, timeout: float) -> int:
    """Run the browser OAuth flow and print the resulting token."""
    broker = TokenBroker(config)
    print("Opening browser for Pulsoid authorization...")
    print(f"Waiting up to {timeout:.0f}s for the redirect on {broker.redirect_uri}")
    try:
        token = broker.obtain_token(client_id, timeout=timeout)
    except AuthError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        broker.stop_listeners()

    print()
    print("Access token:")
    print(token)
    print()
    print("Pass it with --token or set PULSOID_TOKEN.")
    return 0


def main():
    parser = argparse.ArgumentParser(description="PulseLink Dev Runner")
    parser.add_argument("--token", type=str, default=os.environ.get("PULSOID_TOKEN", ""),
                        help="Pulsoid access token (default: $PULSOID_TOKEN)")
    parser.add_argument("--authenticate", action="store_true", help="Run the browser OAuth flow and exit")
    parser.add_argument("--client-id", type=str, default=os.environ.get("PULSOID_CLIENT_ID", ""),
                        help="Pulsoid OAuth client id (default: $PULSOID_CLIENT_ID)")
    parser.add_argument("--auth-timeout", type=float, help="Seconds to wait for the browser flow")
    parser.add_argument("--interval", type=float, default=1.0, help="Processing interval in seconds (default: 1.0)")
    parser.add_argument("--print-interval", type=float, default=2.0, help="Print interval in seconds (default: 2.0)")
    parser.add_argument("--smooth", type=float, metavar="SECONDS", help="Enable smoothing over SECONDS")
    parser.add_argument("--no-trend", action="store_true", help="Disable the trend indicator")
    parser.add_argument("--trend-samples", type=int, default=4, help="Trend window size (default: 4)")
    parser.add_argument("--sensitivity", type=float, default=0.65, help="Trend sensitivity (default: 0.65)")
    parser.add_argument("--symbols", type=int, choices=range(len(TREND_SYMBOL_SETS)), default=0,
                        help="Trend symbol set index")
    parser.add_argument("--magic-icons", action="store_true", help="Cycle heart icons every tick")
    parser.add_argument("--thresholds", type=int, nargs=2, metavar=("LOW", "HIGH"),
                        help="Show low/high annotation outside LOW..HIGH")
    parser.add_argument("--adjust", type=int, help="Add a fixed offset to every raw sample")
    parser.add_argument("--vr", action="store_true", help="Simulate VR context instead of desktop")
    args = parser.parse_args()

    config = PulseConfig.from_env()

    if args.authenticate:
        if not args.client_id:
            print("ERROR: --client-id is required for --authenticate", file=sys.stderr)
            sys.exit(1)
        timeout = args.auth_timeout if args.auth_timeout is not None else config.auth_timeout_sec
        sys.exit(run_authentication(config, args.client_id, timeout))

    state = PulseState(
        scan_interval_sec=args.interval,
        smooth_heart_rate=args.smooth is not None,
        smooth_span_sec=args.smooth or 4.0,
        show_trend_indicator=not args.no_trend,
        trend_sample_rate=args.trend_samples,
        trend_sensitivity=args.sensitivity,
        selected_trend_symbol=TREND_SYMBOL_SETS[args.symbols].combined,
        magic_heart_icons=args.magic_icons,
        show_threshold_text=args.thresholds is not None,
        low_threshold=args.thresholds[0] if args.thresholds else 60,
        high_threshold=args.thresholds[1] if args.thresholds else 100,
        apply_heart_rate_adjustment=args.adjust is not None,
        heart_rate_adjustment=args.adjust or 0,
        is_vr_running=args.vr
    )

    print("=" * 80)
    print("PulseLink - Heart Rate Dev Runner")
    print("=" * 80)
    print(f"Endpoint: {config.realtime_url}")
    print(f"Context: {'VR' if args.vr else 'Desktop'}")
    print(f"Interval: {args.interval}s")
    print(f"Smoothing: {f'{args.smooth}s' if args.smooth else 'disabled'}")
    print(f"Trend: {'disabled' if args.no_trend else f'{args.trend_samples} samples, sensitivity {args.sensitivity}'}")
    print()
    print("Press Ctrl+C to stop")
    print("=" * 80)
    print()

    controller = build_session(state, config)

    try:
        # Setting the token and enable flag triggers the session start
        state.update(access_token=args.token, integration_enabled=True)

        last_print = time.time()
        while True:
            time.sleep(0.5)

            now = time.time()
            if now - last_print >= args.print_interval:
                print(format_status_line(state))
                last_print = now

    except KeyboardInterrupt:
        print()
        print("=" * 80)
        print("Stopping session...")

        summary = controller.get_state_summary()
        controller.shutdown()

        print()
        print("Final Statistics:")
        print(f"  Ticks: {summary['ticks']}")
        print(f"  Frames received: {summary['frames_received']}")
        print(f"  Frames discarded: {summary['frames_discarded']}")
        print(f"  Transitions: {summary['transitions']}")
        if controller.transition_events:
            last_event = controller.transition_events[-1]
            print(f"  Last: {last_event.from_state.upper()} → {last_event.to_state.upper()} ({last_event.reason})")
        if controller.event_logger:
            errors = controller.event_logger.read_events(limit=3, errors_only=True)
            if errors:
                print(f"  Recent errors ({controller.event_logger.log_path}):")
                for event in errors:
                    print(f"    {event['timestamp']} {event['event_type']}: {event['reason']}")
        print()
        print("Session stopped cleanly.")
        print("=" * 80)

        sys.exit(0 if controller.current_state == SessionState.STOPPED else 1)


if __name__ == "__main__":
    main()
