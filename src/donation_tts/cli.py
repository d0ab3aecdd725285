"""Command-line client for running and exercising the donation announcer."""

from __future__ import annotations

import argparse
import asyncio
import os
import signal
import sys
from decimal import Decimal, InvalidOperation
from typing import Any, Dict
from uuid import uuid4

import httpx

DEFAULT_HOST = os.environ.get("DONATION_TTS_HOST", "127.0.0.1")
DEFAULT_PORT = int(os.environ.get("DONATION_TTS_PORT", "3000"))
DEFAULT_TIMEOUT = float(os.environ.get("DONATION_TTS_TIMEOUT", "10.0"))


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        from .main import main as serve

        asyncio.run(serve())
        return 0

    base_url = _resolve_base_url(args.host, args.port)
    timeout = args.timeout

    if args.command == "donate":
        try:
            payload = _build_webhook_payload(
                amount_raw=args.amount,
                message_parts=args.message,
                donor=args.donor,
                asset=args.asset,
                payment_id=args.payment_id,
            )
        except ValueError as exc:
            parser.error(str(exc))
        return _post_json(
            f"{base_url}/webhook",
            payload,
            timeout,
            success_message="Donation delivered.",
        )

    if args.command == "threshold":
        if args.value < 0:
            parser.error("Threshold must be non-negative")
        return _set_threshold(base_url, args.value, timeout)

    if args.command == "status":
        return _show_status(base_url, timeout)

    if args.command == "listen":
        return _listen(base_url, args.player, args.preroll_ms)

    parser.error("Unknown command")
    return 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="donation-tts",
        description="Run the donation announcer or talk to a running one.",
    )
    parser.add_argument("--host", default=DEFAULT_HOST, help="Server host (default: %(default)s)")
    parser.add_argument(
        "--port",
        type=int,
        default=DEFAULT_PORT,
        help="Server port (default: %(default)s)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT,
        help="HTTP timeout in seconds (default: %(default)s)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Start the announcer server")

    donate_parser = subparsers.add_parser("donate", help="Send a test webhook")
    donate_parser.add_argument("amount", help="Donation amount (number)")
    donate_parser.add_argument("message", nargs="*", help="Donation message (optional)")
    donate_parser.add_argument("--donor", help="Donor username (default: anonymous)")
    donate_parser.add_argument("--asset", default="diamonds", help="Asset name (default: %(default)s)")
    donate_parser.add_argument("--payment-id", help="Payment identifier (default: random)")

    threshold_parser = subparsers.add_parser("threshold", help="Set the minimum gated-asset amount")
    threshold_parser.add_argument("value", type=int, help="New threshold (non-negative integer)")

    subparsers.add_parser("status", help="Print threshold, clients and cache counters")

    listen_parser = subparsers.add_parser("listen", help="Announce donations through a local audio player")
    listen_parser.add_argument(
        "--player",
        default=None,
        help="Player command reading MP3 from stdin (default: ffplay)",
    )
    listen_parser.add_argument(
        "--preroll-ms",
        type=int,
        default=4000,
        help="Delay before each announcement in milliseconds (default: %(default)s)",
    )

    return parser


def _resolve_base_url(host: str, port: int) -> str:
    if host.startswith("http://") or host.startswith("https://"):
        return host.rstrip("/")
    return f"http://{host}:{port}"


def _build_webhook_payload(
    *,
    amount_raw: str,
    message_parts: list[str],
    donor: str | None,
    asset: str,
    payment_id: str | None,
) -> Dict[str, Any]:
    try:
        amount = Decimal(amount_raw)
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid amount '{amount_raw}': {exc}") from exc
    if amount <= 0:
        raise ValueError("Amount must be positive")
    if not asset.strip():
        raise ValueError("Asset cannot be empty")

    payload: Dict[str, Any] = {
        "paymentID": payment_id or uuid4().hex,
        "amount": int(amount) if amount == amount.to_integral_value() else float(amount),
        "asset": {"name": asset.strip()},
    }
    message = " ".join(message_parts).strip()
    if message:
        payload["message"] = message
    if donor:
        payload["donor"] = {"username": donor}
    return payload


def _post_json(url: str, payload: Dict[str, Any], timeout: float, success_message: str) -> int:
    try:
        response = httpx.post(url, json=payload, timeout=timeout)
        response.raise_for_status()
    except httpx.RequestError as exc:
        print(f"Request failed: {exc}", file=sys.stderr)
        return 1
    except httpx.HTTPStatusError as exc:
        detail = exc.response.text
        print(f"Server responded with error {exc.response.status_code}: {detail}", file=sys.stderr)
        return 1

    print(success_message)
    return 0


def _show_status(base_url: str, timeout: float) -> int:
    try:
        response = httpx.get(f"{base_url}/status", timeout=timeout)
        response.raise_for_status()
    except httpx.RequestError as exc:
        print(f"Request failed: {exc}", file=sys.stderr)
        return 1
    except httpx.HTTPStatusError as exc:
        print(f"Server responded with error {exc.response.status_code}: {exc.response.text}", file=sys.stderr)
        return 1

    payload = response.json()
    if not isinstance(payload, dict):
        print("Unexpected response payload", file=sys.stderr)
        return 1

    print(f"Threshold: {payload.get('threshold')}")
    print(f"Connected clients: {payload.get('clients')}")
    print(f"Donations in flight: {payload.get('pending_donations')}")
    cache = payload.get("cache")
    if cache:
        print(
            f"Cache: {cache.get('entries')} entries, {cache.get('hits')} hits, "
            f"{cache.get('misses')} misses, {cache.get('evictions')} evictions"
        )
    return 0


def _set_threshold(base_url: str, value: int, timeout: float) -> int:
    import websockets

    from .listener import set_remote_threshold

    try:
        confirmed = asyncio.run(set_remote_threshold(base_url, value, timeout))
    except (OSError, websockets.WebSocketException) as exc:
        print(f"Connection failed: {exc}", file=sys.stderr)
        return 1
    except asyncio.TimeoutError:
        print("Server did not confirm the new threshold", file=sys.stderr)
        return 1
    print(f"Threshold set to {confirmed}.")
    return 0


def _listen(base_url: str, player_command: str | None, preroll_ms: int) -> int:
    from .listener import DEFAULT_PLAYER_COMMAND, AnnouncerListener, CommandPlayer
    from .logging import configure_logging

    configure_logging("INFO")

    async def _run() -> None:
        player = CommandPlayer(base_url, player_command or DEFAULT_PLAYER_COMMAND)
        listener = AnnouncerListener(base_url, player, preroll_delay=max(preroll_ms, 0) / 1000)
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
            except NotImplementedError:  # pragma: no cover - Windows compatibility
                signal.signal(sig, lambda *_: stop_event.set())
        try:
            await listener.run(stop_event)
        finally:
            await player.aclose()

    asyncio.run(_run())
    return 0


if __name__ == "__main__":
    sys.exit(main())
