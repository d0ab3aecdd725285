"""Server entrypoint for the donation announcer."""

from __future__ import annotations

import asyncio
import logging
import signal

from .app import AnnouncerApp

logger = logging.getLogger(__name__)


async def main() -> None:
    app = AnnouncerApp()
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def _request_stop(sig: signal.Signals) -> None:
        logger.info("app.signal", extra={"signal": sig.name})
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop, sig)
        except NotImplementedError:  # pragma: no cover - Windows compatibility
            signal.signal(sig, lambda *_: stop_event.set())

    await app.start()
    try:
        await stop_event.wait()
    finally:
        # In-flight donations get a bounded drain before the HTTP clients close.
        await app.stop()


if __name__ == "__main__":
    asyncio.run(main())
