"""Application bootstrap and lifecycle management."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import uvicorn

from .api.server import AnnouncerServer
from .broadcast import ConnectionManager
from .cache import TranslationCache
from .config import Settings, get_settings
from .gatekeeper import Gatekeeper
from .llm import LLMConverter
from .logging import configure_logging
from .normalizer import TextNormalizer
from .pipeline import DonationPipeline
from .speech import ElevenLabsSynthesizer

logger = logging.getLogger(__name__)

DRAIN_TIMEOUT_SEC = 10.0


class AnnouncerApp:
    """Wires the normalizer, gate, broadcaster and HTTP server together."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        configure_logging(self._settings.log_level)

        self._cache = TranslationCache(self._settings.cache_max_entries)
        self._converter = LLMConverter(self._settings)
        self._normalizer = TextNormalizer(
            self._converter,
            self._cache,
            max_chars=self._settings.normalizer_max_chars,
        )
        self._synthesizer = ElevenLabsSynthesizer(self._settings)
        self._gatekeeper = Gatekeeper(
            self._settings.gated_asset_prefix,
            self._settings.tts_minimum_amount,
        )
        self._connections = ConnectionManager()
        self._pipeline = DonationPipeline(
            self._normalizer,
            self._gatekeeper,
            self._connections,
            anonymous_donor=self._settings.anonymous_donor,
        )
        self._server = AnnouncerServer(
            self._pipeline,
            self._gatekeeper,
            self._connections,
            self._synthesizer,
            self._settings,
            cache=self._cache,
        )

        self._api_task: Optional[asyncio.Task[None]] = None
        self._api_server: Optional[uvicorn.Server] = None

    @property
    def server(self) -> AnnouncerServer:
        return self._server

    async def start(self) -> None:
        public_url = self._settings.public_base_url
        logger.info(
            "app.starting",
            extra={
                "host": self._settings.api_host,
                "port": self._settings.api_port,
                "player_url": str(public_url) if public_url else None,
            },
        )
        self._api_task = asyncio.create_task(self._run_api(), name="announcer-api")

    async def stop(self) -> None:
        logger.info("app.stopping")
        if self._api_server:
            self._api_server.should_exit = True
        if self._api_task:
            try:
                await self._api_task
            except asyncio.CancelledError:
                pass

        await self._pipeline.drain(timeout=DRAIN_TIMEOUT_SEC)
        await self._converter.aclose()
        await self._synthesizer.aclose()
        logger.info("app.stopped")

    async def _run_api(self) -> None:
        config = uvicorn.Config(
            self._server.app,
            host=self._settings.api_host,
            port=self._settings.api_port,
            log_level=self._settings.log_level.value.lower(),
            log_config=None,
            loop="asyncio",
            lifespan="off",
        )
        self._api_server = uvicorn.Server(config)
        try:
            await self._api_server.serve()
        except asyncio.CancelledError:
            pass
