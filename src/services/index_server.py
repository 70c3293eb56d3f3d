"""
Index Server - Main orchestrator for the homeserver index services
"""

import asyncio
import logging
from typing import Dict, Optional
import uvicorn

# Local imports
from config_loader import load_config, setup_logging
from cache import CacheManager
from database.manager import DatabaseManager
from discovery.manager import FederationDiscovery
from discovery.matrix_probe import MatrixProbe
from api.main_api import IndexAPI
from errors import DiscoveryInProgressError
from .index_service import ServerIndexService

logger = logging.getLogger(__name__)


def discovery_settings(config: Dict) -> Dict:
    """Discovery section with the per-host probe timeout taken from the HTTP settings"""
    settings = dict(config['discovery'])
    settings.setdefault('probe_timeout', config['http']['timeout_seconds'])
    return settings


class IndexServer:
    """Owns the database pool, cache, probe session, discovery engine and HTTP API"""

    def __init__(self, config_path: Optional[str] = None, config: Optional[Dict] = None):
        self.config = config if config is not None else load_config(config_path)
        setup_logging(self.config)

        self.db = DatabaseManager(self.config)
        self.cache = CacheManager(self.config['cache'])
        self.probe = MatrixProbe(self.config['http'])
        self.service = ServerIndexService(self.db, self.cache, self.probe)
        self.discovery = FederationDiscovery(discovery_settings(self.config), self.db, self.probe, self.cache)
        self.api = IndexAPI(self.service, self.config, self.discovery)

        self.running = False
        self.tasks = []

    async def initialize(self):
        """Bring up the shared resources; the cache is optional"""
        await self.db.initialize()
        logger.info("Database initialized successfully")

        await self.cache.connect()

        await self.probe.start()
        logger.info("Probe session started")

    async def close(self):
        """Release the shared resources"""
        await self.probe.close()
        await self.cache.close()
        await self.db.close()

    async def start(self):
        """Start background services and serve the HTTP API until stopped"""
        logger.info("Starting mxindex homeserver index...")

        try:
            await self.initialize()
            self.running = True

            interval = float(self.config['discovery'].get('interval_minutes', 0))
            if interval > 0:
                self.tasks.append(asyncio.create_task(self._discovery_service(interval * 60)))
            else:
                logger.info("Periodic federation discovery disabled; use POST /discover")

            logger.info(f"All services started successfully ({len(self.tasks)} background tasks)")

            await self._start_api_server()

        except Exception as e:
            logger.error(f"Server startup failed: {e}")
            await self.stop()
            raise

    async def stop(self):
        """Stop all server services gracefully"""
        logger.info("Stopping server...")
        self.running = False

        for task in self.tasks:
            task.cancel()
        if self.tasks:
            await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []

        await self.close()
        logger.info("Server stopped")

    async def _discovery_service(self, interval_seconds: float):
        """Background service for periodic federation discovery"""
        logger.info(f"Discovery service started (every {interval_seconds / 60} minutes)")

        while self.running:
            try:
                await asyncio.sleep(interval_seconds)
                if not self.running:
                    break

                logger.info("[REFRESH] Running periodic federation discovery...")
                result = await self.discovery.run_discovery()
                logger.info(f"Periodic discovery added {result.added_count} servers")

            except asyncio.CancelledError:
                break
            except DiscoveryInProgressError:
                logger.info("Skipping periodic discovery, a run is already in progress")
            except Exception as e:
                logger.error(f"Discovery service error: {e}")

    async def _start_api_server(self):
        """Start the FastAPI server"""
        config = uvicorn.Config(
            self.api.app,
            host=self.config['api']['host'],
            port=self.config['api']['port'],
            log_level="info",
            access_log=False  # We handle our own logging
        )

        server = uvicorn.Server(config)
        logger.info(f"API server starting on {self.config['api']['host']}:{self.config['api']['port']}")
        await server.serve()
