"""
Federation discovery engine
Walks the federation graph breadth-first from seed servers and backfills the index
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Set, Tuple

import metrics
from database import DatabaseManager, NewServer
from errors import DiscoveryInProgressError, IndexServiceError
from .domains import is_valid_domain, normalize_domain
from .matrix_probe import MatrixProbe
from .models import DiscoveryRunResult, ProbeError

logger = logging.getLogger(__name__)

# Cached listings that become stale once servers are added
LISTINGS_PATTERN = "servers:*"


class FederationDiscovery:
    """Depth-limited, bounded-concurrency crawl over public room directories"""

    def __init__(self, config: Dict, database_manager: DatabaseManager, probe: MatrixProbe, cache=None):
        self.config = config
        self.db = database_manager
        self.probe = probe
        self.cache = cache
        self.max_concurrent = max(1, int(config.get('max_concurrent', 5)))
        self.max_depth = int(config.get('max_depth', 3))
        self.batch_size = int(config.get('batch_size', 100))
        self.probe_timeout = float(config.get('probe_timeout', 10))
        self.seed_servers = self._normalize_seeds(config.get('seed_servers', ['matrix.org']))

        self._run_lock = asyncio.Lock()
        self.last_result: Optional[DiscoveryRunResult] = None

    @staticmethod
    def _normalize_seeds(seeds) -> List[str]:
        normalized = []
        for seed in seeds or []:
            domain = normalize_domain(seed)
            if domain and domain not in normalized:
                normalized.append(domain)
        return normalized

    def is_discovery_active(self) -> bool:
        return self._run_lock.locked()

    async def start_discovery(self) -> int:
        """Run one discovery pass and return the number of servers added"""
        result = await self.run_discovery()
        return result.added_count

    async def run_discovery(self) -> DiscoveryRunResult:
        """Run one discovery pass; only one pass may be active at a time"""
        if self._run_lock.locked():
            raise DiscoveryInProgressError()
        async with self._run_lock:
            result = await self._run()
        self.last_result = result
        return result

    async def _run(self) -> DiscoveryRunResult:
        logger.info(f"Starting federation discovery with {len(self.seed_servers)} seed servers, "
                    f"max depth: {self.max_depth}, concurrent: {self.max_concurrent}")
        start_time = time.time()
        result = DiscoveryRunResult(seed_servers=list(self.seed_servers))

        seen: Set[str] = set(self.seed_servers)
        frontier: List[str] = list(self.seed_servers)
        semaphore = asyncio.Semaphore(self.max_concurrent)

        for depth in range(self.max_depth):
            if not frontier:
                break

            logger.info(f"Discovery round {depth + 1}: checking {len(frontier)} servers")

            round_results = await asyncio.gather(
                *(self._discover_peers_limited(semaphore, server) for server in frontier)
            )
            result.servers_probed += len(frontier)

            next_frontier: List[str] = []
            for server, peers, error in round_results:
                if error is not None:
                    result.probe_failures += 1
                    metrics.discovery_errors_total.inc()
                    logger.warning(f"Failed to discover from {server}: {error}")
                    continue
                for peer in sorted(peers):
                    if peer not in seen:
                        seen.add(peer)
                        next_frontier.append(peer)

            added_flags = await asyncio.gather(
                *(self._add_limited(semaphore, peer) for peer in next_frontier)
            )
            for peer, added in zip(next_frontier, added_flags):
                if added:
                    result.added_count += 1
                    result.added_domains.append(peer)

            if len(next_frontier) > self.batch_size:
                logger.info(f"Truncating next frontier from {len(next_frontier)} to {self.batch_size} servers")
                next_frontier = next_frontier[:self.batch_size]

            frontier = next_frontier
            result.rounds_completed += 1

        result.peers_seen = len(seen)
        result.duration_seconds = time.time() - start_time

        if result.added_count and self.cache is not None:
            await self.cache.invalidate_pattern(LISTINGS_PATTERN)

        logger.info(f"Federation discovery complete. Added {result.added_count} new servers "
                    f"({result.servers_probed} probed, {result.probe_failures} failed) "
                    f"in {result.duration_seconds:.1f}s")
        return result

    async def _discover_peers_limited(
        self, semaphore: asyncio.Semaphore, server: str
    ) -> Tuple[str, Set[str], Optional[str]]:
        """Peer probe for one server under the round's concurrency limit and a hard timeout"""
        async with semaphore:
            try:
                peers = await asyncio.wait_for(self.probe.discover_peers(server), timeout=self.probe_timeout)
                return server, peers, None
            except asyncio.TimeoutError:
                return server, set(), f"Timeout after {self.probe_timeout}s"
            except ProbeError as e:
                return server, set(), str(e)
            except Exception as e:
                logger.error(f"Unexpected error discovering peers of {server}: {e}")
                return server, set(), str(e)

    async def _add_limited(self, semaphore: asyncio.Semaphore, domain: str) -> bool:
        async with semaphore:
            return await self.add_server_to_index(domain)

    async def add_server_to_index(self, domain: str) -> bool:
        """
        Probe and insert a newly seen domain
        Returns True only when a new record was inserted
        """
        domain = normalize_domain(domain)
        if not is_valid_domain(domain):
            return False

        try:
            if await self.db.server_exists(domain):
                return False
        except IndexServiceError as e:
            logger.warning(f"Existence check failed for {domain}, probing anyway: {e}")

        try:
            info = await asyncio.wait_for(self.probe.discover_server_info(domain), timeout=self.probe_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Failed to discover server info for {domain}: timeout after {self.probe_timeout}s")
            return False
        except ProbeError as e:
            logger.warning(f"Failed to discover server info for {domain}: {e}")
            return False

        try:
            await self.db.insert_server(NewServer.from_discovered(domain, info))
        except IndexServiceError as e:
            logger.warning(f"Failed to insert server {domain}: {e}")
            return False

        logger.info(f"Added server from federation discovery: {domain}")
        metrics.discovery_servers_added_total.inc()
        return True
