"""
Read path for the homeserver index
Composes the cache, the repository and the probe to serve API operations,
invalidating cached listings whenever the index changes
"""

import asyncio
import logging
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from cache import CacheManager, CacheError, CACHE_TTL_SHORT, CACHE_TTL_MEDIUM, cache_key
from database import DatabaseManager, NewServer, ServerFilter
from discovery.domains import is_valid_domain, normalize_domain
from discovery.matrix_probe import MatrixProbe
from discovery.models import ProbeError
from errors import (
    InvalidServerError, InvalidDomainError, ServerExistsError, DiscoveryFailedError
)
import metrics
from .schemas import (
    ApiInfo, HealthResponse, ServerInfo, ServerResponse, PaginatedServersResponse
)

logger = logging.getLogger(__name__)

API_NAME = "mxindex"
API_VERSION = "0.1.0"
API_DESCRIPTION = "Matrix homeserver index API"

SERVER_INFO_PREFIX = "server:info"
SERVERS_LIST_KEY = "servers:list"
SERVERS_SEARCH_PREFIX = "servers:search"
SERVERS_PATTERN = "servers:*"

ModelT = TypeVar('ModelT', bound=BaseModel)


def server_info_key(domain: str) -> str:
    return cache_key(SERVER_INFO_PREFIX, domain)


def _flag(value: Optional[bool]) -> str:
    if value is None:
        return ""
    return "true" if value else "false"


def _key_text(value: Optional[str]) -> str:
    # Free text must not introduce extra separators
    return (value or "").replace("%", "%25").replace(":", "%3A")


def search_cache_key(server_filter: ServerFilter) -> str:
    """Deterministic key for a search; paging and sorting use their effective values"""
    return cache_key(
        SERVERS_SEARCH_PREFIX,
        _key_text(server_filter.search),
        _flag(server_filter.registration_open),
        _flag(server_filter.has_rooms),
        _key_text(server_filter.room_version),
        server_filter.effective_sort_by,
        server_filter.effective_sort_order,
        server_filter.effective_limit,
        server_filter.effective_offset,
    )


class ServerIndexService:
    """Serves lookups, listings and submissions for the homeserver index"""

    def __init__(self, db: DatabaseManager, cache: CacheManager, probe: MatrixProbe):
        self.db = db
        self.cache = cache
        self.probe = probe

    # ================== CACHE HELPERS ==================

    async def _cached(self, key: str, model: Type[ModelT]) -> Optional[ModelT]:
        """Cache lookup; any cache failure counts as a miss"""
        try:
            data = await self.cache.get(key)
        except CacheError as e:
            logger.debug(f"Cache get failed for {key}: {e}")
            return None
        if data is None:
            return None
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding undecodable cache entry {key}: {e}")
            return None

    async def _store(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        await self.cache.set(key, value.model_dump(mode='json'), ttl_seconds)

    # ================== OPERATIONS ==================

    def api_info(self) -> ApiInfo:
        return ApiInfo(name=API_NAME, version=API_VERSION, description=API_DESCRIPTION)

    async def health(self) -> HealthResponse:
        db_healthy = await self.db.check_health()
        return HealthResponse(
            status="healthy" if db_healthy else "unhealthy",
            database="ok" if db_healthy else "error"
        )

    async def server_info(self, server: str) -> ServerInfo:
        """Liveness and version of a homeserver, cached briefly"""
        domain = normalize_domain(server)
        if not is_valid_domain(domain):
            raise InvalidServerError()

        key = server_info_key(domain)
        cached = await self._cached(key, ServerInfo)
        if cached is not None:
            return cached

        status_result, version_result = await asyncio.gather(
            self.probe.check_server_status(domain),
            self.probe.get_server_version(domain),
            return_exceptions=True
        )

        version = None
        if isinstance(version_result, ProbeError):
            logger.debug(f"Version probe failed for {domain}: {version_result}")
        elif isinstance(version_result, BaseException):
            raise version_result
        else:
            version = version_result or None

        if isinstance(status_result, ProbeError):
            result = ServerInfo(server=domain, status="offline", version=version, error=status_result.kind)
        elif isinstance(status_result, BaseException):
            raise status_result
        else:
            result = ServerInfo(server=domain, status="online", version=version)

        await self._store(key, result, CACHE_TTL_SHORT)
        return result

    async def add_server(self, domain: str) -> ServerResponse:
        """Probe a submitted homeserver and add it to the index"""
        domain = normalize_domain(domain)
        if not is_valid_domain(domain):
            raise InvalidDomainError()

        if await self.db.server_exists(domain):
            raise ServerExistsError()

        try:
            discovered = await self.probe.discover_server_info(domain)
        except ProbeError as e:
            logger.warning(f"Discovery failed for submitted server {domain}: {e}")
            raise DiscoveryFailedError(
                f"Failed to discover server information: {e}", cause=str(e)
            ) from e

        record = await self.db.insert_server(NewServer.from_discovered(domain, discovered))
        logger.info(f"Added server {domain} (id={record.id})")

        await self.cache.invalidate_pattern(SERVERS_PATTERN)
        await self.cache.delete(server_info_key(domain))

        return ServerResponse.from_record(record)

    async def list_servers(self) -> PaginatedServersResponse:
        """Default listing, newest first"""
        cached = await self._cached(SERVERS_LIST_KEY, PaginatedServersResponse)
        if cached is not None:
            return cached

        page = await self.db.find_servers(ServerFilter())
        metrics.servers_indexed.set(page.total)

        response = PaginatedServersResponse.from_page(page)
        await self._store(SERVERS_LIST_KEY, response, CACHE_TTL_MEDIUM)
        return response

    async def search_servers(self, server_filter: ServerFilter) -> PaginatedServersResponse:
        """Filtered, sorted and paginated listing"""
        key = search_cache_key(server_filter)
        cached = await self._cached(key, PaginatedServersResponse)
        if cached is not None:
            return cached

        page = await self.db.find_servers(server_filter)

        response = PaginatedServersResponse.from_page(page)
        await self._store(key, response, CACHE_TTL_SHORT)
        return response
