import sys
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from fakeredis.aioredis import FakeRedis

# Ensure the src/ modules are importable when tests run from the repo root
SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from api.main_api import IndexAPI
from cache import CacheManager
from database.models import PaginatedServers, ServerRecord
from discovery.manager import FederationDiscovery
from discovery.models import DiscoveredInfo
from errors import ServerExistsError
from services.index_service import ServerIndexService

BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


class InMemoryServerRepository:
    """Repository double with the DatabaseManager surface used by the read path and discovery"""

    def __init__(self):
        self.records = []
        self.healthy = True
        self.failure = None
        self.insert_calls = 0

    def _maybe_fail(self):
        if self.failure is not None:
            raise self.failure

    def seed(self, domain, **fields):
        next_id = len(self.records) + 1
        record = ServerRecord(
            id=next_id,
            domain=domain,
            created_at=BASE_TIME + timedelta(seconds=next_id),
            updated_at=BASE_TIME + timedelta(seconds=next_id),
            **fields
        )
        self.records.append(record)
        return record

    async def insert_server(self, server):
        self._maybe_fail()
        self.insert_calls += 1
        if any(r.domain.lower() == server.domain.lower() for r in self.records):
            raise ServerExistsError()
        fields = {k: v for k, v in vars(server).items() if k != 'domain'}
        return self.seed(server.domain, **fields)

    async def get_server_by_domain(self, domain):
        self._maybe_fail()
        for record in self.records:
            if record.domain.lower() == domain.lower():
                return record
        return None

    async def server_exists(self, domain):
        return await self.get_server_by_domain(domain) is not None

    async def find_servers(self, server_filter):
        self._maybe_fail()
        records = list(self.records)

        if server_filter.search:
            needle = server_filter.search.lower()
            records = [
                r for r in records
                if any(needle in (value or '').lower() for value in (r.domain, r.name, r.description))
            ]
        if server_filter.registration_open is not None:
            records = [r for r in records if r.registration_open == server_filter.registration_open]
        if server_filter.has_rooms is True:
            records = [r for r in records if (r.public_rooms_count or 0) > 0]
        elif server_filter.has_rooms is False:
            records = [r for r in records if (r.public_rooms_count or 0) <= 0]
        if server_filter.room_version:
            needle = server_filter.room_version.lower()
            records = [r for r in records if needle in (r.room_versions or '').lower()]

        sort_keys = {
            'created_at': lambda r: r.created_at,
            'name': lambda r: r.name or '',
            'domain': lambda r: r.domain,
            'public_rooms_count': lambda r: r.public_rooms_count or 0,
        }
        records.sort(key=lambda r: r.id)
        records.sort(
            key=sort_keys[server_filter.effective_sort_by],
            reverse=server_filter.effective_sort_order == 'desc'
        )

        limit = server_filter.effective_limit
        offset = server_filter.effective_offset
        return PaginatedServers(
            records=records[offset:offset + limit],
            total=len(records),
            limit=limit,
            offset=offset
        )

    async def check_health(self):
        return self.healthy


class FakeProbe:
    """Scripted MatrixProbe; unknown domains answer with an empty record"""

    def __init__(self):
        self.infos = {}
        self.peers = {}
        self.status = {}
        self.versions = {}
        self.gates = {}
        self.calls = defaultdict(list)

    async def discover_server_info(self, domain):
        self.calls['discover_server_info'].append(domain)
        result = self.infos.get(domain, DiscoveredInfo())
        if isinstance(result, Exception):
            raise result
        return result

    async def discover_peers(self, domain):
        self.calls['discover_peers'].append(domain)
        gate = self.gates.get(domain)
        if gate is not None:
            await gate.wait()
        result = self.peers.get(domain, set())
        if isinstance(result, Exception):
            raise result
        return set(result)

    async def check_server_status(self, domain):
        self.calls['check_server_status'].append(domain)
        result = self.status.get(domain)
        if isinstance(result, Exception):
            raise result

    async def get_server_version(self, domain):
        self.calls['get_server_version'].append(domain)
        result = self.versions.get(domain, "v1.1, v1.2")
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def repository():
    return InMemoryServerRepository()


@pytest.fixture
def probe():
    return FakeProbe()


@pytest_asyncio.fixture
async def fake_redis():
    client = FakeRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.flushall()


@pytest_asyncio.fixture
async def cache(fake_redis):
    manager = CacheManager({'enabled': True})
    manager.set_client(fake_redis)
    return manager


@pytest.fixture
def service(repository, cache, probe):
    return ServerIndexService(repository, cache, probe)


@pytest.fixture
def discovery_config():
    return {
        'max_concurrent': 2,
        'max_depth': 2,
        'batch_size': 100,
        'seed_servers': ['a.org'],
        'probe_timeout': 1.0,
    }


@pytest.fixture
def discovery(discovery_config, repository, probe, cache):
    return FederationDiscovery(discovery_config, repository, probe, cache)


@pytest.fixture
def api_config():
    return {'api': {'cors_origins': ['*'], 'rate_limit_per_minute': 0}}


@pytest.fixture
def api(service, api_config, discovery):
    return IndexAPI(service, api_config, discovery)


@pytest_asyncio.fixture
async def api_client(api):
    transport = ASGITransport(app=api.app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
