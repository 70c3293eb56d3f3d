"""
Matrix homeserver probe
Queries the well-known and client/federation endpoints of a homeserver and composes a DiscoveredInfo record
"""

import asyncio
import logging
import socket
import aiohttp
from typing import Any, Dict, Optional, Set, Tuple

from http_helper import create_probe_session
from .domains import extract_domain_from_mxid, extract_domains_from_text, normalize_domain
from .models import DiscoveredInfo, ProbeError, DNS_ERROR, CONNECTION_ERROR, SERVER_ERROR

logger = logging.getLogger(__name__)

CAPABILITIES_PATH = "/_matrix/client/r0/capabilities"
PUBLIC_ROOMS_PATH = "/_matrix/client/r0/publicRooms"
WELL_KNOWN_CLIENT_PATH = "/.well-known/matrix/client"
WELL_KNOWN_SERVER_PATH = "/.well-known/matrix/server"
CLIENT_VERSIONS_PATH = "/_matrix/client/versions"
FEDERATION_VERSION_PATH = "/_matrix/federation/v1/version"

MAX_ROOM_COUNT = 2 ** 31 - 1

# Substrings of resolver failures as reported by the OS and aiohttp
DNS_ERROR_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "no address associated with hostname",
    "getaddrinfo",
)


def classify_transport_error(error: BaseException) -> str:
    """Map a transport exception onto dns_error / connection_error / server_error"""
    if isinstance(error, asyncio.TimeoutError):
        return CONNECTION_ERROR
    if isinstance(error, socket.gaierror) or isinstance(getattr(error, "os_error", None), socket.gaierror):
        return DNS_ERROR

    message = str(error).lower()
    if any(marker in message for marker in DNS_ERROR_MARKERS):
        return DNS_ERROR

    if isinstance(error, (aiohttp.ClientConnectorError, aiohttp.ServerDisconnectedError, ConnectionError)):
        return CONNECTION_ERROR
    if "connect" in message:
        return CONNECTION_ERROR

    return SERVER_ERROR


def _is_success(status: int) -> bool:
    return 200 <= status < 300


def _string_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


class MatrixProbe:
    """Probes a single homeserver across its well-known endpoints"""

    def __init__(self, config: Dict):
        self.config = config
        self.request_timeout = float(config.get('timeout_seconds', 10))
        self.connection_limit = int(config.get('connection_limit', 100))
        self.connection_limit_per_host = int(config.get('connection_limit_per_host', 4))
        self.session: Optional[aiohttp.ClientSession] = None

    # ================== SESSION LIFECYCLE ==================

    async def start(self):
        """Create the shared HTTP session"""
        self._get_session()

    async def close(self):
        """Close the shared HTTP session"""
        if self.session and not self.session.closed:
            await self.session.close()
            logger.info("Probe session closed")
        self.session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = create_probe_session(
                self.request_timeout,
                self.connection_limit,
                self.connection_limit_per_host
            )
        return self.session

    # ================== TRANSPORT ==================

    @staticmethod
    def _url(domain: str, path: str) -> str:
        return f"https://{domain}{path}"

    async def _fetch(self, domain: str, path: str, params: Optional[Dict] = None) -> Tuple[int, Optional[Any]]:
        """
        GET a JSON document from a homeserver
        Returns (status, body); the body is only decoded for 2xx answers
        Raises ProbeError on transport, timeout or decoding failures
        """
        url = self._url(domain, path)
        session = self._get_session()
        try:
            async with session.get(
                url,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            ) as response:
                if not _is_success(response.status):
                    logger.debug(f"HTTP {response.status} for {url}")
                    return response.status, None
                return response.status, await response.json(content_type=None)

        except asyncio.TimeoutError as e:
            raise ProbeError(CONNECTION_ERROR, f"Timed out after {self.request_timeout}s: {url}", domain) from e
        except ValueError as e:
            # Invalid JSON body (or a URL aiohttp refuses to build)
            raise ProbeError(SERVER_ERROR, f"Invalid response from {url}: {e}", domain) from e
        except aiohttp.ClientError as e:
            raise ProbeError(classify_transport_error(e), f"{url}: {e}", domain) from e

    async def _get_json(self, domain: str, path: str, params: Optional[Dict] = None) -> Dict:
        """GET a JSON object, treating any non-2xx answer as a server error"""
        status, data = await self._fetch(domain, path, params)
        if not _is_success(status):
            raise ProbeError(SERVER_ERROR, f"HTTP {status} from {path}", domain)
        if not isinstance(data, dict):
            raise ProbeError(SERVER_ERROR, f"Expected a JSON object from {path}", domain)
        return data

    # ================== LIVENESS ==================

    async def check_server_status(self, domain: str) -> None:
        """Succeeds iff the client versions endpoint answers with a success status"""
        status, _ = await self._fetch(domain, CLIENT_VERSIONS_PATH)
        if not _is_success(status):
            raise ProbeError(SERVER_ERROR, f"HTTP {status} from {CLIENT_VERSIONS_PATH}", domain)

    async def get_server_version(self, domain: str) -> str:
        """Supported client-server spec versions, comma separated"""
        data = await self._get_json(domain, CLIENT_VERSIONS_PATH)
        versions = data.get('versions')
        if not isinstance(versions, list):
            raise ProbeError(SERVER_ERROR, "Missing versions list", domain)
        return ", ".join(str(v) for v in versions)

    async def get_federation_version(self, domain: str) -> str:
        """Server implementation as advertised over federation"""
        data = await self._get_json(domain, FEDERATION_VERSION_PATH)
        server = data.get('server')
        if isinstance(server, dict):
            name = server.get('name') or ''
            version = server.get('version')
            return f"{name}/{version}" if version else name
        return server if isinstance(server, str) else ''

    # ================== FULL PROBE ==================

    async def discover_server_info(self, domain: str) -> DiscoveredInfo:
        """
        Probe all endpoints of a homeserver concurrently
        Failed optional sub-probes leave their fields unknown; the probe only fails when nothing answered
        """
        sub_probes = (
            ('capabilities', self._probe_capabilities(domain)),
            ('public_rooms', self._probe_public_rooms_count(domain)),
            ('well_known_client', self._probe_well_known_client(domain)),
            ('well_known_server', self._probe_well_known_server(domain)),
            ('client_versions', self._probe_client_versions(domain)),
            ('federation_version', self._probe_federation_version(domain)),
        )
        results = await asyncio.gather(*(coro for _, coro in sub_probes), return_exceptions=True)

        info = DiscoveredInfo()
        answered = 0
        liveness_error: Optional[BaseException] = None

        for (name, _), result in zip(sub_probes, results):
            if isinstance(result, BaseException):
                if name == 'client_versions':
                    liveness_error = result
                logger.debug(f"Sub-probe {name} failed for {domain}: {result}")
                continue
            answered += 1
            for field_name, value in result.items():
                setattr(info, field_name, value)

        if answered == 0:
            if isinstance(liveness_error, ProbeError):
                raise liveness_error
            raise ProbeError(SERVER_ERROR, f"No endpoint answered: {liveness_error}", domain)

        logger.debug(f"Probed {domain}: {answered}/{len(sub_probes)} endpoints answered")
        return info

    async def _probe_capabilities(self, domain: str) -> Dict[str, Any]:
        data = await self._get_json(domain, CAPABILITIES_PATH)
        capabilities = data.get('capabilities')
        if not isinstance(capabilities, dict):
            capabilities = {}

        registration_open = None
        change_password = capabilities.get('m.change_password')
        if isinstance(change_password, dict) and 'enabled' in change_password:
            registration_open = bool(change_password['enabled'])

        room_versions = None
        versions_capability = capabilities.get('m.room_versions')
        if isinstance(versions_capability, dict):
            available = versions_capability.get('available')
            if isinstance(available, dict) and available:
                room_versions = ",".join(str(key) for key in available.keys())

        return {'registration_open': registration_open, 'room_versions': room_versions}

    async def _probe_public_rooms_count(self, domain: str) -> Dict[str, Any]:
        data = await self._get_json(domain, PUBLIC_ROOMS_PATH, params={'limit': '1'})
        estimate = data.get('total_room_count_estimate')
        if isinstance(estimate, bool) or not isinstance(estimate, int):
            estimate = 0
        return {'public_rooms_count': max(0, min(estimate, MAX_ROOM_COUNT))}

    async def _probe_well_known_client(self, domain: str) -> Dict[str, Any]:
        data = await self._get_json(domain, WELL_KNOWN_CLIENT_PATH)
        return {
            'name': _string_or_none(data.get('name')),
            'description': _string_or_none(data.get('description')),
            'logo_url': _string_or_none(data.get('logo_url')),
            'theme': _string_or_none(data.get('theme')),
        }

    async def _probe_well_known_server(self, domain: str) -> Dict[str, Any]:
        data = await self._get_json(domain, WELL_KNOWN_SERVER_PATH)
        return {'delegated_server': _string_or_none(data.get('m.server'))}

    async def _probe_client_versions(self, domain: str) -> Dict[str, Any]:
        return {'version': await self.get_server_version(domain) or None}

    async def _probe_federation_version(self, domain: str) -> Dict[str, Any]:
        return {'federation_version': await self.get_federation_version(domain) or None}

    # ================== PEER EXTRACTION ==================

    async def discover_peers(self, domain: str) -> Set[str]:
        """
        Collect other homeserver domains mentioned by this server's public room directory
        Hero MXIDs contribute their host; room topics contribute domain-like substrings
        """
        status, data = await self._fetch(domain, PUBLIC_ROOMS_PATH, params={'limit': '100'})
        peers: Set[str] = set()
        if not _is_success(status) or not isinstance(data, dict):
            return peers

        origin = normalize_domain(domain)
        chunks = data.get('chunk')
        if not isinstance(chunks, list):
            return peers

        for chunk in chunks:
            if not isinstance(chunk, dict):
                continue

            heroes = chunk.get('heroes')
            if isinstance(heroes, list):
                for hero in heroes:
                    mxid = hero.get('mxid') if isinstance(hero, dict) else None
                    host = extract_domain_from_mxid(mxid) if isinstance(mxid, str) else None
                    if host and normalize_domain(host) != origin:
                        peers.add(normalize_domain(host))

            topic = chunk.get('topic')
            if isinstance(topic, str):
                for found in extract_domains_from_text(topic):
                    if normalize_domain(found) != origin:
                        peers.add(normalize_domain(found))

        logger.debug(f"Found {len(peers)} peers in public rooms of {domain}")
        return peers
