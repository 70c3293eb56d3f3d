"""
Discovery data structures and models
"""

from typing import List, Optional
from dataclasses import dataclass, field, asdict

# Probe failure kinds
DNS_ERROR = "dns_error"
CONNECTION_ERROR = "connection_error"
SERVER_ERROR = "server_error"


class ProbeError(Exception):
    """Terminal failure while probing a homeserver"""

    def __init__(self, kind: str, message: str, domain: Optional[str] = None):
        self.kind = kind
        self.message = message
        self.domain = domain
        super().__init__(f"{kind}: {message}")


@dataclass
class DiscoveredInfo:
    """Descriptive record of a homeserver as returned by a probe"""
    name: Optional[str] = None
    description: Optional[str] = None
    logo_url: Optional[str] = None
    theme: Optional[str] = None
    registration_open: Optional[bool] = None
    public_rooms_count: Optional[int] = None
    version: Optional[str] = None
    federation_version: Optional[str] = None
    delegated_server: Optional[str] = None
    room_versions: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DiscoveryRunResult:
    """Results from one federation discovery run"""
    seed_servers: List[str]
    added_count: int = 0
    servers_probed: int = 0
    peers_seen: int = 0
    probe_failures: int = 0
    rounds_completed: int = 0
    duration_seconds: float = 0.0
    added_domains: List[str] = field(default_factory=list)
