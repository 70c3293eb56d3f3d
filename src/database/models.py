"""
Database models and data structures
"""

from typing import List, Optional
from dataclasses import dataclass, field, asdict
from datetime import datetime

SORT_FIELDS = ('created_at', 'name', 'domain', 'public_rooms_count')
SORT_ORDERS = ('asc', 'desc')
DEFAULT_SORT_BY = 'created_at'
DEFAULT_SORT_ORDER = 'desc'
DEFAULT_LIMIT = 50
MAX_LIMIT = 100


@dataclass
class ServerRecord:
    """Database record for an indexed homeserver"""
    id: int
    domain: str
    created_at: datetime
    updated_at: datetime
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
class NewServer:
    """Insert payload for a homeserver; domain plus discovered attributes"""
    domain: str
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

    @classmethod
    def from_discovered(cls, domain: str, info) -> 'NewServer':
        """Build from a probe's DiscoveredInfo"""
        return cls(domain=domain, **info.to_dict())


@dataclass
class ServerFilter:
    """Query shape for filtered, sorted and paginated server listings"""
    search: Optional[str] = None
    registration_open: Optional[bool] = None
    has_rooms: Optional[bool] = None
    room_version: Optional[str] = None
    sort_by: Optional[str] = None
    sort_order: Optional[str] = None
    limit: Optional[int] = None
    offset: Optional[int] = None

    @property
    def effective_sort_by(self) -> str:
        return self.sort_by if self.sort_by in SORT_FIELDS else DEFAULT_SORT_BY

    @property
    def effective_sort_order(self) -> str:
        order = (self.sort_order or '').lower()
        return order if order in SORT_ORDERS else DEFAULT_SORT_ORDER

    @property
    def effective_limit(self) -> int:
        limit = DEFAULT_LIMIT if self.limit is None else self.limit
        return max(1, min(limit, MAX_LIMIT))

    @property
    def effective_offset(self) -> int:
        return max(0, self.offset or 0)


@dataclass
class PaginatedServers:
    """One page of filtered servers with the pre-pagination total"""
    records: List[ServerRecord] = field(default_factory=list)
    total: int = 0
    limit: int = DEFAULT_LIMIT
    offset: int = 0
