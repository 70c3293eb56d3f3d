"""
Response and request models shared by the read path and the HTTP API
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from database.models import ServerRecord, PaginatedServers


class ApiInfo(BaseModel):
    name: str
    version: str
    description: str


class HealthResponse(BaseModel):
    status: str
    database: str


class ServerInfo(BaseModel):
    server: str
    status: str
    version: Optional[str] = None
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    error: str
    message: str


class CreateServerRequest(BaseModel):
    domain: str


class DiscoveryResponse(BaseModel):
    added: int


class ServerResponse(BaseModel):
    id: int
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
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: ServerRecord) -> 'ServerResponse':
        return cls(**record.to_dict())


class PaginatedServersResponse(BaseModel):
    servers: List[ServerResponse]
    total: int
    limit: int
    offset: int

    @classmethod
    def from_page(cls, page: PaginatedServers) -> 'PaginatedServersResponse':
        return cls(
            servers=[ServerResponse.from_record(record) for record in page.records],
            total=page.total,
            limit=page.limit,
            offset=page.offset
        )
