"""
Services module: read path and process orchestration
"""

from .index_service import ServerIndexService
from .schemas import (
    ApiInfo, HealthResponse, ServerInfo, ErrorResponse, CreateServerRequest,
    DiscoveryResponse, ServerResponse, PaginatedServersResponse
)

__all__ = [
    'ServerIndexService', 'ApiInfo', 'HealthResponse', 'ServerInfo', 'ErrorResponse',
    'CreateServerRequest', 'DiscoveryResponse', 'ServerResponse', 'PaginatedServersResponse'
]
