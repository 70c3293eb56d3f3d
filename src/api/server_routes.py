"""
Server index API routes
"""

from fastapi import APIRouter
from typing import Optional
import logging

from database import ServerFilter
from services.index_service import ServerIndexService
from services.schemas import (
    CreateServerRequest, ErrorResponse, PaginatedServersResponse, ServerInfo, ServerResponse
)

logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def create_server_routes(service: ServerIndexService):
    """Create server lookup, listing and submission routes"""
    router = APIRouter(tags=["servers"])

    # Declared before /servers/{server} so "search" is not taken as a server name
    @router.get("/servers/search", response_model=PaginatedServersResponse, responses=ERROR_RESPONSES)
    async def search_servers(
        search: Optional[str] = None,
        registration_open: Optional[bool] = None,
        has_rooms: Optional[bool] = None,
        room_version: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ):
        """Search, filter, sort and paginate indexed servers"""
        server_filter = ServerFilter(
            search=search,
            registration_open=registration_open,
            has_rooms=has_rooms,
            room_version=room_version,
            sort_by=sort_by,
            sort_order=sort_order,
            limit=limit,
            offset=offset,
        )
        return await service.search_servers(server_filter)

    @router.get("/servers", response_model=PaginatedServersResponse, responses=ERROR_RESPONSES)
    async def list_servers():
        """List indexed servers, newest first"""
        return await service.list_servers()

    @router.post("/servers", response_model=ServerResponse, responses=ERROR_RESPONSES)
    async def add_server(request: CreateServerRequest):
        """Probe a homeserver and add it to the index"""
        return await service.add_server(request.domain)

    @router.get("/servers/{server}", response_model=ServerInfo, responses=ERROR_RESPONSES)
    async def server_info(server: str):
        """Current liveness and version of a homeserver"""
        return await service.server_info(server)

    return router
