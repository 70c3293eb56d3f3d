"""
System, health and discovery API routes
"""

from fastapi import APIRouter, Response
from typing import Optional
from dataclasses import asdict
import logging

import metrics
from discovery.manager import FederationDiscovery
from services.index_service import ServerIndexService
from services.schemas import ApiInfo, DiscoveryResponse, ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)


def create_system_routes(service: ServerIndexService, discovery: Optional[FederationDiscovery] = None):
    """Create system monitoring and discovery routes"""
    router = APIRouter(tags=["system"])

    @router.get("/", response_model=ApiInfo)
    async def index():
        """API name and version"""
        return service.api_info()

    @router.get("/health", response_model=HealthResponse)
    async def health():
        """Database availability"""
        return await service.health()

    @router.get("/metrics", include_in_schema=False)
    async def prometheus_metrics():
        return Response(content=metrics.render_metrics(), media_type=metrics.CONTENT_TYPE_LATEST)

    if discovery is None:
        return router

    @router.post("/discover", response_model=DiscoveryResponse, responses={409: {"model": ErrorResponse}})
    async def trigger_discovery():
        """Run one federation discovery pass and report how many servers were added"""
        added = await discovery.start_discovery()
        return DiscoveryResponse(added=added)

    @router.get("/discover/status")
    async def discovery_status():
        """Whether a discovery pass is running and the result of the last one"""
        last = discovery.last_result
        return {
            "active": discovery.is_discovery_active(),
            "seed_servers": discovery.seed_servers,
            "last_run": asdict(last) if last else None,
        }

    return router
