"""
Main FastAPI application setup
HTTP boundary for the homeserver index: routing, error mapping, CORS, request metrics and rate limiting
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from typing import Dict
import logging

import metrics
from errors import IndexServiceError
from services.index_service import ServerIndexService, API_NAME, API_VERSION, API_DESCRIPTION

# Import modular route factories
from .rate_limit import setup_rate_limiting
from .server_routes import create_server_routes
from .system_routes import create_system_routes

logger = logging.getLogger(__name__)


class IndexAPI:
    """HTTP API over the homeserver index"""

    def __init__(self, service: ServerIndexService, config: Dict, discovery=None):
        self.service = service
        self.discovery = discovery
        self.config = config
        self.app = FastAPI(
            title=API_NAME,
            description=API_DESCRIPTION,
            version=API_VERSION
        )
        self._setup_middleware()
        self._setup_exception_handlers()
        self._setup_routes()

    def _setup_middleware(self):
        api_config = self.config.get('api', {})

        @self.app.middleware("http")
        async def record_request_metrics(request: Request, call_next):
            response = await call_next(request)
            route = request.scope.get("route")
            endpoint = getattr(route, "path", None) or "unmatched"
            metrics.record_http_request(request.method, endpoint, response.status_code)
            return response

        origins = api_config.get('cors_origins', ['*'])
        if origins:
            self.app.add_middleware(
                CORSMiddleware,
                allow_origins=origins,
                allow_methods=["*"],
                allow_headers=["*"]
            )

        # Added last so it is outermost and rejects before any other work
        setup_rate_limiting(self.app, self.config)

    def _setup_exception_handlers(self):
        @self.app.exception_handler(IndexServiceError)
        async def index_error_handler(request: Request, exc: IndexServiceError):
            if exc.status_code >= 500:
                logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}"
                             + (f" ({exc.cause})" if exc.cause else ""))
            else:
                logger.debug(f"{request.method} {request.url.path} rejected: {exc.kind}")
            return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    def _setup_routes(self):
        """Setup FastAPI routes using modular approach"""
        self.app.include_router(create_system_routes(self.service, self.discovery))
        self.app.include_router(create_server_routes(self.service))
