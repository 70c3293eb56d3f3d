"""
Per-client request rate limiting built on slowapi

Every matched route shares one fixed one-minute window per client address. Counters live in
the cache Redis when caching is enabled and in process memory otherwise. A limit of 0 disables
limiting entirely.
"""

import logging
from typing import Dict

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from errors import RateLimitExceededError

logger = logging.getLogger(__name__)

MEMORY_STORAGE_URI = "memory://"


def rate_limit_storage_uri(config: Dict) -> str:
    """Shared Redis counters when the cache is on, process memory otherwise"""
    cache_config = config.get('cache') or {}
    if cache_config.get('enabled', True) and cache_config.get('url'):
        return cache_config['url']
    return MEMORY_STORAGE_URI


def create_limiter(requests_per_minute: int, storage_uri: str = MEMORY_STORAGE_URI) -> Limiter:
    return Limiter(
        key_func=get_remote_address,
        application_limits=[f"{requests_per_minute}/minute"],
        storage_uri=storage_uri,
        strategy="fixed-window",
        headers_enabled=True,
        in_memory_fallback_enabled=True,
    )


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    # Must stay synchronous: SlowAPIMiddleware cannot await exception handlers
    client = get_remote_address(request)
    logger.warning(f"Rate limit exceeded for {client} on {request.url.path} ({exc.detail})")

    error = RateLimitExceededError()
    response = JSONResponse(status_code=error.status_code, content=error.to_dict())
    return request.app.state.limiter._inject_headers(
        response, getattr(request.state, "view_rate_limit", None)
    )


def setup_rate_limiting(app: FastAPI, config: Dict) -> bool:
    """Install the limiter on the app; returns False when limiting is disabled"""
    requests_per_minute = int((config.get('api') or {}).get('rate_limit_per_minute', 60))
    if requests_per_minute <= 0:
        return False

    storage_uri = rate_limit_storage_uri(config)
    app.state.limiter = create_limiter(requests_per_minute, storage_uri)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    storage = "memory" if storage_uri == MEMORY_STORAGE_URI else "redis"
    logger.info(f"Rate limiting enabled: {requests_per_minute} requests per minute per client ({storage} storage)")
    return True
