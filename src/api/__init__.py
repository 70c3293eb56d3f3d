"""
API module for the homeserver index
"""

from .main_api import IndexAPI
from .rate_limit import create_limiter, rate_limit_exceeded_handler, setup_rate_limiting
from .server_routes import create_server_routes
from .system_routes import create_system_routes

__all__ = [
    'IndexAPI', 'create_limiter', 'rate_limit_exceeded_handler', 'setup_rate_limiting',
    'create_server_routes', 'create_system_routes'
]
