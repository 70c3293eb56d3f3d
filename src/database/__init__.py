"""
Database module for the homeserver index
"""

from .manager import DatabaseManager
from .models import ServerRecord, NewServer, ServerFilter, PaginatedServers

__all__ = ['DatabaseManager', 'ServerRecord', 'NewServer', 'ServerFilter', 'PaginatedServers']
