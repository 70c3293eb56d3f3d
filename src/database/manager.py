"""
Database manager for PostgreSQL operations on the server index
"""

import asyncio
import asyncpg
import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

from errors import DatabaseError, PoolError, ServerExistsError
from .models import ServerRecord, NewServer, ServerFilter, PaginatedServers
from .queries import (
    SCHEMA_SQL, INSERT_SERVER_SQL, SELECT_BY_DOMAIN_SQL, EXISTS_SQL, build_find_queries
)

logger = logging.getLogger(__name__)


def _record_from_row(row) -> ServerRecord:
    return ServerRecord(
        id=row['id'],
        domain=row['domain'],
        name=row['name'],
        description=row['description'],
        logo_url=row['logo_url'],
        theme=row['theme'],
        registration_open=row['registration_open'],
        public_rooms_count=row['public_rooms_count'],
        version=row['version'],
        federation_version=row['federation_version'],
        delegated_server=row['delegated_server'],
        room_versions=row['room_versions'],
        created_at=row['created_at'],
        updated_at=row['updated_at']
    )


class DatabaseManager:
    """Manages PostgreSQL operations for the homeserver index"""

    def __init__(self, config: Dict):
        self.config = config
        self.pool: Optional[asyncpg.Pool] = None
        db = config['database']
        self.dsn = db['url']
        self.min_size = int(db.get('min_size', 1))
        self.max_size = int(db.get('max_size', 10))
        self.command_timeout = float(db.get('command_timeout', 10))
        self.acquire_timeout = float(db.get('acquire_timeout', 5))

    async def initialize(self):
        """Initialize database connection pool and schema"""
        try:
            self.pool = await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )

            logger.info(f"Database connection pool created (max_size={self.max_size})")

            await self.create_schema()
            logger.info("Database schema initialized")

        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            raise

    async def create_schema(self):
        """Create the servers table if it doesn't exist"""
        async with self._connection() as conn:
            await conn.execute(SCHEMA_SQL)

    async def close(self):
        """Close database connection pool"""
        if self.pool:
            await self.pool.close()
            self.pool = None
            logger.info("Database connection pool closed")

    @asynccontextmanager
    async def _connection(self):
        """Check out a pooled connection for the span of one operation"""
        if self.pool is None:
            raise PoolError(cause="Database pool not initialized")
        try:
            conn = await self.pool.acquire(timeout=self.acquire_timeout)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to get DB connection: {e}")
            raise PoolError(f"Failed to get DB connection: {e}", cause=str(e)) from e
        try:
            yield conn
        finally:
            await self.pool.release(conn)

    async def insert_server(self, server: NewServer) -> ServerRecord:
        """
        Insert a new homeserver record
        Raises ServerExistsError on a duplicate domain, DatabaseError otherwise
        """
        async with self._connection() as conn:
            try:
                row = await conn.fetchrow(
                    INSERT_SERVER_SQL,
                    server.domain, server.name, server.description, server.logo_url,
                    server.theme, server.registration_open, server.public_rooms_count,
                    server.version, server.federation_version, server.delegated_server,
                    server.room_versions
                )
            except asyncpg.UniqueViolationError as e:
                raise ServerExistsError(cause=str(e)) from e
            except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                logger.error(f"Failed to insert server {server.domain}: {e}")
                raise DatabaseError(f"Failed to save server: {e}", cause=str(e)) from e

        return _record_from_row(row)

    async def get_server_by_domain(self, domain: str) -> Optional[ServerRecord]:
        """Get a server record by domain (case-insensitive)"""
        async with self._connection() as conn:
            try:
                row = await conn.fetchrow(SELECT_BY_DOMAIN_SQL, domain)
            except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                logger.error(f"Failed to get server {domain}: {e}")
                raise DatabaseError(f"Failed to fetch server: {e}", cause=str(e)) from e

        return _record_from_row(row) if row else None

    async def server_exists(self, domain: str) -> bool:
        """Check whether a domain is already indexed"""
        async with self._connection() as conn:
            try:
                return bool(await conn.fetchval(EXISTS_SQL, domain))
            except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                logger.error(f"Failed to check existence of {domain}: {e}")
                raise DatabaseError(f"Failed to check server: {e}", cause=str(e)) from e

    async def find_servers(self, server_filter: ServerFilter) -> PaginatedServers:
        """Filter, sort and paginate indexed servers"""
        select_sql, count_sql, args = build_find_queries(server_filter)
        limit = server_filter.effective_limit
        offset = server_filter.effective_offset

        async with self._connection() as conn:
            try:
                total = await conn.fetchval(count_sql, *args)
                rows = await conn.fetch(select_sql, *args, limit, offset)
            except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                logger.error(f"Failed to fetch servers: {e}")
                raise DatabaseError(f"Failed to fetch servers: {e}", cause=str(e)) from e

        return PaginatedServers(
            records=[_record_from_row(row) for row in rows],
            total=int(total or 0),
            limit=limit,
            offset=offset
        )

    async def check_health(self) -> bool:
        """True when a connection can be checked out and answers a trivial query"""
        try:
            async with self._connection() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except PoolError:
            return False
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            logger.warning(f"Database health check failed: {e}")
            return False
