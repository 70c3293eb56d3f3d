import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from database.manager import DatabaseManager
from database.models import NewServer, ServerFilter
from database.queries import INSERT_SERVER_SQL
from errors import DatabaseError, PoolError, ServerExistsError

CREATED = datetime(2024, 1, 1, tzinfo=timezone.utc)


def server_row(server_id, domain, **fields):
    row = {
        'id': server_id, 'domain': domain, 'name': None, 'description': None, 'logo_url': None,
        'theme': None, 'registration_open': None, 'public_rooms_count': None, 'version': None,
        'federation_version': None, 'delegated_server': None, 'room_versions': None,
        'created_at': CREATED, 'updated_at': CREATED,
    }
    row.update(fields)
    return row


@pytest.fixture
def conn():
    connection = MagicMock()
    connection.fetchrow = AsyncMock()
    connection.fetchval = AsyncMock()
    connection.fetch = AsyncMock(return_value=[])
    connection.execute = AsyncMock()
    return connection


@pytest.fixture
def pool(conn):
    connection_pool = MagicMock()
    connection_pool.acquire = AsyncMock(return_value=conn)
    connection_pool.release = AsyncMock()
    connection_pool.close = AsyncMock()
    return connection_pool


@pytest.fixture
def db(pool):
    manager = DatabaseManager({'database': {'url': "postgresql://mxindex@localhost/mxindex", 'acquire_timeout': 2}})
    manager.pool = pool
    return manager


@pytest.mark.asyncio
async def test_insert_server_returns_stored_record(db, conn, pool):
    conn.fetchrow.return_value = server_row(7, "matrix.org", name="Matrix", registration_open=True)

    record = await db.insert_server(NewServer(domain="matrix.org", name="Matrix", registration_open=True))

    assert record.id == 7
    assert record.name == "Matrix"
    sql, *args = conn.fetchrow.await_args.args
    assert sql == INSERT_SERVER_SQL
    assert args[:2] == ["matrix.org", "Matrix"]
    assert len(args) == 11
    pool.acquire.assert_awaited_once_with(timeout=2.0)
    pool.release.assert_awaited_once_with(conn)


@pytest.mark.asyncio
async def test_insert_duplicate_domain_raises_server_exists(db, conn, pool):
    conn.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key value violates unique constraint")

    with pytest.raises(ServerExistsError):
        await db.insert_server(NewServer(domain="matrix.org"))

    pool.release.assert_awaited_once_with(conn)


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", [
    asyncpg.PostgresError("disk full"),
    asyncpg.InterfaceError("connection is closed"),
])
async def test_insert_other_failures_raise_database_error(db, conn, failure):
    conn.fetchrow.side_effect = failure

    with pytest.raises(DatabaseError) as excinfo:
        await db.insert_server(NewServer(domain="matrix.org"))

    assert excinfo.value.status_code == 500
    assert str(failure) in excinfo.value.cause


@pytest.mark.asyncio
async def test_acquire_timeout_raises_pool_error(db, pool, conn):
    pool.acquire.side_effect = asyncio.TimeoutError()

    with pytest.raises(PoolError):
        await db.server_exists("matrix.org")

    conn.fetchval.assert_not_awaited()
    pool.release.assert_not_awaited()


@pytest.mark.asyncio
async def test_uninitialized_pool_raises_pool_error():
    manager = DatabaseManager({'database': {'url': "postgresql://mxindex@localhost/mxindex"}})

    with pytest.raises(PoolError):
        await manager.get_server_by_domain("matrix.org")


@pytest.mark.asyncio
async def test_get_server_by_domain_missing_returns_none(db, conn):
    conn.fetchrow.return_value = None

    assert await db.get_server_by_domain("nowhere.example") is None


@pytest.mark.asyncio
async def test_find_servers_pages_after_filter_arguments(db, conn):
    conn.fetchval.return_value = 42
    conn.fetch.return_value = [server_row(3, "a.example"), server_row(4, "b.example")]

    page = await db.find_servers(ServerFilter(search="example", registration_open=True, limit=2, offset=10))

    count_sql, *count_args = conn.fetchval.await_args.args
    select_sql, *select_args = conn.fetch.await_args.args
    assert count_sql.startswith("SELECT COUNT(*)")
    assert count_args == ["%example%", True]
    assert select_args == ["%example%", True, 2, 10]
    assert "LIMIT $3 OFFSET $4" in select_sql
    assert page.total == 42
    assert (page.limit, page.offset) == (2, 10)
    assert [r.domain for r in page.records] == ["a.example", "b.example"]


@pytest.mark.asyncio
async def test_find_servers_failure_raises_database_error(db, conn, pool):
    conn.fetchval.side_effect = asyncpg.PostgresError("canceling statement due to statement timeout")

    with pytest.raises(DatabaseError):
        await db.find_servers(ServerFilter())

    pool.release.assert_awaited_once_with(conn)


@pytest.mark.asyncio
async def test_check_health(db, conn, pool):
    conn.fetchval.return_value = 1
    assert await db.check_health() is True

    pool.acquire.side_effect = OSError("connection refused")
    assert await db.check_health() is False


@pytest.mark.asyncio
async def test_check_health_query_failure_is_unhealthy(db, conn):
    conn.fetchval.side_effect = asyncpg.InterfaceError("connection is closed")

    assert await db.check_health() is False


@pytest.mark.asyncio
async def test_close_releases_pool(db, pool):
    await db.close()
    await db.close()

    pool.close.assert_awaited_once()
    assert db.pool is None
