"""
SQL builders for the servers table
"""

from typing import List, Tuple

from .models import ServerFilter

SERVER_COLUMNS = """
    id, domain, name, description, logo_url, theme, registration_open,
    public_rooms_count, version, federation_version, delegated_server,
    room_versions, created_at, updated_at
"""

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS servers (
    id BIGSERIAL PRIMARY KEY,
    domain TEXT NOT NULL,
    name TEXT,
    description TEXT,
    logo_url TEXT,
    theme TEXT,
    registration_open BOOLEAN,
    public_rooms_count INTEGER CHECK (public_rooms_count IS NULL OR public_rooms_count >= 0),
    version TEXT,
    federation_version TEXT,
    delegated_server TEXT,
    room_versions TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_servers_domain_lower
ON servers (LOWER(domain));

CREATE INDEX IF NOT EXISTS idx_servers_created_at
ON servers (created_at DESC);
"""

INSERT_SERVER_SQL = f"""
    INSERT INTO servers (
        domain, name, description, logo_url, theme, registration_open,
        public_rooms_count, version, federation_version, delegated_server, room_versions
    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
    RETURNING {SERVER_COLUMNS}
"""

SELECT_BY_DOMAIN_SQL = f"""
    SELECT {SERVER_COLUMNS}
    FROM servers
    WHERE LOWER(domain) = LOWER($1)
"""

EXISTS_SQL = "SELECT EXISTS(SELECT 1 FROM servers WHERE LOWER(domain) = LOWER($1))"

# Sort expressions keyed by sort field; unknown values never reach SQL
SORT_EXPRESSIONS = {
    'created_at': 'created_at',
    'name': "COALESCE(name, '')",
    'domain': 'domain',
    'public_rooms_count': 'COALESCE(public_rooms_count, 0)',
}


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input only matches literally"""
    return value.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')


def build_filter_clause(server_filter: ServerFilter) -> Tuple[str, List]:
    """Build the WHERE clause and its positional arguments"""
    conditions = []
    args: List = []

    if server_filter.search:
        args.append(f"%{escape_like(server_filter.search)}%")
        idx = len(args)
        conditions.append(
            f"(domain ILIKE ${idx} OR name ILIKE ${idx} OR description ILIKE ${idx})"
        )

    if server_filter.registration_open is not None:
        args.append(server_filter.registration_open)
        conditions.append(f"registration_open = ${len(args)}")

    if server_filter.has_rooms is True:
        conditions.append("COALESCE(public_rooms_count, 0) > 0")
    elif server_filter.has_rooms is False:
        conditions.append("COALESCE(public_rooms_count, 0) <= 0")

    if server_filter.room_version:
        args.append(f"%{escape_like(server_filter.room_version)}%")
        conditions.append(f"room_versions ILIKE ${len(args)}")

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return where, args


def build_find_queries(server_filter: ServerFilter) -> Tuple[str, str, List]:
    """
    Build the page query and the count query for a filter
    Returns (select_sql, count_sql, args); select_sql takes two extra
    arguments for LIMIT and OFFSET after args
    """
    where, args = build_filter_clause(server_filter)

    sort_expression = SORT_EXPRESSIONS[server_filter.effective_sort_by]
    direction = 'ASC' if server_filter.effective_sort_order == 'asc' else 'DESC'

    limit_idx = len(args) + 1
    offset_idx = len(args) + 2

    select_sql = f"""
        SELECT {SERVER_COLUMNS}
        FROM servers
        {where}
        ORDER BY {sort_expression} {direction}, id ASC
        LIMIT ${limit_idx} OFFSET ${offset_idx}
    """
    count_sql = f"SELECT COUNT(*) FROM servers {where}"

    return select_sql, count_sql, args
