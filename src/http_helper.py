# HTTP Helper for homeserver probes
# Shared connection-pooling session configuration for outbound Matrix requests

import aiohttp
import logging

logger = logging.getLogger(__name__)

USER_AGENT = "mxindex/0.1"

def create_probe_session(
    timeout_seconds: float = 10,
    connection_limit: int = 100,
    connection_limit_per_host: int = 4
) -> aiohttp.ClientSession:
    """
    Create the process-wide aiohttp session used for homeserver probes
    Every request is bounded by timeout_seconds unless overridden per call
    """
    connector = aiohttp.TCPConnector(
        limit=connection_limit,                    # Total connection pool limit
        limit_per_host=connection_limit_per_host,  # Max connections per homeserver
        ttl_dns_cache=300,                         # Cache DNS lookups across probe rounds
        force_close=False,                         # Keep connections alive between sub-probes
        enable_cleanup_closed=True
    )

    logger.info(f"Creating probe session (timeout={timeout_seconds}s, limit={connection_limit}, "
                f"per_host={connection_limit_per_host})")

    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=timeout_seconds),
        headers={"User-Agent": USER_AGENT, "Accept": "application/json"}
    )
