"""
Error kinds surfaced by the index service
Each error carries a stable kind identifier and the HTTP status it maps to
"""

from typing import Optional


class IndexServiceError(Exception):
    """Base class for errors returned to API callers"""

    kind = "internal_error"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, cause: Optional[str] = None):
        self.message = message or self.default_message
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message}


class InvalidServerError(IndexServiceError):
    kind = "invalid_server"
    status_code = 400
    default_message = "Server name must be a valid domain name without path or port"


class InvalidDomainError(IndexServiceError):
    kind = "invalid_domain"
    status_code = 400
    default_message = "Domain must be a valid domain name without path or port"


class ServerExistsError(IndexServiceError):
    kind = "server_exists"
    status_code = 409
    default_message = "Server already exists in the index"


class DiscoveryFailedError(IndexServiceError):
    kind = "discovery_failed"
    status_code = 502
    default_message = "Failed to discover server information"


class DiscoveryInProgressError(IndexServiceError):
    kind = "discovery_in_progress"
    status_code = 409
    default_message = "A federation discovery run is already in progress"


class DatabaseError(IndexServiceError):
    kind = "database_error"
    status_code = 500
    default_message = "Database operation failed"


class PoolError(IndexServiceError):
    kind = "pool_error"
    status_code = 503
    default_message = "Failed to get DB connection"


class RateLimitExceededError(IndexServiceError):
    kind = "rate_limit_exceeded"
    status_code = 429
    default_message = "Too many requests"
