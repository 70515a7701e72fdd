"""Service interfaces for PostgreSQL, PgBouncer and WAL-G."""

from pgfleet.services.postgresql import PostgreSQLService
from pgfleet.services.pgbouncer import PgBouncerService
from pgfleet.services.walg import WalGService

__all__ = [
    "PostgreSQLService",
    "PgBouncerService",
    "WalGService",
]
