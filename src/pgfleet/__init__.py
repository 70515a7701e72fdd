"""
pgfleet - PostgreSQL fleet operations toolkit.

Parses PostgreSQL server metadata, computes pgtune-style settings,
maintains postgresql.auto.conf and serves host health over HTTP.
"""

__version__ = "1.0.0"
__author__ = "pgfleet maintainers"
