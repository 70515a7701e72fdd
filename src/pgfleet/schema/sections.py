"""Hand-written JSON Schema sections for the companion services."""

from typing import Any


def _prop(type_: str, description: str, **extra: Any) -> dict[str, Any]:
    return {"type": type_, "description": description, **extra}


def _object(description: str, properties: dict[str, Any]) -> dict[str, Any]:
    return {
        "type": "object",
        "additionalProperties": False,
        "description": description,
        "properties": properties,
    }


def pgbouncer_schema() -> dict[str, Any]:
    return _object("PgBouncer connection pooler configuration", {
        "admin_user": _prop("string", "Administrative user for PgBouncer"),
        "admin_password": _prop("string", "Administrative password for PgBouncer",
                                **{"x-sensitive": True}),
        "auth_type": _prop(
            "string", "Authentication type for PgBouncer",
            enum=["any", "trust", "plain", "md5", "scram-sha-256", "cert", "hba", "pam"],
            default="md5",
        ),
        "auth_file": _prop("string", "Path to authentication file", default="userlist.txt"),
        "auth_query": _prop(
            "string", "Query to authenticate users",
            default="SELECT usename, passwd FROM pg_shadow WHERE usename=$1",
        ),
        "default_pool_size": _prop("integer", "Default pool size for databases",
                                   minimum=1, default=25),
        "min_pool_size": _prop("integer", "Minimum pool size", minimum=0, default=0),
        "reserve_pool_size": _prop("integer", "Reserved pool size", minimum=0),
        "listen_address": _prop("string", "Specifies the address to listen on",
                                default="0.0.0.0"),
        "listen_port": _prop("integer", "Specifies the port to listen on",
                             minimum=1, maximum=65535, default=6432),
        "max_client_conn": _prop("integer", "Maximum number of client connections allowed",
                                 minimum=1, default=100),
        "pool_mode": _prop("string", "Pooling mode to use",
                           enum=["session", "transaction", "statement"],
                           default="transaction"),
        "server_reset_query": _prop("string",
                                    "Query to run on server connection before returning to pool",
                                    default="DISCARD ALL"),
    })


def postgrest_schema() -> dict[str, Any]:
    return _object("PostgREST API server configuration", {
        "db_uri": _prop("string", "Database connection URI", pattern="^postgres(ql)?://.*"),
        "db_schemas": _prop("string", "Database schemas to expose via API", default="public"),
        "db_pool": _prop("integer", "Database connection pool size",
                         minimum=1, maximum=1000, default=10),
        "db_pool_timeout": _prop("integer", "Database connection pool timeout in seconds",
                                 minimum=1, default=10),
        "jwt_secret": _prop("string", "JWT secret for authentication",
                            **{"x-sensitive": True}),
        "jwt_aud": _prop("string", "JWT audience claim", default=""),
        "admin_role": _prop("string", "Database role with admin privileges",
                            default="postgres"),
        "anonymous_role": _prop("string", "Database role for anonymous access",
                                default="anon"),
        "server_host": _prop("string", "Host to bind the API server to", default="*"),
        "server_port": _prop("integer", "Port to bind the API server to",
                             minimum=1, maximum=65535, default=3000),
    })


def walg_schema() -> dict[str, Any]:
    return _object("WAL-G backup configuration", {
        "enabled": _prop("boolean", "Enable WAL-G backups", default=False),
        "s3_prefix": _prop("string", "S3 storage prefix", pattern="^s3://.*"),
        "s3_region": _prop("string", "S3 region", default="us-east-1"),
        "s3_access_key": _prop("string", "S3 access key ID", **{"x-sensitive": True}),
        "s3_secret_key": _prop("string", "S3 secret access key", **{"x-sensitive": True}),
        "s3_endpoint": _prop("string", "Custom S3 endpoint"),
        "gs_prefix": _prop("string", "Google Cloud Storage prefix", pattern="^gs://.*"),
        "az_prefix": _prop("string", "Azure storage prefix", pattern="^azure://.*"),
        "file_prefix": _prop("string", "Local filesystem storage prefix"),
        "compression_method": _prop("string", "Compression method",
                                    enum=["lz4", "lzma", "zstd", "brotli"], default="lz4"),
        "retention_policy": _prop("string", "Number of full backups to keep",
                                  default="FULL=7"),
        "backup_schedule": _prop("string", "Cron schedule for backups",
                                 default="0 2 * * *"),
    })


def pgaudit_schema() -> dict[str, Any]:
    return _object("pgAudit extension configuration", {
        "log": _prop("string", "Statement classes to log",
                     default="none",
                     pattern="^-?(none|all|read|write|function|role|ddl|misc|misc_set)"
                             "(,\\s*-?(none|all|read|write|function|role|ddl|misc|misc_set))*$"),
        "log_catalog": _prop("boolean", "Log statements on pg_catalog relations",
                             default=True),
        "log_client": _prop("boolean", "Send audit messages to the client", default=False),
        "log_level": _prop("string", "Log level for audit entries",
                           enum=["debug1", "debug2", "debug3", "debug4", "debug5",
                                 "info", "notice", "warning", "log"],
                           default="log"),
        "log_parameter": _prop("boolean", "Include statement parameters", default=False),
        "log_relation": _prop("boolean", "Log each relation referenced", default=False),
        "log_statement_once": _prop("boolean",
                                    "Log the statement text only with the first entry",
                                    default=False),
        "role": _prop("string", "Master role for object audit logging"),
    })


def pghba_schema() -> dict[str, Any]:
    entry = _object("One pg_hba.conf rule", {
        "type": _prop("string", "Connection type",
                      enum=["local", "host", "hostssl", "hostnossl",
                            "hostgssenc", "hostnogssenc"]),
        "database": _prop("string", "Database name, list, or 'all'"),
        "user": _prop("string", "User name, list, or 'all'"),
        "address": _prop("string", "Client address or CIDR range"),
        "method": _prop("string", "Authentication method",
                        enum=["trust", "reject", "scram-sha-256", "md5", "password",
                              "gss", "sspi", "ident", "peer", "ldap", "radius",
                              "cert", "pam", "bsd"]),
        "options": _prop("object", "Authentication method options",
                         additionalProperties={"type": "string"}),
    })
    entry["required"] = ["type", "database", "user", "method"]
    return _object("pg_hba.conf host-based authentication rules", {
        "entries": {
            "type": "array",
            "description": "Rules evaluated top to bottom",
            "items": entry,
        },
    })
