# duckview/engine/engine_common.py

from __future__ import annotations

import os
from typing import Dict, Iterable, Optional
from urllib.parse import urlparse

import duckdb
import sqlglot
from sqlglot import exp

from duckview.config.defaults import default, logger


REMOTE_SCHEMES = ("http://", "https://", "s3://")


# =========================================================
# SQL helpers
# =========================================================

def quote_if_needed(name: str) -> str:
    """Quote an identifier if it contains special characters."""
    name = name.strip()
    if name == "*":
        return "*"
    if all(ch.isalnum() or ch == "_" for ch in name):
        return name
    return '"' + name.replace('"', '""') + '"'


def sanitize_sql_string(value_sql: str) -> str:
    """Sanitize a SQL string value by escaping single quotes."""
    if value_sql.startswith("'"):
        inner = value_sql[1:-1].replace("'", "''")
        return f"'{inner}'"
    return value_sql


def escape_parquet_path(path: str) -> str:
    """Escape a file path for use in SQL string literals."""
    return path.replace(chr(39), chr(39) + chr(39))


# =========================================================
# URL handling
# =========================================================

def is_remote(url: str) -> bool:
    return str(url).strip().lower().startswith(REMOTE_SCHEMES)


def normalize_url(url: str) -> str:
    """Strip whitespace; turn file:// URLs into plain paths DuckDB can read."""
    url = url.strip()
    if url.lower().startswith("file://"):
        parsed = urlparse(url)
        return parsed.path or url[len("file://"):]
    return url


def registration_key(table_name: str) -> str:
    """Virtual filename under which a table's source URL is registered."""
    return f"{table_name.strip()}.parquet"


# =========================================================
# Statements
# =========================================================

def materialize_statement(table_name: str, key: str) -> str:
    """CREATE OR REPLACE TABLE ... AS SELECT * FROM read_parquet('<key>')."""
    return (
        f"CREATE OR REPLACE TABLE {quote_if_needed(table_name)} AS "
        f"SELECT * FROM read_parquet('{escape_parquet_path(key)}')"
    )


def count_statement(table_name: str) -> str:
    return f"SELECT COUNT(*) AS row_count FROM {quote_if_needed(table_name)}"


# =========================================================
# Virtual file rewriting
# =========================================================

def rewrite_virtual_files(sql: str, key_to_url: Dict[str, str]) -> str:
    """Point references to a registered key at the registered URL.

    Covers string literals (read_parquet('<key>')) and bare file references
    (FROM '<key>'). Statements that mention no registered key are returned
    untouched.
    """
    if not key_to_url:
        return sql

    referenced = {key: url for key, url in key_to_url.items() if key in sql}
    if not referenced:
        return sql

    try:
        parsed = sqlglot.parse_one(sql, read="duckdb")
    except Exception as e:
        logger.warning(f"[duckview.engine] Failed to parse SQL for rewrite; using text replace. Error: {e}")
        for key, url in referenced.items():
            sql = sql.replace(f"'{escape_parquet_path(key)}'", f"'{escape_parquet_path(url)}'")
        return sql

    rewritten = False

    # FROM 'episode.parquet' parses as a quoted table identifier
    for table in list(parsed.find_all(exp.Table)):
        ident = table.this
        if (
                isinstance(ident, exp.Identifier)
                and ident.this in referenced
                and not table.args.get("db")
                and not table.args.get("catalog")
        ):
            table.set("this", exp.Anonymous(
                this="read_parquet",
                expressions=[exp.Literal.string(referenced[ident.this])],
            ))
            rewritten = True

    for literal in list(parsed.find_all(exp.Literal)):
        if literal.is_string and literal.this in referenced:
            literal.replace(exp.Literal.string(referenced[literal.this]))
            rewritten = True

    if not rewritten:
        return sql
    return parsed.sql(dialect="duckdb")


# =========================================================
# httpfs configuration
# =========================================================

def configure_httpfs(con: duckdb.DuckDBPyConnection, for_urls: Iterable[str]) -> bool:
    """Install and configure httpfs on the given connection.

    Returns True if httpfs was loaded, False if none of the URLs are remote.
    """
    if not any(is_remote(u) for u in for_urls):
        return False

    con.execute("INSTALL httpfs;")
    con.execute("LOAD httpfs;")

    try:
        supported = {
            name for (name,) in con.execute(
                "SELECT name FROM duckdb_settings()"
            ).fetchall()
        }
    except duckdb.Error:
        supported = {"http_timeout", "enable_http_metadata_cache"}

    def set_if_supported(param: str, value_sql: str):
        if param in supported:
            con.execute(f"SET {param}={sanitize_sql_string(value_sql)};")

    if default.HTTP_TIMEOUT:
        set_if_supported("http_timeout", str(int(default.HTTP_TIMEOUT)))

    set_if_supported(
        "enable_http_metadata_cache",
        "true" if default.HTTP_METADATA_CACHE else "false",
    )
    return True


# =========================================================
# Connection initialization
# =========================================================

def init_connection(
        con: duckdb.DuckDBPyConnection,
        temp_dir: str,
        memory_limit: str = "2GB",
        threads: Optional[int] = None,
) -> None:
    """Apply standard PRAGMA settings to a DuckDB connection."""
    con.execute(f"PRAGMA memory_limit='{escape_parquet_path(memory_limit)}';")
    if temp_dir:
        os.makedirs(temp_dir, exist_ok=True)
        con.execute(f"PRAGMA temp_directory='{escape_parquet_path(temp_dir)}';")
    if threads:
        con.execute(f"SET threads={int(threads)};")
