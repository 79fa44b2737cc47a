from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

import mysql.connector

from .connection import DBConfig

logger = logging.getLogger(__name__)


def _strip_comments(sql: str) -> str:
    return re.sub(r"(?m)^\s*--.*$", "", sql)


def _iter_sql_statements(sql: str) -> Iterable[str]:
    # schema.sql keeps semicolons out of literals, so a plain split is enough.
    for chunk in _strip_comments(sql).split(";"):
        stmt = chunk.strip()
        if stmt:
            yield stmt


def apply_schema(db_config: dict, *, schema_path: Path) -> int:
    """Apply an idempotent (CREATE TABLE IF NOT EXISTS) schema file."""
    target = DBConfig.from_dict(db_config)

    server = mysql.connector.connect(**target.connect_kwargs(with_database=False))
    try:
        cur = server.cursor()
        cur.execute(f"CREATE DATABASE IF NOT EXISTS `{target.database}` CHARACTER SET utf8mb4")
        cur.close()
    finally:
        server.close()

    conn = mysql.connector.connect(**target.connect_kwargs())
    applied = 0
    try:
        cur = conn.cursor()
        for stmt in _iter_sql_statements(schema_path.read_text(encoding="utf-8")):
            cur.execute(stmt)
            applied += 1
        conn.commit()
        cur.close()
    finally:
        conn.close()

    logger.info("Applied %d schema statements to %s", applied, target.database)
    return applied


def list_tables(db_config: dict) -> list[str]:
    target = DBConfig.from_dict(db_config)
    conn = mysql.connector.connect(**target.connect_kwargs())
    try:
        cur = conn.cursor()
        cur.execute("SHOW TABLES")
        tables = [str(r[0]) for r in cur.fetchall()]
        cur.close()
        return tables
    finally:
        conn.close()
