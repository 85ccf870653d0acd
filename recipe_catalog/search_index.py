"""
Maintenance of the ``search`` full-text table.

Each recipe has one row keyed by ``rowid = recipe_id`` holding its name,
description, author and the ``|``-joined names of its ingredients and tags.
Every write path that touches a recipe or its links calls ``refresh_rows`` in
the same transaction, so the row always mirrors the base tables.
"""

import logging
from typing import Iterable, List

from sqlalchemy.engine import Connection

logger = logging.getLogger(__name__)

TABLE = "search"
SEPARATOR = "|"
COLUMNS = ("name", "description", "author", "ingredients", "tags")

# SQLite caps host parameters per statement; refresh in slices below that
_CHUNK = 500

_ROW_SELECT = f"""
    SELECT
        r.recipe_id,
        r.name,
        COALESCE(r.description, ''),
        COALESCE(r.author, ''),
        COALESCE((
            SELECT group_concat(i.name, '{SEPARATOR}')
            FROM recipe_ingredients AS ri
            JOIN ingredients AS i ON i.ingredient_id = ri.ingredient_id
            WHERE ri.recipe_id = r.recipe_id
        ), ''),
        COALESCE((
            SELECT group_concat(t.name, '{SEPARATOR}')
            FROM recipe_tags AS rt
            JOIN tags AS t ON t.tag_id = rt.tag_id
            WHERE rt.recipe_id = r.recipe_id
        ), '')
    FROM recipes AS r
"""

_INSERT = f"INSERT INTO {TABLE} (rowid, {', '.join(COLUMNS)})"


def create_table(conn: Connection, tokenizer: str) -> None:
    tokenize = tokenizer.replace("'", "''")
    conn.exec_driver_sql(
        f"CREATE VIRTUAL TABLE IF NOT EXISTS {TABLE} "
        f"USING fts5({', '.join(COLUMNS)}, tokenize = '{tokenize}')"
    )


def needs_backfill(conn: Connection) -> bool:
    """True when recipes exist but the index holds no rows for them."""
    indexed = conn.exec_driver_sql(f"SELECT count(*) FROM {TABLE}").scalar()
    if indexed:
        return False
    return bool(conn.exec_driver_sql("SELECT count(*) FROM recipes").scalar())


def _placeholders(n: int) -> str:
    return ", ".join("?" * n)


def refresh_rows(conn: Connection, recipe_ids: Iterable[int]) -> int:
    """Rewrite the index rows of the given recipes from the base tables.

    Ids whose recipe no longer exists simply lose their row. Returns the
    number of rows written.
    """
    ids: List[int] = sorted({int(i) for i in recipe_ids})
    written = 0
    for start in range(0, len(ids), _CHUNK):
        chunk = tuple(ids[start:start + _CHUNK])
        marks = _placeholders(len(chunk))
        conn.exec_driver_sql(f"DELETE FROM {TABLE} WHERE rowid IN ({marks})", chunk)
        result = conn.exec_driver_sql(
            f"{_INSERT} {_ROW_SELECT} WHERE r.recipe_id IN ({marks})", chunk
        )
        written += max(result.rowcount, 0)
    logger.debug("Refreshed %d search row(s) for %d recipe id(s)", written, len(ids))
    return written


def rebuild(conn: Connection) -> int:
    """Drop every index row and regenerate the whole table."""
    conn.exec_driver_sql(f"DELETE FROM {TABLE}")
    result = conn.exec_driver_sql(f"{_INSERT} {_ROW_SELECT}")
    return max(result.rowcount, 0)


def clear(conn: Connection) -> None:
    conn.exec_driver_sql(f"DELETE FROM {TABLE}")
