"""
Merge another catalog file into the open catalog.

The source file is attached read-only in practice (only SELECTs touch it) and
everything else happens inside one transaction on the target:

1. ingredients and tags missing from the target (compared through
   ``fold_name``, registered on the connection as ``fold``) are inserted, and
   source→target id maps are built for both tables;
2. every recipe on both sides gets an ingredient signature;
3. a source recipe is a duplicate of a target recipe when the folded names
   and signatures are equal and author, source or source URL match;
4. duplicates map onto their target id, every other source recipe onto
   ``source_id + max(target recipe_id)``;
5. new recipes are copied with their links and steps, duplicates only
   contribute tags they were missing;
6. foreign keys are checked before commit.

If any step fails the transaction is rolled back and ``MergeError`` raised.
"""

import logging
import sqlite3
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from .db import MEMORY_PATH, Catalog
from .exceptions import CatalogNotOpenError, MergeError
from .normalize import fold_name, ingredient_signature, provenance_matches
from . import search_index

logger = logging.getLogger(__name__)

SOURCE_ALIAS = "source_db"

REQUIRED_TABLES = (
    "recipes",
    "ingredients",
    "tags",
    "recipe_ingredients",
    "recipe_tags",
    "instructions",
)

_TEMP_TABLES = ("ingredient_id_map", "tag_id_map", "recipe_id_map")


@dataclass
class MergeResult:
    duplicates: int = 0
    added: int = 0
    ingredients_added: int = 0
    tags_added: int = 0
    # source recipe id -> recipe id in the merged catalog
    recipe_id_map: Dict[int, int] = field(default_factory=dict)


@dataclass
class _RecipeKey:
    recipe_id: int
    name: str
    author: str
    source: str
    source_url: str
    signature: str = ""

    def same_provenance(self, other: "_RecipeKey") -> bool:
        return (
            provenance_matches(self.author, other.author)
            or provenance_matches(self.source, other.source)
            or provenance_matches(self.source_url, other.source_url)
        )


def _check_source_schema(conn: Connection) -> None:
    rows = conn.exec_driver_sql(
        f"SELECT name FROM {SOURCE_ALIAS}.sqlite_master WHERE type = 'table'"
    ).fetchall()
    present = {name for (name,) in rows}
    missing = [t for t in REQUIRED_TABLES if t not in present]
    if missing:
        raise MergeError(f"Source is not a recipe catalog; missing tables: {', '.join(missing)}")


def _merge_reference_table(conn: Connection, table: str, key: str, map_table: str) -> int:
    """Insert source names absent from the target and build the id map."""
    inserted = conn.exec_driver_sql(f"""
        INSERT INTO main.{table} (name)
        SELECT MIN(s.name) FROM {SOURCE_ALIAS}.{table} AS s
        WHERE NOT EXISTS (
            SELECT 1 FROM main.{table} AS t WHERE fold(t.name) = fold(s.name)
        )
        GROUP BY fold(s.name)
    """).rowcount

    conn.exec_driver_sql(
        f"CREATE TEMP TABLE {map_table} "
        f"(source_id INTEGER PRIMARY KEY, target_id INTEGER NOT NULL)"
    )
    # the lowest id wins when the target holds several case variants
    conn.exec_driver_sql(f"""
        INSERT INTO temp.{map_table} (source_id, target_id)
        SELECT s.{key}, MIN(t.{key})
        FROM {SOURCE_ALIAS}.{table} AS s
        JOIN main.{table} AS t ON fold(s.name) = fold(t.name)
        GROUP BY s.{key}
    """)
    return max(inserted, 0)


def _load_recipe_keys(conn: Connection, schema: str) -> List[_RecipeKey]:
    names: Dict[int, List[str]] = defaultdict(list)
    rows = conn.exec_driver_sql(f"""
        SELECT ri.recipe_id, i.name
        FROM {schema}.recipe_ingredients AS ri
        JOIN {schema}.ingredients AS i ON i.ingredient_id = ri.ingredient_id
    """)
    for recipe_id, name in rows:
        names[recipe_id].append(name)

    keys = []
    rows = conn.exec_driver_sql(f"""
        SELECT recipe_id, name, author, source, source_url
        FROM {schema}.recipes ORDER BY recipe_id
    """)
    for recipe_id, name, author, source, source_url in rows:
        keys.append(_RecipeKey(
            recipe_id=recipe_id,
            name=name,
            author=author or "",
            source=source or "",
            source_url=source_url or "",
            signature=ingredient_signature(names.get(recipe_id, ())),
        ))
    return keys


def find_duplicates(
    source: List[_RecipeKey], target: List[_RecipeKey]
) -> Dict[int, int]:
    """Map source recipe ids onto the target recipe they duplicate.

    When a source recipe matches several target recipes the lowest target id
    wins. Several source recipes may map onto the same target recipe.
    """
    index: Dict[Tuple[str, str], List[_RecipeKey]] = defaultdict(list)
    for t in sorted(target, key=lambda k: k.recipe_id):
        index[(fold_name(t.name), t.signature)].append(t)

    duplicates = {}
    for s in source:
        matches = [
            t for t in index.get((fold_name(s.name), s.signature), ())
            if s.same_provenance(t)
        ]
        if not matches:
            continue
        if len(matches) > 1:
            logger.warning(
                "Source recipe %d (%r) matches %d target recipes; using %d",
                s.recipe_id, s.name, len(matches), matches[0].recipe_id,
            )
        duplicates[s.recipe_id] = matches[0].recipe_id
    return duplicates


def _copy_new_recipes(conn: Connection) -> None:
    conn.exec_driver_sql(f"""
        INSERT INTO main.recipes (
            recipe_id, name, description, prep_time_minutes, cook_time_minutes,
            servings, is_favorite, date_added, source, source_url, author
        )
        SELECT
            m.target_id, s.name, s.description, s.prep_time_minutes,
            s.cook_time_minutes, s.servings, s.is_favorite, s.date_added,
            s.source, s.source_url, s.author
        FROM {SOURCE_ALIAS}.recipes AS s
        JOIN temp.recipe_id_map AS m ON m.source_id = s.recipe_id
        WHERE m.is_duplicate = 0
        ORDER BY s.recipe_id
    """)
    conn.exec_driver_sql(f"""
        INSERT INTO main.recipe_ingredients (
            recipe_id, ingredient_id, quantity, unit, notes, optional
        )
        SELECT m.target_id, im.target_id, s.quantity, s.unit, s.notes, s.optional
        FROM {SOURCE_ALIAS}.recipe_ingredients AS s
        JOIN temp.recipe_id_map AS m ON m.source_id = s.recipe_id
        JOIN temp.ingredient_id_map AS im ON im.source_id = s.ingredient_id
        WHERE m.is_duplicate = 0
        ORDER BY s.rowid
    """)
    conn.exec_driver_sql(f"""
        INSERT INTO main.recipe_tags (recipe_id, tag_id)
        SELECT m.target_id, tm.target_id
        FROM {SOURCE_ALIAS}.recipe_tags AS s
        JOIN temp.recipe_id_map AS m ON m.source_id = s.recipe_id
        JOIN temp.tag_id_map AS tm ON tm.source_id = s.tag_id
        WHERE m.is_duplicate = 0
        ORDER BY s.rowid
    """)
    conn.exec_driver_sql(f"""
        INSERT INTO main.instructions (recipe_id, step_number, instruction)
        SELECT m.target_id, s.step_number, s.instruction
        FROM {SOURCE_ALIAS}.instructions AS s
        JOIN temp.recipe_id_map AS m ON m.source_id = s.recipe_id
        WHERE m.is_duplicate = 0
        ORDER BY s.recipe_id, s.step_number
    """)


def _union_duplicate_tags(conn: Connection) -> None:
    conn.exec_driver_sql(f"""
        INSERT OR IGNORE INTO main.recipe_tags (recipe_id, tag_id)
        SELECT m.target_id, tm.target_id
        FROM {SOURCE_ALIAS}.recipe_tags AS s
        JOIN temp.recipe_id_map AS m ON m.source_id = s.recipe_id
        JOIN temp.tag_id_map AS tm ON tm.source_id = s.tag_id
        WHERE m.is_duplicate = 1
    """)


def _merge(conn: Connection) -> MergeResult:
    _check_source_schema(conn)
    for table in _TEMP_TABLES:
        conn.exec_driver_sql(f"DROP TABLE IF EXISTS temp.{table}")
    # links are bulk-copied; check foreign keys at commit instead of per row
    conn.exec_driver_sql("PRAGMA defer_foreign_keys = ON")

    max_target_id = conn.exec_driver_sql(
        "SELECT IFNULL(MAX(recipe_id), 0) FROM main.recipes"
    ).scalar()

    result = MergeResult()
    result.ingredients_added = _merge_reference_table(
        conn, "ingredients", "ingredient_id", "ingredient_id_map"
    )
    result.tags_added = _merge_reference_table(conn, "tags", "tag_id", "tag_id_map")

    source_keys = _load_recipe_keys(conn, SOURCE_ALIAS)
    target_keys = _load_recipe_keys(conn, "main")
    duplicates = find_duplicates(source_keys, target_keys)

    rows = []
    for key in source_keys:
        if key.recipe_id in duplicates:
            target_id, is_duplicate = duplicates[key.recipe_id], 1
        else:
            target_id, is_duplicate = key.recipe_id + max_target_id, 0
        result.recipe_id_map[key.recipe_id] = target_id
        rows.append((key.recipe_id, target_id, is_duplicate))
    result.duplicates = len(duplicates)
    result.added = len(rows) - len(duplicates)

    conn.exec_driver_sql(
        "CREATE TEMP TABLE recipe_id_map (source_id INTEGER PRIMARY KEY, "
        "target_id INTEGER NOT NULL, is_duplicate INTEGER NOT NULL)"
    )
    if rows:
        conn.exec_driver_sql(
            "INSERT INTO temp.recipe_id_map (source_id, target_id, is_duplicate) "
            "VALUES (?, ?, ?)",
            rows,
        )

    _copy_new_recipes(conn)
    _union_duplicate_tags(conn)
    search_index.refresh_rows(conn, result.recipe_id_map.values())

    violations = conn.exec_driver_sql("PRAGMA main.foreign_key_check").fetchall()
    if violations:
        raise MergeError(f"Merge left {len(violations)} foreign key violation(s)")

    for table in _TEMP_TABLES:
        conn.exec_driver_sql(f"DROP TABLE temp.{table}")
    return result


def _attach(conn: Connection, source: Path) -> None:
    driver = conn.connection.driver_connection
    # reference names fold in SQL exactly as signatures fold in Python
    driver.create_function("fold", 1, fold_name, deterministic=True)
    # pysqlite runs in autocommit mode here, so this happens outside any BEGIN
    driver.execute(
        f"ATTACH DATABASE ? AS {SOURCE_ALIAS}", (str(source),)
    )


def _detach(conn: Connection) -> None:
    try:
        conn.connection.driver_connection.execute(f"DETACH DATABASE {SOURCE_ALIAS}")
    except sqlite3.Error as exc:
        # never hand a connection with the source still attached back to the pool
        logger.warning("Could not detach %s (%s); discarding connection", SOURCE_ALIAS, exc)
        conn.invalidate()


def merge_database(catalog: Catalog, source_path) -> MergeResult:
    """Merge the catalog stored at ``source_path`` into ``catalog``.

    Raises ``MergeError`` when the merge is aborted; the target is then
    unchanged. The source file is never written.
    """
    if not catalog.is_open:
        raise CatalogNotOpenError("merge_database")
    source = Path(source_path)
    if not source.is_file():
        raise MergeError(f"Source catalog {source} does not exist")
    if catalog.path != MEMORY_PATH and Path(catalog.path).resolve() == source.resolve():
        raise MergeError("Cannot merge a catalog into itself")

    logger.info("Merging %s into %s", source, catalog.path)
    with catalog.connect() as conn:
        try:
            _attach(conn, source)
        except sqlite3.Error as exc:
            logger.error("Cannot attach %s: %s", source, exc)
            raise MergeError(f"Cannot attach {source}: {exc}") from exc
        try:
            with conn.begin():
                result = _merge(conn)
        except MergeError as exc:
            logger.error("Merge of %s aborted: %s", source, exc)
            raise
        except SQLAlchemyError as exc:
            logger.error("Merge of %s failed: %s", source, exc)
            raise MergeError(f"Merge of {source} failed: {exc}") from exc
        finally:
            _detach(conn)

    logger.info(
        "Merged %s: %d new recipe(s), %d duplicate(s), %d ingredient(s), %d tag(s)",
        source, result.added, result.duplicates,
        result.ingredients_added, result.tags_added,
    )
    return result
