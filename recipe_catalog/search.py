"""
Faceted recipe search.

``compile_search`` turns a ``SearchCriteria`` into an ordered list of SQL
predicates (ANDed together) and a positional parameter list that lines up with
the ``?`` placeholders in emission order. ``search`` binds and runs it::

    criteria = SearchCriteria(tags=["italian", "dinner"], author="Nonna")
    ids = search(catalog, criteria)

Full-text fields (``name``, ``author``, ``keywords``) fold into a single FTS5
MATCH against the ``search`` table. Ingredient and tag inclusion means "linked
to every listed name"; exclusion means "linked to none of them".
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Set, Tuple

from sqlalchemy.exc import OperationalError, SQLAlchemyError

from .db import Catalog
from .exceptions import InvalidSearchError, StorageError
from .schemas import SearchCriteria
from . import search_index

logger = logging.getLogger(__name__)

BASE_QUERY = "SELECT DISTINCT r.recipe_id FROM recipes AS r"

_INT32_MIN = -(2 ** 31)
_INT32_MAX = 2 ** 31 - 1

_FTS_ERROR_MARKERS = ("fts5", "syntax error", "unterminated string", "no such column")


class ParamKind(enum.Enum):
    TEXT = "text"
    INT32 = "int32"
    INT64 = "int64"
    REAL = "real"


@dataclass(frozen=True)
class SearchParam:
    kind: ParamKind
    value: Any

    @classmethod
    def text(cls, value: str) -> "SearchParam":
        return cls(ParamKind.TEXT, value)

    @classmethod
    def int32(cls, value: int) -> "SearchParam":
        return cls(ParamKind.INT32, value)

    @classmethod
    def int64(cls, value: int) -> "SearchParam":
        return cls(ParamKind.INT64, value)

    @classmethod
    def real(cls, value: float) -> "SearchParam":
        return cls(ParamKind.REAL, value)

    def bind(self) -> Any:
        """Coerce the value to the Python type the driver binds for its kind."""
        if self.kind is ParamKind.TEXT:
            return str(self.value)
        if self.kind is ParamKind.REAL:
            return float(self.value)
        number = int(self.value)
        if self.kind is ParamKind.INT32 and not _INT32_MIN <= number <= _INT32_MAX:
            raise InvalidSearchError(f"{number} does not fit a 32-bit parameter")
        return number


@dataclass
class CompiledSearch:
    predicates: List[str] = field(default_factory=list)
    parameters: List[SearchParam] = field(default_factory=list)

    def add(self, predicate: str, *params: SearchParam) -> None:
        self.predicates.append(predicate)
        self.parameters.extend(params)

    @property
    def sql(self) -> str:
        if not self.predicates:
            return BASE_QUERY
        return f"{BASE_QUERY} WHERE " + " AND ".join(self.predicates)

    def bound_parameters(self) -> Tuple[Any, ...]:
        return tuple(p.bind() for p in self.parameters)


def _distinct(values: Sequence[str]) -> List[str]:
    # keep first occurrence so placeholder order follows the caller's order
    seen = set()
    out = []
    for value in values:
        if value not in seen:
            seen.add(value)
            out.append(value)
    return out


def _marks(n: int) -> str:
    return ", ".join("?" * n)


def _fts_phrase(column: str, value: str) -> str:
    escaped = value.replace('"', '""')
    return f'{column}:"{escaped}"'


def build_fts_query(
    name: Optional[str], author: Optional[str], keywords: Optional[str]
) -> Optional[str]:
    """Compose one FTS5 query string, or None when no text field is set."""
    clauses = []
    if name:
        clauses.append(_fts_phrase("name", name))
    if author:
        clauses.append(_fts_phrase("author", author))
    if keywords:
        # AND binds tighter than OR in FTS5; keep keyword operators inside their group
        clauses.insert(0, f"({keywords})" if clauses else keywords)
    if not clauses:
        return None
    return " AND ".join(clauses)


# (link table, reference table, reference key) for ingredient and tag filters
_INGREDIENT_LINK = ("recipe_ingredients", "ingredients", "ingredient_id")
_TAG_LINK = ("recipe_tags", "tags", "tag_id")


def _contains_all(compiled: CompiledSearch, link, names: Sequence[str]) -> None:
    link_table, ref_table, key = link
    names = _distinct(names)
    compiled.add(
        f"r.recipe_id IN ("
        f"SELECT l.recipe_id FROM {link_table} AS l "
        f"JOIN {ref_table} AS x ON x.{key} = l.{key} "
        f"WHERE x.name IN ({_marks(len(names))}) "
        f"GROUP BY l.recipe_id "
        f"HAVING COUNT(DISTINCT x.name) = ?)",
        *[SearchParam.text(n) for n in names],
        SearchParam.int32(len(names)),
    )


def _contains_none(compiled: CompiledSearch, link, names: Sequence[str]) -> None:
    link_table, ref_table, key = link
    names = _distinct(names)
    compiled.add(
        f"NOT EXISTS ("
        f"SELECT 1 FROM {link_table} AS l "
        f"JOIN {ref_table} AS x ON x.{key} = l.{key} "
        f"WHERE l.recipe_id = r.recipe_id AND x.name IN ({_marks(len(names))}))",
        *[SearchParam.text(n) for n in names],
    )


def _between(compiled: CompiledSearch, column: str, bounds) -> None:
    low, high = bounds
    compiled.add(
        f"{column} BETWEEN ? AND ?",
        SearchParam.int32(low),
        SearchParam.int32(high),
    )


def compile_search(criteria: SearchCriteria) -> CompiledSearch:
    """Translate criteria into predicates and positional parameters.

    Emission order is fixed, which also fixes parameter order.
    """
    compiled = CompiledSearch()

    if criteria.exact_name is not None:
        compiled.add("r.name = ?", SearchParam.text(criteria.exact_name))
    if criteria.exact_author is not None:
        compiled.add("r.author = ?", SearchParam.text(criteria.exact_author))
    if criteria.prep_time_range is not None:
        _between(compiled, "r.prep_time_minutes", criteria.prep_time_range)
    if criteria.cook_time_range is not None:
        _between(compiled, "r.cook_time_minutes", criteria.cook_time_range)
    if criteria.servings_range is not None:
        _between(compiled, "r.servings", criteria.servings_range)
    if criteria.is_favorite:
        compiled.add("r.is_favorite = 1")
    if criteria.date_range is not None:
        start, end = criteria.date_range
        compiled.add(
            "date(r.date_added) BETWEEN ? AND ?",
            SearchParam.text(start.isoformat()),
            SearchParam.text(end.isoformat()),
        )
    if criteria.source is not None:
        compiled.add("r.source = ?", SearchParam.text(criteria.source))
    if criteria.source_url is not None:
        compiled.add("r.source_url = ?", SearchParam.text(criteria.source_url))

    fts_query = build_fts_query(criteria.name, criteria.author, criteria.keywords)
    if fts_query is not None:
        compiled.add(
            f"r.recipe_id IN (SELECT rowid FROM {search_index.TABLE} "
            f"WHERE {search_index.TABLE} MATCH ?)",
            SearchParam.text(fts_query),
        )

    if criteria.tags:
        _contains_all(compiled, _TAG_LINK, criteria.tags)
    if criteria.exclude_tags:
        _contains_none(compiled, _TAG_LINK, criteria.exclude_tags)
    if criteria.ingredients:
        _contains_all(compiled, _INGREDIENT_LINK, criteria.ingredients)
    if criteria.exclude_ingredients:
        _contains_none(compiled, _INGREDIENT_LINK, criteria.exclude_ingredients)

    return compiled


def execute(catalog: Catalog, compiled: CompiledSearch) -> Set[int]:
    """Run a compiled search; an unopened catalog yields no results."""
    if not catalog.is_open:
        logger.warning("Search on closed catalog %s returns no results", catalog.path)
        return set()

    params = compiled.bound_parameters()
    try:
        with catalog.connect() as conn:
            rows = conn.exec_driver_sql(compiled.sql, params).fetchall()
    except OperationalError as exc:
        # FTS5 reports bad MATCH syntax as an operational error
        message = str(exc.orig).lower()
        if any(marker in message for marker in _FTS_ERROR_MARKERS):
            logger.warning("Rejected full-text query: %s", exc.orig)
            raise InvalidSearchError(str(exc.orig)) from exc
        logger.error("Search failed: %s", exc)
        raise StorageError(str(exc)) from exc
    except SQLAlchemyError as exc:
        logger.error("Search failed: %s", exc)
        raise StorageError(str(exc)) from exc

    ids = {recipe_id for (recipe_id,) in rows}
    logger.debug("Search with %d predicate(s) matched %d recipe(s)",
                 len(compiled.predicates), len(ids))
    return ids


def search(catalog: Catalog, criteria: Optional[SearchCriteria] = None) -> Set[int]:
    return execute(catalog, compile_search(criteria or SearchCriteria()))
