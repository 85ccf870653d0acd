"""
Flat text export of a recipe record.

An ingredient is one line of five ``|``-separated fields::

    name|quantity|unit|notes|optional

``optional`` is ``0`` or ``1``. A missing or unparsable quantity reads back as
``0``, and so do ``nan`` and ``inf``. Ingredients are newline-joined; tags and
instructions are ``|``-joined, instructions in step order.
"""

import math
from typing import Dict, List
from .schemas import IngredientInfo, Recipe, RecipeData

FIELD_SEPARATOR = "|"
LINE_SEPARATOR = "\n"

_SCALAR_FIELDS = (
    "name",
    "description",
    "prep_time_minutes",
    "cook_time_minutes",
    "servings",
    "is_favorite",
    "source",
    "source_url",
    "author",
)


def _format_quantity(quantity: float) -> str:
    # 2.0 -> "2", 1.5 -> "1.5"
    return format(quantity, "g")


def encode_ingredient(info: IngredientInfo) -> str:
    return FIELD_SEPARATOR.join([
        info.name,
        _format_quantity(info.quantity),
        info.unit,
        info.notes,
        "1" if info.optional else "0",
    ])


def decode_ingredient(line: str) -> IngredientInfo:
    fields = line.split(FIELD_SEPARATOR)
    fields += [""] * (5 - len(fields))
    name, quantity, unit, notes, optional = fields[:5]
    try:
        amount = float(quantity)
    except ValueError:
        amount = 0.0
    if not math.isfinite(amount):
        amount = 0.0
    return IngredientInfo(
        name=name,
        quantity=amount,
        unit=unit,
        notes=notes,
        optional=optional.strip() == "1",
    )


def _split(value: str, separator: str) -> List[str]:
    if not value:
        return []
    return value.split(separator)


def export_recipe(recipe: RecipeData) -> Dict[str, str]:
    record = {}
    for field in _SCALAR_FIELDS:
        value = getattr(recipe, field)
        if isinstance(value, bool):
            value = int(value)
        record[field] = str(value)
    if isinstance(recipe, Recipe):
        record["id"] = str(recipe.id)
        if recipe.date_added is not None:
            record["date_added"] = recipe.date_added.isoformat(sep=" ")
    record["ingredients"] = LINE_SEPARATOR.join(
        encode_ingredient(i) for i in recipe.ingredients
    )
    record["tags"] = FIELD_SEPARATOR.join(recipe.tags)
    record["instructions"] = FIELD_SEPARATOR.join(recipe.instructions)
    return record


def import_recipe(record: Dict[str, str]) -> RecipeData:
    """Rebuild a ``RecipeData`` from an exported record.

    Ids and dates are dropped: the catalog assigns them on insert.
    """
    values = {f: record[f] for f in _SCALAR_FIELDS if record.get(f, "") != ""}
    if "is_favorite" in values:
        values["is_favorite"] = values["is_favorite"].strip() not in ("0", "false", "False")
    return RecipeData(
        **values,
        ingredients=[
            decode_ingredient(line)
            for line in _split(record.get("ingredients", ""), LINE_SEPARATOR)
        ],
        tags=_split(record.get("tags", ""), FIELD_SEPARATOR),
        instructions=_split(record.get("instructions", ""), FIELD_SEPARATOR),
    )
