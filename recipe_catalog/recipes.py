import json
import logging
from pathlib import Path
from typing import List
from pydantic import ValidationError
from .schemas import RecipeData

logger = logging.getLogger(__name__)


def load_recipes(path) -> List[RecipeData]:
    """Load recipes from a JSON file.

    Args:
        path (str or Path): Path to a JSON array of recipe objects.

    Returns:
        list: ``RecipeData`` for every entry that validates; invalid entries
        are logged and skipped. A missing file gives an empty list.
    """
    p = Path(path)
    if not p.exists():
        return []
    with p.open("r", encoding="utf-8") as f:
        raw = json.load(f)

    recipes = []
    for position, entry in enumerate(raw):
        try:
            recipes.append(RecipeData.model_validate(entry))
        except ValidationError as exc:
            logger.warning("Skipping recipe #%d in %s: %s", position, p, exc)
    return recipes
