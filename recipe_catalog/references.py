"""Get-or-create lookups for the shared ingredient and tag tables."""

import logging
from typing import Tuple
from sqlalchemy import select
from sqlalchemy.orm import Session
from . import models
from .exceptions import InvalidRecipeError

logger = logging.getLogger(__name__)


def _get_or_create(db: Session, model, key_column, name: str) -> int:
    if not name:
        raise InvalidRecipeError(f"{model.__tablename__} name cannot be empty")
    row = db.query(model).filter(model.name == name).first()
    if row is not None:
        return getattr(row, key_column)
    row = model(name=name)
    db.add(row)
    db.flush()
    logger.debug("Created %s %r", model.__tablename__, name)
    return getattr(row, key_column)


def get_or_create_ingredient_id(db: Session, name: str) -> int:
    # exact, case-sensitive match on the name
    return _get_or_create(db, models.Ingredient, "ingredient_id", name)


def get_or_create_tag_id(db: Session, name: str) -> int:
    return _get_or_create(db, models.Tag, "tag_id", name)


def sweep_orphans(db: Session) -> Tuple[int, int]:
    """Delete ingredients and tags that no recipe links to any more."""
    linked_ingredients = select(models.RecipeIngredient.ingredient_id)
    ingredients = (
        db.query(models.Ingredient)
        .filter(models.Ingredient.ingredient_id.not_in(linked_ingredients))
        .delete(synchronize_session=False)
    )
    linked_tags = select(models.RecipeTag.tag_id)
    tags = (
        db.query(models.Tag)
        .filter(models.Tag.tag_id.not_in(linked_tags))
        .delete(synchronize_session=False)
    )
    if ingredients or tags:
        logger.debug("Swept %d ingredient(s) and %d tag(s)", ingredients, tags)
    return ingredients, tags
