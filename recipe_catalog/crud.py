import logging
from typing import List, Optional
from sqlalchemy import func, insert, literal_column
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from . import models, schemas, search_index
from .db import Catalog, storage_errors
from .exceptions import CatalogNotOpenError, EmptyNameError, InvalidRecipeError
from .references import get_or_create_ingredient_id, get_or_create_tag_id, sweep_orphans

logger = logging.getLogger(__name__)

# tables cleared by empty_database, children first
_ALL_TABLES = (
    "instructions",
    "recipe_tags",
    "recipe_ingredients",
    "recipes",
    "ingredients",
    "tags",
)


def _validate(recipe: schemas.RecipeData) -> None:
    if not recipe.name or not recipe.name.strip():
        raise EmptyNameError()
    for ingredient in recipe.ingredients:
        if not ingredient.name:
            raise InvalidRecipeError("Ingredient name cannot be empty")
    if any(not tag for tag in recipe.tags):
        raise InvalidRecipeError("Tag name cannot be empty")
    if any(not step for step in recipe.instructions):
        raise InvalidRecipeError("Instruction text cannot be empty")


def _scalar_fields(recipe: schemas.RecipeData) -> dict:
    return {
        "name": recipe.name,
        "description": recipe.description,
        "prep_time_minutes": recipe.prep_time_minutes,
        "cook_time_minutes": recipe.cook_time_minutes,
        "servings": recipe.servings,
        "is_favorite": recipe.is_favorite,
        "source": recipe.source,
        "source_url": recipe.source_url,
        "author": recipe.author,
    }


def _write_children(db: Session, recipe_id: int, recipe: schemas.RecipeData) -> None:
    for ingredient in recipe.ingredients:
        ingredient_id = get_or_create_ingredient_id(db, ingredient.name)
        # Core insert: a repeated ingredient must fail on the table key
        db.execute(insert(models.RecipeIngredient).values(
            recipe_id=recipe_id,
            ingredient_id=ingredient_id,
            quantity=ingredient.quantity,
            unit=ingredient.unit,
            notes=ingredient.notes,
            optional=ingredient.optional,
        ))
    for tag in recipe.tags:
        tag_id = get_or_create_tag_id(db, tag)
        db.execute(insert(models.RecipeTag).values(recipe_id=recipe_id, tag_id=tag_id))
    # steps are numbered by position, starting at 1
    for step_number, text in enumerate(recipe.instructions, start=1):
        db.add(models.Instruction(
            recipe_id=recipe_id, step_number=step_number, instruction=text
        ))
    db.flush()


def _read_recipe(db: Session, recipe_id: int) -> Optional[schemas.Recipe]:
    row = db.query(models.Recipe).filter(models.Recipe.recipe_id == recipe_id).first()
    if row is None:
        return None

    ingredient_rows = (
        db.query(models.RecipeIngredient, models.Ingredient.name)
        .join(models.Ingredient,
              models.Ingredient.ingredient_id == models.RecipeIngredient.ingredient_id)
        .filter(models.RecipeIngredient.recipe_id == recipe_id)
        .order_by(literal_column("recipe_ingredients.rowid"))
        .all()
    )
    tag_rows = (
        db.query(models.Tag.name)
        .join(models.RecipeTag, models.RecipeTag.tag_id == models.Tag.tag_id)
        .filter(models.RecipeTag.recipe_id == recipe_id)
        .order_by(literal_column("recipe_tags.rowid"))
        .all()
    )
    step_rows = (
        db.query(models.Instruction.instruction)
        .filter(models.Instruction.recipe_id == recipe_id)
        .order_by(models.Instruction.step_number)
        .all()
    )

    ingredients = [
        schemas.IngredientInfo(
            name=name,
            quantity=(link.quantity if link.quantity is not None
                      else schemas.QUANTITY_UNSPECIFIED),
            unit=link.unit or "",
            notes=link.notes or "",
            optional=bool(link.optional),
        )
        for link, name in ingredient_rows
    ]
    return schemas.Recipe(
        id=row.recipe_id,
        date_added=row.date_added,
        name=row.name,
        description=row.description or "",
        prep_time_minutes=row.prep_time_minutes or 0,
        cook_time_minutes=row.cook_time_minutes or 0,
        servings=row.servings or 1,
        is_favorite=bool(row.is_favorite),
        source=row.source or "",
        source_url=row.source_url or "",
        author=row.author or "",
        ingredients=ingredients,
        tags=[name for (name,) in tag_rows],
        instructions=[text for (text,) in step_rows],
    )


def add_recipe(catalog: Catalog, recipe: schemas.RecipeData) -> int:
    """Insert a recipe with its links and steps; return the new recipe id.

    Everything happens in one transaction: if any ingredient, tag or step
    cannot be written the catalog is left exactly as it was.
    """
    if not catalog.is_open:
        raise CatalogNotOpenError("add_recipe")
    try:
        _validate(recipe)
    except InvalidRecipeError as exc:
        logger.warning("Rejected recipe %r: %s", recipe.name, exc)
        raise

    with storage_errors("add_recipe"):
        with catalog.transaction() as db:
            db_recipe = models.Recipe(**_scalar_fields(recipe))
            db.add(db_recipe)
            db.flush()
            recipe_id = db_recipe.recipe_id
            _write_children(db, recipe_id, recipe)
            search_index.refresh_rows(db.connection(), [recipe_id])
    logger.info("Added recipe %r with id %d", recipe.name, recipe_id)
    return recipe_id


def get_recipe_by_id(catalog: Catalog, recipe_id: int) -> Optional[schemas.Recipe]:
    if not catalog.is_open:
        raise CatalogNotOpenError("get_recipe_by_id")
    if recipe_id <= 0:
        return None
    with storage_errors("get_recipe_by_id"):
        with catalog.transaction() as db:
            return _read_recipe(db, recipe_id)


def update_recipe(
    catalog: Catalog, recipe_id: int, recipe: schemas.RecipeData
) -> Optional[schemas.Recipe]:
    """Replace a recipe's fields, links and steps; keep its id and date."""
    if not catalog.is_open:
        raise CatalogNotOpenError("update_recipe")
    _validate(recipe)
    if recipe_id <= 0:
        return None

    with storage_errors("update_recipe"):
        with catalog.transaction() as db:
            db_recipe = (
                db.query(models.Recipe)
                .filter(models.Recipe.recipe_id == recipe_id)
                .first()
            )
            if db_recipe is None:
                return None
            for field, value in _scalar_fields(recipe).items():
                setattr(db_recipe, field, value)
            for child in (models.RecipeIngredient, models.RecipeTag, models.Instruction):
                db.query(child).filter(child.recipe_id == recipe_id).delete(
                    synchronize_session=False
                )
            db.flush()
            _write_children(db, recipe_id, recipe)
            sweep_orphans(db)
            search_index.refresh_rows(db.connection(), [recipe_id])
            updated = _read_recipe(db, recipe_id)
    logger.info("Updated recipe %d", recipe_id)
    return updated


def delete_recipe(catalog: Catalog, recipe_id: int) -> bool:
    """Remove a recipe and any ingredients or tags left unreferenced.

    A well-formed id that matches nothing still counts as success.
    """
    if not catalog.is_open:
        logger.error("Catalog not open; cannot delete recipe %s", recipe_id)
        return False
    if recipe_id <= 0:
        logger.error("Invalid recipe id: %s", recipe_id)
        return False

    try:
        with catalog.transaction() as db:
            deleted = (
                db.query(models.Recipe)
                .filter(models.Recipe.recipe_id == recipe_id)
                .delete(synchronize_session=False)
            )
            sweep_orphans(db)
            search_index.refresh_rows(db.connection(), [recipe_id])
    except SQLAlchemyError as exc:
        logger.error("Failed to delete recipe %d: %s", recipe_id, exc)
        return False
    logger.info("Deleted %d recipe row(s) for id %d", deleted, recipe_id)
    return True


def empty_database(catalog: Catalog) -> bool:
    """Delete every row and restart id allocation from 1."""
    if not catalog.is_open:
        logger.error("Catalog not open; cannot empty it")
        return False
    try:
        with catalog.transaction() as db:
            conn = db.connection()
            for table in _ALL_TABLES:
                conn.exec_driver_sql(f"DELETE FROM {table}")
            search_index.clear(conn)
            marks = ", ".join("?" * len(_ALL_TABLES))
            conn.exec_driver_sql(
                f"DELETE FROM sqlite_sequence WHERE name IN ({marks})", _ALL_TABLES
            )
    except SQLAlchemyError as exc:
        logger.error("Failed to empty catalog %s: %s", catalog.path, exc)
        return False
    logger.info("Emptied catalog %s", catalog.path)
    return True


def count_recipes(catalog: Catalog) -> int:
    if not catalog.is_open:
        raise CatalogNotOpenError("count_recipes")
    with storage_errors("count_recipes"):
        with catalog.transaction() as db:
            return db.query(func.count(models.Recipe.recipe_id)).scalar()


def list_recipe_ids(catalog: Catalog, skip: int = 0, limit: int = 100) -> List[int]:
    if not catalog.is_open:
        raise CatalogNotOpenError("list_recipe_ids")
    with storage_errors("list_recipe_ids"):
        with catalog.transaction() as db:
            rows = (
                db.query(models.Recipe.recipe_id)
                .order_by(models.Recipe.recipe_id)
                .offset(skip)
                .limit(limit)
                .all()
            )
    return [recipe_id for (recipe_id,) in rows]
