# flake8: noqa
import sys
from pathlib import Path

# Ensure project root is on sys.path so `recipe_catalog` can be imported when tests are run
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))  # noqa: E402

import pytest

from recipe_catalog.config import Settings
from recipe_catalog.db import Catalog
from recipe_catalog.schemas import IngredientInfo, RecipeData


@pytest.fixture
def settings():
    return Settings(_env_file=None)


@pytest.fixture
def catalog_factory(tmp_path, settings):
    """Open catalogs under tmp_path by file name; all are closed afterwards."""
    opened = []

    def _open(name="catalog.db"):
        catalog = Catalog(tmp_path / name, settings=settings)
        assert catalog.open()
        opened.append(catalog)
        return catalog

    yield _open
    for catalog in opened:
        catalog.close()


@pytest.fixture
def catalog(catalog_factory):
    return catalog_factory("test.db")


@pytest.fixture
def make_recipe():
    def _make(
        name,
        author="",
        ingredients=(),
        tags=(),
        cook_time=20,
        is_favorite=False,
        source="Test Kitchen",
        **extra,
    ):
        return RecipeData(
            name=name,
            author=author,
            description=f"A delicious recipe for {name}",
            prep_time_minutes=10,
            cook_time_minutes=cook_time,
            servings=4,
            is_favorite=is_favorite,
            source=source,
            ingredients=[
                IngredientInfo(name=i, quantity=1, unit="unit") for i in ingredients
            ],
            tags=list(tags),
            instructions=["Step 1: Prep", "Step 2: Cook", "Step 3: Serve"],
            **extra,
        )

    return _make
