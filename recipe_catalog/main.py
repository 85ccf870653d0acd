import argparse
import logging
from pathlib import Path
from typing import Optional

from .config import get_settings
from .crud import add_recipe, count_recipes
from .db import Catalog
from .recipes import load_recipes
from .schemas import IngredientInfo, RecipeData, SearchCriteria
from .search import search


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def sample_recipes():
    pancakes = RecipeData(
        name="Classic Pancakes",
        description="Fluffy and delicious pancakes, a breakfast favorite.",
        prep_time_minutes=10,
        cook_time_minutes=15,
        servings=4,
        is_favorite=True,
        source="Family Recipe",
        source_url="http://example.com/pancakes",
        author="Mom",
        ingredients=[
            IngredientInfo(name="All-purpose flour", quantity=1.5, unit="cups"),
            IngredientInfo(name="Granulated sugar", quantity=2, unit="tablespoons",
                           notes="or to taste"),
            IngredientInfo(name="Baking powder", quantity=2, unit="teaspoons"),
            IngredientInfo(name="Milk", quantity=1.25, unit="cups"),
            IngredientInfo(name="Egg", quantity=1, unit="large"),
            IngredientInfo(name="Vanilla extract", quantity=1, unit="teaspoon",
                           optional=True),
        ],
        tags=["breakfast", "easy", "classic", "sweet"],
        instructions=[
            "Whisk together flour, sugar and baking powder.",
            "Whisk in milk and egg until just combined.",
            "Cook on a hot griddle until golden on both sides.",
        ],
    )
    spaghetti = RecipeData(
        name="Spaghetti Aglio e Olio",
        description="A simple Italian pasta dish with garlic and oil.",
        prep_time_minutes=5,
        cook_time_minutes=10,
        servings=2,
        source="Italian tradition",
        author="Nonna",
        ingredients=[
            IngredientInfo(name="Spaghetti", quantity=200, unit="grams"),
            IngredientInfo(name="Garlic", quantity=4, unit="cloves",
                           notes="thinly sliced"),
            IngredientInfo(name="Olive oil", quantity=0.25, unit="cup"),
            IngredientInfo(name="Red pepper flakes", quantity=0.5, unit="teaspoon",
                           optional=True),
        ],
        tags=["pasta", "italian", "quick", "garlic"],
        instructions=[
            "Cook spaghetti until al dente.",
            "Gently fry garlic and pepper flakes in olive oil.",
            "Toss the drained pasta in the pan and serve.",
        ],
    )
    return [pancakes, spaghetti]


def main(argv=None):
    parser = argparse.ArgumentParser(description="Recipe catalog demo")
    parser.add_argument("--db", default=None, help="catalog file (default from settings)")
    parser.add_argument("--data", type=Path, default=None,
                        help="JSON file of recipes to add instead of the samples")
    parser.add_argument("--keywords", default=None, help="full-text search to run")
    args = parser.parse_args(argv)

    configure_logging()
    recipes = load_recipes(args.data) if args.data else sample_recipes()

    with Catalog(args.db) as catalog:
        for r in recipes:
            recipe_id = add_recipe(catalog, r)
            print(f"- {r.name} (id {recipe_id})")
        print(f"Catalog {catalog.path} holds {count_recipes(catalog)} recipe(s).")
        if args.keywords:
            found = search(catalog, SearchCriteria(keywords=args.keywords))
            print(f"{len(found)} recipe(s) match {args.keywords!r}: {sorted(found)}")


if __name__ == "__main__":
    main()
