import argparse
import logging
from pathlib import Path

from recipe_catalog.crud import add_recipe
from recipe_catalog.db import Catalog
from recipe_catalog.exceptions import CatalogError
from recipe_catalog.main import configure_logging
from recipe_catalog.recipes import load_recipes
from recipe_catalog.search import search
from recipe_catalog.schemas import SearchCriteria

logger = logging.getLogger("import_data")


def main():
    parser = argparse.ArgumentParser(description="Import a JSON recipe file")
    parser.add_argument(
        "path",
        nargs="?",
        type=Path,
        default=Path(__file__).resolve().parents[1] / "data" / "recipes.json",
    )
    parser.add_argument("--db", default=None)
    args = parser.parse_args()

    configure_logging()
    if not args.path.exists():
        print(f"{args.path} not found")
        return

    added = 0
    with Catalog(args.db) as catalog:
        for r in load_recipes(args.path):
            # skip recipes already present under the same name and author
            exists = search(catalog, SearchCriteria(exact_name=r.name, exact_author=r.author))
            if exists:
                continue
            try:
                add_recipe(catalog, r)
            except CatalogError as exc:
                logger.warning("Skipped %r: %s", r.name, exc)
                continue
            added += 1
    print(f"Imported {added} recipes")


if __name__ == "__main__":
    main()
