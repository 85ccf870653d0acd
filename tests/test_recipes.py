# flake8: noqa
import json

from recipe_catalog.recipes import load_recipes


def test_load_recipes_missing_file(tmp_path):
    assert load_recipes(tmp_path / "missing.json") == []


def test_load_recipes_skips_invalid_entries(tmp_path, caplog):
    path = tmp_path / "recipes.json"
    path.write_text(json.dumps([
        {
            "name": "Omelette",
            "author": "Chef",
            "ingredients": [{"name": "Egg", "quantity": 3}],
            "tags": ["breakfast"],
            "instructions": ["Beat the eggs", "Cook gently"],
        },
        {"description": "no name here"},
        {"name": "Bad servings", "servings": 0},
    ]), encoding="utf-8")

    with caplog.at_level("WARNING"):
        recipes = load_recipes(path)

    assert [r.name for r in recipes] == ["Omelette"]
    assert recipes[0].ingredients[0].quantity == 3
    assert recipes[0].ingredients[0].unit == ""
    assert "Skipping recipe #1" in caplog.text
