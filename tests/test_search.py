# flake8: noqa
from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from recipe_catalog import crud
from recipe_catalog.exceptions import InvalidSearchError
from recipe_catalog.schemas import SearchCriteria
from recipe_catalog.search import (
    BASE_QUERY,
    ParamKind,
    SearchParam,
    build_fts_query,
    compile_search,
    search,
)


@pytest.fixture
def recipes(catalog, make_recipe):
    ids = {}
    ids["bolognese"] = crud.add_recipe(catalog, make_recipe(
        "Spaghetti Bolognese", "Nonna", ["Spaghetti", "Beef", "Tomato"],
        ["italian", "dinner", "pasta"], cook_time=30, is_favorite=True,
    ))
    ids["curry"] = crud.add_recipe(catalog, make_recipe(
        "Chicken Curry", "Dad", ["Chicken", "Curry Powder", "Coconut Milk"],
        ["indian", "dinner"], cook_time=40,
    ))
    ids["salad"] = crud.add_recipe(catalog, make_recipe(
        "Caesar Salad", "Chef", ["Lettuce", "Chicken", "Croutons"], ["salad", "lunch"],
        source="Bistro", source_url="http://example.com/caesar",
    ))
    ids["carbonara"] = crud.add_recipe(catalog, make_recipe(
        "Spaghetti Carbonara", "Nonna", ["Spaghetti", "Egg", "Bacon"],
        ["italian", "dinner", "pasta"],
    ))
    return ids


def test_empty_criteria_compiles_to_select_all():
    compiled = compile_search(SearchCriteria())
    assert compiled.predicates == []
    assert compiled.parameters == []
    assert compiled.sql == BASE_QUERY


def test_parameters_follow_emission_order():
    criteria = SearchCriteria(
        ingredients=["Egg", "Flour"],
        keywords="fluffy",
        tags=["breakfast", "sweet"],
        cook_time_range=(5, 15),
        exact_name="Pancakes",
        exclude_tags=["savory"],
    )
    compiled = compile_search(criteria)

    assert len(compiled.predicates) == 6
    assert compiled.parameters == [
        SearchParam.text("Pancakes"),
        SearchParam.int32(5),
        SearchParam.int32(15),
        SearchParam.text("fluffy"),
        SearchParam.text("breakfast"),
        SearchParam.text("sweet"),
        SearchParam.int32(2),
        SearchParam.text("savory"),
        SearchParam.text("Egg"),
        SearchParam.text("Flour"),
        SearchParam.int32(2),
    ]
    # one placeholder per parameter
    assert compiled.sql.count("?") == len(compiled.parameters)


def test_full_text_fields_fold_into_one_predicate():
    compiled = compile_search(
        SearchCriteria(keywords="quick", name="Toad in the Hole", author='Mrs "B"')
    )
    assert len(compiled.predicates) == 1
    assert compiled.parameters == [
        SearchParam.text('(quick) AND name:"Toad in the Hole" AND author:"Mrs ""B"""')
    ]


def test_build_fts_query_without_text_fields():
    assert build_fts_query(None, None, None) is None
    assert build_fts_query("", None, "") is None


def test_repeated_names_count_once():
    compiled = compile_search(SearchCriteria(tags=["italian", "italian"]))
    assert compiled.parameters == [SearchParam.text("italian"), SearchParam.int32(1)]


def test_favorite_false_adds_no_predicate():
    assert compile_search(SearchCriteria(is_favorite=False)).predicates == []
    assert compile_search(SearchCriteria(is_favorite=True)).parameters == []


def test_int32_parameter_out_of_range():
    with pytest.raises(InvalidSearchError):
        SearchParam.int32(2 ** 31).bind()
    assert SearchParam.int64(2 ** 40).bind() == 2 ** 40
    assert SearchParam.real("1.5").bind() == 1.5
    assert SearchParam(ParamKind.TEXT, 7).bind() == "7"


def test_malformed_ranges_are_rejected():
    with pytest.raises(ValidationError):
        SearchCriteria(cook_time_range=(40, 10))
    with pytest.raises(ValidationError):
        SearchCriteria(servings_range=(-1, 4))
    with pytest.raises(ValidationError):
        SearchCriteria(date_range=(date(2024, 2, 1), date(2024, 1, 1)))
    with pytest.raises(ValidationError):
        SearchCriteria(prep_time_range=(10,))


def test_no_criteria_returns_every_recipe(catalog, recipes):
    assert search(catalog) == set(recipes.values())
    assert search(catalog, SearchCriteria()) == set(recipes.values())


def test_keyword_search(catalog, recipes):
    found = search(catalog, SearchCriteria(keywords="Spaghetti"))
    assert found == {recipes["bolognese"], recipes["carbonara"]}
    assert search(catalog, SearchCriteria(keywords="NoSuchRecipe")) == set()


def test_name_and_author_are_field_scoped(catalog, recipes):
    assert search(catalog, SearchCriteria(author="Nonna")) == {
        recipes["bolognese"], recipes["carbonara"]
    }
    # "Nonna" only ever appears in the author column
    assert search(catalog, SearchCriteria(name="Nonna")) == set()
    assert search(catalog, SearchCriteria(name="Chicken Curry")) == {recipes["curry"]}


def test_keyword_operators_stay_inside_name_filter(catalog, recipes):
    criteria = SearchCriteria(keywords="Spaghetti OR Curry", name="Chicken Curry")
    assert compile_search(criteria).parameters == [
        SearchParam.text('(Spaghetti OR Curry) AND name:"Chicken Curry"')
    ]
    assert search(catalog, criteria) == {recipes["curry"]}
    assert search(catalog, SearchCriteria(keywords="Spaghetti OR Curry")) == {
        recipes["bolognese"], recipes["curry"], recipes["carbonara"]
    }


def test_single_ingredient(catalog, recipes):
    found = search(catalog, SearchCriteria(ingredients=["Chicken"]))
    assert found == {recipes["curry"], recipes["salad"]}


def test_ingredients_must_all_be_present(catalog, recipes):
    found = search(catalog, SearchCriteria(ingredients=["Spaghetti", "Egg"]))
    assert found == {recipes["carbonara"]}
    assert search(catalog, SearchCriteria(ingredients=["Chicken", "Beef"])) == set()


def test_exclude_ingredients(catalog, recipes):
    found = search(catalog, SearchCriteria(exclude_ingredients=["Chicken", "Bacon"]))
    assert found == {recipes["bolognese"]}


def test_tags_with_author(catalog, recipes):
    found = search(catalog, SearchCriteria(tags=["italian", "dinner"], author="Nonna"))
    assert found == {recipes["bolognese"], recipes["carbonara"]}


def test_exclude_tags(catalog, recipes):
    found = search(catalog, SearchCriteria(tags=["dinner"], exclude_tags=["italian"]))
    assert found == {recipes["curry"]}
    for recipe_id in search(catalog, SearchCriteria(exclude_tags=["dinner"])):
        assert "dinner" not in crud.get_recipe_by_id(catalog, recipe_id).tags


def test_cook_time_range(catalog, recipes):
    assert search(catalog, SearchCriteria(cook_time_range=(25, 35))) == {recipes["bolognese"]}
    # bounds are inclusive
    assert search(catalog, SearchCriteria(cook_time_range=(40, 40))) == {recipes["curry"]}


def test_exact_filters(catalog, recipes):
    assert search(catalog, SearchCriteria(exact_author="Nonna")) == {
        recipes["bolognese"], recipes["carbonara"]
    }
    assert search(catalog, SearchCriteria(exact_name="Caesar Salad")) == {recipes["salad"]}
    assert search(catalog, SearchCriteria(exact_name="caesar salad")) == set()
    assert search(catalog, SearchCriteria(source="Bistro")) == {recipes["salad"]}
    assert search(
        catalog, SearchCriteria(source_url="http://example.com/caesar")
    ) == {recipes["salad"]}


def test_favorites_and_servings(catalog, recipes):
    assert search(catalog, SearchCriteria(is_favorite=True)) == {recipes["bolognese"]}
    assert search(catalog, SearchCriteria(is_favorite=False)) == set(recipes.values())
    assert search(catalog, SearchCriteria(servings_range=(4, 4))) == set(recipes.values())
    assert search(catalog, SearchCriteria(servings_range=(5, 8))) == set()


def test_date_range(catalog, recipes):
    today = date.today()
    around_now = SearchCriteria(date_range=(today - timedelta(days=2), today + timedelta(days=2)))
    assert search(catalog, around_now) == set(recipes.values())
    long_ago = SearchCriteria(date_range=(date(2000, 1, 1), date(2000, 12, 31)))
    assert search(catalog, long_ago) == set()


def test_combined_filters_narrow_results(catalog, recipes):
    criteria = SearchCriteria(
        keywords="Spaghetti", ingredients=["Beef"], is_favorite=True, cook_time_range=(0, 60)
    )
    assert search(catalog, criteria) == {recipes["bolognese"]}


def test_malformed_full_text_query(catalog, recipes):
    with pytest.raises(InvalidSearchError):
        search(catalog, SearchCriteria(keywords="spaghetti AND"))
    with pytest.raises(InvalidSearchError):
        search(catalog, SearchCriteria(keywords='"unbalanced'))


def test_closed_catalog_returns_nothing(catalog, recipes):
    catalog.close()
    assert search(catalog) == set()
