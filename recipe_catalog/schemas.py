from datetime import date, datetime
from typing import List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator

# quantity stored for an ingredient whose amount was not given
QUANTITY_UNSPECIFIED = -1.0


class IngredientInfo(BaseModel):
    name: str = Field(
        ..., json_schema_extra={"example": "All-purpose flour"}
    )
    quantity: float = Field(
        QUANTITY_UNSPECIFIED, json_schema_extra={"example": 1.5}
    )
    unit: str = Field("", json_schema_extra={"example": "cups"})
    notes: str = ""
    optional: bool = False


class RecipeData(BaseModel):
    name: str = Field(
        ..., json_schema_extra={"example": "Classic Pancakes"}
    )
    description: str = ""
    prep_time_minutes: int = Field(0, ge=0)
    cook_time_minutes: int = Field(0, ge=0)
    servings: int = Field(1, ge=1)
    is_favorite: bool = False
    source: str = ""
    source_url: str = ""
    author: str = ""
    ingredients: List[IngredientInfo] = Field(default_factory=list)
    tags: List[str] = Field(
        default_factory=list,
        json_schema_extra={"example": ["breakfast", "easy"]},
    )
    instructions: List[str] = Field(
        default_factory=list,
        json_schema_extra={
            "example": [
                "Whisk the dry ingredients",
                "Add milk and egg",
                "Cook on a griddle until golden",
            ]
        },
    )


class Recipe(RecipeData):
    """A recipe read back from the catalog."""

    id: int
    date_added: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


IntRange = Tuple[int, int]


class SearchCriteria(BaseModel):
    """Sparse search filter; every unset field adds no predicate."""

    model_config = ConfigDict(extra="forbid")

    exact_name: Optional[str] = None
    exact_author: Optional[str] = None
    prep_time_range: Optional[IntRange] = None
    cook_time_range: Optional[IntRange] = None
    servings_range: Optional[IntRange] = None
    # True restricts to favorites; False does not mean "not a favorite"
    is_favorite: Optional[bool] = None
    date_range: Optional[Tuple[date, date]] = None
    source: Optional[str] = None
    source_url: Optional[str] = None

    # full-text
    name: Optional[str] = None
    author: Optional[str] = None
    keywords: Optional[str] = None

    tags: Optional[List[str]] = None
    exclude_tags: Optional[List[str]] = None
    ingredients: Optional[List[str]] = None
    exclude_ingredients: Optional[List[str]] = None

    @field_validator("prep_time_range", "cook_time_range", "servings_range")
    @classmethod
    def _check_int_range(cls, value):
        if value is None:
            return value
        low, high = value
        if low < 0 or high < 0:
            raise ValueError("range bounds must be non-negative")
        if low > high:
            raise ValueError("range lower bound is greater than upper bound")
        return value

    @field_validator("date_range")
    @classmethod
    def _check_date_range(cls, value):
        if value is not None and value[0] > value[1]:
            raise ValueError("date range starts after it ends")
        return value
