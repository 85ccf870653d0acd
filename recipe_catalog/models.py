from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from .db import Base


class Recipe(Base):
    __tablename__ = "recipes"
    __table_args__ = (
        CheckConstraint("is_favorite IN (0, 1)", name="ck_recipes_favorite"),
        {"sqlite_autoincrement": True},
    )

    recipe_id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False, index=True)
    description = Column(Text, nullable=True)
    prep_time_minutes = Column(Integer, nullable=True)
    cook_time_minutes = Column(Integer, nullable=True)
    servings = Column(Integer, nullable=True)
    is_favorite = Column(Boolean, nullable=False, default=False)
    # assigned by the store at insert, never updated
    date_added = Column(DateTime, nullable=False,
                        server_default=func.current_timestamp())
    source = Column(Text, nullable=True)
    source_url = Column(Text, nullable=True)
    author = Column(Text, nullable=True)


class Ingredient(Base):
    __tablename__ = "ingredients"
    __table_args__ = {"sqlite_autoincrement": True}

    ingredient_id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False, unique=True)


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = {"sqlite_autoincrement": True}

    tag_id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False, unique=True)


class RecipeIngredient(Base):
    __tablename__ = "recipe_ingredients"
    __table_args__ = (
        CheckConstraint("optional IN (0, 1)", name="ck_recipe_ingredients_optional"),
    )

    recipe_id = Column(
        Integer,
        ForeignKey("recipes.recipe_id", ondelete="CASCADE"),
        primary_key=True,
    )
    ingredient_id = Column(
        Integer,
        ForeignKey("ingredients.ingredient_id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )
    quantity = Column(Float, nullable=True)
    unit = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    optional = Column(Boolean, nullable=False, default=False)


class RecipeTag(Base):
    __tablename__ = "recipe_tags"

    recipe_id = Column(
        Integer,
        ForeignKey("recipes.recipe_id", ondelete="CASCADE"),
        primary_key=True,
    )
    tag_id = Column(
        Integer,
        ForeignKey("tags.tag_id", ondelete="CASCADE"),
        primary_key=True,
        index=True,
    )


class Instruction(Base):
    __tablename__ = "instructions"
    __table_args__ = (
        UniqueConstraint("recipe_id", "step_number", name="uq_instruction_step"),
        {"sqlite_autoincrement": True},
    )

    instruction_id = Column(Integer, primary_key=True)
    recipe_id = Column(
        Integer,
        ForeignKey("recipes.recipe_id", ondelete="CASCADE"),
        nullable=False,
    )
    step_number = Column(Integer, nullable=False)
    instruction = Column(Text, nullable=False)
