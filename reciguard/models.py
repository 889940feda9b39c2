"""SQLAlchemy ORM models for ReciGuard.

Tables:
- users: Recipe owners / viewers
- recipes: Core recipe data (owned by a user, or catalogue recipes with no owner)
- nutrition: Optional nutrition snapshot, one per recipe
- recipe_stats: View / scrap counters, one per recipe
- instructions: Ordered cooking steps, keyed per recipe by instruction_id (1..N)
- ingredients: Shared ingredient catalog (unique names)
- recipe_ingredients: Recipe <-> ingredient association with a free-text quantity
- user_scraps: Recipes bookmarked by a user
- user_ingredients: Ingredients a user is allergic to
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Text,
    Integer,
    Float,
    ForeignKey,
    Index,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from .db import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    recipes: Mapped[list["Recipe"]] = relationship("Recipe", back_populates="user")
    allergies: Mapped[list["UserIngredient"]] = relationship(
        "UserIngredient", back_populates="user", cascade="all, delete-orphan"
    )


class Recipe(Base):
    """Core recipe. Owns its instructions, ingredient links, nutrition and stats."""
    __tablename__ = "recipes"
    __table_args__ = (
        Index("ix_recipes_user_id", "user_id"),
        Index("ix_recipes_cuisine", "cuisine"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    recipe_name: Mapped[str] = mapped_column(String(200), nullable=False)
    image_path: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    serving: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    cuisine: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    food_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    cooking_style: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    user: Mapped[Optional["User"]] = relationship("User", back_populates="recipes")

    instructions: Mapped[list["Instruction"]] = relationship(
        "Instruction", back_populates="recipe", cascade="all, delete-orphan",
        order_by="Instruction.instruction_id"
    )
    ingredients: Mapped[list["RecipeIngredient"]] = relationship(
        "RecipeIngredient", back_populates="recipe", cascade="all, delete-orphan"
    )
    nutrition: Mapped[Optional["Nutrition"]] = relationship(
        "Nutrition", back_populates="recipe", uselist=False, cascade="all, delete-orphan"
    )
    stats: Mapped[Optional["RecipeStats"]] = relationship(
        "RecipeStats", back_populates="recipe", uselist=False, cascade="all, delete-orphan"
    )
    scraps: Mapped[list["UserScrap"]] = relationship(
        "UserScrap", back_populates="recipe", cascade="all, delete-orphan"
    )


class Nutrition(Base):
    """Nutrition snapshot. User-written recipes usually have none."""
    __tablename__ = "nutrition"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recipe_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    calories: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    sodium: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    carbohydrate: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    fat: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    protein: Mapped[float] = mapped_column(Float, nullable=False, default=0)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="nutrition")


class RecipeStats(Base):
    __tablename__ = "recipe_stats"
    __table_args__ = (
        CheckConstraint("view_count >= 0", name="ck_recipe_stats_view_count"),
        CheckConstraint("scrap_count >= 0", name="ck_recipe_stats_scrap_count"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recipe_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    scrap_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="stats")


class Instruction(Base):
    """Ordered cooking step. instruction_id is the 1-based position within the recipe."""
    __tablename__ = "instructions"
    __table_args__ = (
        UniqueConstraint("recipe_id", "instruction_id", name="uq_instructions_recipe_position"),
        Index("ix_instructions_recipe_id", "recipe_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recipe_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )

    instruction_id: Mapped[int] = mapped_column(Integer, nullable=False)
    instruction: Mapped[str] = mapped_column(Text, nullable=False, default="")
    instruction_image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="instructions")


class Ingredient(Base):
    """Shared ingredient catalog entry. Never owned by a single recipe."""
    __tablename__ = "ingredients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)


class RecipeIngredient(Base):
    """Recipe <-> ingredient link with a free-text quantity ("2 cups")."""
    __tablename__ = "recipe_ingredients"
    __table_args__ = (
        UniqueConstraint("recipe_id", "ingredient_id", name="uq_recipe_ingredients_pair"),
        Index("ix_recipe_ingredients_recipe_id", "recipe_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    recipe_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )
    ingredient_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ingredients.id"), nullable=False
    )
    quantity: Mapped[str] = mapped_column(String(100), nullable=False)

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="ingredients")
    ingredient: Mapped["Ingredient"] = relationship("Ingredient")

    @property
    def name(self) -> str:
        return self.ingredient.name


class UserScrap(Base):
    __tablename__ = "user_scraps"
    __table_args__ = (
        UniqueConstraint("user_id", "recipe_id", name="uq_user_scraps_pair"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    recipe_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="scraps")


class UserIngredient(Base):
    """An ingredient the user is allergic to."""
    __tablename__ = "user_ingredients"
    __table_args__ = (
        UniqueConstraint("user_id", "ingredient_id", name="uq_user_ingredients_pair"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    ingredient_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="allergies")
    ingredient: Mapped["Ingredient"] = relationship("Ingredient")
