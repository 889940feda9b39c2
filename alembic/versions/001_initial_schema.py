"""Initial schema: users, recipes, instructions, ingredients and their links

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(80), unique=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "recipes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("recipe_name", sa.String(200), nullable=False),
        sa.Column("image_path", sa.String(500), nullable=True),
        sa.Column("serving", sa.Integer, nullable=False),
        sa.Column("cuisine", sa.String(50), nullable=True),
        sa.Column("food_type", sa.String(50), nullable=True),
        sa.Column("cooking_style", sa.String(50), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_recipes_user_id", "recipes", ["user_id"])
    op.create_index("ix_recipes_cuisine", "recipes", ["cuisine"])

    op.create_table(
        "nutrition",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("recipe_id", sa.Integer, sa.ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("calories", sa.Float, nullable=False, server_default="0"),
        sa.Column("sodium", sa.Float, nullable=False, server_default="0"),
        sa.Column("carbohydrate", sa.Float, nullable=False, server_default="0"),
        sa.Column("fat", sa.Float, nullable=False, server_default="0"),
        sa.Column("protein", sa.Float, nullable=False, server_default="0"),
    )

    op.create_table(
        "recipe_stats",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("recipe_id", sa.Integer, sa.ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, unique=True),
        sa.Column("view_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("scrap_count", sa.Integer, nullable=False, server_default="0"),
        sa.CheckConstraint("view_count >= 0", name="ck_recipe_stats_view_count"),
        sa.CheckConstraint("scrap_count >= 0", name="ck_recipe_stats_scrap_count"),
    )

    op.create_table(
        "instructions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("recipe_id", sa.Integer, sa.ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("instruction_id", sa.Integer, nullable=False),
        sa.Column("instruction", sa.Text, nullable=False),
        sa.Column("instruction_image", sa.String(500), nullable=True),
        sa.UniqueConstraint("recipe_id", "instruction_id", name="uq_instructions_recipe_position"),
    )
    op.create_index("ix_instructions_recipe_id", "instructions", ["recipe_id"])

    op.create_table(
        "ingredients",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
    )

    op.create_table(
        "recipe_ingredients",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("recipe_id", sa.Integer, sa.ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("ingredient_id", sa.Integer, sa.ForeignKey("ingredients.id"), nullable=False),
        sa.Column("quantity", sa.String(100), nullable=False),
        sa.UniqueConstraint("recipe_id", "ingredient_id", name="uq_recipe_ingredients_pair"),
    )
    op.create_index("ix_recipe_ingredients_recipe_id", "recipe_ingredients", ["recipe_id"])

    op.create_table(
        "user_scraps",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("recipe_id", sa.Integer, sa.ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "recipe_id", name="uq_user_scraps_pair"),
    )

    op.create_table(
        "user_ingredients",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("ingredient_id", sa.Integer, sa.ForeignKey("ingredients.id", ondelete="CASCADE"), nullable=False),
        sa.UniqueConstraint("user_id", "ingredient_id", name="uq_user_ingredients_pair"),
    )


def downgrade() -> None:
    op.drop_table("user_ingredients")
    op.drop_table("user_scraps")
    op.drop_table("recipe_ingredients")
    op.drop_table("ingredients")
    op.drop_table("instructions")
    op.drop_table("recipe_stats")
    op.drop_table("nutrition")
    op.drop_table("recipes")
    op.drop_table("users")
