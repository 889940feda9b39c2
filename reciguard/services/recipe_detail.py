from typing import Iterable, Optional

from ..errors import NotFound
from ..models import Instruction, Nutrition, Recipe, RecipeIngredient, RecipeStats
from ..schemas import IngredientOut, InstructionOut, RecipeDetailOut

NUTRIENT_FIELDS = ("calories", "sodium", "carbohydrate", "fat", "protein")


def nutrient_values(nutrition: Optional[Nutrition]) -> dict[str, int]:
    """Integer nutrient values. No nutrition record means zero for every field."""
    if nutrition is None:
        return {name: 0 for name in NUTRIENT_FIELDS}
    return {name: int(getattr(nutrition, name) or 0) for name in NUTRIENT_FIELDS}


def build_recipe_detail(
    recipe: Recipe,
    stats: Optional[RecipeStats],
    ingredients: Iterable[RecipeIngredient],
    instructions: Iterable[Instruction],
    similar_ingredients: list[str],
    scrapped: bool,
) -> RecipeDetailOut:
    """Assemble the detail view. Stats always exist alongside a recipe."""
    if stats is None:
        raise NotFound(f"Stats for recipe {recipe.id} not found")

    return RecipeDetailOut(
        id=recipe.id,
        image_path=recipe.image_path,
        recipe_name=recipe.recipe_name,
        serving=recipe.serving,
        cuisine=recipe.cuisine,
        food_type=recipe.food_type,
        cooking_style=recipe.cooking_style,
        **nutrient_values(recipe.nutrition),
        scrapped=scrapped,
        scrap_count=stats.scrap_count,
        view_count=stats.view_count,
        ingredients=[
            IngredientOut(ingredient=ri.name, quantity=ri.quantity) for ri in ingredients
        ],
        instructions=[
            InstructionOut(
                instruction_id=i.instruction_id,
                instruction=i.instruction,
                instruction_image=i.instruction_image,
            )
            for i in sorted(instructions, key=lambda i: i.instruction_id)
        ],
        similar_ingredients=list(similar_ingredients),
    )
