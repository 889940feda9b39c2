import pytest

from reciguard.errors import NotFound
from reciguard.models import Ingredient, Instruction, Nutrition, Recipe, RecipeIngredient, RecipeStats
from reciguard.services.recipe_detail import build_recipe_detail, nutrient_values


def _recipe(nutrition=None):
    return Recipe(
        id=11,
        recipe_name="Bibimbap",
        image_path="/media/images/b.webp",
        serving=2,
        cuisine="korean",
        food_type="rice",
        cooking_style="mixed",
        nutrition=nutrition,
    )


def test_no_nutrition_means_zeros():
    assert nutrient_values(None) == {
        "calories": 0,
        "sodium": 0,
        "carbohydrate": 0,
        "fat": 0,
        "protein": 0,
    }


def test_nutrient_values_are_truncated_to_int():
    nutrition = Nutrition(calories=512.8, sodium=1.2, carbohydrate=60.0, fat=14.5, protein=20.9)
    assert nutrient_values(nutrition) == {
        "calories": 512,
        "sodium": 1,
        "carbohydrate": 60,
        "fat": 14,
        "protein": 20,
    }


def test_build_detail_without_nutrition():
    recipe = _recipe()
    stats = RecipeStats(view_count=4, scrap_count=2)
    detail = build_recipe_detail(recipe, stats, [], [], similar_ingredients=[], scrapped=False)

    assert detail.calories == detail.sodium == detail.carbohydrate == detail.fat == detail.protein == 0
    assert detail.view_count == 4
    assert detail.scrap_count == 2


def test_build_detail_sorts_instructions_and_maps_ingredients():
    recipe = _recipe()
    ingredients = [RecipeIngredient(ingredient=Ingredient(name="rice"), quantity="1 bowl")]
    instructions = [
        Instruction(instruction_id=2, instruction="top", instruction_image=None),
        Instruction(instruction_id=1, instruction="cook rice", instruction_image="/media/images/s1.webp"),
    ]

    detail = build_recipe_detail(
        recipe,
        RecipeStats(view_count=0, scrap_count=0),
        ingredients,
        instructions,
        similar_ingredients=["sesame"],
        scrapped=True,
    )

    assert [i.instruction_id for i in detail.instructions] == [1, 2]
    assert detail.instructions[0].instruction_image == "/media/images/s1.webp"
    assert detail.ingredients[0].ingredient == "rice"
    assert detail.ingredients[0].quantity == "1 bowl"
    assert detail.similar_ingredients == ["sesame"]
    assert detail.scrapped is True


def test_missing_stats_is_not_found():
    with pytest.raises(NotFound):
        build_recipe_detail(_recipe(), None, [], [], similar_ingredients=[], scrapped=False)
