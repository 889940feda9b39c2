"""Recipe use cases.

Every operation takes the acting user's id explicitly. Write operations run in the
caller's session and commit exactly once; any structural error rolls the whole
operation back. Image store calls are best-effort side effects.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload, selectinload

from ..errors import Forbidden, NotFound, StorageError
from ..infra.redis_cache import get_or_set_json_sync
from ..models import (
    Ingredient,
    Recipe,
    RecipeIngredient,
    RecipeStats,
    UserIngredient,
    UserScrap,
)
from ..schemas import (
    IngredientOut,
    InstructionOut,
    RecipeDetailOut,
    RecipeForm,
    RecipeFormOut,
    RecipeListOut,
    RecipeRecommendOut,
    ScrapOut,
)
from ..settings import settings
from .ingredient_catalog import IngredientCatalog
from .recipe_detail import build_recipe_detail
from .recommendation import RecommendationClient
from .reconcile import (
    ImageChanges,
    InstructionSubmission,
    apply_image_change,
    apply_ingredient_plan,
    apply_instruction_plan,
    image_action,
    plan_ingredients,
    plan_instructions,
)
from .storage import ImageStore

logger = logging.getLogger("reciguard.recipes")


# --- Loading ---


def load_recipe(db: Session, recipe_id: int) -> Optional[Recipe]:
    """Recipe with all children materialized, or None."""
    return db.scalar(
        select(Recipe)
        .options(
            selectinload(Recipe.ingredients).joinedload(RecipeIngredient.ingredient),
            selectinload(Recipe.instructions),
            joinedload(Recipe.stats),
            joinedload(Recipe.nutrition),
        )
        .where(Recipe.id == recipe_id)
    )


def get_recipe(db: Session, recipe_id: int) -> Recipe:
    recipe = load_recipe(db, recipe_id)
    if recipe is None:
        raise NotFound(f"Recipe {recipe_id} not found")
    return recipe


def get_owned_recipe(db: Session, recipe_id: int, user_id: int) -> Recipe:
    recipe = get_recipe(db, recipe_id)
    if recipe.user_id != user_id:
        raise Forbidden(f"Recipe {recipe_id} is not owned by user {user_id}")
    return recipe


def is_scrapped(db: Session, user_id: int, recipe_id: int) -> bool:
    return db.scalar(
        select(UserScrap.id).where(UserScrap.user_id == user_id, UserScrap.recipe_id == recipe_id)
    ) is not None


def allergy_ingredient_names(db: Session, user_id: int) -> list[str]:
    return list(
        db.scalars(
            select(Ingredient.name)
            .join(UserIngredient, UserIngredient.ingredient_id == Ingredient.id)
            .where(UserIngredient.user_id == user_id)
        )
    )


# --- Listing ---


def _to_list_out(db: Session, user_id: int, recipes: list[Recipe]) -> list[RecipeListOut]:
    scrapped_ids = set()
    if recipes:
        scrapped_ids = set(
            db.scalars(
                select(UserScrap.recipe_id).where(
                    UserScrap.user_id == user_id,
                    UserScrap.recipe_id.in_([r.id for r in recipes]),
                )
            )
        )
    return [
        RecipeListOut(
            id=r.id,
            recipe_name=r.recipe_name,
            image_path=r.image_path,
            serving=r.serving,
            scrapped=r.id in scrapped_ids,
        )
        for r in recipes
    ]


def _contains_pattern(query: str) -> str:
    """LIKE pattern matching query literally (escape char is a backslash)."""
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _list_recipes(
    db: Session,
    user_id: int,
    *,
    cuisine: Optional[str] = None,
    query: Optional[str] = None,
    exclude_allergens: bool = False,
) -> list[RecipeListOut]:
    stmt = select(Recipe).order_by(Recipe.id)
    if cuisine is not None:
        stmt = stmt.where(Recipe.cuisine == cuisine)
    if query is not None:
        stmt = stmt.where(Recipe.recipe_name.ilike(_contains_pattern(query), escape="\\"))

    if exclude_allergens:
        allergens = allergy_ingredient_names(db, user_id)
        if not allergens:
            raise NotFound(f"User {user_id} has no allergy information")
        containing = (
            select(RecipeIngredient.recipe_id)
            .join(Ingredient, RecipeIngredient.ingredient_id == Ingredient.id)
            .where(Ingredient.name.in_(allergens))
        )
        stmt = stmt.where(Recipe.id.not_in(containing))

    recipes = list(db.scalars(stmt))
    if not recipes:
        parts = [f"cuisine={cuisine!r}" if cuisine else None, f"query={query!r}" if query else None]
        scope = ", ".join(p for p in parts if p) or "all"
        suffix = " after allergy filtering" if exclude_allergens else ""
        raise NotFound(f"No recipes found ({scope}){suffix}")
    return _to_list_out(db, user_id, recipes)


def list_recipes(db: Session, user_id: int) -> list[RecipeListOut]:
    return _list_recipes(db, user_id)


def list_filtered_recipes(db: Session, user_id: int) -> list[RecipeListOut]:
    return _list_recipes(db, user_id, exclude_allergens=True)


def list_recipes_by_cuisine(db: Session, user_id: int, cuisine: str) -> list[RecipeListOut]:
    return _list_recipes(db, user_id, cuisine=cuisine)


def list_filtered_recipes_by_cuisine(db: Session, user_id: int, cuisine: str) -> list[RecipeListOut]:
    return _list_recipes(db, user_id, cuisine=cuisine, exclude_allergens=True)


def search_recipes(db: Session, user_id: int, query: str) -> list[RecipeListOut]:
    return _list_recipes(db, user_id, query=query)


def search_filtered_recipes(db: Session, user_id: int, query: str) -> list[RecipeListOut]:
    return _list_recipes(db, user_id, query=query, exclude_allergens=True)


def list_my_recipes(db: Session, user_id: int) -> list[RecipeListOut]:
    recipes = list(db.scalars(select(Recipe).where(Recipe.user_id == user_id).order_by(Recipe.id)))
    return _to_list_out(db, user_id, recipes)


# --- Create / edit ---


def _instruction_submissions(form: RecipeForm, images: dict[int, bytes]) -> list[InstructionSubmission]:
    return [
        InstructionSubmission(body=item.instruction, image=images.get(position), removed=item.image_removed)
        for position, item in enumerate(form.instructions or [], start=1)
    ]


def _delete_images(store: ImageStore, references: list[str], context: str) -> None:
    """Best-effort store cleanup; failures are logged and skipped."""
    for reference in references:
        try:
            store.delete(reference)
        except StorageError as e:
            logger.warning(f"Failed to delete image {reference} for {context}: {e}")


def _finish_image_changes(store: ImageStore, changes: ImageChanges, recipe_id: int) -> None:
    """After commit: old images are no longer referenced by any row."""
    _delete_images(store, changes.superseded, f"recipe {recipe_id}")
    if not changes.dropped:
        return
    if settings.purge_dropped_instruction_images:
        _delete_images(store, changes.dropped, f"dropped instructions of recipe {recipe_id}")
    else:
        logger.info(f"Recipe {recipe_id}: kept {len(changes.dropped)} images of dropped instructions")


def create_recipe(
    db: Session,
    user_id: int,
    form: RecipeForm,
    store: ImageStore,
    image: Optional[bytes] = None,
    instruction_images: Optional[dict[int, bytes]] = None,
) -> Recipe:
    """Create a recipe with its ingredients, instructions and zeroed stats."""
    # Validate rows before any upload happens
    ingredient_plan = plan_ingredients([], [row.as_pair() for row in form.ingredients or []])
    instruction_plan = plan_instructions([], _instruction_submissions(form, instruction_images or {}))

    recipe = Recipe(
        user_id=user_id,
        recipe_name=form.recipe_name,
        serving=form.serving,
        cuisine=form.cuisine,
        food_type=form.food_type,
        cooking_style=form.cooking_style,
        stats=RecipeStats(view_count=0, scrap_count=0),
    )
    db.add(recipe)

    changes = ImageChanges()
    try:
        apply_ingredient_plan(db, recipe, ingredient_plan, IngredientCatalog(db))
        apply_instruction_plan(recipe, instruction_plan, store, changes)
        recipe.image_path = apply_image_change(
            store, None, image_action(image, False), changes, image, label="recipe image"
        )
        db.commit()
    except Exception:
        db.rollback()
        _delete_images(store, changes.uploaded, "rolled back recipe creation")
        raise

    db.refresh(recipe)
    logger.info(f"User {user_id} created recipe {recipe.id} ({recipe.recipe_name!r})")
    return recipe


def update_recipe(
    db: Session,
    recipe_id: int,
    user_id: int,
    form: RecipeForm,
    store: ImageStore,
    client: RecommendationClient,
    image: Optional[bytes] = None,
    instruction_images: Optional[dict[int, bytes]] = None,
) -> RecipeDetailOut:
    """Apply an edit form to a recipe owned by user_id and return the new detail view.

    Scalar fields, ingredients and instructions commit together. A None
    ingredients/instructions list leaves that collection as it is. Replaced
    and removed images leave the store only once the commit succeeded.
    """
    recipe = get_owned_recipe(db, recipe_id, user_id)

    ingredient_plan = None
    if form.ingredients is not None:
        ingredient_plan = plan_ingredients(
            recipe.ingredients, [row.as_pair() for row in form.ingredients]
        )

    changes = ImageChanges()
    try:
        recipe.recipe_name = form.recipe_name
        recipe.serving = form.serving
        recipe.cuisine = form.cuisine
        recipe.food_type = form.food_type
        recipe.cooking_style = form.cooking_style

        if ingredient_plan is not None:
            apply_ingredient_plan(db, recipe, ingredient_plan, IngredientCatalog(db))

        if form.instructions is not None:
            instruction_plan = plan_instructions(
                recipe.instructions, _instruction_submissions(form, instruction_images or {})
            )
            apply_instruction_plan(recipe, instruction_plan, store, changes)

        recipe.image_path = apply_image_change(
            store,
            recipe.image_path,
            image_action(image, form.image_removed),
            changes,
            image,
            label=f"image for recipe {recipe_id}",
        )
        db.commit()
    except Exception:
        db.rollback()
        _delete_images(store, changes.uploaded, f"rolled back edit of recipe {recipe_id}")
        raise

    _finish_image_changes(store, changes, recipe_id)
    return get_recipe_detail(db, recipe_id, user_id, client, count_view=False)


def get_recipe_form(db: Session, recipe_id: int, user_id: int) -> RecipeFormOut:
    recipe = get_owned_recipe(db, recipe_id, user_id)
    return RecipeFormOut(
        id=recipe.id,
        recipe_name=recipe.recipe_name,
        image_path=recipe.image_path,
        serving=recipe.serving,
        cuisine=recipe.cuisine,
        food_type=recipe.food_type,
        cooking_style=recipe.cooking_style,
        ingredients=[IngredientOut(ingredient=ri.name, quantity=ri.quantity) for ri in recipe.ingredients],
        instructions=[
            InstructionOut(
                instruction_id=i.instruction_id,
                instruction=i.instruction,
                instruction_image=i.instruction_image,
            )
            for i in recipe.instructions
        ],
    )


def delete_recipe(db: Session, recipe_id: int, user_id: int, store: ImageStore) -> None:
    recipe = get_owned_recipe(db, recipe_id, user_id)

    # Collect before the rows are gone
    references = [recipe.image_path] if recipe.image_path else []
    references += [i.instruction_image for i in recipe.instructions if i.instruction_image]

    db.delete(recipe)
    db.commit()

    _delete_images(store, references, f"recipe {recipe_id}")


# --- Read side ---


def get_recipe_detail(
    db: Session,
    recipe_id: int,
    user_id: int,
    client: RecommendationClient,
    count_view: bool = True,
) -> RecipeDetailOut:
    recipe = get_recipe(db, recipe_id)
    stats = recipe.stats

    if count_view and stats is not None:
        stats.view_count += 1
        db.commit()

    return build_recipe_detail(
        recipe,
        stats,
        recipe.ingredients,
        recipe.instructions,
        similar_ingredients=client.similar_ingredients(recipe.id, user_id),
        scrapped=is_scrapped(db, user_id, recipe.id),
    )


def scrap_recipe(db: Session, recipe_id: int, user_id: int) -> ScrapOut:
    recipe = get_recipe(db, recipe_id)
    if recipe.stats is None:
        raise NotFound(f"Stats for recipe {recipe_id} not found")

    if not is_scrapped(db, user_id, recipe_id):
        db.add(UserScrap(user_id=user_id, recipe_id=recipe_id))
        recipe.stats.scrap_count += 1
        db.commit()
    return ScrapOut(recipe_id=recipe_id, scrapped=True, scrap_count=recipe.stats.scrap_count)


def unscrap_recipe(db: Session, recipe_id: int, user_id: int) -> ScrapOut:
    recipe = get_recipe(db, recipe_id)
    if recipe.stats is None:
        raise NotFound(f"Stats for recipe {recipe_id} not found")

    scrap = db.scalar(
        select(UserScrap).where(UserScrap.user_id == user_id, UserScrap.recipe_id == recipe_id)
    )
    if scrap is not None:
        db.delete(scrap)
        recipe.stats.scrap_count = max(0, recipe.stats.scrap_count - 1)
        db.commit()
    return ScrapOut(recipe_id=recipe_id, scrapped=False, scrap_count=recipe.stats.scrap_count)


def get_today_recipe(db: Session, user_id: int, client: RecommendationClient) -> RecipeRecommendOut:
    """Today's AI pick for the user. Empty (all None) when the model has nothing."""

    def compute() -> dict:
        recipe_id = client.recommend(user_id)
        if recipe_id is None:
            return RecipeRecommendOut().model_dump()
        recipe = db.get(Recipe, recipe_id)
        if recipe is None:
            logger.error(f"Recommended recipe {recipe_id} does not exist")
            return RecipeRecommendOut().model_dump()
        return RecipeRecommendOut(
            recipe_id=recipe.id, image_path=recipe.image_path, recipe_name=recipe.recipe_name
        ).model_dump()

    key = f"reciguard:today:{user_id}:{date.today().isoformat()}"
    value, _hit = get_or_set_json_sync(
        key,
        settings.recommendation_cache_ttl_sec,
        compute,
        should_cache=lambda v: v.get("recipe_id") is not None,
    )
    return RecipeRecommendOut(**value)
