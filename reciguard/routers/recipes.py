"""Recipes API router.

Endpoints:
- GET /api/recipes[/filtered] - All recipes (optionally without the viewer's allergens)
- GET /api/recipes/cuisine/{cuisine}[/filtered] - Recipes of one cuisine
- GET /api/recipes/search[/filtered]?query= - Recipes by name
- GET /api/recipes/mine - Recipes written by the viewer
- GET /api/recipes/today - AI recommendation of the day
- POST /api/recipes - Create recipe (multipart)
- GET /api/recipes/{id} - Recipe detail with allergy warnings
- GET /api/recipes/{id}/edit - Edit form prefill
- PUT /api/recipes/{id} - Edit recipe (multipart)
- DELETE /api/recipes/{id} - Delete recipe and its images
- POST|DELETE /api/recipes/{id}/scrap - Bookmark / un-bookmark

Multipart bodies carry a `form` part (RecipeForm JSON), an optional `image` file
and optional `instruction_images[k]` files, k being the 1-based instruction position.
"""

import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from ..db import get_db
from ..deps import get_ai_client, get_current_user_id, get_store
from ..schemas import (
    RecipeDetailOut,
    RecipeForm,
    RecipeFormOut,
    RecipeListOut,
    RecipeRecommendOut,
    ScrapOut,
)
from ..services import recipe_service
from ..services.recommendation import RecommendationClient
from ..services.storage import ImageStore

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)
logger = logging.getLogger("reciguard.recipes")

INSTRUCTION_IMAGE_KEY = re.compile(r"instruction_images\[(\d+)\]")


async def _read_upload(value) -> Optional[bytes]:
    if not isinstance(value, UploadFile):
        return None
    content = await value.read()
    return content or None


async def _parse_multipart(request: Request) -> tuple[RecipeForm, Optional[bytes], dict[int, bytes]]:
    data = await request.form()

    raw_form = data.get("form")
    if raw_form is None:
        raise HTTPException(status_code=422, detail="Missing 'form' part")
    if isinstance(raw_form, UploadFile):
        raw_form = await raw_form.read()
    try:
        form = RecipeForm.model_validate_json(raw_form)
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))

    image = await _read_upload(data.get("image"))

    instruction_images: dict[int, bytes] = {}
    for key, value in data.multi_items():
        match = INSTRUCTION_IMAGE_KEY.fullmatch(key)
        if not match:
            continue
        content = await _read_upload(value)
        if content:
            instruction_images[int(match.group(1))] = content

    logger.info(f"Parsed instruction image positions: {sorted(instruction_images)}")
    return form, image, instruction_images


# --- Lists ---


@router.get("/recipes", response_model=list[RecipeListOut])
def list_recipes(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return recipe_service.list_recipes(db, user_id)


@router.get("/recipes/filtered", response_model=list[RecipeListOut])
def list_filtered_recipes(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    """All recipes that contain none of the viewer's allergy ingredients."""
    return recipe_service.list_filtered_recipes(db, user_id)


@router.get("/recipes/cuisine/{cuisine}", response_model=list[RecipeListOut])
def list_recipes_by_cuisine(
    cuisine: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return recipe_service.list_recipes_by_cuisine(db, user_id, cuisine)


@router.get("/recipes/cuisine/{cuisine}/filtered", response_model=list[RecipeListOut])
def list_filtered_recipes_by_cuisine(
    cuisine: str,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return recipe_service.list_filtered_recipes_by_cuisine(db, user_id, cuisine)


@router.get("/recipes/search", response_model=list[RecipeListOut])
def search_recipes(
    query: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return recipe_service.search_recipes(db, user_id, query)


@router.get("/recipes/search/filtered", response_model=list[RecipeListOut])
def search_filtered_recipes(
    query: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return recipe_service.search_filtered_recipes(db, user_id, query)


@router.get("/recipes/mine", response_model=list[RecipeListOut])
def list_my_recipes(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return recipe_service.list_my_recipes(db, user_id)


@router.get("/recipes/today", response_model=RecipeRecommendOut)
@limiter.limit("30/minute")
def get_today_recipe(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    client: RecommendationClient = Depends(get_ai_client),
):
    """Today's recommendation. Always 200; empty fields when the model is unavailable."""
    return recipe_service.get_today_recipe(db, user_id, client)


# --- Create / edit ---


@router.post("/recipes", response_model=RecipeDetailOut, status_code=201)
async def create_recipe(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    store: ImageStore = Depends(get_store),
    client: RecommendationClient = Depends(get_ai_client),
):
    form, image, instruction_images = await _parse_multipart(request)
    recipe = await run_in_threadpool(
        recipe_service.create_recipe, db, user_id, form, store, image, instruction_images
    )
    return await run_in_threadpool(
        recipe_service.get_recipe_detail, db, recipe.id, user_id, client, False
    )


@router.get("/recipes/{recipe_id}", response_model=RecipeDetailOut)
def get_recipe_detail(
    recipe_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    client: RecommendationClient = Depends(get_ai_client),
):
    return recipe_service.get_recipe_detail(db, recipe_id, user_id, client)


@router.get("/recipes/{recipe_id}/edit", response_model=RecipeFormOut)
def get_recipe_form(
    recipe_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return recipe_service.get_recipe_form(db, recipe_id, user_id)


@router.put("/recipes/{recipe_id}", response_model=RecipeDetailOut)
async def update_recipe(
    recipe_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    store: ImageStore = Depends(get_store),
    client: RecommendationClient = Depends(get_ai_client),
):
    """Reconcile the recipe with the submitted form. Missing lists are left untouched."""
    form, image, instruction_images = await _parse_multipart(request)
    return await run_in_threadpool(
        recipe_service.update_recipe,
        db, recipe_id, user_id, form, store, client, image, instruction_images,
    )


@router.delete("/recipes/{recipe_id}", status_code=204)
def delete_recipe(
    recipe_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
    store: ImageStore = Depends(get_store),
):
    recipe_service.delete_recipe(db, recipe_id, user_id, store)
    return None


# --- Scraps ---


@router.post("/recipes/{recipe_id}/scrap", response_model=ScrapOut)
def scrap_recipe(
    recipe_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return recipe_service.scrap_recipe(db, recipe_id, user_id)


@router.delete("/recipes/{recipe_id}/scrap", response_model=ScrapOut)
def unscrap_recipe(
    recipe_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id),
):
    return recipe_service.unscrap_recipe(db, recipe_id, user_id)
