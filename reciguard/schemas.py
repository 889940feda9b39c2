"""Pydantic schemas for ReciGuard API.

Request/response models for:
- Recipe create / edit forms (ingredients + instructions)
- Recipe list, detail and edit-form views
- Recommendation and scrap responses
"""

from typing import Optional

from pydantic import BaseModel, Field


# --- Ingredient ---

class IngredientRow(BaseModel):
    """Submitted ingredient row. Either side may be blank; see the reconciler rules."""
    ingredient: Optional[str] = Field("", max_length=200)
    quantity: Optional[str] = Field("", max_length=100)

    def as_pair(self) -> tuple[Optional[str], Optional[str]]:
        return self.ingredient, self.quantity


class IngredientOut(BaseModel):
    ingredient: str
    quantity: str


# --- Instruction ---

class InstructionIn(BaseModel):
    instruction: str = ""
    image_removed: bool = False  # Ignored when a new image is uploaded for this position


class InstructionOut(BaseModel):
    instruction_id: int
    instruction: str
    instruction_image: Optional[str] = None


# --- Recipe ---

class RecipeForm(BaseModel):
    """Create / edit payload (sent as the `form` JSON part of a multipart request)."""
    recipe_name: str = Field(..., min_length=1, max_length=200)
    serving: int = Field(1, ge=1)
    cuisine: Optional[str] = Field(None, max_length=50)
    food_type: Optional[str] = Field(None, max_length=50)
    cooking_style: Optional[str] = Field(None, max_length=50)
    image_removed: bool = False
    # None on edit leaves the collection untouched
    ingredients: Optional[list[IngredientRow]] = None
    instructions: Optional[list[InstructionIn]] = None


class RecipeFormOut(BaseModel):
    """Prefill for the edit screen."""
    id: int
    recipe_name: str
    image_path: Optional[str]
    serving: int
    cuisine: Optional[str]
    food_type: Optional[str]
    cooking_style: Optional[str]
    ingredients: list[IngredientOut] = []
    instructions: list[InstructionOut] = []


class RecipeListOut(BaseModel):
    id: int
    recipe_name: str
    image_path: Optional[str]
    serving: int
    scrapped: bool = False

    class Config:
        from_attributes = True


class RecipeDetailOut(BaseModel):
    id: int
    image_path: Optional[str]
    recipe_name: str
    serving: int
    cuisine: Optional[str]
    food_type: Optional[str]
    cooking_style: Optional[str]

    calories: int = 0
    sodium: int = 0
    carbohydrate: int = 0
    fat: int = 0
    protein: int = 0

    scrapped: bool = False
    scrap_count: int = 0
    view_count: int = 0

    ingredients: list[IngredientOut] = []
    instructions: list[InstructionOut] = []
    similar_ingredients: list[str] = []  # Allergy warnings from the AI model


# --- Recommendation / Scrap ---

class RecipeRecommendOut(BaseModel):
    """Today's recipe. All fields None when no recommendation is available."""
    recipe_id: Optional[int] = None
    image_path: Optional[str] = None
    recipe_name: Optional[str] = None


class ScrapOut(BaseModel):
    recipe_id: int
    scrapped: bool
    scrap_count: int
