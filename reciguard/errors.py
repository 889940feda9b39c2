"""Error taxonomy.

Structural errors (InvalidIngredientRow, NotFound, Forbidden) abort the request
and roll back. StorageError and RecommendationUnavailable are auxiliary: they are
caught where they happen and degrade to "no image" / "no recommendation".
"""

from typing import Optional


class ReciGuardError(Exception):
    """Base class for errors raised by the recipe core."""

    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InvalidIngredientRow(ReciGuardError, ValueError):
    """A submitted ingredient row has exactly one of name / quantity blank."""

    status_code = 400

    def __init__(self, position: int, name: Optional[str], quantity: Optional[str]):
        self.position = position
        self.name = name
        self.quantity = quantity
        super().__init__(
            f"Ingredient row {position} is incomplete "
            f"(ingredient={name!r}, quantity={quantity!r}): check ingredient and quantity"
        )


class NotFound(ReciGuardError):
    status_code = 404


class Forbidden(NotFound):
    """Entity exists but is not owned by the caller."""

    status_code = 403


class StorageError(ReciGuardError):
    """Image store upload/delete failure, or an upload that is not a usable image."""


class RecommendationUnavailable(ReciGuardError):
    """External AI model call failed, timed out or answered garbage."""

    status_code = 503
