import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..models import Ingredient

logger = logging.getLogger("reciguard.catalog")


class IngredientCatalog:
    """Lookup-or-create for shared ingredients.

    One instance per reconciliation pass: resolved names are cached so each
    distinct name hits the database at most once. Nothing is committed here;
    new rows are flushed inside a savepoint so the caller's transaction decides.
    """

    def __init__(self, db: Session):
        self.db = db
        self._resolved: dict[str, Ingredient] = {}

    def find_by_name(self, name: str) -> Optional[Ingredient]:
        return self.db.scalar(select(Ingredient).where(Ingredient.name == name))

    def create(self, name: str) -> Ingredient:
        ingredient = Ingredient(name=name)
        with self.db.begin_nested():
            self.db.add(ingredient)
        logger.info(f"Created ingredient {name!r} (id={ingredient.id})")
        return ingredient

    def resolve(self, name: str) -> Ingredient:
        cached = self._resolved.get(name)
        if cached is not None:
            return cached

        ingredient = self.find_by_name(name)
        if ingredient is None:
            try:
                ingredient = self.create(name)
            except IntegrityError:
                # Another request inserted the same name after our lookup
                logger.info(f"Ingredient {name!r} created concurrently, re-reading")
                ingredient = self.find_by_name(name)
                if ingredient is None:
                    raise

        self._resolved[name] = ingredient
        return ingredient

    def resolve_many(self, names: list[str]) -> dict[str, Ingredient]:
        return {name: self.resolve(name) for name in names}
