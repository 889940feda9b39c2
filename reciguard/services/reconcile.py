"""Recipe edit reconciliation.

Both collections are reconciled in two phases:

1. plan_*: pure functions that compare the persisted children with the submitted
   snapshot and return an explicit plan (what to delete, update, insert). No
   database or image store access happens here, so an invalid submission is
   rejected before anything is touched.
2. apply_*: execute a plan against a loaded Recipe inside the caller's session.
   The caller owns the transaction (single commit for the whole edit).

Ingredients are keyed by ingredient name (unique per recipe). Instructions are
keyed by position: the k-th submitted instruction becomes instruction_id k.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from sqlalchemy.orm import Session

from ..errors import InvalidIngredientRow, StorageError
from ..models import Instruction, Recipe, RecipeIngredient
from .ingredient_catalog import IngredientCatalog
from .storage import ImageStore

logger = logging.getLogger("reciguard.recipes")


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


# --- Ingredients ---


@dataclass
class QuantityUpdate:
    association: RecipeIngredient
    quantity: str


@dataclass
class IngredientPlan:
    deletes: list[RecipeIngredient] = field(default_factory=list)
    updates: list[QuantityUpdate] = field(default_factory=list)
    inserts: list[tuple[str, str]] = field(default_factory=list)  # (name, quantity)

    @property
    def is_empty(self) -> bool:
        return not (self.deletes or self.updates or self.inserts)


def collect_ingredient_rows(rows: Sequence[tuple[Optional[str], Optional[str]]]) -> dict[str, str]:
    """Turn submitted (name, quantity) rows into a name -> quantity mapping.

    Fully blank rows are dropped. A row with only one side filled in raises
    InvalidIngredientRow (1-based position). Duplicate names: last one wins.
    """
    submitted: dict[str, str] = {}
    for position, (name, quantity) in enumerate(rows, start=1):
        name_blank, quantity_blank = _is_blank(name), _is_blank(quantity)
        if name_blank and quantity_blank:
            continue
        if name_blank or quantity_blank:
            raise InvalidIngredientRow(position, name, quantity)
        submitted[name] = quantity
    return submitted


def plan_ingredients(
    current: Iterable[RecipeIngredient],
    rows: Sequence[tuple[Optional[str], Optional[str]]],
) -> IngredientPlan:
    submitted = collect_ingredient_rows(rows)
    plan = IngredientPlan()

    existing_names = set()
    for association in current:
        existing_names.add(association.name)
        quantity = submitted.get(association.name)
        if quantity is None:
            plan.deletes.append(association)
        elif association.quantity != quantity:
            plan.updates.append(QuantityUpdate(association, quantity))

    plan.inserts = [
        (name, quantity) for name, quantity in submitted.items() if name not in existing_names
    ]
    return plan


def apply_ingredient_plan(
    db: Session, recipe: Recipe, plan: IngredientPlan, catalog: IngredientCatalog
) -> None:
    """Deletes first (flushed), then quantity updates, then inserts."""
    for association in plan.deletes:
        recipe.ingredients.remove(association)
    if plan.deletes:
        db.flush()

    for update in plan.updates:
        update.association.quantity = update.quantity

    resolved = catalog.resolve_many([name for name, _ in plan.inserts])
    for name, quantity in plan.inserts:
        recipe.ingredients.append(RecipeIngredient(ingredient=resolved[name], quantity=quantity))

    logger.info(
        f"Recipe {recipe.id}: ingredients -{len(plan.deletes)} "
        f"~{len(plan.updates)} +{len(plan.inserts)}"
    )


# --- Images ---


class ImageAction(str, enum.Enum):
    KEEP = "keep"
    REPLACE = "replace"
    REMOVE = "remove"


@dataclass
class ImageChanges:
    """Store side effects collected while an edit is applied.

    Nothing is deleted from the store until the caller has committed:
    superseded and dropped references are removed after commit, uploaded ones
    are removed if the transaction rolls back.
    """
    uploaded: list[str] = field(default_factory=list)
    superseded: list[str] = field(default_factory=list)
    dropped: list[str] = field(default_factory=list)


def image_action(new_image: Optional[bytes], removed: bool) -> ImageAction:
    if new_image:
        return ImageAction.REPLACE
    if removed:
        return ImageAction.REMOVE
    return ImageAction.KEEP


def apply_image_change(
    store: ImageStore,
    current_ref: Optional[str],
    action: ImageAction,
    changes: ImageChanges,
    new_image: Optional[bytes] = None,
    label: str = "image",
) -> Optional[str]:
    """Return the reference to store after applying an image action.

    A failed upload keeps the current reference. The replaced or removed
    reference is recorded in changes.superseded, not deleted here.
    """
    if action is ImageAction.REPLACE:
        try:
            new_ref = store.upload(new_image)
        except StorageError as e:
            logger.error(f"Failed to upload {label}: {e}")
            return current_ref
        changes.uploaded.append(new_ref)
        if current_ref:
            changes.superseded.append(current_ref)
        return new_ref

    if action is ImageAction.REMOVE:
        if current_ref:
            changes.superseded.append(current_ref)
        return None

    return current_ref


# --- Instructions ---


@dataclass
class InstructionSubmission:
    body: str
    image: Optional[bytes] = None
    removed: bool = False


@dataclass
class InstructionStep:
    sequence: int
    body: str
    existing: Optional[Instruction]
    action: ImageAction
    image: Optional[bytes] = None

    @property
    def old_reference(self) -> Optional[str]:
        return self.existing.instruction_image if self.existing is not None else None


@dataclass
class InstructionPlan:
    steps: list[InstructionStep] = field(default_factory=list)
    deletes: list[Instruction] = field(default_factory=list)


def plan_instructions(
    current: Iterable[Instruction], submitted: Sequence[InstructionSubmission]
) -> InstructionPlan:
    by_sequence: dict[int, Instruction] = {}
    plan = InstructionPlan()
    for instruction in current:
        if instruction.instruction_id in by_sequence:
            # Duplicate position from bad data; only one row can be reused
            plan.deletes.append(instruction)
        else:
            by_sequence[instruction.instruction_id] = instruction

    for sequence, item in enumerate(submitted, start=1):
        plan.steps.append(
            InstructionStep(
                sequence=sequence,
                body=item.body,
                existing=by_sequence.pop(sequence, None),
                action=image_action(item.image, item.removed),
                image=item.image,
            )
        )

    # Whatever was not reused: positions beyond N or otherwise unmatched
    plan.deletes.extend(sorted(by_sequence.values(), key=lambda i: i.instruction_id))
    return plan


def apply_instruction_plan(
    recipe: Recipe, plan: InstructionPlan, store: ImageStore, changes: ImageChanges
) -> None:
    """Rewrite recipe.instructions from the plan.

    Image references held by deleted instructions go to changes.dropped; they
    are not removed from the store here.
    """
    updated: list[Instruction] = []
    for step in plan.steps:
        instruction = step.existing
        if instruction is None:
            instruction = Instruction(instruction_id=step.sequence)

        instruction.instruction = step.body
        instruction.instruction_image = apply_image_change(
            store,
            step.old_reference,
            step.action,
            changes,
            step.image,
            label=f"image for instruction {step.sequence}",
        )
        updated.append(instruction)

    # delete-orphan cascade removes rows left out of the new list
    recipe.instructions = updated

    changes.dropped.extend(i.instruction_image for i in plan.deletes if i.instruction_image)
    logger.info(
        f"Recipe {recipe.id}: {len(updated)} instructions, {len(plan.deletes)} dropped"
    )
