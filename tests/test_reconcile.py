"""Tests for ingredient and instruction reconciliation plans.

Plans are computed from transient model objects; no database is needed except
where a plan is applied.
"""

import pytest
from sqlalchemy import select

from reciguard.errors import InvalidIngredientRow
from reciguard.models import Ingredient, Instruction, Recipe, RecipeIngredient, RecipeStats
from reciguard.services.ingredient_catalog import IngredientCatalog
from reciguard.services.reconcile import (
    ImageAction,
    ImageChanges,
    InstructionSubmission,
    apply_image_change,
    apply_ingredient_plan,
    apply_instruction_plan,
    collect_ingredient_rows,
    image_action,
    plan_ingredients,
    plan_instructions,
)


def _assoc(name, quantity):
    return RecipeIngredient(ingredient=Ingredient(name=name), quantity=quantity)


def _step(position, body="", image=None):
    return Instruction(instruction_id=position, instruction=body or f"step {position}", instruction_image=image)


# --- Ingredient rows ---


def test_blank_rows_are_dropped():
    assert collect_ingredient_rows([("", ""), ("  ", None), ("flour", "1 cup")]) == {"flour": "1 cup"}


@pytest.mark.parametrize("row", [("salt", ""), ("", "2 tbsp"), ("salt", "   "), (None, "1 tsp")])
def test_half_blank_row_is_rejected(row):
    with pytest.raises(InvalidIngredientRow) as exc_info:
        collect_ingredient_rows([("flour", "1 cup"), row])
    assert exc_info.value.position == 2
    assert exc_info.value.status_code == 400


def test_duplicate_names_last_one_wins():
    rows = [("flour", "1 cup"), ("flour", "3 cups")]
    assert collect_ingredient_rows(rows) == {"flour": "3 cups"}


# --- Ingredient plan ---


def test_plan_deletes_updates_and_inserts():
    flour, salt = _assoc("flour", "1 cup"), _assoc("salt", "1 tsp")

    plan = plan_ingredients([flour, salt], [("flour", "2 cups"), ("sugar", "1 cup")])

    assert plan.deletes == [salt]
    assert len(plan.updates) == 1
    assert plan.updates[0].association is flour
    assert plan.updates[0].quantity == "2 cups"
    assert plan.inserts == [("sugar", "1 cup")]


def test_plan_is_empty_when_nothing_changed():
    current = [_assoc("flour", "1 cup"), _assoc("salt", "1 tsp")]
    plan = plan_ingredients(current, [("salt", "1 tsp"), ("flour", "1 cup")])
    assert plan.is_empty


def test_plan_rejects_before_touching_anything():
    salt = _assoc("salt", "1 tsp")
    with pytest.raises(InvalidIngredientRow):
        plan_ingredients([salt], [("sugar", "1 cup"), ("salt", "")])
    assert salt.quantity == "1 tsp"


def _persisted_recipe(db_session, ingredients=(), instructions=()):
    recipe = Recipe(recipe_name="Pancakes", serving=2, stats=RecipeStats(view_count=0, scrap_count=0))
    for name, quantity in ingredients:
        recipe.ingredients.append(RecipeIngredient(ingredient=Ingredient(name=name), quantity=quantity))
    recipe.instructions = list(instructions)
    db_session.add(recipe)
    db_session.commit()
    db_session.refresh(recipe)
    return recipe


def test_apply_plan_keeps_identity_of_updated_rows(db_session):
    recipe = _persisted_recipe(db_session, ingredients=[("flour", "1 cup"), ("salt", "1 tsp")])
    flour_id = next(ri.id for ri in recipe.ingredients if ri.name == "flour")

    plan = plan_ingredients(recipe.ingredients, [("flour", "2 cups"), ("sugar", "1 cup")])
    apply_ingredient_plan(db_session, recipe, plan, IngredientCatalog(db_session))
    db_session.commit()
    db_session.expire_all()

    rows = {ri.name: ri for ri in db_session.get(Recipe, recipe.id).ingredients}
    assert {name: ri.quantity for name, ri in rows.items()} == {"flour": "2 cups", "sugar": "1 cup"}
    assert rows["flour"].id == flour_id
    # The catalog entry survives; only the link is gone
    assert db_session.scalar(select(Ingredient).where(Ingredient.name == "salt")) is not None


def test_applying_same_list_twice_changes_nothing(db_session):
    recipe = _persisted_recipe(db_session, ingredients=[("egg", "2")])
    rows = [("egg", "3"), ("milk", "200 ml")]

    apply_ingredient_plan(db_session, recipe, plan_ingredients(recipe.ingredients, rows), IngredientCatalog(db_session))
    db_session.commit()

    second = plan_ingredients(db_session.get(Recipe, recipe.id).ingredients, rows)
    assert second.is_empty


def test_apply_plan_reuses_existing_catalog_entry(db_session):
    db_session.add(Ingredient(name="butter"))
    db_session.commit()
    recipe = _persisted_recipe(db_session)

    plan = plan_ingredients(recipe.ingredients, [("butter", "10 g")])
    apply_ingredient_plan(db_session, recipe, plan, IngredientCatalog(db_session))
    db_session.commit()

    assert len(db_session.scalars(select(Ingredient).where(Ingredient.name == "butter")).all()) == 1


# --- Image actions ---


def test_image_action_precedence():
    assert image_action(b"img", True) is ImageAction.REPLACE
    assert image_action(None, True) is ImageAction.REMOVE
    assert image_action(b"", False) is ImageAction.KEEP


def test_replace_defers_deleting_old_reference(image_store):
    old = image_store.seed("/media/images/r1.webp")
    changes = ImageChanges()

    new_ref = apply_image_change(image_store, old, ImageAction.REPLACE, changes, b"new")

    assert changes.uploaded == [new_ref]
    assert changes.superseded == [old]
    assert image_store.deleted == []


def test_remove_clears_reference_without_touching_store(image_store):
    old = image_store.seed("/media/images/r1.webp")
    changes = ImageChanges()

    assert apply_image_change(image_store, old, ImageAction.REMOVE, changes) is None
    assert changes.superseded == [old]
    assert image_store.deleted == []


def test_remove_without_reference_is_noop(image_store):
    changes = ImageChanges()
    assert apply_image_change(image_store, None, ImageAction.REMOVE, changes) is None
    assert changes == ImageChanges()


def test_keep_returns_current_reference(image_store):
    changes = ImageChanges()
    assert apply_image_change(image_store, "/media/images/r1.webp", ImageAction.KEEP, changes) == "/media/images/r1.webp"
    assert changes == ImageChanges()


def test_failed_upload_keeps_current_reference(image_store):
    image_store.fail_upload = True
    changes = ImageChanges()

    ref = apply_image_change(image_store, "/media/images/r1.webp", ImageAction.REPLACE, changes, b"new")

    assert ref == "/media/images/r1.webp"
    assert apply_image_change(image_store, None, ImageAction.REPLACE, changes, b"new") is None
    assert changes == ImageChanges()


# --- Instructions ---


def test_positions_follow_submission_order():
    current = [_step(3), _step(1), _step(7)]
    submitted = [InstructionSubmission(body=b) for b in ("mix", "rest", "fry", "serve")]

    plan = plan_instructions(current, submitted)

    assert [s.sequence for s in plan.steps] == [1, 2, 3, 4]
    assert [s.body for s in plan.steps] == ["mix", "rest", "fry", "serve"]
    assert [s.existing.instruction_id for s in plan.steps if s.existing] == [1, 3]
    assert [i.instruction_id for i in plan.deletes] == [7]


def test_duplicate_positions_are_collapsed():
    first, dup = _step(1, "a"), _step(1, "b")
    plan = plan_instructions([first, dup], [InstructionSubmission(body="only")])
    assert plan.steps[0].existing is first
    assert plan.deletes == [dup]


def test_apply_rewrites_sequence_one_to_n(image_store):
    recipe = Recipe(recipe_name="Soup", serving=1)
    recipe.instructions = [_step(2, "old two"), _step(5, "old five")]

    plan = plan_instructions(
        recipe.instructions,
        [InstructionSubmission(body="chop"), InstructionSubmission(body="boil"), InstructionSubmission(body="eat")],
    )
    apply_instruction_plan(recipe, plan, image_store, ImageChanges())

    assert [(i.instruction_id, i.instruction) for i in recipe.instructions] == [
        (1, "chop"),
        (2, "boil"),
        (3, "eat"),
    ]


def test_new_image_at_position_supersedes_r1(image_store):
    r1 = image_store.seed("/media/images/r1.webp")
    recipe = Recipe(recipe_name="Soup", serving=1)
    recipe.instructions = [_step(1), _step(2, image=r1)]
    changes = ImageChanges()

    plan = plan_instructions(
        recipe.instructions,
        [InstructionSubmission(body="one"), InstructionSubmission(body="two", image=b"fresh")],
    )
    apply_instruction_plan(recipe, plan, image_store, changes)

    assert changes.superseded == [r1]
    assert recipe.instructions[1].instruction_image == image_store.uploaded[0]


def test_removed_flag_clears_r1(image_store):
    r1 = image_store.seed("/media/images/r1.webp")
    recipe = Recipe(recipe_name="Soup", serving=1)
    recipe.instructions = [_step(1), _step(2, image=r1)]
    changes = ImageChanges()

    plan = plan_instructions(
        recipe.instructions,
        [InstructionSubmission(body="one"), InstructionSubmission(body="two", removed=True)],
    )
    apply_instruction_plan(recipe, plan, image_store, changes)

    assert changes.superseded == [r1]
    assert recipe.instructions[1].instruction_image is None


def test_untouched_step_keeps_its_image(image_store):
    r1 = image_store.seed("/media/images/r1.webp")
    recipe = Recipe(recipe_name="Soup", serving=1)
    recipe.instructions = [_step(1, image=r1)]
    changes = ImageChanges()

    plan = plan_instructions(recipe.instructions, [InstructionSubmission(body="edited")])
    apply_instruction_plan(recipe, plan, image_store, changes)

    assert recipe.instructions[0].instruction_image == r1
    assert recipe.instructions[0].instruction == "edited"
    assert changes == ImageChanges()


def test_shrinking_reports_dropped_images(image_store):
    r2 = image_store.seed("/media/images/r2.webp")
    r3 = image_store.seed("/media/images/r3.webp")
    recipe = Recipe(recipe_name="Soup", serving=1)
    recipe.instructions = [_step(1), _step(2, image=r2), _step(3, image=r3)]
    changes = ImageChanges()

    plan = plan_instructions(recipe.instructions, [InstructionSubmission(body="just one")])
    apply_instruction_plan(recipe, plan, image_store, changes)

    assert [i.instruction_id for i in recipe.instructions] == [1]
    assert changes.dropped == [r2, r3]
    assert changes.superseded == []
    assert image_store.deleted == []


def test_upload_failure_degrades_to_no_image(image_store):
    image_store.fail_upload = True
    recipe = Recipe(recipe_name="Soup", serving=1)

    plan = plan_instructions([], [InstructionSubmission(body="one", image=b"bytes")])
    apply_instruction_plan(recipe, plan, image_store, ImageChanges())

    assert recipe.instructions[0].instruction_image is None
