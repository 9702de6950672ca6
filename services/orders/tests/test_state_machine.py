from decimal import Decimal

import pytest

from drug_orders import crud, inventory, models, state_machine
from drug_orders.enums import ItemStatus
from drug_orders.errors import (
    AuthorizationError,
    ConflictError,
    IllegalEdit,
    IllegalTransition,
    InsufficientStock,
    ItemNotFound,
    ValidationError,
)
from drug_orders.order_service import create_order


def _order_one(db, buyer, drug_id, quantity):
    created = create_order(db, buyer, "institute", [{"drug_id": drug_id, "quantity": quantity}])
    return crud.get_order_items(db, created.order_id)[0].id


def test_approve_then_reject_restores_stock(db, seed):
    item_id = _order_one(db, seed.north, seed.amoxicillin, 3)
    assert inventory.current_stock(db, seed.amoxicillin) == 5

    item = state_machine.transition_item(db, item_id, seed.south, "approved")
    assert item.status == ItemStatus.APPROVED.value
    assert inventory.current_stock(db, seed.amoxicillin) == 2

    item = state_machine.transition_item(db, item_id, seed.south, "rejected")
    assert item.status == ItemStatus.REJECTED.value
    assert inventory.current_stock(db, seed.amoxicillin) == 5

    for target in ("pending", "approved", "shipped", "rejected"):
        with pytest.raises(ConflictError):
            state_machine.transition_item(db, item_id, seed.south, target)
    assert inventory.current_stock(db, seed.amoxicillin) == 5


def test_ship_keeps_stock_committed(db, seed):
    item_id = _order_one(db, seed.north, seed.paracetamol, 30)
    state_machine.transition_item(db, item_id, seed.south, "approved")
    item = state_machine.transition_item(db, item_id, seed.south, "shipped")

    assert item.status == ItemStatus.SHIPPED.value
    assert inventory.current_stock(db, seed.paracetamol) == 70
    with pytest.raises(IllegalTransition):
        state_machine.transition_item(db, item_id, seed.south, "rejected")


def test_reject_pending_leaves_stock(db, seed):
    item_id = _order_one(db, seed.north, seed.paracetamol, 30)
    state_machine.transition_item(db, item_id, seed.south, "rejected")
    assert inventory.current_stock(db, seed.paracetamol) == 100


def test_stock_conservation_over_mixed_sequence(db, seed):
    ids = [_order_one(db, seed.north, seed.paracetamol, q) for q in (10, 20, 30, 5)]
    state_machine.transition_item(db, ids[0], seed.south, "approved")
    state_machine.transition_item(db, ids[1], seed.south, "approved")
    state_machine.transition_item(db, ids[1], seed.south, "shipped")
    state_machine.transition_item(db, ids[2], seed.south, "approved")
    state_machine.transition_item(db, ids[2], seed.south, "rejected")
    state_machine.transition_item(db, ids[3], seed.south, "rejected")

    committed = sum(
        i.quantity
        for i in db.query(models.OrderItem).filter(models.OrderItem.drug_id == seed.paracetamol)
        if i.status in (ItemStatus.APPROVED.value, ItemStatus.SHIPPED.value)
    )
    assert committed == 30
    assert inventory.current_stock(db, seed.paracetamol) == 100 - committed


def test_ship_only_from_approved(db, seed):
    item_id = _order_one(db, seed.north, seed.paracetamol, 1)
    with pytest.raises(IllegalTransition) as exc:
        state_machine.transition_item(db, item_id, seed.south, "shipped")
    assert exc.value.extra == {"current_status": "pending", "target_status": "shipped"}


def test_repeated_approval_is_a_conflict(db, seed):
    item_id = _order_one(db, seed.north, seed.paracetamol, 10)
    state_machine.transition_item(db, item_id, seed.south, "approved")

    with pytest.raises(ConflictError):
        state_machine.transition_item(db, item_id, seed.south, "approved")
    assert inventory.current_stock(db, seed.paracetamol) == 90


def test_approval_beyond_stock_fails_without_side_effects(db, seed):
    first = _order_one(db, seed.north, seed.amoxicillin, 4)
    second = _order_one(db, seed.north, seed.amoxicillin, 4)
    state_machine.transition_item(db, first, seed.south, "approved")

    with pytest.raises(InsufficientStock) as exc:
        state_machine.transition_item(db, second, seed.south, "approved")

    assert exc.value.extra["available"] == 1
    assert crud.get_order_item(db, second).status == ItemStatus.PENDING.value
    assert inventory.current_stock(db, seed.amoxicillin) == 1
    events = crud.get_order_events(db, crud.get_order_item(db, second).order_id)
    assert [e.event_type for e in events] == ["created"]


def test_out_of_stock_returns_to_pending_once_restocked(db, seed):
    item_id = _order_one(db, seed.north, seed.amoxicillin, 8)

    with pytest.raises(InsufficientStock):
        state_machine.transition_item(db, item_id, seed.south, "pending")
    with pytest.raises(IllegalTransition):
        state_machine.transition_item(db, item_id, seed.south, "approved")

    drug = inventory.get_drug(db, seed.amoxicillin)
    drug.stock = 20
    db.commit()

    item = state_machine.transition_item(db, item_id, seed.south, "pending")
    assert item.status == ItemStatus.PENDING.value
    state_machine.transition_item(db, item_id, seed.south, "approved")
    assert inventory.current_stock(db, seed.amoxicillin) == 12


def test_out_of_stock_can_be_rejected(db, seed):
    item_id = _order_one(db, seed.north, seed.amoxicillin, 8)
    item = state_machine.transition_item(db, item_id, seed.south, "rejected")
    assert item.status == ItemStatus.REJECTED.value
    assert inventory.current_stock(db, seed.amoxicillin) == 5


def test_only_seller_or_admin_may_transition(db, seed):
    item_id = _order_one(db, seed.north, seed.paracetamol, 1)

    with pytest.raises(AuthorizationError):
        state_machine.transition_item(db, item_id, seed.north, "approved")
    with pytest.raises(AuthorizationError):
        state_machine.transition_item(db, item_id, seed.pharmacy, "approved")

    item = state_machine.transition_item(db, item_id, seed.admin, "approved")
    assert item.status == ItemStatus.APPROVED.value


def test_buyer_fulfils_manufacturer_items(db, seed):
    created = create_order(
        db,
        seed.north,
        "manufacturer",
        [{"custom_name": "Gauze", "manufacturer_name": "Acme", "quantity": 3, "unit_price": "4.10"}],
    )
    item_id = crud.get_order_items(db, created.order_id)[0].id

    with pytest.raises(AuthorizationError):
        state_machine.transition_item(db, item_id, seed.south, "shipped")
    item = state_machine.transition_item(db, item_id, seed.north, "shipped")
    assert item.status == ItemStatus.SHIPPED.value


def test_unknown_item_and_status(db, seed):
    with pytest.raises(ItemNotFound):
        state_machine.transition_item(db, 9999, seed.admin, "approved")

    item_id = _order_one(db, seed.north, seed.paracetamol, 1)
    with pytest.raises(ValidationError):
        state_machine.transition_item(db, item_id, seed.south, "delivered")


def test_transition_is_recorded_on_timeline(db, seed):
    item_id = _order_one(db, seed.north, seed.paracetamol, 2)
    item = state_machine.transition_item(db, item_id, seed.south, "approved")

    events = crud.get_order_events(db, item.order_id)
    assert [e.event_type for e in events] == ["created", "item_status_changed"]
    assert events[-1].item_id == item_id
    assert (events[-1].old_value, events[-1].new_value) == ("pending", "approved")
    assert events[-1].user_id == seed.south.id


def test_edit_quantity_of_pending_item(db, seed):
    item_id = _order_one(db, seed.north, seed.paracetamol, 2)
    order_id = crud.get_order_item(db, item_id).order_id

    item = state_machine.edit_item_quantity(db, item_id, seed.south, 7)

    assert item.quantity == 7
    assert item.total_price == Decimal("17.50")
    # Header total reflects the cart as placed
    assert crud.get_order(db, order_id).total_amount == Decimal("5.00")
    assert inventory.current_stock(db, seed.paracetamol) == 100
    assert crud.get_order_events(db, order_id)[-1].event_type == "item_quantity_changed"


def test_edit_quantity_after_approval_is_illegal(db, seed):
    item_id = _order_one(db, seed.north, seed.paracetamol, 2)
    state_machine.transition_item(db, item_id, seed.south, "approved")

    with pytest.raises(IllegalEdit):
        state_machine.edit_item_quantity(db, item_id, seed.south, 5)
    assert crud.get_order_item(db, item_id).quantity == 2


@pytest.mark.parametrize("quantity", [0, -3, 2.5, "4", True, None])
def test_edit_quantity_rejects_non_positive_integers(db, seed, quantity):
    item_id = _order_one(db, seed.north, seed.paracetamol, 2)
    with pytest.raises(ValidationError):
        state_machine.edit_item_quantity(db, item_id, seed.south, quantity)


def test_edit_quantity_requires_seller(db, seed):
    item_id = _order_one(db, seed.north, seed.paracetamol, 2)
    with pytest.raises(AuthorizationError):
        state_machine.edit_item_quantity(db, item_id, seed.north, 3)


def test_allowed_targets():
    assert state_machine.allowed_targets(ItemStatus.PENDING) == {ItemStatus.APPROVED, ItemStatus.REJECTED}
    assert state_machine.allowed_targets(ItemStatus.REJECTED) == set()
    assert state_machine.allowed_targets(ItemStatus.SHIPPED) == set()
    assert not state_machine.is_allowed(ItemStatus.APPROVED, ItemStatus.PENDING)
