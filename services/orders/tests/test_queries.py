import pytest

from drug_orders import crud, queries, state_machine
from drug_orders.errors import AuthorizationError, OrderNotFound, ValidationError
from drug_orders.order_service import create_order


@pytest.fixture
def mixed_order(db, seed):
    """Admin order with two lines sold by south (one out of stock) and one sold by north."""
    created = create_order(
        db,
        seed.admin,
        "institute",
        [
            {"drug_id": seed.paracetamol, "quantity": 2},
            {"drug_id": seed.ibuprofen, "quantity": 3},
            {"drug_id": seed.amoxicillin, "quantity": 9},
        ],
    )
    return created.order_id


def test_overall_status_priority():
    assert queries.overall_status(["rejected", "approved", "pending"]) == "pending"
    assert queries.overall_status(["rejected", "out_of_stock", "approved"]) == "out_of_stock"
    assert queries.overall_status(["shipped", "approved"]) == "approved"
    assert queries.overall_status(["rejected", "shipped"]) == "shipped"
    assert queries.overall_status(["rejected"]) == "rejected"
    assert queries.overall_status([]) is None


def test_buyer_history_returns_full_orders_newest_first(db, seed):
    first = create_order(db, seed.north, "institute", [{"drug_id": seed.paracetamol, "quantity": 1}])
    second = create_order(
        db,
        seed.north,
        "manufacturer",
        [{"custom_name": "Syringe", "manufacturer_name": "Acme", "quantity": 10, "unit_price": "0.30"}],
    )
    create_order(db, seed.south, "institute", [{"drug_id": seed.ibuprofen, "quantity": 1}])

    page = queries.buyer_history(db, seed.north)

    assert [o.id for o in page.orders] == [second.order_id, first.order_id]
    assert page.pagination.total == 2
    assert page.pagination.total_pages == 1
    manufacturer_view = page.orders[0]
    assert manufacturer_view.items[0].drug_name == "Syringe"
    assert manufacturer_view.items[0].manufacturer_name == "Acme"
    assert manufacturer_view.overall_status == "approved"
    assert page.orders[1].items[0].seller_name == "South Institute"


def test_items_come_back_in_creation_order(db, seed, mixed_order):
    view = queries.get_order_detail(db, seed.admin, mixed_order)
    assert [i.drug_id for i in view.items] == [seed.paracetamol, seed.ibuprofen, seed.amoxicillin]
    assert view.item_count == 3
    assert view.pending_items == 2
    assert view.out_of_stock_items == 1
    assert view.overall_status == "pending"


def test_seller_sees_only_their_items(db, seed, mixed_order):
    page = queries.seller_orders(db, seed.north)

    assert page.pagination.total == 1
    view = page.orders[0]
    assert [i.drug_id for i in view.items] == [seed.ibuprofen]
    assert view.item_count == 1
    assert view.pending_items == 1
    assert view.out_of_stock_items == 0

    south_view = queries.seller_orders(db, seed.south).orders[0]
    assert [i.drug_id for i in south_view.items] == [seed.paracetamol, seed.amoxicillin]
    assert south_view.overall_status == "pending"


def test_seller_counters_follow_their_own_items(db, seed, mixed_order):
    items = crud.get_order_items(db, mixed_order)
    state_machine.transition_item(db, items[1].id, seed.north, "approved")

    north_view = queries.seller_orders(db, seed.north).orders[0]
    assert north_view.overall_status == "approved"
    assert north_view.approved_items == 1

    admin_view = queries.admin_orders(db, seed.admin).orders[0]
    assert admin_view.overall_status == "pending"
    assert admin_view.approved_items == 1
    assert admin_view.pending_items == 1


def test_recipient_sees_whole_order(db, seed):
    created = create_order(
        db,
        seed.pharmacy,
        "pharmacyToInstitute",
        [{"drug_id": seed.ibuprofen, "quantity": 2, "category": "IPD"}],
        recipient_id=seed.north.id,
    )
    page = queries.seller_orders(db, seed.north)
    assert [o.id for o in page.orders] == [created.order_id]
    assert page.orders[0].recipient_name == "North Institute"
    assert page.orders[0].buyer_name == "Town Pharmacy"
    assert page.orders[0].items[0].category == "IPD"


def test_seller_view_filters_by_visible_item_status(db, seed, mixed_order):
    # north's only item is pending; the out_of_stock item belongs to south
    assert queries.seller_orders(db, seed.north, status="out_of_stock").pagination.total == 0
    assert queries.seller_orders(db, seed.south, status="out_of_stock").pagination.total == 1
    assert queries.seller_orders(db, seed.north, status="all").pagination.total == 1


def test_admin_orders_requires_admin(db, seed):
    with pytest.raises(AuthorizationError):
        queries.admin_orders(db, seed.north)


def test_admin_sees_all_orders_with_filters(db, seed):
    create_order(db, seed.north, "institute", [{"drug_id": seed.paracetamol, "quantity": 1}])
    create_order(
        db,
        seed.south,
        "manufacturer",
        [{"custom_name": "Mask", "manufacturer_name": "Globex", "quantity": 5, "unit_price": 1}],
    )
    create_order(
        db,
        seed.pharmacy,
        "pharmacyToInstitute",
        [{"drug_id": seed.ibuprofen, "quantity": 1, "category": "OUTREACH"}],
        recipient_id=seed.north.id,
    )

    assert queries.admin_orders(db, seed.admin).pagination.total == 3
    assert queries.admin_orders(db, seed.admin, transaction_type="manufacturer").pagination.total == 1
    assert queries.admin_orders(db, seed.admin, status="approved").pagination.total == 1
    assert queries.admin_orders(db, seed.admin, status="pending").pagination.total == 2


@pytest.mark.parametrize(
    "term, expected",
    [
        ("pcm-001", 1),
        ("paracetamol", 1),
        ("globex", 1),
        ("south", 2),
        ("nothing-matches", 0),
    ],
)
def test_search(db, seed, term, expected):
    create_order(db, seed.north, "institute", [{"drug_id": seed.paracetamol, "quantity": 1}])
    create_order(
        db,
        seed.south,
        "manufacturer",
        [{"custom_name": "Mask", "manufacturer_name": "Globex", "quantity": 5, "unit_price": 1}],
    )
    assert queries.admin_orders(db, seed.admin, search=term).pagination.total == expected


def test_search_by_order_number(db, seed):
    created = create_order(db, seed.north, "institute", [{"drug_id": seed.paracetamol, "quantity": 1}])
    page = queries.buyer_history(db, seed.north, search=created.order_no.lower())
    assert [o.order_no for o in page.orders] == [created.order_no]


def test_seller_search_ignores_other_sellers_items(db, seed, mixed_order):
    assert queries.seller_orders(db, seed.north, search="paracetamol").pagination.total == 0
    assert queries.seller_orders(db, seed.south, search="paracetamol").pagination.total == 1


def test_pagination(db, seed):
    for _ in range(5):
        create_order(db, seed.north, "institute", [{"drug_id": seed.paracetamol, "quantity": 1}])

    page = queries.buyer_history(db, seed.north, page=2, limit=2)
    assert len(page.orders) == 2
    assert page.pagination.total == 5
    assert page.pagination.total_pages == 3
    assert (page.pagination.page, page.pagination.limit) == (2, 2)

    last = queries.buyer_history(db, seed.north, page=3, limit=2)
    assert len(last.orders) == 1

    clamped = queries.buyer_history(db, seed.north, page=0, limit=1000)
    assert (clamped.pagination.page, clamped.pagination.limit) == (1, 100)


def test_empty_history(db, seed):
    page = queries.buyer_history(db, seed.pharmacy)
    assert page.orders == []
    assert page.pagination.total == 0
    assert page.pagination.total_pages == 0


def test_unknown_status_filter_is_rejected(db, seed):
    with pytest.raises(ValidationError):
        queries.buyer_history(db, seed.north, status="lost")


def test_order_detail_visibility(db, seed, mixed_order):
    assert len(queries.get_order_detail(db, seed.north, mixed_order).items) == 1
    with pytest.raises(OrderNotFound):
        queries.get_order_detail(db, seed.pharmacy, mixed_order)
    with pytest.raises(OrderNotFound):
        queries.get_order_detail(db, seed.admin, 9999)


def test_timeline(db, seed, mixed_order):
    items = crud.get_order_items(db, mixed_order)
    state_machine.transition_item(db, items[0].id, seed.south, "approved")
    state_machine.edit_item_quantity(db, items[1].id, seed.north, 4)

    events = queries.get_order_timeline(db, seed.admin, mixed_order)
    assert [e.event_type for e in events] == ["created", "item_status_changed", "item_quantity_changed"]
    with pytest.raises(OrderNotFound):
        queries.get_order_timeline(db, seed.pharmacy, mixed_order)


def test_search_treats_wildcards_literally(db, seed):
    create_order(db, seed.north, "institute", [{"drug_id": seed.paracetamol, "quantity": 1}])
    for term in ("%", "_", "\\", "para%mol", "pcm_001"):
        assert queries.buyer_history(db, seed.north, search=term).pagination.total == 0

    create_order(
        db,
        seed.north,
        "manufacturer",
        [{"custom_name": "Vit_C 100%", "manufacturer_name": "Acme", "quantity": 1, "unit_price": 1}],
    )
    assert queries.buyer_history(db, seed.north, search="t_c").pagination.total == 1
    assert queries.buyer_history(db, seed.north, search="100%").pagination.total == 1
    assert queries.buyer_history(db, seed.north, search="%").pagination.total == 1
