from datetime import date, datetime, timezone
from decimal import Decimal

from schemas import DeliverySlotCreate, DeliverySlotUpdate, OrderCreate, ProductCreate, UserCreate
from storage import day_bounds


def slot(start, end, is_active=True):
    return DeliverySlotCreate(start_time=start, end_time=end, max_orders=5, is_active=is_active)


def test_ids_are_sequential_per_collection(storage):
    first = storage.create_product(ProductCreate(
        name="Baguette", description="Crusty", price="2.5", image="https://img/b.jpg", category="Breads",
    ))
    second = storage.create_product(ProductCreate(
        name="Brioche", description="Rich", price=4, image="https://img/br.jpg", category="Breads",
    ))
    user = storage.create_user(UserCreate(line_id="U1", display_name="Alice"))
    assert (first.id, second.id, user.id) == (1, 2, 1)
    assert first.price == Decimal("2.50")
    assert storage.get_product(2).name == "Brioche"
    assert storage.get_product(3) is None


def test_seed_products_only_when_empty(storage):
    assert storage.seed_products() == 3
    assert storage.seed_products() == 0
    names = [p.name for p in storage.get_products()]
    assert names == ["Classic Croissant", "Sourdough Bread", "Chocolate Cake"]


def test_day_bounds_cover_whole_day():
    start, end = day_bounds(datetime(2026, 3, 10, 15, 30))
    assert start == datetime(2026, 3, 10, 0, 0, 0)
    assert end.date() == date(2026, 3, 10)
    assert (end.hour, end.minute, end.second) == (23, 59, 59)


def test_available_slots_only_active_within_day(storage):
    inside = storage.create_delivery_slot(slot(datetime(2026, 3, 10, 9), datetime(2026, 3, 10, 10)))
    storage.create_delivery_slot(slot(datetime(2026, 3, 10, 11), datetime(2026, 3, 10, 12), is_active=False))
    storage.create_delivery_slot(slot(datetime(2026, 3, 9, 23), datetime(2026, 3, 10, 1)))
    storage.create_delivery_slot(slot(datetime(2026, 3, 10, 23), datetime(2026, 3, 11, 1)))

    available = storage.get_available_delivery_slots(date(2026, 3, 10))
    assert [s.id for s in available] == [inside.id]
    assert len(storage.get_delivery_slots()) == 4


def test_aware_timestamps_stored_as_local_time(storage):
    aware = datetime(2026, 3, 10, 9, tzinfo=timezone.utc)
    created = storage.create_delivery_slot(slot(aware, datetime(2026, 3, 10, 10, tzinfo=timezone.utc)))
    assert created.start_time.tzinfo is None
    assert created.start_time == aware.astimezone().replace(tzinfo=None)


def test_update_delivery_slot(storage):
    created = storage.create_delivery_slot(slot(datetime(2026, 3, 10, 9), datetime(2026, 3, 10, 10)))
    updated = storage.update_delivery_slot(created.id, DeliverySlotUpdate(is_active=False))
    assert updated.is_active is False
    assert updated.max_orders == 5
    assert storage.get_available_delivery_slots(date(2026, 3, 10)) == []
    assert storage.update_delivery_slot(999, DeliverySlotUpdate(is_active=True)) is None


def test_create_user_duplicate_line_id_returns_existing(storage):
    storage.ensure_indexes()
    first = storage.create_user(UserCreate(line_id="U42", display_name="Alice"))
    second = storage.create_user(UserCreate(line_id="U42", display_name="Alice again"))
    assert second.id == first.id
    assert storage.db["user"].count_documents({}) == 1


def test_order_items_are_snapshots(storage):
    storage.seed_products()
    order = storage.create_order(OrderCreate(
        customer_name="Alice",
        email="alice@sweetdelights.com",
        phone="0812345678",
        delivery_method="pickup",
        items=[{"product_id": 1, "quantity": 1, "name": "Classic Croissant", "price": 3.5}],
        total="3.50",
    ))
    storage.db["product"].update_one({"_id": 1}, {"$set": {"price": "9.99"}})
    stored = storage.get_orders()[0]
    assert stored.id == order.id
    assert stored.items[0].price == 3.5
    assert stored.total == Decimal("3.50")
    assert stored.created_at is not None


def test_sessions_resolve_to_users(storage):
    user = storage.create_user(UserCreate(line_id="U7", display_name="Carol"))
    session_id = storage.create_session(user.id)
    assert storage.get_session_user(session_id).line_id == "U7"
    storage.delete_session(session_id)
    assert storage.get_session_user(session_id) is None
    assert storage.get_session_user("unknown") is None
