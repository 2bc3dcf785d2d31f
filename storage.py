from __future__ import annotations
import secrets
from datetime import date, datetime, time, timezone
from typing import List, Optional, Union

import structlog
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import collection, create_document, get_documents, serialize
from schemas import (
    DeliverySlot, DeliverySlotCreate, DeliverySlotUpdate,
    Order, OrderCreate, Product, ProductCreate, User, UserCreate,
    items_total,
)

logger = structlog.get_logger(__name__)

SESSION_TTL_SECONDS = 14 * 24 * 60 * 60

INITIAL_PRODUCTS = [
    {
        "name": "Classic Croissant",
        "description": "Buttery, flaky French pastry",
        "price": "3.50",
        "image": "https://images.unsplash.com/photo-1555507036-ab1f4038808a",
        "category": "Pastries",
    },
    {
        "name": "Sourdough Bread",
        "description": "Traditional artisan bread",
        "price": "6.00",
        "image": "https://images.unsplash.com/photo-1504469288085-feb62ad2903d",
        "category": "Breads",
    },
    {
        "name": "Chocolate Cake",
        "description": "Rich chocolate layer cake",
        "price": "28.00",
        "image": "https://images.unsplash.com/photo-1587241321921-91a834d6d191",
        "category": "Cakes",
    },
]


def day_bounds(reference: Union[date, datetime]):
    """Start and end of the calendar day containing ``reference``, in server local time."""
    if isinstance(reference, datetime):
        if reference.tzinfo is not None:
            reference = reference.astimezone().replace(tzinfo=None)
        reference = reference.date()
    return datetime.combine(reference, time.min), datetime.combine(reference, time.max)


class MongoStorage:
    """Entity storage over a MongoDB database.

    Every write is a single-document insert or update; nothing here spans
    collections, so there is no transaction handling.
    """

    def __init__(self, db: Database):
        self.db = db

    def ensure_indexes(self) -> None:
        collection(self.db, "user").create_index("line_id", unique=True)
        collection(self.db, "session").create_index("created_at", expireAfterSeconds=SESSION_TTL_SECONDS)
        collection(self.db, "deliveryslot").create_index([("is_active", 1), ("start_time", 1)])

    # Products

    def get_products(self) -> List[Product]:
        return [Product(**serialize(d)) for d in get_documents(self.db, "product")]

    def get_product(self, product_id: int) -> Optional[Product]:
        doc = collection(self.db, "product").find_one({"_id": product_id})
        return Product(**serialize(doc)) if doc else None

    def create_product(self, product: ProductCreate) -> Product:
        doc = create_document(self.db, "product", product.model_dump())
        return Product(**serialize(doc))

    def seed_products(self) -> int:
        """Insert the example products when the catalog is empty. Returns the number inserted."""
        if collection(self.db, "product").count_documents({}) > 0:
            return 0
        for data in INITIAL_PRODUCTS:
            self.create_product(ProductCreate(**data))
        logger.info("seeded products", count=len(INITIAL_PRODUCTS))
        return len(INITIAL_PRODUCTS)

    # Orders

    def create_order(self, order: OrderCreate) -> Order:
        expected = items_total(order.items)
        if expected != order.total:
            # The submitted total is stored as sent
            logger.warning("order total mismatch", submitted=str(order.total), computed=str(expected))
        doc = create_document(self.db, "order", order.model_dump(), timestamped=True)
        return Order(**serialize(doc))

    def get_orders(self) -> List[Order]:
        return [Order(**serialize(d)) for d in get_documents(self.db, "order")]

    # Delivery slots

    def get_delivery_slots(self) -> List[DeliverySlot]:
        return [DeliverySlot(**serialize(d)) for d in get_documents(self.db, "deliveryslot")]

    def create_delivery_slot(self, slot: DeliverySlotCreate) -> DeliverySlot:
        doc = create_document(self.db, "deliveryslot", slot.model_dump())
        return DeliverySlot(**serialize(doc))

    def update_delivery_slot(self, slot_id: int, changes: DeliverySlotUpdate) -> Optional[DeliverySlot]:
        fields = changes.model_dump(exclude_unset=True)
        if fields:
            collection(self.db, "deliveryslot").update_one({"_id": slot_id}, {"$set": fields})
        doc = collection(self.db, "deliveryslot").find_one({"_id": slot_id})
        return DeliverySlot(**serialize(doc)) if doc else None

    def get_available_delivery_slots(self, reference: Union[date, datetime]) -> List[DeliverySlot]:
        start_of_day, end_of_day = day_bounds(reference)
        docs = get_documents(self.db, "deliveryslot", {
            "is_active": True,
            "start_time": {"$gte": start_of_day},
            "end_time": {"$lte": end_of_day},
        })
        return [DeliverySlot(**serialize(d)) for d in docs]

    # Users

    def get_user(self, user_id: int) -> Optional[User]:
        doc = collection(self.db, "user").find_one({"_id": user_id})
        return User(**serialize(doc)) if doc else None

    def get_user_by_line_id(self, line_id: str) -> Optional[User]:
        doc = collection(self.db, "user").find_one({"line_id": line_id})
        return User(**serialize(doc)) if doc else None

    def create_user(self, user: UserCreate) -> User:
        try:
            doc = create_document(self.db, "user", user.model_dump(), timestamped=True)
        except DuplicateKeyError:
            # Another request created this LINE user first
            existing = self.get_user_by_line_id(user.line_id)
            if existing is None:
                raise
            return existing
        return User(**serialize(doc))

    # Sessions

    def create_session(self, user_id: int) -> str:
        session_id = secrets.token_urlsafe(32)
        # TTL expiry reads created_at as UTC
        created_at = datetime.now(timezone.utc).replace(tzinfo=None)
        collection(self.db, "session").insert_one({"_id": session_id, "user_id": user_id, "created_at": created_at})
        return session_id

    def get_session_user(self, session_id: str) -> Optional[User]:
        session = collection(self.db, "session").find_one({"_id": session_id})
        if not session:
            return None
        return self.get_user(session["user_id"])

    def delete_session(self, session_id: str) -> None:
        collection(self.db, "session").delete_one({"_id": session_id})
