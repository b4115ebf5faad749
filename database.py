"""
In-memory storage for the store API.

`Storage` describes what the request handlers need from a backend and
`MemStorage` keeps everything in process memory. Nothing survives a restart.
Lookups that miss return None (or False for deletes) instead of raising, so
mapping to HTTP status codes stays in the handlers.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

from fastapi import Request

from schemas import (
    CartItem,
    CartItemCreate,
    Product,
    ProductCreate,
    Review,
    ReviewCreate,
    User,
    UserCreate,
)

logger = logging.getLogger(__name__)

SEED_PRODUCT = ProductCreate(
    name="Flaze Heated Lunch Box",
    description="Premium heated lunch box with temperature control. Keep your meals warm anywhere you go.",
    price="59.99",
    image="",
    rating="5.0",
    review_count=0,
    badge="New",
    sizes=["S", "M", "L"],
    featured=True,
)

# Only badge may be cleared by passing None
NULLABLE_PRODUCT_FIELDS = {"badge"}


class Storage(ABC):
    @abstractmethod
    def stats(self) -> Dict[str, int]: ...

    # Products
    @abstractmethod
    def list_products(self) -> List[Product]: ...

    @abstractmethod
    def list_featured_products(self) -> List[Product]: ...

    @abstractmethod
    def get_product(self, product_id: int) -> Optional[Product]: ...

    @abstractmethod
    def create_product(self, data: ProductCreate) -> Product: ...

    @abstractmethod
    def update_product(self, product_id: int, data: Dict[str, Any]) -> Optional[Product]: ...

    # Users
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    def create_user(self, data: UserCreate) -> User: ...

    @abstractmethod
    def verify_admin(self, username: str, password: str) -> bool: ...

    # Reviews
    @abstractmethod
    def list_all_reviews(self) -> List[Review]: ...

    @abstractmethod
    def list_approved_reviews(self) -> List[Review]: ...

    @abstractmethod
    def get_review(self, review_id: int) -> Optional[Review]: ...

    @abstractmethod
    def create_review(self, data: ReviewCreate) -> Review: ...

    @abstractmethod
    def update_review(self, review_id: int, approved: bool) -> Optional[Review]: ...

    @abstractmethod
    def delete_review(self, review_id: int) -> bool: ...

    # Cart
    @abstractmethod
    def list_cart_items(self, user_id: Optional[int] = None) -> List[CartItem]: ...

    @abstractmethod
    def add_to_cart(self, data: CartItemCreate) -> CartItem: ...

    @abstractmethod
    def update_cart_item_quantity(self, item_id: int, quantity: int) -> Optional[CartItem]: ...

    @abstractmethod
    def remove_from_cart(self, item_id: int) -> bool: ...

    @abstractmethod
    def clear_cart(self, user_id: Optional[int] = None) -> bool: ...


def average_rating(ratings: List[int]) -> str:
    """Mean of the ratings rounded half-up to one decimal, e.g. [4, 4, 4, 5] -> "4.3".

    The float mean is rounded at its exact binary value, so 87 / 20 (stored
    just below 4.35) gives "4.3".
    """
    mean = Decimal(sum(ratings) / len(ratings))
    return str(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


class MemStorage(Storage):
    """Dict-backed storage. Ids come from per-collection counters and are never reused."""

    def __init__(
        self,
        seed: bool = True,
        admin_username: str = "admin",
        admin_password: str = "admin123",
        auto_approve_reviews: bool = True,
    ):
        self._lock = threading.RLock()
        self._users: Dict[int, User] = {}
        self._products: Dict[int, Product] = {}
        self._cart: Dict[int, CartItem] = {}
        self._reviews: Dict[int, Review] = {}

        self._next_user_id = 1
        self._next_product_id = 1
        self._next_cart_item_id = 1
        self._next_review_id = 1

        self.auto_approve_reviews = auto_approve_reviews

        if seed:
            self._seed(admin_username, admin_password)

    def _seed(self, admin_username: str, admin_password: str) -> None:
        user = self.create_user(UserCreate(username=admin_username, password=admin_password))
        self._users[user.id] = user.model_copy(update={"is_admin": True})
        self.create_product(SEED_PRODUCT)
        logger.info("Seeded admin user %r and %d product(s)", admin_username, len(self._products))

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "users": len(self._users),
                "products": len(self._products),
                "cart": len(self._cart),
                "reviews": len(self._reviews),
            }

    # Products

    def list_products(self) -> List[Product]:
        with self._lock:
            return list(self._products.values())

    def list_featured_products(self) -> List[Product]:
        with self._lock:
            return [p for p in self._products.values() if p.featured]

    def get_product(self, product_id: int) -> Optional[Product]:
        with self._lock:
            return self._products.get(product_id)

    def create_product(self, data: ProductCreate) -> Product:
        with self._lock:
            product_id = self._next_product_id
            self._next_product_id += 1
            product = Product(
                id=product_id,
                name=data.name,
                description=data.description,
                price=data.price,
                image=data.image,
                rating=data.rating,
                review_count=data.review_count or 0,
                badge=data.badge or None,
                sizes=list(data.sizes),
                featured=data.featured if data.featured is not None else True,
            )
            self._products[product_id] = product
            return product

    def update_product(self, product_id: int, data: Dict[str, Any]) -> Optional[Product]:
        """Merge `data` over the stored product.

        Missing keys keep the current value. None also keeps the current value,
        except for badge where it clears the label.
        """
        with self._lock:
            product = self._products.get(product_id)
            if product is None:
                return None
            changes = {
                k: v for k, v in data.items()
                if k != "id" and k in Product.model_fields and (v is not None or k in NULLABLE_PRODUCT_FIELDS)
            }
            updated = product.model_copy(update=changes)
            self._products[product_id] = updated
            return updated

    # Users

    def get_user(self, user_id: int) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            return next((u for u in self._users.values() if u.username == username), None)

    def create_user(self, data: UserCreate) -> User:
        with self._lock:
            user_id = self._next_user_id
            self._next_user_id += 1
            user = User(id=user_id, username=data.username, password=data.password, is_admin=False)
            self._users[user_id] = user
            return user

    def verify_admin(self, username: str, password: str) -> bool:
        # Plaintext comparison, no hashing
        user = self.get_user_by_username(username)
        if user is None:
            return False
        return user.password == password and user.is_admin

    # Reviews

    def list_all_reviews(self) -> List[Review]:
        with self._lock:
            return sorted(self._reviews.values(), key=lambda r: r.created_at, reverse=True)

    def list_approved_reviews(self) -> List[Review]:
        with self._lock:
            approved = [r for r in self._reviews.values() if r.approved]
        return sorted(approved, key=lambda r: r.created_at, reverse=True)

    def get_review(self, review_id: int) -> Optional[Review]:
        with self._lock:
            return self._reviews.get(review_id)

    def create_review(self, data: ReviewCreate) -> Review:
        with self._lock:
            review_id = self._next_review_id
            self._next_review_id += 1
            review = Review(
                id=review_id,
                name=data.name,
                rating=data.rating,
                comment=data.comment or "",
                approved=self.auto_approve_reviews,
                created_at=datetime.now(timezone.utc),
            )
            self._reviews[review_id] = review
            logger.info("Created review %d (rating %d, approved=%s)", review_id, review.rating, review.approved)
            self._update_product_ratings()
            return review

    def update_review(self, review_id: int, approved: bool) -> Optional[Review]:
        with self._lock:
            review = self._reviews.get(review_id)
            if review is None:
                return None
            updated = review.model_copy(update={"approved": approved})
            self._reviews[review_id] = updated
            logger.info("Review %d approved=%s", review_id, approved)
            self._update_product_ratings()
            return updated

    def delete_review(self, review_id: int) -> bool:
        with self._lock:
            if self._reviews.pop(review_id, None) is None:
                return False
            logger.info("Deleted review %d", review_id)
            self._update_product_ratings()
            return True

    def _update_product_ratings(self) -> None:
        # Reviews carry no product id; the first product is the rated one.
        product = next(iter(self._products.values()), None)
        if product is None:
            return
        ratings = [r.rating for r in self._reviews.values() if r.approved]
        if not ratings:
            return
        rating = average_rating(ratings)
        self.update_product(product.id, {"rating": rating, "review_count": len(ratings)})
        logger.info("Product %d rating is now %s from %d review(s)", product.id, rating, len(ratings))

    # Cart

    def _in_scope(self, item: CartItem, user_id: Optional[int]) -> bool:
        if user_id is None:
            return item.user_id is None
        return item.user_id == user_id

    def list_cart_items(self, user_id: Optional[int] = None) -> List[CartItem]:
        with self._lock:
            return [item for item in self._cart.values() if self._in_scope(item, user_id)]

    def add_to_cart(self, data: CartItemCreate) -> CartItem:
        with self._lock:
            existing = next(
                (
                    item for item in self._cart.values()
                    if item.product_id == data.product_id
                    and item.size == data.size
                    and item.user_id == data.user_id
                ),
                None,
            )
            if existing is not None:
                return self.update_cart_item_quantity(existing.id, existing.quantity + (data.quantity or 1))

            item_id = self._next_cart_item_id
            self._next_cart_item_id += 1
            item = CartItem(
                id=item_id,
                user_id=data.user_id,
                product_id=data.product_id,
                size=data.size,
                quantity=data.quantity or 1,
            )
            self._cart[item_id] = item
            return item

    def update_cart_item_quantity(self, item_id: int, quantity: int) -> Optional[CartItem]:
        with self._lock:
            item = self._cart.get(item_id)
            if item is None:
                return None
            updated = item.model_copy(update={"quantity": quantity})
            self._cart[item_id] = updated
            return updated

    def remove_from_cart(self, item_id: int) -> bool:
        with self._lock:
            return self._cart.pop(item_id, None) is not None

    def clear_cart(self, user_id: Optional[int] = None) -> bool:
        with self._lock:
            for item_id in [i.id for i in self._cart.values() if self._in_scope(i, user_id)]:
                del self._cart[item_id]
        return True


def get_db(request: Request) -> Storage:
    """FastAPI dependency returning the storage attached to the application."""
    return request.app.state.db
