"""
Store Schemas

Pydantic models for the records kept by the storage layer and for the
request bodies the API accepts.

- Product -> products
- User -> users
- Review -> reviews
- CartItem -> cart
"""

from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, field_validator

PRICE_PATTERN = r"^\d+\.\d{2}$"
RATING_PATTERN = r"^\d+\.\d$"


class ProductCreate(BaseModel):
    """Product fields supplied by the caller (everything but the id)"""
    name: str = Field(..., description="Product name")
    description: str = Field(..., description="Product description")
    price: str = Field(..., pattern=PRICE_PATTERN, description="Price, two fraction digits")
    image: str = Field(..., description="Image URL or path")
    rating: str = Field(..., pattern=RATING_PATTERN, description="Average rating, one fraction digit")
    review_count: int = Field(0, ge=0, description="Number of approved reviews")
    badge: Optional[str] = Field(None, description="Optional badge label, e.g. New")
    sizes: List[str] = Field(..., description="Available sizes in display order")
    featured: Optional[bool] = Field(None, description="Featured flag, stored as true when unset")


class Product(BaseModel):
    """Products collection schema"""
    id: int
    name: str
    description: str
    price: str
    image: str
    rating: str
    review_count: int = 0
    badge: Optional[str] = None
    sizes: List[str] = Field(default_factory=list)
    featured: bool = True


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[str] = Field(None, pattern=PRICE_PATTERN)
    image: Optional[str] = None
    sizes: Optional[List[str]] = None
    badge: Optional[str] = None

    @field_validator("name", "description", "price", "image", "sizes")
    @classmethod
    def not_null(cls, value):
        # Fields may be omitted but only badge may be null
        if value is None:
            raise ValueError("must not be null")
        return value


class UserCreate(BaseModel):
    username: str = Field(..., min_length=1)
    password: str


class User(BaseModel):
    """Users collection schema. Passwords are kept in plaintext."""
    id: int
    username: str = Field(..., description="Unique login name")
    password: str = Field(..., description="Plaintext password")
    is_admin: bool = Field(False, description="Whether the user may call the admin API")


class ReviewCreate(BaseModel):
    name: str = Field(..., min_length=1, description="Reviewer name")
    rating: int = Field(..., ge=1, le=5, description="Rating from 1 to 5")
    comment: Optional[str] = Field("", description="Free-text comment")


class Review(BaseModel):
    """Reviews collection schema"""
    id: int
    name: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""
    approved: bool = True
    created_at: datetime


class ReviewApproval(BaseModel):
    approved: bool


class CartItemCreate(BaseModel):
    product_id: int = Field(..., description="ID of the product")
    size: str = Field(..., description="Selected size")
    quantity: int = Field(1, ge=1, description="Quantity to add")
    user_id: Optional[int] = Field(None, description="Owner user id, guest cart when absent")


class CartItem(BaseModel):
    id: int
    user_id: Optional[int] = None
    product_id: int
    size: str
    quantity: int = Field(1, ge=1)


class CartQuantityUpdate(BaseModel):
    quantity: int = Field(..., gt=0)


class CartItemWithProduct(CartItem):
    product: Optional[Product] = None
