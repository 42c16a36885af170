"""
Database Schemas

Each Pydantic model represents a collection in the database; the model name
lowercased is the collection name (AuditLog -> "audit_log"). The *Input and
*Update models are request bodies.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, HttpUrl, model_validator

from lockout import LockoutState

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled", "returned")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")
PAYMENT_METHODS = ("credit_card", "paypal", "bank_transfer", "cash_on_delivery")
PRODUCT_STATUSES = ("available", "coming_soon", "discontinued")
AUDIT_ACTIONS = (
    "USERNAME_CHANGE", "ADMIN_USER_UPDATE", "USER_UPDATE", "USER_DELETE",
    "USER_CREATE", "USER_LOGIN", "USER_LOGOUT", "ACCOUNT_UNLOCK",
)

PHONE_PATTERN = r"^\d{10,15}$"


# -----------------------------
# Users
# -----------------------------
class User(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr = Field(..., description="Email address, stored lowercased")
    password_hash: str = Field(..., description="BCrypt hashed password")
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address: Optional[str] = None
    phone_number: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    is_admin: bool = False
    lockout: LockoutState = Field(default_factory=LockoutState)


class RegisterInput(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    password: str = Field(..., min_length=6)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address: Optional[str] = None
    phone_number: Optional[str] = Field(None, pattern=PHONE_PATTERN)


class LoginInput(BaseModel):
    email: EmailStr
    password: str


class UserUpdate(BaseModel):
    """Fields a user may change on their own profile."""
    email: Optional[EmailStr] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address: Optional[str] = None
    phone_number: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    password: Optional[str] = Field(None, min_length=6)


class AdminUserUpdate(UserUpdate):
    is_admin: Optional[bool] = None


class UsernameChange(BaseModel):
    new_username: str = Field(..., min_length=3, max_length=30)
    reason: str = Field(..., min_length=1)


class UnlockRequest(BaseModel):
    reason: Optional[str] = None


class AuditLog(BaseModel):
    user_id: str
    action: Literal[AUDIT_ACTIONS]
    timestamp: datetime
    admin_user_id: Optional[str] = None
    updated_fields: Optional[dict] = None
    new_username: Optional[str] = None
    reason: Optional[str] = None
    description: Optional[str] = None


# -----------------------------
# Catalog
# -----------------------------
class SizeOption(BaseModel):
    size: str = Field(..., min_length=1)
    stock: int = Field(..., ge=0)


class ColorOption(BaseModel):
    color: str = Field(..., min_length=1)
    images: List[HttpUrl] = Field(default_factory=list)
    stock: int = Field(..., ge=0)


class Rating(BaseModel):
    user_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class Comment(BaseModel):
    user_id: str
    text: str
    timestamp: datetime


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    price: float = Field(..., ge=0)
    category: str
    brand: str
    images: List[HttpUrl] = Field(default_factory=list)
    stock: int = Field(..., ge=0)
    sizes: List[SizeOption] = Field(default_factory=list)
    colors: List[ColorOption] = Field(default_factory=list)
    is_new_arrival: bool = False
    is_exclusive: bool = False
    status: Literal[PRODUCT_STATUSES] = "available"
    on_sale: bool = False
    sale_price: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def sale_price_when_on_sale(self):
        if self.on_sale and self.sale_price is None:
            raise ValueError("Sale price is required when product is on sale")
        return self


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    category: Optional[str] = None
    brand: Optional[str] = None
    images: Optional[List[HttpUrl]] = None
    stock: Optional[int] = Field(None, ge=0)
    sizes: Optional[List[SizeOption]] = None
    colors: Optional[List[ColorOption]] = None
    is_new_arrival: Optional[bool] = None
    is_exclusive: Optional[bool] = None
    status: Optional[Literal[PRODUCT_STATUSES]] = None
    on_sale: Optional[bool] = None
    sale_price: Optional[float] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_fields(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        if self.on_sale and self.sale_price is None:
            raise ValueError("Sale price is required when product is on sale")
        return self


class RatingInput(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class CommentInput(BaseModel):
    text: str

    @model_validator(mode="after")
    def text_not_blank(self):
        if not self.text.strip():
            raise ValueError("Comment text cannot be empty")
        return self


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    parent: Optional[str] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    parent: Optional[str] = None

    @model_validator(mode="after")
    def at_least_one(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


class BrandCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    logo_url: Optional[HttpUrl] = None


class BrandUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    logo_url: Optional[HttpUrl] = None

    @model_validator(mode="after")
    def at_least_one(self):
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        return self


# -----------------------------
# Cart / Wishlist
# -----------------------------
class CartItem(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0, description="Price when the line was added")
    sale_price: Optional[float] = Field(None, ge=0, description="Sale price when the line was added")
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None


class Cart(BaseModel):
    user_id: str
    items: List[CartItem] = Field(default_factory=list)
    total_price: float = 0


class CartItemInput(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None


class CartQuantityUpdate(BaseModel):
    product_id: str
    new_quantity: int = Field(..., description="Zero or below removes the line")
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None


class CartItemKey(BaseModel):
    product_id: str
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None


class Wishlist(BaseModel):
    user_id: str
    products: List[str] = Field(default_factory=list)
    name: str = "My Wishlist"


class WishlistCreate(BaseModel):
    product_ids: List[str] = Field(default_factory=list)


class WishlistProduct(BaseModel):
    product_id: str


# -----------------------------
# Orders
# -----------------------------
class ShippingAddress(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)


class OrderItem(BaseModel):
    """Snapshot of the product at order time."""
    product_id: str
    name: str
    price: float = Field(..., ge=0)
    sale_price: Optional[float] = Field(None, ge=0)
    quantity: int = Field(..., ge=1)
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None
    image_url: Optional[str] = None


class Order(BaseModel):
    user_id: str
    items: List[OrderItem]
    total_amount: float = Field(..., ge=0)
    shipping_address: ShippingAddress
    payment_method: Literal[PAYMENT_METHODS]
    payment_status: Literal[PAYMENT_STATUSES] = "pending"
    order_status: Literal[ORDER_STATUSES] = "pending"
    tracking_number: Optional[str] = None


class OrderFromCartInput(BaseModel):
    shipping_address: ShippingAddress
    payment_method: Literal[PAYMENT_METHODS]


class DirectOrderInput(BaseModel):
    product_id: str
    quantity: int = Field(..., ge=1)
    shipping_address: ShippingAddress
    payment_method: Literal[PAYMENT_METHODS]
    selected_size: Optional[str] = None
    selected_color: Optional[str] = None


class OrderStatusUpdate(BaseModel):
    new_status: str


class PaymentStatusUpdate(BaseModel):
    new_payment_status: str
