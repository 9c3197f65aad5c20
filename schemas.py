"""
Table schemas for the shop admin console

Each model mirrors a table exposed by the hosted data API:
- User -> "users"
- Product -> "products"
- Order -> "orders"
- OrderItem / CartItem -> "cart_items"
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, computed_field, field_validator

from config import MAX_PRODUCT_IMAGES, PLACEHOLDER_IMAGE, PRODUCT_CATEGORIES

ORDER_STATUSES = ("pending", "processing", "completed", "cancelled")

OrderStatus = Literal["pending", "processing", "completed", "cancelled"]


def parse_images(images: Any) -> List[str]:
    """Normalize the stored image field (array or position-keyed map) to a list of URLs."""
    if isinstance(images, list):
        return [url for url in images if isinstance(url, str)]
    if isinstance(images, dict):
        numeric = sorted((k for k in images if str(k).isdigit()), key=int)
        keys = numeric + [k for k in images if not str(k).isdigit()]
        return [images[k] for k in keys if isinstance(images[k], str)]
    return []


def images_to_keyed_map(urls: List[str]) -> Dict[str, str]:
    return {str(i): url for i, url in enumerate(urls)}


# ------------- Users -------------

class User(BaseModel):
    id: str
    email: EmailStr
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    role: Literal["admin", "user"] = "user"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserUpdate(BaseModel):
    display_name: Optional[str] = Field(None, max_length=120)
    photo_url: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class SessionOut(BaseModel):
    token: str
    user: Dict[str, Any]
    record: Optional[User] = None


# ------------- Products -------------

class ProductIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    category: str
    sub_category: str = ""
    images: List[str] = Field(default_factory=list, max_length=MAX_PRODUCT_IMAGES)
    featured: bool = False
    ali_express_link: Optional[str] = None

    @field_validator("category")
    @classmethod
    def known_category(cls, v: str) -> str:
        if v not in PRODUCT_CATEGORIES:
            raise ValueError(f"category must be one of: {', '.join(PRODUCT_CATEGORIES)}")
        return v

    @field_validator("images", mode="before")
    @classmethod
    def image_urls(cls, v):
        return [url.strip() for url in parse_images(v) if url.strip()]


class ProductOut(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    price: float = 0
    stock: int = 0
    category: Optional[str] = None
    sub_category: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    featured: bool = False
    ali_express_link: Optional[str] = None
    rating: float = 0
    reviews: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def primary_image(self) -> str:
        return self.images[0] if self.images else PLACEHOLDER_IMAGE

    @field_validator("images", mode="before")
    @classmethod
    def image_urls(cls, v):
        return parse_images(v)

    @field_validator("price", "stock", "rating", "reviews", mode="before")
    @classmethod
    def null_as_zero(cls, v):
        return 0 if v is None else v

    @field_validator("featured", mode="before")
    @classmethod
    def null_as_false(cls, v):
        return False if v is None else v


class ProductSummary(BaseModel):
    id: str = ""
    title: str = "Unknown Product"
    description: Optional[str] = ""
    price: float = 0
    images: List[str] = Field(default_factory=list)

    @field_validator("images", mode="before")
    @classmethod
    def image_urls(cls, v):
        return parse_images(v)


# ------------- Orders -------------

class OrderOut(BaseModel):
    id: str
    user_id: Optional[str] = None
    email: Optional[str] = None
    total_amount: float = 0
    status: Optional[str] = None
    shipping_address: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("total_amount", mode="before")
    @classmethod
    def null_as_zero(cls, v):
        return 0 if v is None else v


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItemOut(BaseModel):
    id: str
    order_id: str
    user_id: Optional[str] = None
    product_id: Optional[str] = None
    quantity: int = 0
    price_at_time: float = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    product: ProductSummary = Field(default_factory=ProductSummary)

    @computed_field
    @property
    def subtotal(self) -> float:
        return round(self.quantity * self.price_at_time, 2)


class OrderItemsOut(BaseModel):
    order_id: str
    items: List[OrderItemOut] = Field(default_factory=list)

    @computed_field
    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)


# ------------- Carts -------------

class CartItemIn(BaseModel):
    product_id: str
    quantity: int = Field(1, ge=1)


class CartQuantityUpdate(BaseModel):
    quantity: int = Field(..., ge=1)


class CartItemOut(BaseModel):
    id: str
    user_id: Optional[str] = None
    product_id: Optional[str] = None
    quantity: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    product: Optional[ProductOut] = None

    @computed_field
    @property
    def line_total(self) -> float:
        return round(self.quantity * (self.product.price if self.product else 0), 2)


class CartOut(BaseModel):
    user: User
    items: List[CartItemOut] = Field(default_factory=list)

    @computed_field
    @property
    def created_at(self) -> Optional[datetime]:
        return self.items[0].created_at if self.items else None

    @computed_field
    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @computed_field
    @property
    def total_amount(self) -> float:
        return round(sum(item.line_total for item in self.items), 2)


# ------------- Dashboard -------------

class StatusSlice(BaseModel):
    id: str
    label: str
    value: int
    color: Optional[str] = None


class CategorySlice(BaseModel):
    id: str
    label: str
    value: float


class RevenuePoint(BaseModel):
    x: str
    y: float


class DashboardStats(BaseModel):
    range: str
    start: datetime
    end: datetime
    total_revenue: float = 0
    total_orders: int = 0
    total_products: int = 0
    average_order_value: float = 0
    revenue_by_category: List[CategorySlice] = Field(default_factory=list)
    orders_by_status: List[StatusSlice] = Field(default_factory=list)
    daily_revenue: List[RevenuePoint] = Field(default_factory=list)
    status_breakdown: Dict[str, int] = Field(default_factory=dict)
    date_ranges: Dict[str, str] = Field(default_factory=dict)
