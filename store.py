"""
Per-session client store: the signed-in identity plus the last rows each page fetched.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from schemas import User


@dataclass
class Slice:
    items: List[Any] = field(default_factory=list)
    is_loading: bool = False
    error: Optional[str] = None

    def set_items(self, items: List[Any]):
        self.items = list(items)

    def set_loading(self, loading: bool):
        self.is_loading = loading

    def set_error(self, error: Optional[str]):
        self.error = error

    def snapshot(self) -> dict:
        return {"count": len(self.items), "is_loading": self.is_loading, "error": self.error}


@dataclass
class AuthState:
    user: Optional[Dict[str, Any]] = None
    record: Optional[User] = None
    is_loading: bool = False

    def set_user(self, user: Optional[Dict[str, Any]], record: Optional[User] = None):
        self.user = user
        self.record = record if user is not None else None


@dataclass
class Store:
    auth: AuthState = field(default_factory=AuthState)
    products: Slice = field(default_factory=Slice)
    orders: Slice = field(default_factory=Slice)
    carts: Slice = field(default_factory=Slice)

    def snapshot(self) -> dict:
        return {
            "user": self.auth.user,
            "role": self.auth.record.role if self.auth.record else None,
            "products": self.products.snapshot(),
            "orders": self.orders.snapshot(),
            "carts": self.carts.snapshot(),
        }
