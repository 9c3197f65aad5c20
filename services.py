"""
Table operations for users, products, orders and carts.

Each function is one request (or one small group of requests) against the
hosted table API; rows come back as schema models.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Dict, List, Optional

from supabase import Client

from database import (
    DataAPIError, InvalidInputError, NotFoundError, create_document, execute, get_documents,
)
from schemas import (
    CartItemOut, CartOut, OrderItemOut, OrderItemsOut, OrderOut, ProductIn, ProductOut, User,
    images_to_keyed_map,
)

logger = logging.getLogger(__name__)

EMAIL_LOOKUP_WORKERS = 8

ORDER_ITEM_COLUMNS = (
    "id,user_id,order_id,product_id,quantity,price_at_time,created_at,updated_at,"
    "product:products(id,title,description,price,images)"
)
CART_COLUMNS = "*,product:products(*),user:users(*)"

# an id that matches no row, or that the id column's type rejects
NO_SUCH_ROW = (NotFoundError, InvalidInputError)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _first(rows) -> Optional[dict]:
    return rows[0] if rows else None


# ------------- Users -------------

def get_user_by_email(db: Client, email: str) -> Optional[User]:
    try:
        row = execute(db.table("users").select("*").eq("email", email).single()).data
    except NotFoundError:
        return None
    return User(**row)


def create_user(db: Client, email: str, display_name: Optional[str] = None,
                photo_url: Optional[str] = None) -> User:
    row = create_document("users", {
        "id": str(uuid.uuid4()),
        "email": email,
        "display_name": display_name,
        "photo_url": photo_url,
        "role": "user",
    }, client=db)
    logger.info("Created user record for %s", email)
    return User(**row)


def update_user(db: Client, user_id: str, updates: dict) -> Optional[User]:
    try:
        rows = execute(db.table("users").update({**updates, "updated_at": _now()}).eq("id", user_id)).data
    except InvalidInputError:
        return None
    row = _first(rows)
    return User(**row) if row else None


# ------------- Products -------------

def list_products(db: Client) -> List[ProductOut]:
    rows = get_documents("products", order_by="created_at", desc=True, client=db)
    return [ProductOut(**r) for r in rows]


def get_product(db: Client, product_id: str) -> Optional[ProductOut]:
    try:
        row = execute(db.table("products").select("*").eq("id", product_id).single()).data
    except NO_SUCH_ROW:
        return None
    return ProductOut(**row)


def _product_row(product: ProductIn) -> dict:
    return {
        "title": product.title,
        "description": product.description or None,
        "price": product.price,
        "images": images_to_keyed_map(product.images),
        "category": product.category,
        "sub_category": product.sub_category,
        "stock": product.stock,
        "featured": product.featured,
        "ali_express_link": product.ali_express_link or None,
    }


def create_product(db: Client, product: ProductIn) -> ProductOut:
    row = create_document("products", {**_product_row(product), "rating": 0, "reviews": 0}, client=db)
    return ProductOut(**row)


def update_product(db: Client, product_id: str, product: ProductIn) -> Optional[ProductOut]:
    data = {**_product_row(product), "updated_at": _now()}
    try:
        rows = execute(db.table("products").update(data).eq("id", product_id)).data
    except InvalidInputError:
        return None
    row = _first(rows)
    return ProductOut(**row) if row else None


def delete_product(db: Client, product_id: str) -> bool:
    try:
        rows = execute(db.table("products").delete().eq("id", product_id)).data
    except InvalidInputError:
        return False
    return bool(rows)


# ------------- Orders -------------

def _lookup_email(db: Client, user_id: str) -> Optional[str]:
    try:
        row = execute(db.table("users").select("email").eq("id", user_id).single()).data
    except NO_SUCH_ROW:
        return None
    except DataAPIError as e:
        logger.warning("Email lookup failed for user %s: %s", user_id, e)
        return None
    return row.get("email")


def list_orders(db: Client) -> List[OrderOut]:
    """All orders, newest first, each with its owner's email."""
    rows = get_documents("orders", order_by="created_at", desc=True, client=db)
    user_ids = list(dict.fromkeys(r["user_id"] for r in rows if r.get("user_id")))
    emails: Dict[str, Optional[str]] = {}
    if user_ids:
        with ThreadPoolExecutor(max_workers=min(EMAIL_LOOKUP_WORKERS, len(user_ids))) as pool:
            emails = dict(zip(user_ids, pool.map(lambda uid: _lookup_email(db, uid), user_ids)))
    return [OrderOut(**{**r, "email": emails.get(r.get("user_id"))}) for r in rows]


def get_order_items(db: Client, order_id: str) -> OrderItemsOut:
    try:
        rows = get_documents("cart_items", {"order_id": order_id}, columns=ORDER_ITEM_COLUMNS, client=db)
    except InvalidInputError:
        rows = []
    # a deleted product leaves the line with the "Unknown Product" placeholder
    items = [OrderItemOut(**{**r, "product": r.get("product") or {}}) for r in rows]
    return OrderItemsOut(order_id=order_id, items=items)


def update_order_status(db: Client, order_id: str, status: str) -> Optional[OrderOut]:
    try:
        rows = execute(db.table("orders").update({"status": status, "updated_at": _now()}).eq("id", order_id)).data
    except InvalidInputError:
        return None
    row = _first(rows)
    return OrderOut(**row) if row else None


# ------------- Carts -------------

def group_by_user(rows: List[dict]) -> List[CartOut]:
    """Group cart item rows (with embedded user) into one cart per user, first seen first."""
    carts: Dict[str, CartOut] = {}
    for row in rows:
        user_id, user = row.get("user_id"), row.get("user")
        if not user_id or not user:
            continue
        if user_id not in carts:
            carts[user_id] = CartOut(user=User(**user))
        carts[user_id].items.append(CartItemOut(**row))
    return list(carts.values())


def list_carts(db: Client) -> List[CartOut]:
    """Open cart lines (not yet part of an order), one cart per user."""
    query = db.table("cart_items").select(CART_COLUMNS).is_("order_id", "null").order("created_at", desc=True)
    return group_by_user(execute(query).data or [])


def get_cart_items(db: Client, user_id: str) -> List[CartItemOut]:
    query = db.table("cart_items").select("*,product:products(*)").eq("user_id", user_id).is_("order_id", "null")
    try:
        rows = execute(query).data or []
    except InvalidInputError:
        rows = []
    return [CartItemOut(**r) for r in rows]


def add_cart_item(db: Client, user_id: str, product_id: str, quantity: int) -> CartItemOut:
    """Add to the user's line for the product, or open a new line."""
    existing = _first(execute(
        db.table("cart_items").select("*")
        .eq("user_id", user_id).eq("product_id", product_id).is_("order_id", "null")
        .limit(1)
    ).data)

    if existing:
        rows = execute(
            db.table("cart_items")
            .update({"quantity": existing["quantity"] + quantity, "updated_at": _now()})
            .eq("id", existing["id"])
        ).data
        row = _first(rows) or {**existing, "quantity": existing["quantity"] + quantity}
    else:
        row = create_document("cart_items", {
            "user_id": user_id,
            "product_id": product_id,
            "quantity": quantity,
        }, client=db)
    return CartItemOut(**row)


def remove_cart_item(db: Client, item_id: str) -> bool:
    try:
        rows = execute(db.table("cart_items").delete().eq("id", item_id)).data
    except InvalidInputError:
        return False
    return bool(rows)


def update_cart_item_quantity(db: Client, item_id: str, quantity: int) -> Optional[CartItemOut]:
    try:
        rows = execute(
            db.table("cart_items").update({"quantity": quantity, "updated_at": _now()}).eq("id", item_id)
        ).data
    except InvalidInputError:
        return None
    row = _first(rows)
    return CartItemOut(**row) if row else None
