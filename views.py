"""
List filtering and sorting for the product, order and cart pages.

All of these run over rows that were already fetched; none touch the data API.
"""

from datetime import date, datetime, time, timezone
from typing import List, Optional

from schemas import CartOut, OrderOut, ProductOut


def _contains(haystack: Optional[str], needle: str) -> bool:
    return needle.lower() in (haystack or "").lower()


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def end_of_day(d: date) -> datetime:
    return datetime.combine(d, time.max, tzinfo=timezone.utc)


def search_products(products: List[ProductOut], term: str = "") -> List[ProductOut]:
    """Keep products whose title or description contains the term, ignoring case."""
    if not term:
        return list(products)
    return [p for p in products if _contains(p.title, term) or _contains(p.description, term)]


def filter_orders(orders: List[OrderOut], term: str = "", email_term: str = "",
                  status: str = "all") -> List[OrderOut]:
    def keep(order: OrderOut) -> bool:
        if status != "all" and order.status != status:
            return False
        if not _contains(order.user_id, term):
            return False
        if email_term and not (order.email and _contains(order.email, email_term)):
            return False
        return True

    return [o for o in orders if keep(o)]


def filter_carts(carts: List[CartOut], term: str = "", start: Optional[date] = None,
                 end: Optional[date] = None, sort: str = "newest",
                 now: Optional[datetime] = None) -> List[CartOut]:
    """Filter carts by user email and inclusive date range, then sort by cart date."""
    now = now or datetime.now(timezone.utc)
    lower = start_of_day(start) if start else None
    upper = end_of_day(end) if end else None

    def cart_date(cart: CartOut) -> datetime:
        # a cart without a dated item counts as "now"
        return as_utc(cart.created_at) if cart.created_at else now

    kept = []
    for cart in carts:
        when = cart_date(cart)
        if not _contains(cart.user.email, term):
            continue
        if lower and when < lower:
            continue
        if upper and when > upper:
            continue
        kept.append(cart)

    kept.sort(key=cart_date, reverse=(sort == "newest"))
    return kept
