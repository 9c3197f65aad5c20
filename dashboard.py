"""
Dashboard stats: reduces orders and products into chart-ready shapes.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

from pydantic import TypeAdapter
from supabase import Client

from database import execute
from schemas import ORDER_STATUSES, CategorySlice, DashboardStats, RevenuePoint, StatusSlice
from views import as_utc, end_of_day, start_of_day

logger = logging.getLogger(__name__)

STATUS_COLORS = {
    "pending": "#ffd700",
    "processing": "#1976d2",
    "completed": "#2e7d32",
    "cancelled": "#d32f2f",
}

DATE_RANGES = {
    "7": "Last 7 Days",
    "30": "Last 30 Days",
    "90": "Last 90 Days",
    "custom": "Custom Range",
}

UNCATEGORIZED = "uncategorized"

_datetime = TypeAdapter(datetime)


class DateRangeError(ValueError):
    pass


def capitalize(text: str) -> str:
    """Upper-case the first letter only; the rest is left alone."""
    return text[:1].upper() + text[1:]


def date_window(range_: str = "7", start: Optional[date] = None, end: Optional[date] = None,
                now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    now = now or datetime.now(timezone.utc)
    if range_ == "custom":
        if not start or not end:
            raise DateRangeError("Start and end dates are required for a custom range")
        lower, upper = start_of_day(start), end_of_day(end)
        if lower > upper:
            raise DateRangeError("Start date must not be after end date")
        return lower, upper
    if range_ not in DATE_RANGES:
        raise DateRangeError(f"Unknown date range: {range_}")
    return now - timedelta(days=int(range_)), now


def _amount(row: dict, key: str = "total_amount") -> float:
    return float(row.get(key) or 0)


def _day(value) -> str:
    return as_utc(_datetime.validate_python(value)).date().isoformat()


def status_breakdown(orders: List[dict]) -> Dict[str, int]:
    breakdown = {status: 0 for status in ORDER_STATUSES}
    for order in orders:
        status = (order.get("status") or "pending").lower()
        breakdown[status] = breakdown.get(status, 0) + 1
    return breakdown


def orders_by_status(breakdown: Dict[str, int]) -> List[StatusSlice]:
    return [
        StatusSlice(id=status, label=capitalize(status), value=count, color=STATUS_COLORS.get(status))
        for status, count in breakdown.items()
    ]


def daily_revenue(orders: List[dict]) -> List[RevenuePoint]:
    """Revenue per calendar day, in the order days first appear."""
    days: Dict[str, float] = {}
    for order in orders:
        if not order.get("created_at"):
            continue
        day = _day(order["created_at"])
        days[day] = days.get(day, 0.0) + _amount(order)
    return [RevenuePoint(x=day, y=round(total, 2)) for day, total in days.items()]


def revenue_by_category(products: List[dict]) -> List[CategorySlice]:
    totals: Dict[str, float] = {}
    for product in products:
        category = product.get("category") or UNCATEGORIZED
        totals[category] = totals.get(category, 0.0) + _amount(product, "price")
    return [
        CategorySlice(id=category, label=capitalize(category), value=round(total, 2))
        for category, total in totals.items()
    ]


def summarize(orders: List[dict], products: List[dict], total_products: int,
              range_: str, start: datetime, end: datetime) -> DashboardStats:
    total_revenue = sum(_amount(o) for o in orders)
    total_orders = len(orders)
    breakdown = status_breakdown(orders)
    return DashboardStats(
        range=range_,
        start=start,
        end=end,
        total_revenue=round(total_revenue, 2),
        total_orders=total_orders,
        total_products=total_products,
        average_order_value=round(total_revenue / total_orders, 2) if total_orders else 0,
        revenue_by_category=revenue_by_category(products),
        orders_by_status=orders_by_status(breakdown),
        daily_revenue=daily_revenue(orders),
        status_breakdown=breakdown,
        date_ranges=DATE_RANGES,
    )


def fetch_dashboard(db: Client, range_: str = "7", start: Optional[date] = None,
                    end: Optional[date] = None, now: Optional[datetime] = None) -> DashboardStats:
    lower, upper = date_window(range_, start, end, now)
    orders = execute(
        db.table("orders").select("total_amount,status,created_at")
        .gte("created_at", lower.isoformat()).lte("created_at", upper.isoformat())
        .order("created_at")
    ).data or []
    products = execute(db.table("products").select("category,price")).data or []
    total_products = execute(db.table("products").select("id", count="exact")).count or 0
    logger.debug("Dashboard %s: %d orders, %d products", range_, len(orders), total_products)
    return summarize(orders, products, total_products, range_, lower, upper)
