import logging
import os
from contextlib import asynccontextmanager, contextmanager
from datetime import date
from typing import List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from supabase import Client

import database
import identity
import services
from auth import (
    Session, current_session, get_db, get_identity_provider, require_admin, session_db, sign_in, sign_out,
)
from config import CORS_ORIGINS, LOG_LEVEL, PORT
from dashboard import DateRangeError, fetch_dashboard
from database import DataAPIError, reachable_tables
from identity import IdentityError, IdentityProvider
from schemas import (
    CartItemIn, CartItemOut, CartOut, CartQuantityUpdate, DashboardStats, LoginRequest, OrderItemsOut, OrderOut,
    OrderStatusUpdate, ProductIn, ProductOut, SessionOut, User, UserUpdate,
)
from store import Slice
from views import filter_carts, filter_orders, search_products

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if identity.provider is not None:
        identity.provider.close()


app = FastAPI(title="Shop Admin Console API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------- Helpers -------------

@contextmanager
def tracking(slice_: Slice, error_message: str):
    """Flag the slice as loading; on a data API failure log it, flag it and answer 500."""
    slice_.set_loading(True)
    try:
        yield
        slice_.set_error(None)
    except DataAPIError as e:
        logger.error("%s: %s", error_message, e)
        slice_.set_error(error_message)
        raise HTTPException(status_code=500, detail=error_message) from e
    finally:
        slice_.set_loading(False)


# ------------- Routes -------------

@app.get("/")
def read_root():
    return {"message": "Shop Admin Console API running"}


# Auth
@app.post("/auth/login", response_model=SessionOut)
def login(payload: LoginRequest, db: Client = Depends(get_db),
          provider: IdentityProvider = Depends(get_identity_provider)):
    try:
        session = sign_in(db, provider, str(payload.email), payload.password)
    except IdentityError as e:
        logger.info("Sign-in rejected for %s: %s", payload.email, e.code)
        raise HTTPException(status_code=401, detail=e.message)
    if session is None:
        raise HTTPException(status_code=500, detail="Failed to sign in")
    return SessionOut(token=session.token, user=session.store.auth.user, record=session.store.auth.record)


@app.post("/auth/logout")
def logout(session: Session = Depends(current_session), db: Client = Depends(get_db)):
    sign_out(db, session)
    return {"signed_out": True}


@app.get("/auth/me")
def me(session: Session = Depends(current_session)):
    return {"user": session.store.auth.user, "record": session.store.auth.record}


@app.patch("/auth/me", response_model=User)
def update_me(payload: UserUpdate, session: Session = Depends(current_session),
              db: Client = Depends(session_db)):
    record = session.store.auth.record
    updates = payload.model_dump(exclude_unset=True)
    if not updates:
        return record
    try:
        user = services.update_user(db, record.id, updates)
    except DataAPIError as e:
        logger.error("Failed to update profile: %s", e)
        raise HTTPException(status_code=500, detail="Failed to update profile")
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    session.store.auth.record = user
    return user


@app.get("/api/session")
def session_state(session: Session = Depends(current_session)):
    return session.store.snapshot()


# Products
@app.get("/api/products", response_model=List[ProductOut])
def list_products(q: Optional[str] = None, session: Session = Depends(require_admin),
                  db: Client = Depends(session_db)):
    products = session.store.products
    with tracking(products, "Failed to fetch products"):
        products.set_items(services.list_products(db))
    return search_products(products.items, q or "")


@app.get("/api/products/{product_id}", response_model=ProductOut)
def get_product(product_id: str, session: Session = Depends(require_admin),
                db: Client = Depends(session_db)):
    with tracking(session.store.products, "Failed to fetch product"):
        product = services.get_product(db, product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.post("/api/products", response_model=ProductOut)
def create_product(payload: ProductIn, session: Session = Depends(require_admin),
                   db: Client = Depends(session_db)):
    products = session.store.products
    with tracking(products, "Failed to save product"):
        product = services.create_product(db, payload)
        products.set_items(services.list_products(db))
    return product


@app.put("/api/products/{product_id}", response_model=ProductOut)
def update_product(product_id: str, payload: ProductIn, session: Session = Depends(require_admin),
                   db: Client = Depends(session_db)):
    products = session.store.products
    with tracking(products, "Failed to save product"):
        product = services.update_product(db, product_id, payload)
        if product is not None:
            products.set_items(services.list_products(db))
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@app.delete("/api/products/{product_id}")
def delete_product(product_id: str, session: Session = Depends(require_admin),
                   db: Client = Depends(session_db)):
    products = session.store.products
    with tracking(products, "Failed to delete product"):
        deleted = services.delete_product(db, product_id)
        if deleted:
            products.set_items(services.list_products(db))
    if not deleted:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"deleted": True}


# Orders
@app.get("/api/orders", response_model=List[OrderOut])
def list_orders(q: str = "", email: str = "", status: str = "all",
                session: Session = Depends(require_admin), db: Client = Depends(session_db)):
    orders = session.store.orders
    with tracking(orders, "Failed to fetch orders"):
        orders.set_items(services.list_orders(db))
    return filter_orders(orders.items, term=q, email_term=email, status=status)


@app.get("/api/orders/{order_id}/items", response_model=OrderItemsOut)
def get_order_items(order_id: str, session: Session = Depends(require_admin),
                    db: Client = Depends(session_db)):
    with tracking(session.store.orders, "Failed to fetch order items"):
        return services.get_order_items(db, order_id)


@app.post("/api/orders/{order_id}/status", response_model=OrderOut)
def update_order_status(order_id: str, payload: OrderStatusUpdate, session: Session = Depends(require_admin),
                        db: Client = Depends(session_db)):
    with tracking(session.store.orders, "Failed to update order status"):
        order = services.update_order_status(db, order_id, payload.status)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


# Carts
@app.get("/api/carts", response_model=List[CartOut])
def list_carts(q: str = "", start: Optional[date] = None, end: Optional[date] = None,
               sort: Literal["newest", "oldest"] = "newest",
               session: Session = Depends(require_admin), db: Client = Depends(session_db)):
    carts = session.store.carts
    with tracking(carts, "Failed to fetch carts"):
        carts.set_items(services.list_carts(db))
    return filter_carts(carts.items, term=q, start=start, end=end, sort=sort)


@app.get("/api/carts/{user_id}", response_model=List[CartItemOut])
def get_cart(user_id: str, session: Session = Depends(require_admin), db: Client = Depends(session_db)):
    with tracking(session.store.carts, "Failed to fetch cart"):
        return services.get_cart_items(db, user_id)


@app.post("/api/carts/{user_id}/items", response_model=CartItemOut)
def add_cart_item(user_id: str, payload: CartItemIn, session: Session = Depends(require_admin),
                  db: Client = Depends(session_db)):
    with tracking(session.store.carts, "Failed to add cart item"):
        return services.add_cart_item(db, user_id, payload.product_id, payload.quantity)


@app.patch("/api/carts/items/{item_id}", response_model=CartItemOut)
def update_cart_item(item_id: str, payload: CartQuantityUpdate, session: Session = Depends(require_admin),
                     db: Client = Depends(session_db)):
    with tracking(session.store.carts, "Failed to update cart item"):
        item = services.update_cart_item_quantity(db, item_id, payload.quantity)
    if item is None:
        raise HTTPException(status_code=404, detail="Cart item not found")
    return item


@app.delete("/api/carts/items/{item_id}")
def remove_cart_item(item_id: str, session: Session = Depends(require_admin),
                     db: Client = Depends(session_db)):
    with tracking(session.store.carts, "Failed to remove cart item"):
        removed = services.remove_cart_item(db, item_id)
    if not removed:
        raise HTTPException(status_code=404, detail="Cart item not found")
    return {"deleted": True}


# Dashboard
@app.get("/api/dashboard", response_model=DashboardStats)
def dashboard(range_: str = Query("7", alias="range"), start: Optional[date] = None, end: Optional[date] = None,
              session: Session = Depends(require_admin), db: Client = Depends(session_db)):
    try:
        return fetch_dashboard(db, range_, start, end)
    except DateRangeError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DataAPIError as e:
        logger.error("Error fetching dashboard data: %s", e)
        raise HTTPException(status_code=500, detail="Failed to fetch dashboard data")


# Health & data API test
@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("SUPABASE_URL") else "❌ Not Set",
        "identity_provider": "✅ Configured" if identity.provider is not None else "❌ Not Configured",
        "connection_status": "Not Connected",
        "tables": []
    }
    db = database.db
    if db is None:
        return response
    response["database"] = "✅ Available"
    try:
        response["tables"] = reachable_tables(db)
        response["connection_status"] = "Connected"
        response["database"] = "✅ Connected & Working"
    except DataAPIError as e:
        response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
