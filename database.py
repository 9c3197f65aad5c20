"""
Hosted table API access through the Supabase client.

Service functions build queries on a ``Client`` and run them with ``execute``
so every failure surfaces as a ``DataAPIError``:

    execute(db.table("orders").select("*").eq("user_id", uid).order("created_at", desc=True))
    execute(db.table("users").select("*").eq("email", email).single())
"""

import logging
from typing import List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import Client, ClientOptions, create_client

from config import DATA_API_TIMEOUT, SUPABASE_ANON_KEY, SUPABASE_URL

logger = logging.getLogger(__name__)

NOT_FOUND_CODE = "PGRST116"
INVALID_INPUT_CODE = "22P02"
TABLES = ("users", "products", "orders", "cart_items")


class DataAPIError(Exception):
    """A request to the table API failed."""

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details

    def __str__(self):
        if self.code:
            return f"{self.message} ({self.code})"
        return self.message


class NotFoundError(DataAPIError):
    """A single-row read matched no rows."""


class InvalidInputError(DataAPIError):
    """A filter value the column type rejects, such as a malformed uuid."""


def _error_from(e: APIError) -> DataAPIError:
    if e.code == NOT_FOUND_CODE:
        cls = NotFoundError
    elif e.code == INVALID_INPUT_CODE:
        cls = InvalidInputError
    else:
        cls = DataAPIError
    return cls(e.message or "Data API request failed", code=e.code, details=e.details)


def execute(query):
    """Send a built query; the response carries ``.data`` and ``.count``."""
    try:
        return query.execute()
    except APIError as e:
        raise _error_from(e) from e
    except httpx.HTTPError as e:
        raise DataAPIError(f"Data API unreachable: {e}") from e


def connect(url: str, key: str, headers: Optional[dict] = None) -> Client:
    options = ClientOptions(postgrest_client_timeout=DATA_API_TIMEOUT, headers=dict(headers or {}))
    return create_client(url, key, options=options)


def with_identity(client: Client, id_token: str, email: str = "") -> Client:
    """A client for the same project carrying the signed-in user's identity on every request."""
    return connect(str(client.supabase_url).rstrip("/"), client.supabase_key, headers={
        "X-Firebase-Token": id_token,
        "X-User-Email": email or "",
    })


def reachable_tables(client: Client) -> List[str]:
    """Known tables the data API answers for. Raises the last error when none answer."""
    reachable, last_error = [], None
    for name in TABLES:
        try:
            execute(client.table(name).select("id").limit(1))
        except DataAPIError as e:
            logger.warning("Table %s not reachable: %s", name, e)
            last_error = e
            continue
        reachable.append(name)
    if not reachable and last_error is not None:
        raise last_error
    return reachable


def create_document(table: str, data: dict, client: Optional[Client] = None) -> dict:
    """Insert one row and return it as stored."""
    client = client or db
    if client is None:
        raise DataAPIError("Database not configured")
    rows = execute(client.table(table).insert(data)).data
    if not rows:
        raise DataAPIError(f"Insert into {table} returned no row")
    return rows[0]


def get_documents(table: str, filter_dict: Optional[dict] = None, order_by: Optional[str] = None,
                  desc: bool = False, limit: Optional[int] = None, columns: str = "*",
                  client: Optional[Client] = None) -> List[dict]:
    """Select rows matching equality filters."""
    client = client or db
    if client is None:
        raise DataAPIError("Database not configured")
    q = client.table(table).select(columns)
    for column, value in (filter_dict or {}).items():
        q = q.eq(column, value)
    if order_by:
        q = q.order(order_by, desc=desc)
    if limit:
        q = q.limit(limit)
    return execute(q).data or []


db: Optional[Client] = None
if SUPABASE_URL and SUPABASE_ANON_KEY:
    db = connect(SUPABASE_URL, SUPABASE_ANON_KEY)
