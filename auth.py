"""
Auth gate and session handling.

Signing in goes to the identity provider; every identity change then mirrors
the identity into the backend ``users`` table (looking the record up by
email, creating it if missing) before the session's store is updated.
"""

import logging
import secrets
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from fastapi import Depends, Header, HTTPException
from supabase import Client

import database
import identity as identity_provider
from config import ADMIN_ONLY, SESSION_TIMEOUT_HOURS
from database import DataAPIError, with_identity
from identity import Identity, IdentityError, IdentityProvider
from schemas import User
from services import create_user, get_user_by_email
from store import Store

logger = logging.getLogger(__name__)


@dataclass
class Session:
    token: str
    store: Store = field(default_factory=Store)
    identity: Optional[Identity] = None
    db: Optional[Client] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SessionStore:
    """In-memory session registry keyed by opaque token."""

    def __init__(self, timeout_hours: int = SESSION_TIMEOUT_HOURS):
        self.timeout = timedelta(hours=timeout_hours)
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def _expired(self, session: Session, now: datetime) -> bool:
        return now - session.created_at > self.timeout

    def create(self) -> Session:
        """Open a session, first dropping every session past the timeout."""
        session = Session(token=secrets.token_urlsafe(32))
        now = datetime.now(timezone.utc)
        with self._lock:
            stale = [t for t, s in self._sessions.items() if self._expired(s, now)]
            for token in stale:
                del self._sessions[token]
            self._sessions[session.token] = session
        if stale:
            logger.debug("Dropped %d expired sessions", len(stale))
        return session

    def get(self, token: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(token)
            if session is None:
                return None
            if self._expired(session, datetime.now(timezone.utc)):
                self._sessions.pop(token, None)
                return None
            return session

    def drop(self, token: str):
        with self._lock:
            self._sessions.pop(token, None)

    def clear(self):
        with self._lock:
            self._sessions.clear()

    def __len__(self):
        return len(self._sessions)


sessions = SessionStore()


# --------------- Auth gate ------------------------------------------------

def sync_user(db: Client, identity: Identity) -> User:
    """Find the backend user for this identity, creating it on first sign-in."""
    user = get_user_by_email(db, identity.email)
    if user is None:
        user = create_user(db, identity.email, identity.display_name, identity.photo_url)
    return user


def on_auth_state_changed(db: Client, session: Session, identity: Optional[Identity]):
    auth = session.store.auth
    auth.is_loading = True
    try:
        if identity is not None:
            record = sync_user(db, identity)
            session.identity = identity
            auth.set_user(identity.serializable(), record)
        else:
            session.identity = None
            auth.set_user(None)
    except DataAPIError as e:
        logger.error("Error syncing user %s with the data API: %s", identity.email if identity else None, e)
        session.identity = None
        auth.set_user(None)
    finally:
        auth.is_loading = False


def sign_in(db: Client, provider: IdentityProvider, email: str, password: str) -> Optional[Session]:
    """Sign in and open a session. Returns None when the user record could not be synced."""
    ident = provider.sign_in(email, password)
    session = sessions.create()
    session.db = with_identity(db, ident.id_token, ident.email)
    on_auth_state_changed(session.db, session, ident)
    if session.store.auth.user is None:
        sessions.drop(session.token)
        return None
    return session


def sign_out(db: Client, session: Session):
    email = session.identity.email if session.identity else None
    on_auth_state_changed(db, session, None)
    session.db = None
    sessions.drop(session.token)
    logger.info("Signed out %s", email)


# --------------- Dependencies ---------------------------------------------

def get_db() -> Client:
    if database.db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return database.db


def get_identity_provider() -> IdentityProvider:
    if identity_provider.provider is None:
        raise HTTPException(status_code=500, detail="Identity provider not configured")
    return identity_provider.provider


def current_session(x_session_token: str = Header(default=""),
                    authorization: str = Header(default=""),
                    provider: IdentityProvider = Depends(get_identity_provider)) -> Session:
    token = x_session_token or authorization.replace("Bearer ", "").strip()
    session = sessions.get(token) if token else None
    if session is None or session.identity is None or session.store.auth.user is None:
        raise HTTPException(status_code=401, detail="Not signed in")
    if session.identity.is_expired():
        try:
            session.identity = provider.refresh(session.identity)
            session.db = None
        except IdentityError as e:
            sessions.drop(token)
            raise HTTPException(status_code=401, detail=e.message)
    return session


def require_admin(session: Session = Depends(current_session)) -> Session:
    if ADMIN_ONLY:
        record = session.store.auth.record
        if record is None or record.role != "admin":
            raise HTTPException(status_code=403, detail="Admin access required")
    return session


def session_db(session: Session = Depends(require_admin), db: Client = Depends(get_db)) -> Client:
    """The data API client carrying the signed-in user's identity, built once per ID token."""
    if session.db is None:
        session.db = with_identity(db, session.identity.id_token, session.identity.email)
    return session.db
