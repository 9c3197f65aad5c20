"""
Identity provider client: wraps the Firebase Identity Toolkit REST API.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
from pydantic import BaseModel

from config import DATA_API_TIMEOUT, FIREBASE_API_KEY

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1"

ERROR_MESSAGES = {
    "EMAIL_NOT_FOUND": "Invalid email or password",
    "INVALID_PASSWORD": "Invalid email or password",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password",
    "INVALID_EMAIL": "Invalid email address",
    "USER_DISABLED": "This account has been disabled",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts, try again later",
    "TOKEN_EXPIRED": "Session expired, sign in again",
    "INVALID_REFRESH_TOKEN": "Session expired, sign in again",
}


class IdentityError(Exception):
    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class Identity(BaseModel):
    uid: str
    email: str
    email_verified: bool = False
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    id_token: str
    refresh_token: Optional[str] = None
    expires_at: datetime

    def serializable(self) -> dict:
        """The subset safe to hand to the client store."""
        return {
            "uid": self.uid,
            "email": self.email,
            "email_verified": self.email_verified,
            "display_name": self.display_name,
            "photo_url": self.photo_url,
        }

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or datetime.now(timezone.utc)) >= self.expires_at


def _expiry(expires_in) -> datetime:
    # refresh a minute early
    return datetime.now(timezone.utc) + timedelta(seconds=int(expires_in or 3600) - 60)


class IdentityProvider:
    def __init__(self, api_key: str, *, timeout: float = DATA_API_TIMEOUT,
                 transport: Optional[httpx.BaseTransport] = None):
        self.api_key = api_key
        self._http = httpx.Client(timeout=timeout, transport=transport)

    def _post(self, url: str, **kwargs) -> dict:
        try:
            response = self._http.post(url, params={"key": self.api_key}, **kwargs)
        except httpx.HTTPError as e:
            raise IdentityError(f"Identity provider unreachable: {e}") from e
        if response.is_error:
            try:
                code = response.json().get("error", {}).get("message", "")
            except ValueError:
                code = ""
            # "TOO_MANY_ATTEMPTS_TRY_LATER : Access to this account ..."
            code = code.split(" ")[0]
            raise IdentityError(ERROR_MESSAGES.get(code, "Authentication failed"), code=code or None)
        return response.json()

    def sign_in(self, email: str, password: str) -> Identity:
        """Email/password sign-in, followed by an account lookup for profile fields."""
        data = self._post(
            f"{IDENTITY_TOOLKIT_URL}/accounts:signInWithPassword",
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        profile = self.lookup(data["idToken"])
        logger.info("Signed in %s", data.get("email", email))
        return Identity(
            uid=data["localId"],
            email=data.get("email", email),
            email_verified=bool(profile.get("emailVerified", False)),
            display_name=profile.get("displayName") or data.get("displayName") or None,
            photo_url=profile.get("photoUrl") or None,
            id_token=data["idToken"],
            refresh_token=data.get("refreshToken"),
            expires_at=_expiry(data.get("expiresIn")),
        )

    def lookup(self, id_token: str) -> dict:
        data = self._post(f"{IDENTITY_TOOLKIT_URL}/accounts:lookup", json={"idToken": id_token})
        users = data.get("users") or []
        return users[0] if users else {}

    def refresh(self, identity: Identity) -> Identity:
        """Exchange the refresh token for a fresh ID token."""
        if not identity.refresh_token:
            raise IdentityError(ERROR_MESSAGES["TOKEN_EXPIRED"], code="TOKEN_EXPIRED")
        data = self._post(
            f"{SECURE_TOKEN_URL}/token",
            data={"grant_type": "refresh_token", "refresh_token": identity.refresh_token},
        )
        return identity.model_copy(update={
            "id_token": data["id_token"],
            "refresh_token": data.get("refresh_token", identity.refresh_token),
            "expires_at": _expiry(data.get("expires_in")),
        })

    def close(self):
        self._http.close()


provider: Optional[IdentityProvider] = None
if FIREBASE_API_KEY:
    provider = IdentityProvider(FIREBASE_API_KEY)
