"""
Authentication and sessions.

A session is a server-side ``session`` document plus a signed cookie that
names it. The cookie is an HS256 JWT ``{"sid": ..., "exp": ...}``; the
document holds the user id, display name and role. Handlers receive the
resolved ``SessionContext`` through ``get_session`` rather than reading any
global state.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, Request
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from config import SESSION_ALG, SESSION_COOKIE_NAME, SESSION_SECRET, SESSION_TTL_SECONDS
from deps import get_db
from errors import AuthError, PermissionDenied
from schemas import PublicUser, User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


class SessionContext(BaseModel):
    token: Optional[str] = None
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    name: Optional[str] = None
    role: str = "user"

    @classmethod
    def anonymous(cls) -> "SessionContext":
        return cls()

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and self.role == "admin"


def create_session_token(session_id: str, expires_at: datetime) -> str:
    return jwt.encode({"sid": session_id, "exp": expires_at}, SESSION_SECRET, algorithm=SESSION_ALG)


def establish_session(db: Database, user: dict) -> Tuple[str, SessionContext]:
    session_id = secrets.token_urlsafe(32)
    expires_at = datetime.now(timezone.utc) + timedelta(seconds=SESSION_TTL_SECONDS)
    name = user.get("fullname") or user.get("username", "")
    role = user.get("role", "user")
    db["session"].insert_one({
        "_id": session_id,
        "user_id": str(user["_id"]),
        "name": name,
        "role": role,
        "expires_at": expires_at,
    })
    token = create_session_token(session_id, expires_at)
    return token, SessionContext(token=token, session_id=session_id, user_id=str(user["_id"]), name=name, role=role)


def resolve_session(db: Database, token: Optional[str]) -> SessionContext:
    """Map a cookie value to a session. Anything invalid resolves to anonymous."""
    if not token:
        return SessionContext.anonymous()
    try:
        payload = jwt.decode(token, SESSION_SECRET, algorithms=[SESSION_ALG])
    except JWTError:
        return SessionContext.anonymous()
    session_id = payload.get("sid")
    doc = db["session"].find_one({"_id": session_id}) if session_id else None
    if not doc:
        return SessionContext.anonymous()
    return SessionContext(
        token=token,
        session_id=session_id,
        user_id=doc["user_id"],
        name=doc.get("name"),
        role=doc.get("role", "user"),
    )


def login(db: Database, email: str, password: str) -> Tuple[str, SessionContext]:
    user = db["user"].find_one({"email": email.strip().lower()})
    if not user or not user.get("password_hash"):
        # same bcrypt cost whether or not the account exists
        pwd_context.dummy_verify()
        logger.info("Login failed")
        raise AuthError()
    if not verify_password(password, user["password_hash"]) or not user.get("is_active", True):
        logger.info("Login failed")
        raise AuthError()
    return establish_session(db, user)


def login_with_provider(db: Database, profile: dict) -> Tuple[str, SessionContext]:
    """Find or create the user linked to a Google subject id, then open a session.

    An unknown subject is attached to an existing account by email only when
    the provider vouches for that address (``email_verified``).
    """
    subject = profile.get("sub")
    if not subject:
        raise AuthError("Identity provider returned no subject")
    user = db["user"].find_one({"google_id": subject})
    if not user:
        email = (profile.get("email") or "").lower()
        if not email:
            raise AuthError("Identity provider returned no email")
        if profile.get("email_verified") is not True:
            logger.info("Rejected provider login with unverified email")
            raise AuthError("Email address not verified")
        user = db["user"].find_one({"email": email})
        if user:
            db["user"].update_one({"_id": user["_id"]}, {"$set": {"google_id": subject}})
        else:
            user = _create_provider_user(db, subject, email, profile)
    if not user.get("is_active", True):
        raise AuthError()
    return establish_session(db, user)


def _create_provider_user(db: Database, subject: str, email: str, profile: dict) -> dict:
    try:
        doc = User(
            fullname=profile.get("name") or email.split("@")[0],
            username=f"google_{subject}",
            email=email,
            picture=profile.get("picture"),
            google_id=subject,
        ).model_dump()
    except SchemaError as e:
        logger.warning("Unusable profile from identity provider: %s", e)
        raise AuthError("Google sign-in failed")
    now = datetime.now(timezone.utc)
    doc.update(created_at=now, updated_at=now)
    try:
        db["user"].insert_one(doc)
    except DuplicateKeyError:
        raise AuthError("Account already exists")
    return doc


def current_user(db: Database, ctx: SessionContext) -> Optional[PublicUser]:
    if not ctx.is_authenticated:
        return None
    try:
        user = db["user"].find_one({"_id": ObjectId(ctx.user_id)}, {"password_hash": 0})
    except InvalidId:
        return None
    return PublicUser.from_doc(user) if user else None


def logout(db: Database, ctx: SessionContext) -> None:
    if ctx.session_id:
        db["session"].delete_one({"_id": ctx.session_id})
        logger.info("Session closed for user %s", ctx.user_id)


# --------------------- Dependencies ---------------------

def get_session(request: Request, db: Database = Depends(get_db)) -> SessionContext:
    return resolve_session(db, request.cookies.get(SESSION_COOKIE_NAME))


def require_user(ctx: SessionContext = Depends(get_session)) -> SessionContext:
    if not ctx.is_authenticated:
        raise AuthError("Authentication required")
    return ctx


def require_admin(ctx: SessionContext = Depends(require_user)) -> SessionContext:
    if ctx.role != "admin":
        raise PermissionDenied()
    return ctx
