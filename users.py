"""Registration and admin user management."""

import logging
from datetime import datetime, timezone
from typing import List

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from auth import hash_password
from database import create_document, get_documents, to_object_id
from errors import ConflictError, NotFoundError, ValidationError
from schemas import PublicUser, RegisterRequest, User, UserUpdate

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "Email or username already exists"


def register_user(db: Database, req: RegisterRequest) -> PublicUser:
    if req.password != req.confirm_password:
        raise ValidationError("Passwords do not match")
    user_doc = User(
        fullname=req.fullname.strip(),
        username=req.username.strip(),
        email=req.email.lower(),
        phone=req.phone,
        password_hash=hash_password(req.password),
        gender=req.gender,
    )
    try:
        user_id = create_document("user", user_doc, using=db)
    except DuplicateKeyError:
        raise ConflictError(DUPLICATE_MESSAGE)
    logger.info("Registered user %s", user_id)
    return PublicUser.from_doc({"_id": user_id, **user_doc.model_dump()})


def list_users(db: Database) -> List[PublicUser]:
    users = get_documents("user", sort=[("created_at", -1)], projection={"password_hash": 0}, using=db)
    return [PublicUser.from_doc(u) for u in users]


def update_user(db: Database, user_id: str, patch: UserUpdate) -> PublicUser:
    oid = to_object_id(user_id)
    if not db["user"].find_one({"_id": oid}, {"_id": 1}):
        raise NotFoundError("User not found")
    update = {k: v for k, v in patch.model_dump().items() if v is not None}
    if "email" in update:
        update["email"] = update["email"].lower()
    update["updated_at"] = datetime.now(timezone.utc)
    try:
        db["user"].update_one({"_id": oid}, {"$set": update})
    except DuplicateKeyError:
        raise ConflictError(DUPLICATE_MESSAGE)

    # keep open sessions in step with the account
    if update.get("is_active") is False:
        db["session"].delete_many({"user_id": user_id})
    else:
        session_fields = {}
        if "fullname" in update:
            session_fields["name"] = update["fullname"]
        if "role" in update:
            session_fields["role"] = update["role"]
        if session_fields:
            db["session"].update_many({"user_id": user_id}, {"$set": session_fields})

    return PublicUser.from_doc(db["user"].find_one({"_id": oid}, {"password_hash": 0}))


def delete_user(db: Database, user_id: str) -> None:
    result = db["user"].delete_one({"_id": to_object_id(user_id)})
    if result.deleted_count == 0:
        raise NotFoundError("User not found")
    db["session"].delete_many({"user_id": user_id})
